"""
Commitment scheme using a hash function(ROM) and fixed length blinding factor.

Please refer to https://eprint.iacr.org/2020/540.pdf section 2.6

The coordinator only ever stores the 32 byte commitment, it never learns what
was committed to until (and unless) the participant reveals it.
"""

import hashlib
from typing import Sequence, Tuple

from .curve_op import point_to_bytes
from .toyrand import token

blind_length = 32
commitment_length = 32


def commit(input: bytes) -> Tuple[bytes, bytes]:
    r = token(blind_length)
    return hashlib.sha3_256(input + r).digest(), r


def verify_commitment(commitment: bytes, r: bytes, input: bytes) -> bool:
    if len(commitment) != commitment_length or len(r) != blind_length or not input:
        return False
    return hashlib.sha3_256(input + r).digest() == commitment


def commitment_digest(points: Sequence) -> bytes:
    """
    Deterministic commitment to a Feldman coefficient vector. The points are
    already uniformly random so no blinding factor is needed; the digest is
    published first and the vector revealed once everyone has committed.
    """
    if not points:
        raise ValueError("cannot commit to an empty vector")
    return hashlib.sha3_256(b"".join(point_to_bytes(P) for P in points)).digest()
