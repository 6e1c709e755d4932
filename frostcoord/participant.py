"""
Participant side of the protocols, run off-chain by each custodian and by
whoever aggregates the signature. The coordinator only ever sees hashes,
opaque payloads, public points and the final signature produced here.

DKG:
    1. sample a degree t-1 polynomial, publish commitment_digest(C) then C
    2. hand f_i(j) to every other participant j (transport encryption is the
       caller's business)
    3. verify every received share against its sender's C, sum them into the
       long lived signing share s_j

Signing (FROST with BIP340 challenge):
    R   = sum_i D_i + rho_i * E_i
    c   = H_BIP0340/challenge(R.x, Y.x, m)
    z_i = d_i + e_i * rho_i + lambda_i * s_i * c
    sig = R.x || sum_i z_i
Nonces are negated when R has odd Y and shares when Y has odd Y, so the
result verifies as an ordinary BIP340 signature against the x-only group key.

Please refer to Komlo & Goldberg, https://eprint.iacr.org/2020/852.pdf
"""

from collections import namedtuple
from typing import Dict, List, Sequence, Tuple

from .commitment_ro import commit, commitment_digest
from .curve_op import (ec_add, ec_inv, ec_scalar_mul, has_even_y, order, point_sum, point_to_bytes,
                       point_to_xonly, pub_key_from_priv)
from .exceptions import InvalidShareError
from .schnorr import challenge, tagged_hash
from .shamir import (ParticipantShare, calculate_lagrange_coefficient, evaluate_polynomial, generate_commitments,
                     generate_polynomial, verify_share)
from .toyrand import int_sample


class DkgParticipant:
    def __init__(self, index: int, threshold: int, total: int):
        if not 1 <= index <= total:
            raise ValueError(f"index must be in [1, {total}]")
        if not 1 <= threshold <= total:
            raise ValueError("need 1 <= threshold <= total")
        self.index = index
        self.threshold = threshold
        self.total = total
        # never leaves this object
        self._coefficients = generate_polynomial(int_sample(order), threshold - 1)
        self.commitments = generate_commitments(self._coefficients)
        self.received: Dict[int, int] = {index: evaluate_polynomial(self._coefficients, index)}
        self.faulty: List[int] = []

    def nonce_commitment(self) -> bytes:
        return commitment_digest(self.commitments)

    def share_for(self, recipient: int) -> int:
        if not 1 <= recipient <= self.total:
            raise ValueError(f"recipient index must be in [1, {self.total}]")
        return evaluate_polynomial(self._coefficients, recipient)

    def share_payload(self, recipient: int) -> bytes:
        return self.share_for(recipient).to_bytes(32, "big")

    def receive_share(self, sender: int, value, sender_commitments: Sequence) -> None:
        if isinstance(value, (bytes, bytearray)):
            value = int.from_bytes(value, "big")
        share = ParticipantShare(self.index, value, list(sender_commitments))
        if len(share.commitment) != self.threshold or not verify_share(share):
            self.faulty.append(sender)
            raise InvalidShareError(f"share from participant {sender} does not match its commitments",
                                    sender=sender)
        self.received[sender] = value

    def signing_share(self) -> int:
        missing = [i for i in range(1, self.total + 1) if i not in self.received]
        if missing:
            raise ValueError(f"shares missing from {missing}")
        return sum(self.received.values()) % order

    def verification_share(self):
        return pub_key_from_priv(self.signing_share())


SigningNonce = namedtuple("SigningNonce", "hiding binding")
NonceCommitment = namedtuple("NonceCommitment", "index D E")


def generate_nonce() -> SigningNonce:
    return SigningNonce(int_sample(order), int_sample(order))


def public_nonce(index: int, nonce: SigningNonce) -> NonceCommitment:
    return NonceCommitment(index, pub_key_from_priv(nonce.hiding), pub_key_from_priv(nonce.binding))


def nonce_commitment_hash(public: NonceCommitment) -> Tuple[bytes, bytes]:
    """32 byte hash for the coordinator and the blind needed to open it."""
    return commit(point_to_bytes(public.D) + point_to_bytes(public.E))


def _encode(commitments: Sequence[NonceCommitment]) -> bytes:
    return b"".join(c.index.to_bytes(4, "big") + point_to_bytes(c.D) + point_to_bytes(c.E)
                    for c in sorted(commitments))


def binding_factor(index: int, message: bytes, commitments: Sequence[NonceCommitment]) -> int:
    data = index.to_bytes(4, "big") + message + _encode(commitments)
    return int.from_bytes(tagged_hash("FROST/rho", data), "big") % order


def group_commitment(message: bytes, commitments: Sequence[NonceCommitment]):
    return point_sum(ec_add(c.D, ec_scalar_mul(c.E, binding_factor(c.index, message, commitments)))
                     for c in commitments)


def _signers(commitments: Sequence[NonceCommitment]) -> List[int]:
    return [c.index for c in commitments]


def sign_share(index: int, share: int, nonce: SigningNonce, message: bytes,
               commitments: Sequence[NonceCommitment], group_key) -> int:
    R = group_commitment(message, commitments)
    d, e = nonce
    if not has_even_y(R):
        d, e = order - d, order - e
    s = share if has_even_y(group_key) else order - share
    c = challenge(point_to_xonly(R), point_to_xonly(group_key), message)
    lam = calculate_lagrange_coefficient(_signers(commitments), index)
    rho = binding_factor(index, message, commitments)
    return (d + e * rho + lam * s * c) % order


def verify_signature_share(index: int, z: int, public_share, message: bytes,
                           commitments: Sequence[NonceCommitment], group_key) -> bool:
    """Lets the aggregator pin an invalid signature on the participant who sent it."""
    mine = next((c for c in commitments if c.index == index), None)
    if mine is None:
        return False
    R = group_commitment(message, commitments)
    R_i = ec_add(mine.D, ec_scalar_mul(mine.E, binding_factor(index, message, commitments)))
    if not has_even_y(R):
        R_i = ec_inv(R_i)
    Y_i = public_share if has_even_y(group_key) else ec_inv(public_share)
    c = challenge(point_to_xonly(R), point_to_xonly(group_key), message)
    lam = calculate_lagrange_coefficient(_signers(commitments), index)
    return pub_key_from_priv(z) == ec_add(R_i, ec_scalar_mul(Y_i, c * lam))


def aggregate_signature(message: bytes, commitments: Sequence[NonceCommitment], shares: Dict[int, int]) -> bytes:
    if sorted(shares) != sorted(_signers(commitments)):
        raise ValueError("need exactly one signature share per committed signer")
    R = group_commitment(message, commitments)
    z = sum(shares.values()) % order
    return point_to_xonly(R) + z.to_bytes(32, "big")
