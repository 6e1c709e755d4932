"""
This module is an implementation of BIP340 Schnorr signatures over secp256k1.
Please refer to https://github.com/bitcoin/bips/blob/master/bip-0340.mediawiki

Verification is pure and stateless. A signing session picks its verifier by
signature type, or by a named override registered with the signing protocol,
so a session targeting another asset network can swap the scheme.
"""

import hashlib
from enum import Enum
from typing import Dict, Optional, Protocol, Union

from ecdsa import SECP256k1, VerifyingKey
from ecdsa.keys import BadDigestError, BadSignatureError
from ecdsa.util import sigdecode_string

from .curve_op import (O, Point, Signature, ec_scalar_mul, ec_sub, has_even_y, lift_x,
                       order, p, parse_public_key, point_to_bytes, point_to_xonly, pub_key_from_priv, valid)
from .toyrand import token

SIGNATURE_LENGTH = 64


def tagged_hash(tag: str, data: bytes) -> bytes:
    tag_hash = hashlib.sha256(tag.encode()).digest()
    return hashlib.sha256(tag_hash + tag_hash + data).digest()


def challenge(r_x: bytes, pub_x: bytes, message: bytes) -> int:
    return int.from_bytes(tagged_hash("BIP0340/challenge", r_x + pub_x + message), "big") % order


def _as_point(public_key) -> Point:
    if isinstance(public_key, Point):
        if not valid(public_key) or public_key == O:
            raise ValueError("public key is not on secp256k1")
        return public_key
    return parse_public_key(bytes(public_key))


def _as_bytes(signature) -> bytes:
    if isinstance(signature, Signature):
        if not (0 <= signature.r < 2 ** 256 and 0 <= signature.s < 2 ** 256):
            raise ValueError("signature component out of range")
        return signature.to_bytes()
    return bytes(signature)


def schnorr_verify(public_key, message: bytes, signature) -> bool:
    try:
        P = _as_point(public_key)
        sig = _as_bytes(signature)
    except (TypeError, ValueError):
        return False
    if len(sig) != SIGNATURE_LENGTH:
        return False
    # BIP340 keys are x-only, a full key is verified through its even Y twin
    P = lift_x(P.x)
    r = int.from_bytes(sig[:32], "big")
    s = int.from_bytes(sig[32:], "big")
    if r >= p or s >= order:
        return False
    e = challenge(sig[:32], point_to_xonly(P), message)
    R = ec_sub(pub_key_from_priv(s), ec_scalar_mul(P, e))
    if R == O or not has_even_y(R):
        return False
    return R.x == r


def schnorr_sign(secret: int, message: bytes, aux_rand: Optional[bytes] = None) -> bytes:
    """
    Single key BIP340 signing. Threshold signatures are produced by
    participant.aggregate_signature instead; this is for tooling and tests.
    """
    if not 1 <= secret < order:
        raise ValueError("secret key out of range")
    aux_rand = token(32) if aux_rand is None else aux_rand
    if len(aux_rand) != 32:
        raise ValueError("aux_rand must be 32 bytes")
    P = pub_key_from_priv(secret)
    d = secret if has_even_y(P) else order - secret
    masked = bytes(x ^ y for x, y in zip(d.to_bytes(32, "big"), tagged_hash("BIP0340/aux", aux_rand)))
    k0 = int.from_bytes(tagged_hash("BIP0340/nonce", masked + point_to_xonly(P) + message), "big") % order
    if k0 == 0:
        raise RuntimeError("nonce is zero")
    R = pub_key_from_priv(k0)
    k = k0 if has_even_y(R) else order - k0
    e = challenge(point_to_xonly(R), point_to_xonly(P), message)
    sig = point_to_xonly(R) + ((k + e * d) % order).to_bytes(32, "big")
    assert schnorr_verify(P, message, sig)
    return sig


class Verifier(Protocol):
    def verify(self, public_key, message_hash: bytes, signature) -> bool:
        ...


class SchnorrVerifier:
    """BIP340 against a 32 byte x-only or 64 byte uncompressed key."""

    name = "schnorr-bip340"

    def verify(self, public_key, message_hash: bytes, signature) -> bool:
        return schnorr_verify(public_key, message_hash, signature)


class EcdsaVerifier:
    """
    ECDSA over secp256k1 with a prehashed 32 byte digest and a raw r || s
    signature, for networks that cannot spend to a taproot key.
    """

    name = "ecdsa-secp256k1"

    def verify(self, public_key, message_hash: bytes, signature) -> bool:
        try:
            P = _as_point(public_key)
            sig = _as_bytes(signature)
        except (TypeError, ValueError):
            return False
        if len(sig) != SIGNATURE_LENGTH or len(message_hash) != 32:
            return False
        vk = VerifyingKey.from_string(point_to_bytes(P), curve=SECP256k1)
        try:
            return vk.verify_digest(sig, message_hash, sigdecode=sigdecode_string)
        except (BadSignatureError, BadDigestError):
            return False


class SignatureType(str, Enum):
    SCHNORR_BIP340 = "schnorr-bip340"
    ECDSA_SECP256K1 = "ecdsa-secp256k1"


def default_verifiers() -> Dict[str, Verifier]:
    return {
        SignatureType.SCHNORR_BIP340.value: SchnorrVerifier(),
        SignatureType.ECDSA_SECP256K1.value: EcdsaVerifier(),
    }


def signature_bytes(signature: Union[bytes, Signature]) -> bytes:
    return _as_bytes(signature)
