"""
Shamir secret sharing with Feldman commitments over the secp256k1 scalar field.

The threshold scheme is based on values t,n
t = minimum number of shares that reconstruct the secret (polynomial degree is t-1)
n = total number of participants.

Share i is f(i) for i = 1..n; index 0 is f(0), the secret, and is never handed out.
Each coefficient is published as coefficient*G so a recipient can check
    share*G == sum_j C_j * index^j
without learning anything about the other shares.

For more details refer Section 2.8 of https://eprint.iacr.org/2020/540.pdf and
Komlo & Goldberg, "FROST: Flexible Round-Optimized Schnorr Threshold Signatures".
"""

import hashlib
from collections import namedtuple
from typing import Dict, Iterable, List, Optional, Sequence

from .curve_op import O, ec_add, ec_scalar_mul, order, point_sum, pub_key_from_priv, valid
from .toyrand import int_sample, token

ParticipantShare = namedtuple("ParticipantShare", "index value commitment", defaults=(None,))


def _coefficient(nonce: Optional[bytes], k: int) -> int:
    if nonce is None:
        return int_sample(order)
    # the nonce only separates domains, fresh CSPRNG bytes still carry the entropy
    digest = hashlib.sha256(nonce + k.to_bytes(4, "big") + token(32)).digest()
    return int.from_bytes(digest, "big") % order or int_sample(order)


def generate_polynomial(secret: int, degree: int, nonce: Optional[bytes] = None) -> List[int]:
    """
    coefficients [c0, c1, ..., c_degree] with c0 = secret.
    """
    if degree < 0:
        raise ValueError("degree must be non-negative")
    return [secret % order] + [_coefficient(nonce, k) for k in range(1, degree + 1)]


def evaluate_polynomial(coeffs: Sequence[int], x: int) -> int:
    """
    Horner's rule. For example let the polynomial be y = ax^2 + bx + c
    with coeffs = [c, b, a]:
      step 0(initialize):                       y = a
      step 1(multiply with x and add next coef): y = a*x + b
      step 2(multiply with x and add next coef): y = (a*x + b)*x + c
    """
    if not coeffs:
        raise ValueError("empty polynomial")
    y = 0
    for c in reversed(coeffs):
        y = (y * x + c) % order
    return y


def generate_commitments(coeffs: Sequence[int]) -> list:
    if not coeffs:
        raise ValueError("empty polynomial")
    return [pub_key_from_priv(c) for c in coeffs]


def generate_shares(secret: int, t: int, n: int, nonce: Optional[bytes] = None) -> List[ParticipantShare]:
    if not 1 <= t <= n:
        raise ValueError(f"need 1 <= t <= n, got t={t} n={n}")
    coeffs = generate_polynomial(secret, t - 1, nonce)
    commitments = generate_commitments(coeffs)
    return [ParticipantShare(i, evaluate_polynomial(coeffs, i), commitments) for i in range(1, n + 1)]


def expected_public_share(commitments: Sequence, index: int):
    """
    Right side of the vss equation: sum_j C_j * index^j
    """
    if index < 1:
        raise ValueError("share index must be >= 1")
    acc = O
    for j, C in enumerate(commitments):
        acc = ec_add(acc, ec_scalar_mul(C, pow(index, j, order)))
    return acc


def verify_share(share: ParticipantShare, commitments: Optional[Sequence] = None) -> bool:
    """
    A False here means the sender handed out a share that is not on the
    polynomial it committed to; its contribution must be excluded.
    """
    commitments = share.commitment if commitments is None else commitments
    if not commitments or share.index < 1:
        return False
    if not all(valid(C) and C != O for C in commitments):
        return False
    return pub_key_from_priv(share.value) == expected_public_share(commitments, share.index)


def _indices(items: Iterable) -> List[int]:
    return [s.index if isinstance(s, ParticipantShare) else s for s in items]


def calculate_lagrange_coefficient(indices: Iterable, i: int) -> int:
    """
    lambda_i(0) = prod_{j != i} j / (j - i)  mod order

    Each share multiplied by its coefficient and summed gives f(0). Accepts
    plain indices or ParticipantShare objects.
    """
    idx = _indices(indices)
    if len(set(idx)) != len(idx):
        raise ZeroDivisionError(f"duplicate share indices {sorted(idx)}")
    if i not in idx:
        raise ValueError(f"index {i} not part of the interpolation set")
    num = 1
    denom = 1
    for j in idx:
        if j != i:
            num = num * j % order
            denom = denom * (j - i) % order
    if denom == 0:
        raise ZeroDivisionError("indices collide modulo the group order")
    return num * pow(denom, -1, order) % order


def _take(shares: Sequence[ParticipantShare], t: int) -> List[ParticipantShare]:
    if t < 1:
        raise ValueError("threshold must be >= 1")
    if len(shares) < t:
        raise ValueError(f"need at least {t} shares, got {len(shares)}")
    return list(shares[:t])


def reconstruct_secret(shares: Sequence[ParticipantShare], t: int) -> int:
    subset = _take(shares, t)
    return sum(calculate_lagrange_coefficient(subset, s.index) * s.value for s in subset) % order


def aggregate_public_keys(shares: Sequence[ParticipantShare], t: int):
    """
    sum_i (lambda_i * share_i) * G over the first t shares. Since scalar
    multiplication distributes over the sum this is a single multiplication.
    """
    subset = _take(shares, t)
    scalar = sum(calculate_lagrange_coefficient(subset, s.index) * s.value for s in subset) % order
    return pub_key_from_priv(scalar)


def aggregate_public_points(points: Dict[int, object], t: int):
    """
    Same interpolation over public shares Y_i = share_i * G, keyed by index.
    The lowest t indices are used.
    """
    if t < 1:
        raise ValueError("threshold must be >= 1")
    if len(points) < t:
        raise ValueError(f"need at least {t} public shares, got {len(points)}")
    chosen = sorted(points)[:t]
    return point_sum(ec_scalar_mul(points[i], calculate_lagrange_coefficient(chosen, i)) for i in chosen)


def sum_commitments(vectors: Sequence[Sequence]) -> list:
    """
    Element wise sum of per dealer coefficient commitments:
        Phi_k = sum_d C_k^(d)
    """
    if not vectors:
        raise ValueError("no commitment vectors")
    t = len(vectors[0])
    if any(len(v) != t for v in vectors):
        raise ValueError("commitment vectors differ in length")
    return [point_sum(v[k] for v in vectors) for k in range(t)]
