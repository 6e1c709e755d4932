"""
secp256k1 field and point primitives.
Utilities for:
    1. Curve membership checks and Y recovery for x-only keys.
    2. Modular exponentiation and inverse.
    3. EC point addition, inverse and scalar multiplication.
    4. Public key encodings (64 byte uncompressed, 32 byte x-only).

    Point addition is implementing:
    https://en.wikipedia.org/wiki/Elliptic_curve_point_multiplication#Point_addition

    x-only keys follow BIP340, a 32 byte x coordinate implicitly carries the even Y:
    https://github.com/bitcoin/bips/blob/master/bip-0340.mediawiki

"""

from collections import namedtuple

from ecdsa import SECP256k1

# The point at origin. This means generator * order = O
O = 'Origin'


# SECP256K1 domain params
p = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F
a = 0
b = 7
order = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
#############################

assert SECP256k1.curve.p() == p and SECP256k1.order == order


class Point(namedtuple("Point", "x y")):
    def __repr__(self):
        """Uncompressed"""
        return f"04{self.x:0>64X}{self.y:0>64X}"


generator = Point(0x79BE667EF9DCBBAC55A06295CE870B07029BFCDB2DCE28D959F2815B16F81798,
                  0x483ADA7726A3C4655DA4FBFC0E1108A8FD17B448A68554199C47D08FFB10D4B8)


def is_on_curve(x: int, y: int) -> bool:
    """
    wiestrass curve: y^2 = x^3 + ax + b
    Coordinates outside [0, p) are never accepted, even if they would
    satisfy the equation after reduction.
    """
    if not (isinstance(x, int) and isinstance(y, int)):
        return False
    if not (0 <= x < p and 0 <= y < p):
        return False
    return (y * y - (x * x * x + a * x + b)) % p == 0


def valid(P) -> bool:
    """
    Determine whether we have a valid representation of a point
    on our curve. The origin is considered valid.
    """
    if P == O:
        return True
    return isinstance(P, tuple) and len(P) == 2 and is_on_curve(P[0], P[1])


def mod_exp(base: int, exponent: int, modulus: int) -> int:
    if modulus <= 0:
        raise ValueError("modulus must be positive")
    return pow(base, exponent, modulus)


def mod_inverse(value: int, modulus: int) -> int:
    """
    Compute an inverse for value modulo modulus.

    It calculates the multiplicative inverse if exponent is negative and the value is coprime to modulus
    https://docs.python.org/3/library/functions.html#pow
    """
    if modulus <= 0:
        raise ValueError("modulus must be positive")
    if value % modulus == 0:
        raise ZeroDivisionError("Impossible inverse")
    try:
        return pow(value, -1, modulus)
    except ValueError:
        raise ZeroDivisionError(f"{value} is not invertible modulo {modulus}")


def scalar_inv_mod_p(x):
    return mod_inverse(x, p)


def calculate_y(x: int, even_parity: bool = True) -> int:
    """
    Recover the Y coordinate for x. p = 3 mod 4 so the square root is
    c^((p+1)/4). Raises ValueError when x is not the abscissa of a curve point.
    """
    if not isinstance(x, int) or not 0 <= x < p:
        raise ValueError("x coordinate out of range")
    c = (mod_exp(x, 3, p) + a * x + b) % p
    y = mod_exp(c, (p + 1) // 4, p)
    if y * y % p != c:
        raise ValueError(f"no curve point with x={x:0>64X}")
    if (y % 2 == 0) != even_parity:
        y = p - y
    return y


def has_even_y(P) -> bool:
    return P != O and P.y % 2 == 0


def ec_inv(P):
    """
    Inverse of the point P on the elliptic curve y^2 = x^3 + ax + b.
    https://en.wikipedia.org/wiki/Elliptic_curve_point_multiplication#Point_negation
    """
    if P == O:
        return P
    return Point(P.x, (-P.y) % p)


def ec_add(P, Q):
    """
    Sum of the points P and Q on the elliptic curve y^2 = x^3 + ax + b.
    https://en.wikipedia.org/wiki/Elliptic_curve_point_multiplication#Point_addition
    """
    if not (valid(P) and valid(Q)):
        raise ValueError("Invalid inputs")

    # Deal with the special cases where either P, Q, or P + Q is
    # the origin.
    if P == O:
        return Q
    if Q == O:
        return P
    # A + A_inv is the point at origin, the slope below would divide by zero.
    if Q == ec_inv(P):
        return O

    if P == Q:
        lambdA = (3 * P.x * P.x + a) * scalar_inv_mod_p(2 * P.y)
    else:
        lambdA = (Q.y - P.y) * scalar_inv_mod_p(Q.x - P.x)
    x = (lambdA * lambdA - P.x - Q.x) % p
    y = (lambdA * (P.x - x) - P.y) % p
    return Point(x, y)


def ec_sub(P, Q):
    return ec_add(P, ec_inv(Q))


def ec_scalar_mul(P, scalar):
    scalar %= order
    if not valid(P):
        raise ValueError("Invalid point")
    cache = P
    ret = O
    # keep on doubling and only add for binary 1.
    while scalar:
        if scalar & 1:
            ret = ec_add(ret, cache)
        cache = ec_add(cache, cache)
        scalar >>= 1
    return ret


def pub_key_from_priv(private):
    return ec_scalar_mul(generator, private)


def point_sum(points):
    total = O
    for P in points:
        total = ec_add(total, P)
    return total


def point_to_bytes(P) -> bytes:
    """64 byte x || y, no prefix."""
    if P == O:
        raise ValueError("the point at origin has no encoding")
    return P.x.to_bytes(32, "big") + P.y.to_bytes(32, "big")


def point_from_bytes(data: bytes) -> Point:
    if len(data) != 64:
        raise ValueError(f"uncompressed point must be 64 bytes, got {len(data)}")
    x = int.from_bytes(data[:32], "big")
    y = int.from_bytes(data[32:], "big")
    if not is_on_curve(x, y):
        raise ValueError("point is not on secp256k1")
    return Point(x, y)


def point_to_xonly(P) -> bytes:
    if P == O:
        raise ValueError("the point at origin has no encoding")
    return P.x.to_bytes(32, "big")


def lift_x(data) -> Point:
    """x-only key to the point with even Y."""
    x = int.from_bytes(data, "big") if isinstance(data, (bytes, bytearray)) else data
    if isinstance(data, (bytes, bytearray)) and len(data) != 32:
        raise ValueError(f"x-only key must be 32 bytes, got {len(data)}")
    return Point(x, calculate_y(x, even_parity=True))


def parse_public_key(data: bytes) -> Point:
    """Accepts a 32 byte x-only key or a 64 byte uncompressed key."""
    if len(data) == 32:
        return lift_x(data)
    if len(data) == 64:
        return point_from_bytes(data)
    raise ValueError(f"public key must be 32 or 64 bytes, got {len(data)}")


def compressed_hex(point) -> str:
    if point.y % 2 == 0:
        return f"02{point.x:0>64X}"
    return f"03{point.x:0>64X}"


Signature = namedtuple("Signature", "r s")


class Signature(Signature):
    def __repr__(self):
        return f"{self.r:0>64X}{self.s:0>64X}"

    def to_bytes(self) -> bytes:
        return self.r.to_bytes(32, "big") + self.s.to_bytes(32, "big")

    @classmethod
    def from_bytes(cls, data: bytes) -> "Signature":
        if len(data) != 64:
            raise ValueError(f"signature must be 64 bytes, got {len(data)}")
        return cls(int.from_bytes(data[:32], "big"), int.from_bytes(data[32:], "big"))
