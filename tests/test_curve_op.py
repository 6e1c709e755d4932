"""
Tests
"""

import pytest
import random
from ecdsa import SECP256k1
from frostcoord.curve_op import (O, Point, Signature, calculate_y, compressed_hex, ec_add, ec_inv, ec_scalar_mul,
                                 ec_sub, generator, has_even_y, is_on_curve, lift_x, mod_inverse, order, p,
                                 parse_public_key, point_from_bytes, point_sum, point_to_bytes, point_to_xonly,
                                 pub_key_from_priv, valid)


def test_generator_matches_ecdsa_library():
    assert O == ec_scalar_mul(generator, order), "Generator seems off"
    assert generator.x == SECP256k1.generator.x() and generator.y == SECP256k1.generator.y()


def test_scalar_mul_matches_ecdsa_library():
    for _ in range(3):
        k = random.randint(1, order - 1)
        ours = pub_key_from_priv(k)
        theirs = SECP256k1.generator * k
        assert (ours.x, ours.y) == (theirs.x(), theirs.y())


def test_point_addition():
    secret1 = random.randint(1, order - 1)
    secret2 = random.randint(1, order - 1)
    pub1 = pub_key_from_priv(secret1)
    pub2 = pub_key_from_priv(secret2)
    assert ec_add(pub1, pub2) == pub_key_from_priv((secret1 + secret2) % order)
    assert ec_sub(pub1, pub1) == O
    assert ec_add(pub1, ec_inv(pub1)) == O
    assert ec_add(O, pub1) == pub1
    assert point_sum([pub1, pub2, ec_inv(pub2)]) == pub1


def test_doubling():
    assert ec_add(generator, generator) == pub_key_from_priv(2)
    assert ec_scalar_mul(generator, 0) == O
    assert ec_scalar_mul(generator, order + 5) == pub_key_from_priv(5)


def test_on_curve_checks():
    assert is_on_curve(generator.x, generator.y)
    assert not is_on_curve(generator.x, generator.y + 1)
    # in range only, reduction does not make a point valid
    assert not is_on_curve(generator.x + p, generator.y)
    assert not is_on_curve(-1, 0)
    assert valid(O)
    assert not valid((1, 2))
    pytest.raises(ValueError, ec_add, Point(1, 2), generator)
    pytest.raises(ValueError, ec_scalar_mul, Point(1, 2), 3)


def test_mod_inverse():
    assert mod_inverse(3, 7) == 5
    pytest.raises(ZeroDivisionError, mod_inverse, 0, order)
    pytest.raises(ZeroDivisionError, mod_inverse, 4, 8)
    pytest.raises(ValueError, mod_inverse, 3, 0)


def test_calculate_y_parity():
    y_even = calculate_y(generator.x, even_parity=True)
    y_odd = calculate_y(generator.x, even_parity=False)
    assert y_even % 2 == 0 and y_odd % 2 == 1
    assert y_even + y_odd == p
    assert generator.y in (y_even, y_odd)
    # BIP340 vector 5, not on the curve
    pytest.raises(ValueError, calculate_y, 0xEEFDEA4CDB677750A420FEE807EACF21EB9898AE79B9768766E4FAA04A2D4A34)
    pytest.raises(ValueError, calculate_y, p)


def test_xonly_round_trip():
    for _ in range(5):
        P = pub_key_from_priv(random.randint(1, order - 1))
        even = P if has_even_y(P) else ec_inv(P)
        assert lift_x(point_to_xonly(even)) == even
        assert lift_x(point_to_xonly(P)).x == P.x


def test_point_encodings():
    P = pub_key_from_priv(random.randint(1, order - 1))
    data = point_to_bytes(P)
    assert len(data) == 64
    assert point_from_bytes(data) == P
    assert parse_public_key(data) == P
    assert parse_public_key(point_to_xonly(P)).x == P.x
    assert compressed_hex(P)[:2] == ("02" if P.y % 2 == 0 else "03")
    assert repr(P) == "04" + data.hex().upper()
    pytest.raises(ValueError, point_to_bytes, O)
    pytest.raises(ValueError, point_from_bytes, data[:63])
    pytest.raises(ValueError, point_from_bytes, data[:32] + (P.y + 1).to_bytes(32, "big"))
    pytest.raises(ValueError, parse_public_key, b"\x02" + data[:32])
    pytest.raises(ValueError, lift_x, b"\x00" * 31)


def test_signature_encoding():
    sig = Signature(random.randint(1, order - 1), random.randint(1, order - 1))
    data = sig.to_bytes()
    assert Signature.from_bytes(data) == sig
    assert repr(sig) == data.hex().upper()
    pytest.raises(ValueError, Signature.from_bytes, data + b"\x00")
