"""
Scalar sampling from the operating system CSPRNG.

Nothing here may be seeded from timestamps, session ids or other public data:
a predictable polynomial coefficient leaks the secret it protects.
"""

import secrets


def int_sample(upper: int) -> int:
    """Uniform integer in [1, upper)."""
    if upper <= 1:
        raise ValueError("upper bound must be greater than 1")
    return 1 + secrets.randbelow(upper - 1)


def token(length: int = 32) -> bytes:
    return secrets.token_bytes(length)
