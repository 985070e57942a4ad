"""
Password hashing using argon2id.

Only the hash is stored in ``users.password``; the plaintext never leaves the
signup and login handlers.
"""

from __future__ import annotations

import argon2

_hasher = argon2.PasswordHasher(
    time_cost=2,
    memory_cost=65536,  # 64 MB
    parallelism=1,
    hash_len=32,
    salt_len=16,
    type=argon2.Type.ID,  # argon2id
)

MIN_PASSWORD_LENGTH = 6
MAX_PASSWORD_LENGTH = 128


def hash_password(password: str) -> str:
    """Hash a password using argon2id. Returns the full encoded hash."""
    return _hasher.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against its stored hash.

    Returns True only on a match. Never raises on mismatch or on a malformed hash.
    """
    try:
        return _hasher.verify(password_hash, password)
    except argon2.exceptions.VerifyMismatchError:
        return False
    except argon2.exceptions.InvalidHashError:
        return False


def check_needs_rehash(password_hash: str) -> bool:
    """Check whether the hash was produced with outdated parameters."""
    return _hasher.check_needs_rehash(password_hash)
