"""
Password hashing helpers for customer accounts.

Responsibilities:
- Hash passwords using Argon2id (salt is generated and embedded in the encoded hash)
- Verify passwords without raising on malformed or foreign hashes
- Report when an existing hash should be upgraded to the current parameters
"""
from __future__ import annotations

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError
from argon2.low_level import Type

_hasher = PasswordHasher(time_cost=2, memory_cost=102400, parallelism=8, hash_len=32, type=Type.ID)


def hash_password(password: str) -> str:
    """Return an encoded Argon2id hash for ``password``."""
    if not password:
        raise ValueError("password must not be empty")
    return _hasher.hash(password)


def verify_password(password: str, encoded_hash: str) -> bool:
    if not password or not encoded_hash:
        return False
    if not encoded_hash.startswith("$argon2"):
        return False
    try:
        return _hasher.verify(encoded_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False


def needs_rehash(encoded_hash: str) -> bool:
    try:
        return _hasher.check_needs_rehash(encoded_hash)
    except InvalidHashError:
        return True
