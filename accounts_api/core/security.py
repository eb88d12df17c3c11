"""Security helpers (password hashing and reset secrets)."""

from __future__ import annotations

import hashlib
import secrets
from functools import lru_cache

from argon2 import PasswordHasher, exceptions as argon_exc
from argon2.low_level import Type

from .config import get_settings
from .errors import BadRequestError

RESET_SECRET_BYTES = 32


@lru_cache
def _hasher(time_cost: int) -> PasswordHasher:
    return PasswordHasher(time_cost=time_cost, type=Type.ID)


def _current_hasher() -> PasswordHasher:
    return _hasher(max(1, get_settings().password_hash_cost))


def hash_password(password: str) -> str:
    """Create an Argon2id hash using the configured cost factor."""
    if not isinstance(password, str) or not password:
        raise ValueError("password must be a non-empty string")
    return _current_hasher().hash(password)


def verify_password(password: str, stored_hash: str | None) -> bool:
    if not password or not stored_hash:
        return False
    try:
        return _current_hasher().verify(stored_hash, password)
    except (argon_exc.VerifyMismatchError, argon_exc.VerificationError, argon_exc.InvalidHashError):
        return False


def new_reset_secret() -> str:
    """256 bits of randomness, hex encoded. Sent to the user, never stored."""
    return secrets.token_hex(RESET_SECRET_BYTES)


def hash_reset_secret(secret: str) -> str:
    # lookup key, not a password: a fast deterministic digest is enough
    return hashlib.sha256((secret or "").encode("utf-8")).hexdigest()


MIN_PASSWORD_LENGTH = 8


def check_password_policy(password: str | None) -> str:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise BadRequestError(f"Password must have at least {MIN_PASSWORD_LENGTH} characters")
    return password
