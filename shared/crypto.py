"""
Cryptographic helpers: password hashing and code/token digests.

Uses argon2 for passwords (via argon2-cffi) and SHA-256 for one-time codes
and refresh-token digests, so no plaintext secret is ever persisted.
"""

from __future__ import annotations

import hashlib
import hmac

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

_password_hasher = PasswordHasher()


def hash_password(plain_password: str) -> str:
    """Hash *plain_password* with argon2id.

    Returns:
        Argon2 hash string (includes algorithm parameters and salt).
    """
    return _password_hasher.hash(plain_password)


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    """Verify *plain_password* against an argon2 *password_hash*.

    Returns:
        ``True`` if the password matches, ``False`` for a mismatch, a missing
        hash or a malformed hash.
    """
    if not password_hash:
        return False
    try:
        return _password_hasher.verify(password_hash, plain_password)
    except (VerificationError, InvalidHashError):
        return False


def hash_token(token: str) -> str:
    """Return the hex-encoded SHA-256 digest of *token*.

    Used for OTP codes and refresh tokens before they are stored.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def digests_match(candidate: str, stored_digest: str) -> bool:
    """Constant-time comparison of two hex digests."""
    return hmac.compare_digest(candidate.encode("ascii"), stored_digest.encode("ascii"))
