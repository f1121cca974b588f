"""
Identity and credential validators. Framework-agnostic pure functions.

Normalization (trim + lowercase) always runs before validation so that
uniqueness checks compare canonical values.
"""

from __future__ import annotations

import re
from typing import List

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128

USERNAME_MIN_LENGTH = 3
USERNAME_MAX_LENGTH = 30

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_USERNAME_RE = re.compile(r"^[a-z0-9_]+$")
_OTP_RE = re.compile(r"^\d{6}$")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def normalize_username(username: str) -> str:
    return (username or "").strip().lower()


def validate_email(email: str) -> bool:
    """Return True if *email* looks like ``local@domain.tld`` (no whitespace)."""
    return bool(_EMAIL_RE.match(email)) and len(email) <= 254


def validate_username(username: str) -> bool:
    """Return True for 3–30 characters of lowercase letters, digits or underscores."""
    return (
        USERNAME_MIN_LENGTH <= len(username) <= USERNAME_MAX_LENGTH
        and bool(_USERNAME_RE.match(username))
    )


def validate_otp_format(code: str) -> bool:
    """Return True if *code* is exactly six ASCII digits."""
    return bool(_OTP_RE.match(code))


def validate_password(password: str) -> List[str]:
    """
    Check *password* against the password policy.

    Returns:
        List of unmet requirements; empty when the password is acceptable.
    """
    if not password:
        return ["Password is required"]

    missing = []
    if len(password) < PASSWORD_MIN_LENGTH:
        missing.append(f"At least {PASSWORD_MIN_LENGTH} characters")
    if len(password) > PASSWORD_MAX_LENGTH:
        missing.append(f"Maximum {PASSWORD_MAX_LENGTH} characters")
    if not password.strip():
        missing.append("Must not be only whitespace")
    return missing
