"""
Random code and token identifiers: pure functions over the ``secrets`` module.
"""

from __future__ import annotations

import secrets
import string


def generate_otp_code(length: int = 6) -> str:
    """Generate a cryptographically secure numeric OTP.

    Every digit is drawn independently, so leading zeros are as likely as any
    other digit and all ``10 ** length`` codes are equally probable.
    """
    return "".join(secrets.choice(string.digits) for _ in range(length))


def generate_token_id() -> str:
    """Return a random 128-bit hex identifier used as a JWT ``jti``."""
    return secrets.token_hex(16)
