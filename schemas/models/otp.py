"""
One-time code document model.

Maps to the `otps` MongoDB collection.

code_hash stores SHA-256(code); the plain code is never stored.
used flips to True exactly once (compare-and-set) right before the document
is deleted. attempts counts failed guesses; reaching the ceiling kills the
code. A TTL index on expires_at sweeps codes nobody consumed.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import ConfigDict, Field

from schemas.models.base import MongoBaseModel, PyObjectId


class OtpPurpose(str, Enum):
    EMAIL_VERIFICATION = "email-verification"
    PASSWORD_RESET = "password-reset"
    EMAIL_CHANGE = "email-change"
    PASSWORD_CHANGE = "password-change"


class OtpDoc(MongoBaseModel):
    """Document model for the `otps` collection."""

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        use_enum_values=True,
    )

    email: str
    code_hash: str
    purpose: OtpPurpose
    user_id: Optional[PyObjectId] = None
    expires_at: datetime
    used: bool = False
    used_at: Optional[datetime] = None
    attempts: int = Field(default=0, ge=0)
    created_at: Optional[datetime] = None
