"""
Request DTOs for authenticated account endpoints.

RequestPasswordChangeRequest  — PUT /api/users/password/request
VerifyPasswordChangeRequest   — PUT /api/users/password/verify
RequestEmailChangeRequest     — PUT /api/users/email
VerifyEmailChangeRequest      — PUT /api/users/email/verify
UpdateProfileRequest          — PUT /api/users/profile
DeleteAccountRequest          — DELETE /api/users/me
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field, model_validator

from schemas.dto.requests.auth import (
    DisplayName,
    Email,
    NewPassword,
    OtpCode,
    RequestModel,
)


class RequestPasswordChangeRequest(RequestModel):
    """Step 1 of a password change: re-prove knowledge of the current password."""

    current_password: str = Field(min_length=1)


class VerifyPasswordChangeRequest(RequestModel):
    """Step 2 of a password change: the emailed code plus the new password."""

    code: OtpCode
    new_password: NewPassword
    confirm_password: str

    @model_validator(mode="after")
    def _passwords_match(self) -> "VerifyPasswordChangeRequest":
        if self.new_password != self.confirm_password:
            raise ValueError("passwords do not match")
        return self


class RequestEmailChangeRequest(RequestModel):
    current_password: str = Field(min_length=1)
    new_email: Email


class VerifyEmailChangeRequest(RequestModel):
    new_email: Email
    code: OtpCode


class UpdateProfileRequest(RequestModel):
    """Allow-listed profile update. Unknown keys are ignored, never copied onto the user."""

    display_name: DisplayName = None
    bio: Optional[str] = Field(default=None, max_length=500)
    avatar_url: Optional[str] = Field(default=None, max_length=2048)


class DeleteAccountRequest(RequestModel):
    password: str = Field(min_length=1)
