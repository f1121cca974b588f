"""
Request DTOs for authentication endpoints.

SignupRequest                 — POST /api/auth/signup
VerifyEmailRequest            — POST /api/auth/verify-email
ResendVerificationRequest     — POST /api/auth/resend-verification
LoginRequest                  — POST /api/auth/login
RefreshRequest                — POST /api/auth/refresh
LogoutRequest                 — POST /api/auth/logout
RequestPasswordResetRequest   — POST /api/auth/request-password-reset
ResetPasswordRequest          — POST /api/auth/reset-password

Bodies accept both snake_case and camelCase keys (``confirm_password`` or
``confirmPassword``). Emails and usernames are trimmed and lowercased here,
before anything touches the store.
"""

from __future__ import annotations

from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from shared.validators import (
    normalize_email,
    normalize_username,
    validate_email,
    validate_otp_format,
    validate_password,
    validate_username,
)


class RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_email(value: str) -> str:
    email = normalize_email(value)
    if not validate_email(email):
        raise ValueError("please provide a valid email")
    return email


def _check_username(value: str) -> str:
    username = normalize_username(value)
    if not validate_username(username):
        raise ValueError(
            "username must be 3-30 characters of lowercase letters, numbers and underscores"
        )
    return username


def _check_code(value: str) -> str:
    code = value.strip()
    if not validate_otp_format(code):
        raise ValueError("code must be 6 digits")
    return code


def _check_new_password(value: str) -> str:
    missing = validate_password(value)
    if missing:
        raise ValueError("password does not meet requirements: " + ", ".join(missing))
    return value


def _clean_display_name(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if len(value) > 50:
        raise ValueError("display name cannot exceed 50 characters")
    return value or None


Email = Annotated[str, AfterValidator(_check_email)]
Username = Annotated[str, AfterValidator(_check_username)]
OtpCode = Annotated[str, AfterValidator(_check_code)]
NewPassword = Annotated[str, AfterValidator(_check_new_password)]
DisplayName = Annotated[Optional[str], AfterValidator(_clean_display_name)]


class SignupRequest(RequestModel):
    """Request body for POST /api/auth/signup."""

    username: Username
    email: Email
    password: NewPassword
    confirm_password: str
    display_name: DisplayName = None

    @model_validator(mode="after")
    def _passwords_match(self) -> "SignupRequest":
        if self.password != self.confirm_password:
            raise ValueError("passwords do not match")
        return self


class VerifyEmailRequest(RequestModel):
    """Request body for POST /api/auth/verify-email."""

    email: Email
    code: OtpCode


class ResendVerificationRequest(RequestModel):
    """Request body for POST /api/auth/resend-verification."""

    email: Email


class LoginRequest(RequestModel):
    """Request body for POST /api/auth/login."""

    email: Email
    password: str = Field(min_length=1)


class RefreshRequest(RequestModel):
    """Request body for POST /api/auth/refresh."""

    refresh_token: str = Field(min_length=1)


class LogoutRequest(RequestModel):
    """Request body for POST /api/auth/logout. The refresh token is optional."""

    refresh_token: Optional[str] = None


class RequestPasswordResetRequest(RequestModel):
    """Request body for POST /api/auth/request-password-reset."""

    email: Email


class ResetPasswordRequest(RequestModel):
    """Request body for POST /api/auth/reset-password."""

    email: Email
    code: OtpCode
    new_password: NewPassword
    confirm_password: str

    @model_validator(mode="after")
    def _passwords_match(self) -> "ResetPasswordRequest":
        if self.new_password != self.confirm_password:
            raise ValueError("passwords do not match")
        return self
