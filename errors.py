"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. The global exception handler
converts AppError subclasses to consistent JSON responses of the shape
``{"error": <message>, "code": <error_code>, ...}``.

FastAPI's own request-validation failures (422 by default) are folded into
the same envelope as 400s. Non-AppError exceptions bubble up as 500s (with
Sentry reporting in production).
"""

from __future__ import annotations

from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from shared.logging import get_logger

log = get_logger(__name__)


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {"error": self.message, "code": self.error_code}
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"


class DuplicateIdentityError(AppError):
    """Username or email already belongs to another account."""

    status_code = 400
    error_code = "duplicate_identity"


class AuthenticationError(AppError):
    status_code = 401
    error_code = "authentication_error"


class ForbiddenError(AppError):
    status_code = 403
    error_code = "forbidden"


class EmailVerificationRequiredError(ForbiddenError):
    """Credentials were correct but the email address is not verified yet.

    Carries a machine-readable flag so clients can branch to the
    verification screen instead of treating it as a bad login.
    """

    error_code = "email_verification_required"

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["requires_email_verification"] = True
        return payload


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class RateLimitError(AppError):
    status_code = 429
    error_code = "rate_limit_exceeded"


class TransientStoreError(AppError):
    """The backing store timed out or was unreachable. Safe for the caller to retry."""

    status_code = 500
    error_code = "store_unavailable"


class EmailDispatchError(AppError):
    status_code = 500
    error_code = "email_dispatch_failed"


# ── One-time code failures ────────────────────────────────────────────────────


class OtpError(ValidationError):
    """Base for every way a one-time code can fail verification."""

    error_code = "invalid_code"


class OtpNotFoundError(OtpError):
    error_code = "code_not_found"

    def __init__(self, message: str = "invalid or expired verification code", **kw):
        super().__init__(message, **kw)


class OtpExpiredError(OtpError):
    error_code = "code_expired"

    def __init__(self, message: str = "verification code has expired", **kw):
        super().__init__(message, **kw)


class OtpAlreadyUsedError(OtpError):
    error_code = "code_already_used"

    def __init__(self, message: str = "verification code has already been used", **kw):
        super().__init__(message, **kw)


class OtpAttemptsExceededError(OtpError):
    error_code = "code_attempts_exceeded"

    def __init__(
        self, message: str = "too many failed attempts, please request a new code", **kw
    ):
        super().__init__(message, **kw)


class OtpMismatchError(OtpError):
    error_code = "code_mismatch"

    def __init__(self, attempts_remaining: int, message: str = "invalid verification code"):
        super().__init__(message, details={"attempts_remaining": attempts_remaining})
        self.attempts_remaining = attempts_remaining


def _format_validation_error(exc: RequestValidationError) -> ValidationError:
    errors = exc.errors()
    if not errors:
        return ValidationError("invalid request")
    first = errors[0]
    message = str(first.get("msg", "invalid request"))
    # pydantic prefixes custom validator messages with "Value error, "
    if message.startswith("Value error, "):
        message = message[len("Value error, ") :]
    loc = [str(part) for part in first.get("loc", ()) if part != "body"]
    return ValidationError(
        message,
        field=".".join(loc) or None,
        details=[
            {"field": ".".join(str(p) for p in e.get("loc", ()) if p != "body"), "message": e.get("msg")}
            for e in errors
        ],
    )


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        headers = None
        if isinstance(exc, RateLimitError) and exc.details:
            headers = {"Retry-After": str(exc.details["retry_after_seconds"])}
        return JSONResponse(
            status_code=exc.status_code, content=exc.to_dict(), headers=headers
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        err = _format_validation_error(exc)
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        # Sentry integration: if sentry_sdk is initialized it will auto-capture
        # unhandled exceptions before this handler fires.
        log.error(
            "unhandled_exception",
            path=request.url.path,
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={"error": "An internal server error occurred.", "code": "internal_error"},
        )
