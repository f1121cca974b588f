"""
One-time code issue/verify semantics on top of OtpRepository.

A code is usable only while it is unused, under the attempt ceiling and not
expired. Expiry is checked on read; the TTL index only cleans up after the
fact. Plain codes leave this module exactly once, as the return value of
issue(), and are never logged.
"""

from __future__ import annotations

from typing import Optional, Union

from bson import ObjectId

from config import OtpSettings
from errors import (
    OtpAlreadyUsedError,
    OtpAttemptsExceededError,
    OtpExpiredError,
    OtpMismatchError,
    OtpNotFoundError,
)
from infrastructure.cache.rate_limiter import RateLimiter
from repositories.otp_repository import OtpRepository
from schemas.models.otp import OtpDoc, OtpPurpose
from shared.crypto import digests_match, hash_token
from shared.datetime_utils import ensure_utc, expires_in, utc_now
from shared.generators import generate_otp_code
from shared.logging import get_logger
from shared.validators import normalize_email

log = get_logger(__name__)

Purpose = Union[OtpPurpose, str]


class OtpService:
    def __init__(
        self,
        otp_repo: OtpRepository,
        settings: OtpSettings,
        limiter: Optional[RateLimiter] = None,
    ) -> None:
        self._repo = otp_repo
        self._settings = settings
        self._limiter = limiter

    @property
    def max_attempts(self) -> int:
        return self._settings.otp_max_attempts

    def ttl_for(self, purpose: Purpose) -> int:
        purpose = OtpPurpose(purpose)
        if purpose is OtpPurpose.EMAIL_CHANGE:
            return self._settings.otp_email_change_ttl_seconds
        if purpose is OtpPurpose.PASSWORD_RESET:
            return self._settings.otp_password_reset_ttl_seconds
        if purpose is OtpPurpose.PASSWORD_CHANGE:
            return self._settings.otp_password_change_ttl_seconds
        return self._settings.otp_verification_ttl_seconds

    async def issue(
        self,
        email: str,
        purpose: Purpose,
        user_id: Optional[ObjectId] = None,
    ) -> str:
        """Create a fresh code for (email, purpose), invalidating any earlier one.

        Returns the plaintext code for delivery; only its hash is stored.

        Raises:
            RateLimitError: the hourly issue cap for this address is exhausted.
        """
        purpose = OtpPurpose(purpose).value
        email = normalize_email(email)
        if self._limiter is not None:
            await self._limiter.hit_issue(purpose, email)

        code = generate_otp_code(self._settings.otp_length)
        now = utc_now()
        otp = OtpDoc(
            email=email,
            code_hash=hash_token(code),
            purpose=purpose,
            user_id=user_id,
            expires_at=expires_in(self.ttl_for(purpose), now),
            created_at=now,
        )
        await self._repo.replace(otp)
        log.info(
            "otp_issued",
            purpose=purpose,
            user_id=str(user_id) if user_id else None,
            ttl_seconds=self.ttl_for(purpose),
        )
        return code

    async def verify(
        self,
        email: str,
        purpose: Purpose,
        code: str,
        user_id: Optional[ObjectId] = None,
    ) -> OtpDoc:
        """Consume the code for (email, purpose) if *code* matches.

        With *user_id*, only a code issued to that user is considered, so
        guesses by anyone else never touch its attempt counter.

        Raises:
            OtpNotFoundError: no code is pending for this address and purpose
                (and user).
            OtpAlreadyUsedError: the code was consumed by an earlier request.
            OtpExpiredError: the code is past its expiry (it is deleted).
            OtpAttemptsExceededError: the attempt ceiling was reached (it is deleted).
            OtpMismatchError: wrong code; carries the remaining attempts.
        """
        purpose = OtpPurpose(purpose).value
        email = normalize_email(email)
        otp = await self._repo.find_latest(email, purpose, user_id)
        if otp is None:
            log.info("otp_verify_failed", purpose=purpose, reason="not_found")
            raise OtpNotFoundError()

        if otp.used:
            log.info("otp_verify_failed", purpose=purpose, reason="already_used")
            raise OtpAlreadyUsedError()

        if ensure_utc(otp.expires_at) <= utc_now():
            await self._repo.delete(otp.id)
            log.info("otp_verify_failed", purpose=purpose, reason="expired")
            raise OtpExpiredError()

        if otp.attempts >= self.max_attempts:
            await self._repo.delete(otp.id)
            log.info("otp_verify_failed", purpose=purpose, reason="attempts_exceeded")
            raise OtpAttemptsExceededError()

        if not digests_match(hash_token(code), otp.code_hash):
            await self._count_failure(otp)

        if not await self._repo.mark_used(otp.id, self.max_attempts):
            # A concurrent request consumed it or used up the attempts first
            log.info("otp_verify_failed", purpose=purpose, reason="already_used")
            raise OtpAlreadyUsedError()
        await self._repo.delete(otp.id)
        log.info("otp_consumed", purpose=purpose)
        return otp

    async def _count_failure(self, otp: OtpDoc) -> None:
        updated = await self._repo.increment_attempts(otp.id, self.max_attempts)
        if updated is None or updated.attempts >= self.max_attempts:
            await self._repo.delete(otp.id)
            log.info(
                "otp_verify_failed", purpose=otp.purpose, reason="attempts_exceeded"
            )
            raise OtpAttemptsExceededError()
        remaining = self.max_attempts - updated.attempts
        log.info(
            "otp_verify_failed",
            purpose=otp.purpose,
            reason="mismatch",
            attempts_remaining=remaining,
        )
        raise OtpMismatchError(attempts_remaining=remaining)

    async def discard(self, email: str, purpose: Optional[Purpose] = None) -> int:
        """Delete pending codes for *email* (all purposes when *purpose* is None)."""
        if purpose is not None:
            purpose = OtpPurpose(purpose).value
        return await self._repo.delete_for(email, purpose)
