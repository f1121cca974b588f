"""
Unauthenticated credential flows: signup, email verification, login,
token refresh, logout and password reset.

Login never says whether the email or the password was wrong, and the
reset/resend requests answer the same way whether or not the address is
registered.
"""

from __future__ import annotations

import functools
from typing import Optional

from bson import ObjectId

from config import SignupSagaSettings
from errors import (
    AuthenticationError,
    EmailDispatchError,
    EmailVerificationRequiredError,
    NotFoundError,
    OtpNotFoundError,
    RateLimitError,
)
from infrastructure.email.protocol import MailSender
from repositories.user_repository import UserRepository
from schemas.models.otp import OtpPurpose
from schemas.models.user import UserDoc
from services.otp_service import OtpService
from services.signup_saga import SignupResult, SignupSaga
from services.token_service import TokenPair, TokenService
from shared.crypto import hash_password, verify_password
from shared.logging import get_logger
from shared.validators import normalize_email

log = get_logger(__name__)

_INVALID_LOGIN = "invalid email or password"


@functools.lru_cache(maxsize=1)
def _dummy_hash() -> str:
    """Hash checked for unknown emails so both login failures cost the same."""
    return hash_password("poemvy-placeholder-password")


class AuthService:
    def __init__(
        self,
        user_repo: UserRepository,
        otp_service: OtpService,
        token_service: TokenService,
        mailer: MailSender,
        saga_settings: SignupSagaSettings,
    ) -> None:
        self._users = user_repo
        self._otp = otp_service
        self._tokens = token_service
        self._mailer = mailer
        self._saga_settings = saga_settings

    # ── Signup / verification ────────────────────────────────────────────────

    def new_signup_saga(self) -> SignupSaga:
        return SignupSaga(self._users, self._otp, self._mailer, self._saga_settings)

    async def signup(
        self,
        username: str,
        email: str,
        password: str,
        display_name: Optional[str] = None,
    ) -> SignupResult:
        return await self.new_signup_saga().run(
            username, email, password, display_name
        )

    async def verify_email(self, email: str, code: str) -> tuple[UserDoc, TokenPair]:
        """Consume the verification code, mark the email verified and log the user in."""
        user = await self._users.find_by_email(email)
        if user is None:
            raise OtpNotFoundError()
        await self._otp.verify(
            email, OtpPurpose.EMAIL_VERIFICATION, code, user_id=user.id
        )

        verified = await self._users.mark_email_verified(user.id)
        if verified is None:
            raise NotFoundError("account not found")
        pair = await self._tokens.mint_session(verified.id)
        log.info("email_verified", user_id=str(verified.id))
        return verified, pair

    async def resend_verification(self, email: str) -> None:
        """Send a fresh code when *email* belongs to an unverified account; silent otherwise."""
        user = await self._users.find_by_email(email)
        if user is None or user.email_verified:
            log.info("verification_resend_skipped")
            return
        await self._issue_and_send_quietly(user, OtpPurpose.EMAIL_VERIFICATION)

    def verification_ttl(self) -> int:
        return self._otp.ttl_for(OtpPurpose.EMAIL_VERIFICATION)

    # ── Login / sessions ─────────────────────────────────────────────────────

    async def login(self, email: str, password: str) -> tuple[UserDoc, TokenPair]:
        """
        Raises:
            AuthenticationError: unknown email or wrong password (same message).
            EmailVerificationRequiredError: correct credentials, unverified email.
        """
        user = await self._users.find_by_email(email)
        if user is None:
            verify_password(password, _dummy_hash())
            log.info("login_failed", reason="invalid_credentials")
            raise AuthenticationError(_INVALID_LOGIN)
        if not self._users.verify_password(user, password):
            log.info("login_failed", user_id=str(user.id), reason="invalid_credentials")
            raise AuthenticationError(_INVALID_LOGIN)
        if not user.email_verified:
            log.info("login_failed", user_id=str(user.id), reason="email_unverified")
            raise EmailVerificationRequiredError(
                "please verify your email before logging in"
            )

        await self._users.touch_last_login(user.id)
        pair = await self._tokens.mint_session(user.id)
        log.info("login_success", user_id=str(user.id))
        return user, pair

    async def refresh(self, refresh_token: str) -> str:
        return await self._tokens.refresh(refresh_token)

    async def logout(self, user_id: ObjectId, refresh_token: Optional[str]) -> None:
        if refresh_token:
            await self._tokens.revoke(user_id, refresh_token)
        log.info("logout", user_id=str(user_id))

    async def logout_all(self, user_id: ObjectId) -> None:
        await self._tokens.revoke_all(user_id)
        log.info("logout_all", user_id=str(user_id))

    # ── Password reset ───────────────────────────────────────────────────────

    async def request_password_reset(self, email: str) -> None:
        user = await self._users.find_by_email(email)
        if user is None:
            log.info("password_reset_requested", account_found=False)
            return
        log.info("password_reset_requested", user_id=str(user.id), account_found=True)
        await self._issue_and_send_quietly(user, OtpPurpose.PASSWORD_RESET)

    async def reset_password(self, email: str, code: str, new_password: str) -> None:
        """Consume the reset code, set the new password and revoke every session."""
        email = normalize_email(email)
        user = await self._users.find_by_email(email)
        if user is None:
            raise OtpNotFoundError()
        await self._otp.verify(
            email, OtpPurpose.PASSWORD_RESET, code, user_id=user.id
        )
        await self._users.set_password(user.id, hash_password(new_password))
        log.info("password_reset_completed", user_id=str(user.id))

    # ── Helpers ──────────────────────────────────────────────────────────────

    async def _issue_and_send_quietly(self, user: UserDoc, purpose: OtpPurpose) -> None:
        """Issue and mail a code, logging (not raising) rate-limit and mail failures."""
        try:
            code = await self._otp.issue(user.email, purpose, user_id=user.id)
            await self._mailer.send_code(
                user.email,
                purpose.value,
                code,
                user_name=user.display_name or user.username,
            )
        except (RateLimitError, EmailDispatchError) as e:
            log.warning(
                "code_delivery_suppressed",
                user_id=str(user.id),
                purpose=purpose.value,
                error_type=type(e).__name__,
            )
