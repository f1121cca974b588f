"""
Signup as an explicit saga.

    started -> user_created -> code_issued -> completed
                     \\              \\
                      +--------------+-> compensating -> rolled_back
                                                     \\-> rollback_failed

A user row only survives signup if the verification email actually went
out. When issuing or sending the code fails, the saga deletes the user and
then the code, retrying transient store failures with exponential backoff,
and only then reports the failure to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from config import SignupSagaSettings
from errors import (
    AppError,
    DuplicateIdentityError,
    EmailDispatchError,
    RateLimitError,
    TransientStoreError,
)
from infrastructure.email.protocol import MailSender
from repositories.user_repository import UserRepository
from schemas.models.otp import OtpPurpose
from schemas.models.user import UserDoc
from services.otp_service import OtpService
from shared.crypto import hash_password
from shared.logging import get_logger
from shared.validators import normalize_email, normalize_username

log = get_logger(__name__)


class SignupState(str, Enum):
    STARTED = "started"
    USER_CREATED = "user_created"
    CODE_ISSUED = "code_issued"
    COMPLETED = "completed"
    COMPENSATING = "compensating"
    ROLLED_BACK = "rolled_back"
    ROLLBACK_FAILED = "rollback_failed"


@dataclass
class SignupResult:
    user: UserDoc
    expires_in: int


class SignupSaga:
    """One instance per signup attempt; not reusable."""

    def __init__(
        self,
        user_repo: UserRepository,
        otp_service: OtpService,
        mailer: MailSender,
        settings: SignupSagaSettings,
    ) -> None:
        self._users = user_repo
        self._otp = otp_service
        self._mailer = mailer
        self._settings = settings
        self.state = SignupState.STARTED
        self.history: list[SignupState] = [SignupState.STARTED]
        self._user: Optional[UserDoc] = None

    def _advance(self, state: SignupState) -> None:
        log.info(
            "signup_state_changed",
            from_state=self.state.value,
            to_state=state.value,
            user_id=str(self._user.id) if self._user else None,
        )
        self.state = state
        self.history.append(state)

    async def run(
        self,
        username: str,
        email: str,
        password: str,
        display_name: Optional[str] = None,
    ) -> SignupResult:
        """Create an unverified user and deliver its verification code.

        Raises:
            DuplicateIdentityError: username or email already registered.
            RateLimitError: too many codes were issued for this address; the
                user has been rolled back.
            EmailDispatchError: the code could not be issued or sent; the
                user has been rolled back (or rollback was attempted).
        """
        username = normalize_username(username)
        email = normalize_email(email)

        taken = await self._users.identity_taken(username, email)
        if taken:
            log.info("signup_rejected", reason="duplicate_identity", field=taken)
            raise DuplicateIdentityError(f"{taken} is already registered", field=taken)

        self._user = await self._users.create_user(
            username=username,
            email=email,
            password_hash=hash_password(password),
            display_name=display_name,
        )
        self._advance(SignupState.USER_CREATED)

        try:
            code = await self._otp.issue(
                email, OtpPurpose.EMAIL_VERIFICATION, user_id=self._user.id
            )
            self._advance(SignupState.CODE_ISSUED)
            await self._mailer.send_code(
                email,
                OtpPurpose.EMAIL_VERIFICATION.value,
                code,
                user_name=display_name or username,
            )
        except Exception as e:
            log.error(
                "signup_step_failed",
                state=self.state.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self._compensate()
            if isinstance(e, RateLimitError):
                raise
            if isinstance(e, AppError):
                raise EmailDispatchError(
                    "could not send the verification email, please try again"
                ) from e
            raise

        self._advance(SignupState.COMPLETED)
        return SignupResult(
            user=self._user,
            expires_in=self._otp.ttl_for(OtpPurpose.EMAIL_VERIFICATION),
        )

    async def _compensate(self) -> None:
        self._advance(SignupState.COMPENSATING)
        user = self._user
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.signup_compensation_attempts),
            wait=wait_exponential(
                multiplier=self._settings.signup_compensation_backoff_seconds,
                max=self._settings.signup_compensation_backoff_max_seconds,
            ),
            retry=retry_if_exception_type(TransientStoreError),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self._users.delete_user(user.id)
                    await self._otp.discard(user.email, OtpPurpose.EMAIL_VERIFICATION)
        except (TransientStoreError, RetryError) as e:
            self._advance(SignupState.ROLLBACK_FAILED)
            log.error(
                "signup_rollback_failed",
                user_id=str(user.id),
                attempts=self._settings.signup_compensation_attempts,
                error=str(e),
            )
            return
        self._advance(SignupState.ROLLED_BACK)
