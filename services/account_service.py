"""
Authenticated account flows: password change, email change, profile and
account deletion.

Password and email changes are two-step. Step one re-proves the current
password and mails a code bound to the user id. Step two only looks at codes
bound to the caller, so another account can neither guess against nor spend
them, and touches the credential only after the code is consumed.
"""

from __future__ import annotations

from typing import Any, Optional

from errors import (
    AuthenticationError,
    DuplicateIdentityError,
    NotFoundError,
    ValidationError,
)
from infrastructure.email.protocol import MailSender
from repositories.content_cleanup import AccountCleanup
from repositories.user_repository import UserRepository
from schemas.models.otp import OtpPurpose
from schemas.models.user import UserDoc
from services.otp_service import OtpService
from shared.crypto import hash_password
from shared.logging import get_logger
from shared.validators import normalize_email

log = get_logger(__name__)


class AccountService:
    def __init__(
        self,
        user_repo: UserRepository,
        otp_service: OtpService,
        mailer: MailSender,
        cleanup: AccountCleanup,
    ) -> None:
        self._users = user_repo
        self._otp = otp_service
        self._mailer = mailer
        self._cleanup = cleanup

    def _require_password(self, user: UserDoc, password: str) -> None:
        if not self._users.verify_password(user, password):
            log.info("password_check_failed", user_id=str(user.id))
            raise AuthenticationError("current password is incorrect")

    async def _send(self, to_email: str, purpose: OtpPurpose, user: UserDoc) -> int:
        code = await self._otp.issue(to_email, purpose, user_id=user.id)
        await self._mailer.send_code(
            to_email, purpose.value, code, user_name=user.display_name or user.username
        )
        return self._otp.ttl_for(purpose)

    # ── Password change ──────────────────────────────────────────────────────

    async def request_password_change(self, user: UserDoc, current_password: str) -> int:
        """Mail a password-change code to the account address. Returns its TTL in seconds."""
        self._require_password(user, current_password)
        expires = await self._send(user.email, OtpPurpose.PASSWORD_CHANGE, user)
        log.info("password_change_requested", user_id=str(user.id))
        return expires

    async def verify_password_change(
        self, user: UserDoc, code: str, new_password: str
    ) -> None:
        await self._otp.verify(
            user.email, OtpPurpose.PASSWORD_CHANGE, code, user_id=user.id
        )
        await self._users.set_password(user.id, hash_password(new_password))
        log.info("password_changed", user_id=str(user.id))

    # ── Email change ─────────────────────────────────────────────────────────

    async def request_email_change(
        self, user: UserDoc, current_password: str, new_email: str
    ) -> int:
        """Mail an email-change code to *new_email*. Returns its TTL in seconds."""
        self._require_password(user, current_password)
        new_email = normalize_email(new_email)
        if new_email == user.email:
            raise ValidationError(
                "new email must be different from the current one", field="new_email"
            )
        if await self._users.find_by_email(new_email) is not None:
            raise DuplicateIdentityError("email is already registered", field="new_email")

        expires = await self._send(new_email, OtpPurpose.EMAIL_CHANGE, user)
        log.info("email_change_requested", user_id=str(user.id))
        return expires

    async def verify_email_change(
        self, user: UserDoc, new_email: str, code: str
    ) -> UserDoc:
        await self._otp.verify(
            new_email, OtpPurpose.EMAIL_CHANGE, code, user_id=user.id
        )
        updated = await self._users.update_email(user.id, new_email)
        if updated is None:
            raise NotFoundError("account not found")
        log.info("email_changed", user_id=str(user.id))
        return updated

    # ── Profile ──────────────────────────────────────────────────────────────

    async def update_profile(self, user: UserDoc, changes: dict[str, Any]) -> UserDoc:
        updated = await self._users.update_profile(user.id, changes)
        if updated is None:
            raise NotFoundError("account not found")
        log.info("profile_updated", user_id=str(user.id), fields=sorted(changes))
        return updated

    async def get_public_profile(self, username: str) -> UserDoc:
        user = await self._users.find_by_username(username)
        if user is None:
            raise NotFoundError("user not found")
        return user

    # ── Deletion ─────────────────────────────────────────────────────────────

    async def delete_account(self, user: UserDoc, password: Optional[str]) -> None:
        self._require_password(user, password or "")
        await self._cleanup.purge_user(user.id)
        await self._users.delete_user(user.id)
        await self._otp.discard(user.email)
        log.info("account_deleted", user_id=str(user.id))
