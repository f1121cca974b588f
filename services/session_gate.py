"""
Per-request authentication.

Turns an ``Authorization: Bearer <token>`` header into the current UserDoc.
A token is refused when its user no longer exists or when the password was
changed at or after the moment the token was issued.
"""

from __future__ import annotations

from typing import Optional

import structlog

from errors import AuthenticationError
from repositories.user_repository import UserRepository
from schemas.models.user import UserDoc
from services.token_service import TokenService
from shared.datetime_utils import ensure_utc, truncate_to_millis
from shared.logging import get_logger

log = get_logger(__name__)


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class SessionGate:
    def __init__(self, token_service: TokenService, user_repo: UserRepository) -> None:
        self._tokens = token_service
        self._users = user_repo

    async def authenticate(self, authorization: Optional[str]) -> UserDoc:
        """Resolve the caller or raise AuthenticationError (401)."""
        token = extract_bearer_token(authorization)
        if token is None:
            raise AuthenticationError("authentication required")

        claims = self._tokens.validate_access_token(token)
        user = await self._users.find_by_id(claims.user_id)
        if user is None:
            log.info("session_rejected", reason="user_not_found")
            raise AuthenticationError("invalid token")

        changed_at = ensure_utc(user.password_changed_at)
        if changed_at is not None and changed_at.timestamp() >= truncate_to_millis(
            claims.issued_at
        ):
            log.info("session_rejected", user_id=str(user.id), reason="password_changed")
            raise AuthenticationError("token is no longer valid, please log in again")

        structlog.contextvars.bind_contextvars(user_id=str(user.id))
        return user

    async def authenticate_optional(
        self, authorization: Optional[str]
    ) -> Optional[UserDoc]:
        """Like authenticate(), but anonymous or bad credentials yield None."""
        if extract_bearer_token(authorization) is None:
            return None
        try:
            return await self.authenticate(authorization)
        except AuthenticationError:
            return None
