"""
JWT issuance and validation.

Access and refresh tokens are signed with independent HS256 secrets. Access
tokens are stateless; a refresh token is honoured only while its SHA-256
digest is present in the owner's ``refresh_tokens``. ``iat`` keeps
sub-second precision so a password change in the same second as a login
can still be ordered against it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import jwt
from bson import ObjectId

from config import JWTSettings
from errors import AuthenticationError
from repositories.user_repository import UserRepository
from schemas.models.base import to_object_id
from shared.datetime_utils import utc_now
from shared.generators import generate_token_id
from shared.logging import get_logger

log = get_logger(__name__)

ACCESS = "access"
REFRESH = "refresh"

_INVALID_REFRESH = "invalid or expired refresh token"


@dataclass(frozen=True)
class AccessClaims:
    user_id: ObjectId
    issued_at: float
    expires_at: float
    jti: str


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


class TokenService:
    def __init__(self, settings: JWTSettings, user_repo: UserRepository) -> None:
        if not settings.secrets_configured:
            raise RuntimeError(
                "JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must both be set and differ"
            )
        self._settings = settings
        self._users = user_repo

    # ── Encoding ─────────────────────────────────────────────────────────────

    def _encode(self, user_id: ObjectId, token_type: str, ttl: int, secret: str) -> str:
        now = utc_now().timestamp()
        claims = {
            "sub": str(user_id),
            "iat": now,
            "exp": int(now) + ttl,
            "iss": self._settings.jwt_issuer,
            "aud": self._settings.jwt_audience,
            "jti": generate_token_id(),
            "type": token_type,
        }
        return jwt.encode(claims, secret, algorithm=self._settings.jwt_algorithm)

    def _decode(self, token: str, secret: str) -> dict:
        return jwt.decode(
            token,
            secret,
            algorithms=[self._settings.jwt_algorithm],
            audience=self._settings.jwt_audience,
            issuer=self._settings.jwt_issuer,
            options={"require": ["sub", "iat", "exp", "jti", "type"]},
        )

    def issue_access_token(self, user_id: ObjectId) -> str:
        return self._encode(
            user_id,
            ACCESS,
            self._settings.access_token_ttl_seconds,
            self._settings.jwt_access_secret,
        )

    def issue_refresh_token(self, user_id: ObjectId) -> str:
        return self._encode(
            user_id,
            REFRESH,
            self._settings.refresh_token_ttl_seconds,
            self._settings.jwt_refresh_secret,
        )

    # ── Validation ───────────────────────────────────────────────────────────

    def validate_access_token(self, token: str) -> AccessClaims:
        """Decode an access token.

        Raises:
            AuthenticationError: "token expired" or "invalid token".
        """
        try:
            claims = self._decode(token, self._settings.jwt_access_secret)
        except jwt.ExpiredSignatureError:
            raise AuthenticationError("token expired")
        except jwt.InvalidTokenError:
            raise AuthenticationError("invalid token")

        user_id = to_object_id(claims.get("sub"))
        if claims.get("type") != ACCESS or user_id is None:
            raise AuthenticationError("invalid token")
        return AccessClaims(
            user_id=user_id,
            issued_at=float(claims["iat"]),
            expires_at=float(claims["exp"]),
            jti=str(claims["jti"]),
        )

    def _refresh_subject(self, refresh_token: str) -> Optional[ObjectId]:
        try:
            claims = self._decode(refresh_token, self._settings.jwt_refresh_secret)
        except jwt.InvalidTokenError:
            return None
        if claims.get("type") != REFRESH:
            return None
        return to_object_id(claims.get("sub"))

    # ── Sessions ─────────────────────────────────────────────────────────────

    async def mint_session(self, user_id: ObjectId) -> TokenPair:
        """Issue an access/refresh pair and record the refresh token as live."""
        pair = TokenPair(
            access_token=self.issue_access_token(user_id),
            refresh_token=self.issue_refresh_token(user_id),
        )
        await self._users.add_refresh_token(user_id, pair.refresh_token)
        log.info("session_minted", user_id=str(user_id))
        return pair

    async def refresh(self, refresh_token: str) -> str:
        """Exchange a live refresh token for a new access token.

        Raises:
            AuthenticationError: the token is malformed, expired or revoked.
        """
        user_id = self._refresh_subject(refresh_token)
        if user_id is None:
            log.info("token_refresh_failed", reason="invalid")
            raise AuthenticationError(_INVALID_REFRESH)
        if not await self._users.has_refresh_token(user_id, refresh_token):
            log.info("token_refresh_failed", user_id=str(user_id), reason="revoked")
            raise AuthenticationError(_INVALID_REFRESH)
        log.info("token_refreshed", user_id=str(user_id))
        return self.issue_access_token(user_id)

    async def revoke(self, user_id: ObjectId, refresh_token: str) -> bool:
        revoked = await self._users.revoke_refresh_token(user_id, refresh_token)
        log.info("refresh_token_revoked", user_id=str(user_id), revoked=revoked)
        return revoked

    async def revoke_all(self, user_id: ObjectId) -> None:
        await self._users.revoke_all_refresh_tokens(user_id)
        log.info("refresh_tokens_revoked_all", user_id=str(user_id))
