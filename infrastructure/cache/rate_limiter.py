"""
Rate limiting on the ``limits`` package, moving-window strategy.

One RateLimiter serves two kinds of buckets:
- per client IP, one bucket per route scope (login/signup, code verification,
  code requests, email change)
- per (purpose, email) for one-time code issuance

Storage is Redis when REDIS_URI is set and process memory otherwise. A
storage failure is logged and the request is let through.
"""

from __future__ import annotations

import hashlib
import time
from typing import Optional

from limits import RateLimitItem, parse
from limits.aio.storage import MemoryStorage, RedisStorage, Storage
from limits.aio.strategies import MovingWindowRateLimiter
from limits.errors import StorageError

from config import RateLimitSettings
from errors import RateLimitError
from infrastructure.cache.redis_client import mask_redis_uri
from shared.logging import get_logger

log = get_logger(__name__)

AUTH = "auth"
OTP_VERIFY = "otp_verify"
CODE_REQUEST = "code_request"
EMAIL_CHANGE = "email_change"
OTP_ISSUE = "otp_issue"

_MESSAGES = {
    AUTH: "too many authentication attempts, please try again later",
    OTP_VERIFY: "too many verification attempts, please try again later",
    CODE_REQUEST: "too many code requests, please try again later",
    EMAIL_CHANGE: "too many email change attempts, please try again later",
    OTP_ISSUE: "too many codes requested, please try again later",
}


def create_rate_limit_storage(redis_uri: Optional[str]) -> Storage:
    """Redis-backed storage for *redis_uri*, in-memory storage when it is unset."""
    if not redis_uri:
        log.info("rate_limit_storage", backend="memory")
        return MemoryStorage(wrap_exceptions=True)
    uri = redis_uri if redis_uri.startswith("async+") else f"async+{redis_uri}"
    log.info("rate_limit_storage", backend="redis", uri=mask_redis_uri(redis_uri))
    return RedisStorage(uri, wrap_exceptions=True, implementation="redispy")


def _digest(value: str) -> str:
    # Raw addresses stay out of the limiter's keys
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:32]


class RateLimiter:
    def __init__(self, storage: Storage, settings: RateLimitSettings) -> None:
        self._strategy = MovingWindowRateLimiter(storage)
        self.enabled = settings.rate_limit_enabled
        self._limits: dict[str, RateLimitItem] = {
            AUTH: parse(settings.rate_limit_auth),
            OTP_VERIFY: parse(settings.rate_limit_otp_verify),
            CODE_REQUEST: parse(settings.rate_limit_code_request),
            EMAIL_CHANGE: parse(settings.rate_limit_email_change),
            OTP_ISSUE: parse(settings.rate_limit_otp_issue),
        }

    async def hit_client(self, scope: str, client_ip: str) -> None:
        """Count one request from *client_ip* against the *scope* bucket.

        Raises:
            RateLimitError: the bucket is exhausted.
        """
        await self._hit(scope, scope, "ip", _digest(client_ip or "unknown"))

    async def hit_issue(self, purpose: str, email: str) -> None:
        """Count one code issuance for (*purpose*, *email*).

        Raises:
            RateLimitError: the hourly issue cap for this address is exhausted.
        """
        await self._hit(OTP_ISSUE, OTP_ISSUE, purpose, _digest(email))

    async def _hit(self, scope: str, *identifiers: str) -> None:
        if not self.enabled:
            return
        item = self._limits[scope]
        try:
            allowed = await self._strategy.hit(item, *identifiers)
            if allowed:
                return
            stats = await self._strategy.get_window_stats(item, *identifiers)
        except StorageError as e:
            log.warning(
                "rate_limit_storage_unavailable",
                scope=scope,
                error=str(e.storage_error),
                error_type=type(e.storage_error).__name__,
            )
            return

        retry_after = max(1, int(stats.reset_time - time.time()) + 1)
        log.warning("rate_limited", scope=scope, retry_after_seconds=retry_after)
        raise RateLimitError(
            _MESSAGES[scope], details={"retry_after_seconds": retry_after}
        )
