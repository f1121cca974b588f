"""
FastAPI dependency providers.

Clients, repositories and services are built once in the app lifespan and
stored on app.state; these providers only hand them out. Authentication is
exposed as get_current_user (401 when missing/invalid) and
get_optional_user (None for anonymous callers). rate_limit(scope) builds a
per-client-IP limit for route decorators.
"""

from __future__ import annotations

from typing import Awaitable, Callable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import AppSettings
from infrastructure.cache.rate_limiter import RateLimiter
from schemas.models.user import UserDoc
from services.account_service import AccountService
from services.auth_service import AuthService
from services.session_gate import SessionGate
from shared.log_context import get_client_ip

# auto_error=False: the gate produces the 401 in the standard error envelope
_bearer = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


async def get_db(request: Request):
    """Return the async MongoDB database from app.state."""
    return request.app.state.db


async def get_redis(request: Request):
    """Return the async Redis client from app.state (may be None if not configured)."""
    return request.app.state.redis


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_account_service(request: Request) -> AccountService:
    return request.app.state.account_service


def get_session_gate(request: Request) -> SessionGate:
    return request.app.state.session_gate


async def get_current_user(
    request: Request,
    _credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    gate: SessionGate = Depends(get_session_gate),
) -> UserDoc:
    return await gate.authenticate(request.headers.get("Authorization"))


async def get_optional_user(
    request: Request,
    _credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
    gate: SessionGate = Depends(get_session_gate),
) -> Optional[UserDoc]:
    return await gate.authenticate_optional(request.headers.get("Authorization"))


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def rate_limit(scope: str) -> Callable[..., Awaitable[None]]:
    """Dependency counting each request against the client IP's *scope* bucket."""

    async def check(
        request: Request, limiter: RateLimiter = Depends(get_rate_limiter)
    ) -> None:
        await limiter.hit_client(scope, get_client_ip(request))

    return check
