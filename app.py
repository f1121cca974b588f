"""
FastAPI application factory.
create_app() is the single entry point for building the app.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pymongo.asynchronous.mongo_client import AsyncMongoClient

from config import AppSettings
from errors import register_error_handlers
from infrastructure.cache.rate_limiter import RateLimiter, create_rate_limit_storage
from infrastructure.cache.redis_client import create_redis_client
from infrastructure.email.protocol import MailSender
from infrastructure.email.zeptomail import ZeptoMailProvider
from infrastructure.http_client import HttpClient
from repositories.content_cleanup import MongoContentCleanup
from repositories.indexes import ensure_indexes
from repositories.otp_repository import OtpRepository
from repositories.user_repository import UserRepository
from routes.auth_routes import router as auth_router
from routes.health_routes import router as health_router
from routes.user_routes import router as user_router
from schemas.models.otp import OtpPurpose
from services.account_service import AccountService
from services.auth_service import AuthService
from services.otp_service import OtpService
from services.session_gate import SessionGate
from services.token_service import TokenService
from shared.log_context import setup_logging_middleware
from shared.logging import get_logger, setup_logging

log = get_logger(__name__)


def wire_services(
    app: FastAPI,
    db,
    redis_client,
    mailer: MailSender,
    settings: AppSettings,
) -> None:
    """Build repositories and services over *db* and store them on app.state."""
    user_repo = UserRepository(db["users"])
    otp_repo = OtpRepository(db["otps"])
    # Buckets go to Redis only when it answered at startup
    storage = create_rate_limit_storage(
        settings.redis.redis_uri if redis_client is not None else None
    )
    rate_limiter = RateLimiter(storage, settings.rate_limit)
    otp_service = OtpService(otp_repo, settings.otp, rate_limiter)
    token_service = TokenService(settings.jwt, user_repo)

    app.state.settings = settings
    app.state.db = db
    app.state.redis = redis_client
    app.state.mailer = mailer
    app.state.rate_limiter = rate_limiter
    app.state.user_repo = user_repo
    app.state.otp_service = otp_service
    app.state.token_service = token_service
    app.state.session_gate = SessionGate(token_service, user_repo)
    app.state.auth_service = AuthService(
        user_repo, otp_service, token_service, mailer, settings.signup
    )
    app.state.account_service = AccountService(
        user_repo, otp_service, mailer, MongoContentCleanup(db)
    )


def build_app(
    settings: AppSettings,
    lifespan: Callable[[FastAPI], AsyncIterator[None]],
) -> FastAPI:
    """Assemble middleware, error handlers and routers around *lifespan*."""
    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        docs_url=settings.docs_url,
        redoc_url=None,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_logging_middleware(app)
    register_error_handlers(app)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(user_router)
    return app


def create_app(settings: Optional[AppSettings] = None) -> FastAPI:
    """Create and return a fully configured FastAPI application."""
    if settings is None:
        settings = AppSettings()

    setup_logging(
        log_level=settings.logging.log_level,
        log_format="json" if settings.is_production else settings.logging.log_format,
        production=settings.is_production,
    )

    # Initialise Sentry before anything else so it captures startup errors
    if settings.sentry.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry.sentry_dsn,
            environment=settings.env,
            send_default_pii=settings.sentry.sentry_send_pii,
            traces_sample_rate=settings.sentry.sentry_traces_sample_rate,
        )

    if not settings.jwt.secrets_configured:
        raise RuntimeError(
            "JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must both be set and differ"
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # ── Startup ──────────────────────────────────────────────────────────
        mongo_client: AsyncMongoClient = AsyncMongoClient(
            settings.db.mongodb_uri,
            serverSelectionTimeoutMS=settings.db.mongodb_server_selection_timeout_ms,
            timeoutMS=settings.db.mongodb_timeout_ms,
            tz_aware=True,
        )
        db = mongo_client[settings.db.db_name]
        app.state.mongo_client = mongo_client

        # Redis is optional; without it rate-limit buckets stay in memory
        redis_client = await create_redis_client(settings.redis.redis_uri)

        http_client = HttpClient(timeout=settings.email.email_timeout_seconds)
        otp = settings.otp
        mailer = ZeptoMailProvider(
            settings.email,
            http_client,
            app_url=settings.app_url,
            app_name=settings.app_name,
            ttl_minutes={
                OtpPurpose.EMAIL_VERIFICATION.value: otp.otp_verification_ttl_seconds // 60,
                OtpPurpose.PASSWORD_RESET.value: otp.otp_password_reset_ttl_seconds // 60,
                OtpPurpose.PASSWORD_CHANGE.value: otp.otp_password_change_ttl_seconds // 60,
                OtpPurpose.EMAIL_CHANGE.value: otp.otp_email_change_ttl_seconds // 60,
            },
        )

        wire_services(app, db, redis_client, mailer, settings)
        await ensure_indexes(db)
        log.info("app_started", env=settings.env, db_name=settings.db.db_name)

        yield

        # ── Shutdown ─────────────────────────────────────────────────────────
        await http_client.aclose()
        if redis_client is not None:
            await redis_client.aclose()
        await mongo_client.close()
        log.info("app_stopped")

    return build_app(settings, lifespan)
