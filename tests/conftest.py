"""
Shared fixtures.

mongomock is synchronous while the repositories await pymongo's async API,
so AsyncMongomockDatabase wraps each collection method in a coroutine. The
query semantics (unique indexes, $inc, $pull, find_one_and_update) are
mongomock's own.
"""

from contextlib import asynccontextmanager
from typing import Optional

import mongomock
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app import build_app, wire_services
from config import (
    AppSettings,
    DatabaseSettings,
    EmailSettings,
    JWTSettings,
    LoggingSettings,
    OtpSettings,
    RedisSettings,
    SentrySettings,
    SignupSagaSettings,
)
from errors import EmailDispatchError
from repositories.content_cleanup import MongoContentCleanup
from repositories.indexes import ensure_indexes
from repositories.otp_repository import OtpRepository
from repositories.user_repository import UserRepository
from services.otp_service import OtpService
from services.token_service import TokenService

ACCESS_SECRET = "test-access-secret-0123456789abcdef0123456789"
REFRESH_SECRET = "test-refresh-secret-abcdef0123456789abcdef012"


class AsyncMongomockCollection:
    def __init__(self, collection) -> None:
        self._col = collection

    @property
    def name(self) -> str:
        return self._col.name

    def __getattr__(self, item):
        attr = getattr(self._col, item)
        if not callable(attr):
            return attr

        async def call(*args, **kwargs):
            return attr(*args, **kwargs)

        return call


class AsyncMongomockDatabase:
    def __init__(self, db) -> None:
        self._db = db

    def __getitem__(self, name: str) -> AsyncMongomockCollection:
        return AsyncMongomockCollection(self._db[name])

    @property
    def raw(self):
        """The underlying synchronous mongomock database, for assertions."""
        return self._db


class RecordingMailer:
    """MailSender that keeps every message in memory."""

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.fail = False

    async def send_code(
        self,
        to_email: str,
        purpose: str,
        code: str,
        user_name: Optional[str] = None,
    ) -> None:
        if self.fail:
            raise EmailDispatchError("failed to send email")
        self.sent.append(
            {"to": to_email, "purpose": purpose, "code": code, "user_name": user_name}
        )

    def last_code(self, to_email: str, purpose: str) -> str:
        for message in reversed(self.sent):
            if message["to"] == to_email and message["purpose"] == purpose:
                return message["code"]
        raise AssertionError(f"no {purpose} code sent to {to_email}")


@pytest.fixture
def settings():
    return AppSettings(
        env="test",
        db=DatabaseSettings(mongodb_uri="mongodb://localhost:27017"),
        redis=RedisSettings(redis_uri=None),
        jwt=JWTSettings(
            jwt_access_secret=ACCESS_SECRET, jwt_refresh_secret=REFRESH_SECRET
        ),
        otp=OtpSettings(),
        signup=SignupSagaSettings(
            signup_compensation_attempts=3,
            signup_compensation_backoff_seconds=0,
            signup_compensation_backoff_max_seconds=0,
        ),
        email=EmailSettings(zepto_api_token="test-token"),
        logging=LoggingSettings(),
        sentry=SentrySettings(),
    )


@pytest.fixture
def mongo_db():
    return AsyncMongomockDatabase(mongomock.MongoClient().db)


@pytest.fixture
async def db(mongo_db):
    await ensure_indexes(mongo_db)
    return mongo_db


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def user_repo(db):
    return UserRepository(db["users"])


@pytest.fixture
def otp_repo(db):
    return OtpRepository(db["otps"])


@pytest.fixture
def otp_service(otp_repo, settings):
    return OtpService(otp_repo, settings.otp)


@pytest.fixture
def token_service(settings, user_repo):
    return TokenService(settings.jwt, user_repo)


@pytest.fixture
def cleanup(db):
    return MongoContentCleanup(db)


# ── HTTP ─────────────────────────────────────────────────────────────────────


@pytest.fixture
def app(settings, mongo_db, mailer) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        wire_services(app, mongo_db, None, mailer, settings)
        await ensure_indexes(mongo_db)
        yield

    return build_app(settings, lifespan)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
