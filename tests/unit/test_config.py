"""Unit tests for AppSettings and sub-configs."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from config import (
    AppSettings,
    DatabaseSettings,
    JWTSettings,
    OtpSettings,
    RateLimitSettings,
    RedisSettings,
    SignupSagaSettings,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def with_mongo(monkeypatch):
    """Set the required MONGODB_URI so AppSettings can be instantiated."""
    monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
    return monkeypatch


# ---------------------------------------------------------------------------
# DatabaseSettings
# ---------------------------------------------------------------------------


class TestDatabaseSettings:
    def test_loads_mongodb_uri(self, monkeypatch):
        monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
        assert DatabaseSettings().mongodb_uri == "mongodb://localhost:27017/"

    def test_defaults(self, monkeypatch):
        monkeypatch.setenv("MONGODB_URI", "mongodb://localhost:27017/")
        s = DatabaseSettings()
        assert s.db_name == "poemvy"
        assert s.mongodb_server_selection_timeout_ms == 5000
        assert s.mongodb_timeout_ms == 10000

    def test_missing_mongodb_uri_raises(self, monkeypatch):
        monkeypatch.delenv("MONGODB_URI", raising=False)
        with pytest.raises(PydanticValidationError):
            DatabaseSettings()


# ---------------------------------------------------------------------------
# RedisSettings
# ---------------------------------------------------------------------------


class TestRedisSettings:
    def test_redis_uri_optional(self, monkeypatch):
        monkeypatch.delenv("REDIS_URI", raising=False)
        assert RedisSettings().redis_uri is None

    def test_redis_uri_loaded(self, monkeypatch):
        monkeypatch.setenv("REDIS_URI", "redis://localhost:6379")
        assert RedisSettings().redis_uri == "redis://localhost:6379"


# ---------------------------------------------------------------------------
# JWTSettings
# ---------------------------------------------------------------------------


class TestJWTSettings:
    def test_defaults(self, monkeypatch):
        for var in (
            "JWT_ISSUER",
            "JWT_AUDIENCE",
            "ACCESS_TOKEN_TTL_SECONDS",
            "REFRESH_TOKEN_TTL_SECONDS",
            "JWT_ACCESS_SECRET",
            "JWT_REFRESH_SECRET",
        ):
            monkeypatch.delenv(var, raising=False)
        s = JWTSettings()
        assert s.jwt_issuer == "poemvy"
        assert s.jwt_audience == "poemvy.api"
        assert s.jwt_algorithm == "HS256"
        assert s.access_token_ttl_seconds == 900
        assert s.refresh_token_ttl_seconds == 2592000


@pytest.mark.parametrize(
    "access, refresh, expected",
    [
        ("a" * 40, "b" * 40, True),
        ("a" * 40, "a" * 40, False),
        ("a" * 40, "", False),
        ("", "", False),
    ],
    ids=["distinct", "same_secret", "refresh_missing", "both_missing"],
)
def test_jwt_secrets_configured(monkeypatch, access, refresh, expected):
    monkeypatch.setenv("JWT_ACCESS_SECRET", access)
    monkeypatch.setenv("JWT_REFRESH_SECRET", refresh)
    assert JWTSettings().secrets_configured is expected


# ---------------------------------------------------------------------------
# OtpSettings / SignupSagaSettings
# ---------------------------------------------------------------------------


class TestOtpSettings:
    def test_defaults(self):
        s = OtpSettings()
        assert s.otp_length == 6
        assert s.otp_max_attempts == 5
        assert s.otp_verification_ttl_seconds == 300
        assert s.otp_password_reset_ttl_seconds == 300
        assert s.otp_password_change_ttl_seconds == 300
        assert s.otp_email_change_ttl_seconds == 600

    def test_override_from_env(self, monkeypatch):
        monkeypatch.setenv("OTP_MAX_ATTEMPTS", "3")
        assert OtpSettings().otp_max_attempts == 3


class TestRateLimitSettings:
    def test_defaults(self):
        s = RateLimitSettings()
        assert s.rate_limit_enabled is True
        assert s.rate_limit_auth == "5 per 15 minutes"
        assert s.rate_limit_otp_verify == "10 per 15 minutes"
        assert s.rate_limit_code_request == "3 per hour"
        assert s.rate_limit_email_change == "3 per hour"

    def test_override_from_env(self, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_AUTH", "20 per minute")
        monkeypatch.setenv("RATE_LIMIT_ENABLED", "false")
        s = RateLimitSettings()
        assert s.rate_limit_auth == "20 per minute"
        assert s.rate_limit_enabled is False


def test_signup_saga_defaults():
    s = SignupSagaSettings()
    assert s.signup_compensation_attempts == 3
    assert s.signup_compensation_backoff_seconds > 0


# ---------------------------------------------------------------------------
# AppSettings
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "env, expected",
    [("production", True), ("development", False)],
    ids=["production", "development"],
)
def test_is_production(with_mongo, env, expected):
    with_mongo.setenv("ENV", env)
    assert AppSettings().is_production is expected


class TestAppSettings:
    def test_sub_configs_populated(self, with_mongo):
        s = AppSettings()
        for attr in (
            "db",
            "redis",
            "jwt",
            "otp",
            "signup",
            "email",
            "logging",
            "sentry",
        ):
            assert getattr(s, attr) is not None, f"sub-config '{attr}' is None"

    def test_explicit_sub_config_is_kept(self, with_mongo):
        jwt = JWTSettings(jwt_access_secret="x" * 40, jwt_refresh_secret="y" * 40)
        assert AppSettings(jwt=jwt).jwt is jwt

    def test_cors_origins_default(self, with_mongo):
        assert "http://localhost:3000" in AppSettings().cors_origins
