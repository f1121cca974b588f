"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).

Each concern gets its own BaseSettings class so it can be instantiated and
tested in isolation; AppSettings composes them in a model_validator.
"""

from __future__ import annotations

from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongodb_uri: str
    db_name: str = "poemvy"

    # Every store call is bounded; exceeding either limit is a transient failure
    mongodb_server_selection_timeout_ms: int = 5000
    mongodb_timeout_ms: int = 10000


class RedisSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Optional; without Redis rate-limit buckets live in process memory
    redis_uri: Optional[str] = None


class JWTSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    jwt_issuer: str = "poemvy"
    jwt_audience: str = "poemvy.api"
    jwt_algorithm: str = "HS256"
    access_token_ttl_seconds: int = 900
    refresh_token_ttl_seconds: int = 2592000

    # Both required, and they must differ
    jwt_access_secret: str = ""
    jwt_refresh_secret: str = ""

    @property
    def secrets_configured(self) -> bool:
        return bool(
            self.jwt_access_secret
            and self.jwt_refresh_secret
            and self.jwt_access_secret != self.jwt_refresh_secret
        )


class OtpSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    otp_length: int = 6
    otp_max_attempts: int = 5
    otp_verification_ttl_seconds: int = 300
    otp_password_reset_ttl_seconds: int = 300
    otp_password_change_ttl_seconds: int = 300
    otp_email_change_ttl_seconds: int = 600


class RateLimitSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    rate_limit_enabled: bool = True

    # Per client IP, in `limits` notation
    rate_limit_auth: str = "5 per 15 minutes"
    rate_limit_otp_verify: str = "10 per 15 minutes"
    rate_limit_code_request: str = "3 per hour"
    rate_limit_email_change: str = "3 per hour"

    # Per (purpose, email)
    rate_limit_otp_issue: str = "5 per hour"


class SignupSagaSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    signup_compensation_attempts: int = 3
    signup_compensation_backoff_seconds: float = 0.2
    signup_compensation_backoff_max_seconds: float = 2.0


class EmailSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    zepto_api_token: str = ""
    zepto_from_email: str = "noreply@poemvy.com"
    zepto_from_name: str = "Poemvy"
    email_timeout_seconds: float = 5.0


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production


class SentrySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sentry_dsn: str = ""
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.1


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Core
    env: str = "development"
    app_url: str = "https://poemvy.com"
    app_name: str = "Poemvy"

    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5000",
    ]

    # OpenAPI docs URL (None disables the docs UI in production)
    docs_url: Optional[str] = "/docs"

    # Sub-configs (composed via model_validator below)
    db: Optional[DatabaseSettings] = None
    redis: Optional[RedisSettings] = None
    jwt: Optional[JWTSettings] = None
    otp: Optional[OtpSettings] = None
    rate_limit: Optional[RateLimitSettings] = None
    signup: Optional[SignupSagaSettings] = None
    email: Optional[EmailSettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        # Populate sub-configs from the same env/dotenv source
        if self.db is None:
            self.db = DatabaseSettings()
        if self.redis is None:
            self.redis = RedisSettings()
        if self.jwt is None:
            self.jwt = JWTSettings()
        if self.otp is None:
            self.otp = OtpSettings()
        if self.rate_limit is None:
            self.rate_limit = RateLimitSettings()
        if self.signup is None:
            self.signup = SignupSagaSettings()
        if self.email is None:
            self.email = EmailSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()

        return self

    @property
    def is_production(self) -> bool:
        return self.env == "production"
