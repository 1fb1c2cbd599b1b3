"""
app/core/config.py

Purpose: Application configuration

- Loads environment variables
- Centralizes config values (DB URI, JWT secret, mail/SMS keys, limits)
- Validates configuration on startup
- Environment-specific settings
"""

from pydantic import Field, validator
from pydantic_settings import BaseSettings
from typing import Optional, Literal


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Validates all required configs on startup.
    """

    # Environment
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"

    # MongoDB
    MONGODB_URL: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    MONGODB_DB_NAME: str = Field(
        default="autofloy",
        description="MongoDB database name"
    )

    # Auth
    JWT_SECRET: str = Field(
        default="change-me-in-production",
        description="HS256 signing secret for access tokens"
    )
    JWT_EXPIRY_HOURS: int = Field(
        default=24,
        description="Access token lifetime in hours"
    )
    REFRESH_GRACE_DAYS: int = Field(
        default=7,
        description="How long after expiry a token may still be refreshed"
    )

    # Email (Resend)
    RESEND_API_KEY: Optional[str] = Field(
        default=None,
        description="Resend API key for transactional email"
    )
    RESEND_BASE_URL: str = Field(
        default="https://api.resend.com",
        description="Resend API base URL"
    )
    EMAIL_FROM: str = Field(
        default="AutoFloy <noreply@autofloy.com>",
        description="Sender address for outgoing email"
    )

    # SMS (Twilio)
    TWILIO_ACCOUNT_SID: Optional[str] = Field(default=None, description="Twilio account SID")
    TWILIO_AUTH_TOKEN: Optional[str] = Field(default=None, description="Twilio auth token")
    TWILIO_SMS_NUMBER: Optional[str] = Field(default=None, description="Twilio sender number")

    # Facebook / outgoing webhooks / cron
    FACEBOOK_VERIFY_TOKEN: str = Field(
        default="autofloy-verify-token",
        description="Token Facebook echoes back during webhook verification"
    )
    FACEBOOK_APP_SECRET: Optional[str] = Field(
        default=None,
        description="App secret used to check X-Hub-Signature-256 on page deliveries"
    )
    WEBHOOK_SIGNING_SECRET: str = Field(
        default="autofloy-webhook-secret",
        description="HMAC secret for outgoing webhook signatures"
    )
    WEBHOOK_TIMEOUT: float = Field(
        default=10.0,
        description="Outgoing webhook request timeout in seconds"
    )
    CRON_SECRET: Optional[str] = Field(
        default=None,
        description="Shared secret required by cron endpoints when set"
    )

    # Site / app metadata
    SITE_URL: str = Field(default="https://autofloy.com", description="Public site URL")
    APP_VERSION: str = Field(default="2.0.4", description="Client app version")
    APP_BUILD_NUMBER: int = Field(default=20250129001, description="Client app build number")
    APP_FORCE_UPDATE: bool = Field(default=False, description="Force clients to update")

    # OTP
    OTP_EXPIRY_MINUTES: int = Field(default=10, description="OTP validity in minutes")
    OTP_COOLDOWN_SECONDS: int = Field(default=60, description="Minimum gap between OTP requests")
    OTP_MAX_PER_HOUR: int = Field(default=10, description="Maximum OTP requests per hour")

    # Rate Limiting
    LOGIN_MAX_ATTEMPTS_PER_IP: int = Field(default=10, description="Failed logins per IP before lockout")
    LOGIN_MAX_ATTEMPTS_PER_EMAIL: int = Field(default=5, description="Failed logins per email before lockout")
    LOGIN_WINDOW_MINUTES: int = Field(default=15, description="Failed login counting window")
    LOGIN_LOCKOUT_MINUTES: int = Field(default=15, description="Lockout duration")
    SIGNUP_MAX_PER_HOUR: int = Field(default=5, description="Signups per IP per hour")
    SIGNUP_MAX_PER_DAY: int = Field(default=10, description="Signups per IP per day")

    # Subscriptions / sync
    TRIAL_HOURS: int = Field(default=24, description="Length of the free trial in hours")
    SYNC_COOLDOWN_SECONDS: int = Field(default=60, description="Cooldown between manual syncs")

    # Application
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    API_PREFIX: str = Field(
        default="/api/v1",
        description="API route prefix"
    )
    CORS_ORIGINS: list = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    @validator("JWT_SECRET")
    def validate_jwt_secret(cls, v, values):
        """Ensure JWT secret is changed in production."""
        if values.get("ENVIRONMENT") == "production" and v == "change-me-in-production":
            raise ValueError("JWT_SECRET must be changed in production environment")
        return v

    @validator("RESEND_API_KEY")
    def validate_resend_key(cls, v, values):
        """Ensure Resend key is set in production."""
        if values.get("ENVIRONMENT") == "production" and not v:
            raise ValueError("RESEND_API_KEY is required in production environment")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    class Config:
        env_file = ".env"
        case_sensitive = True
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()


def validate_settings():
    """
    Validates critical settings on application startup.
    Raises ValueError if any required setting is missing or invalid.
    """
    errors = []

    if not settings.MONGODB_URL:
        errors.append("MONGODB_URL is required")

    if not settings.JWT_SECRET:
        errors.append("JWT_SECRET is required")

    # Production-specific validations
    if settings.is_production:
        if not settings.RESEND_API_KEY:
            errors.append("RESEND_API_KEY is required in production")
        if not settings.CRON_SECRET:
            errors.append("CRON_SECRET is required in production")
        if settings.WEBHOOK_SIGNING_SECRET == "autofloy-webhook-secret":
            errors.append("WEBHOOK_SIGNING_SECRET must be changed in production")

    if errors:
        raise ValueError(f"Configuration validation failed: {', '.join(errors)}")

    return True
