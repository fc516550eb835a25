"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.config.constants import DEFAULT_WEBHOOK_MAX_RETRIES


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Redis (Dramatiq broker)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0

    # Stripe
    stripe_secret_key: str | None = None
    stripe_webhook_secret: str | None = None
    stripe_connect_webhook_secret: str | None = None

    # Retry
    webhook_max_retries: int = Field(
        default=DEFAULT_WEBHOOK_MAX_RETRIES,
        gt=0,
        description="Retry budget assigned to newly received webhook events",
    )

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    health_check_port: int = Field(
        default=8081, ge=1, le=65535, description="Health check HTTP server port"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode='after')
    def validate_production(self) -> 'Settings':
        """Validate production-specific requirements."""
        if self.environment == 'production':
            if self.debug:
                raise ValueError(
                    'DEBUG must be False in production environment. '
                    'Set DEBUG=false in your .env file.'
                )

            if not self.stripe_secret_key:
                raise ValueError(
                    'STRIPE_SECRET_KEY is required in production. '
                    'Payout retries cannot reach Stripe without it.'
                )

            if not self.stripe_webhook_secret or not self.stripe_connect_webhook_secret:
                raise ValueError(
                    'STRIPE_WEBHOOK_SECRET and STRIPE_CONNECT_WEBHOOK_SECRET '
                    'are required in production.'
                )

            if self.stripe_secret_key.startswith('sk_test_'):
                logger.warning(
                    'STRIPE_SECRET_KEY is a test-mode key in production environment.'
                )

        return self

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        if not v.startswith(('postgresql://', 'postgresql+asyncpg://')):
            raise ValueError(
                'DATABASE_URL must start with postgresql:// or postgresql+asyncpg://'
            )
        return v

    @property
    def async_database_url(self) -> str:
        """Database URL with the asyncpg driver."""
        if self.database_url.startswith('postgresql://'):
            return self.database_url.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return self.database_url


# Global settings instance
settings = Settings()
