from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from functools import lru_cache


# Secrets that must never reach production
WEAK_SECRET_KEYS = {
    "development-secret-key-change-in-production",
    "changeme",
    "secret",
    "password",
    "admin",
    "test",
}

MIN_PRODUCTION_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/surf_school"

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Convert postgresql:// to postgresql+asyncpg:// for async support."""
        if v and v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    # Auth
    SECRET_KEY: str = "development-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 120

    # CORS
    FRONTEND_URL: str = "http://localhost:5173"

    # Public links (confirm / unsubscribe / tracking pixel)
    PUBLIC_HOSTNAME: str | None = None

    # SendGrid
    SENDGRID_API_KEY: str | None = None
    SENDGRID_FROM_EMAIL: str = "newsletter@scuoladilongboard.it"
    SENDGRID_FROM_NAME: str = "Scuola di Longboard"
    SENDGRID_WEBHOOK_SECRET: str | None = None

    # Newsletter
    NEWSLETTER_POSTAL_ADDRESS: str = "Scuola di Longboard, Via della Spiaggia 1, 19100 La Spezia, Italia"
    NEWSLETTER_SCHEDULER_ENABLED: bool = True
    NEWSLETTER_SCHEDULER_INTERVAL_MINUTES: int = 5

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    DOCS_ENABLED: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True

    @model_validator(mode="after")
    def check_production_secrets(self) -> "Settings":
        """Refuse to boot in production with a guessable signing key; force debug and docs off."""
        if self.ENVIRONMENT == "production":
            if self.SECRET_KEY in WEAK_SECRET_KEYS:
                raise ValueError("SECRET_KEY is a known weak value; set a strong secret in production")
            if len(self.SECRET_KEY) < MIN_PRODUCTION_SECRET_LENGTH:
                raise ValueError(
                    f"SECRET_KEY must be at least {MIN_PRODUCTION_SECRET_LENGTH} characters in production"
                )
            self.DEBUG = False
            self.DOCS_ENABLED = False
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def sqlalchemy_echo(self) -> bool:
        """SQL echo only outside production (statements may carry personal data)."""
        return self.DEBUG and not self.is_production

    @property
    def public_base_url(self) -> str:
        """Base URL embedded in emails; falls back to the local dev server."""
        if self.PUBLIC_HOSTNAME:
            return f"https://{self.PUBLIC_HOSTNAME.rstrip('/')}"
        return "http://localhost:5000"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
