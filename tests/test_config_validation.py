"""Tests for settings loading and production guards."""
import secrets

import pytest
from pydantic import ValidationError

from app.config import Settings, WEAK_SECRET_KEYS

DB_URL = "postgresql+asyncpg://localhost/surf_school_test"


def _settings(**overrides) -> Settings:
    return Settings(DATABASE_URL=DB_URL, **overrides)


class TestDefaults:

    def test_newsletter_defaults(self):
        s = _settings(ENVIRONMENT="development", SENDGRID_API_KEY=None, SENDGRID_WEBHOOK_SECRET=None)

        assert s.NEWSLETTER_SCHEDULER_ENABLED is True
        assert s.NEWSLETTER_SCHEDULER_INTERVAL_MINUTES == 5
        assert s.SENDGRID_FROM_EMAIL == "newsletter@scuoladilongboard.it"
        assert s.SENDGRID_API_KEY is None
        assert s.SENDGRID_WEBHOOK_SECRET is None
        assert "La Spezia" in s.NEWSLETTER_POSTAL_ADDRESS

    def test_environment_variables_override_defaults(self, monkeypatch):
        monkeypatch.setenv("NEWSLETTER_SCHEDULER_INTERVAL_MINUTES", "15")
        monkeypatch.setenv("SENDGRID_FROM_NAME", "Longboard Crew")

        s = _settings()

        assert s.NEWSLETTER_SCHEDULER_INTERVAL_MINUTES == 15
        assert s.SENDGRID_FROM_NAME == "Longboard Crew"

    def test_heroku_style_database_url_gets_async_driver(self):
        s = Settings(DATABASE_URL="postgresql://surf:pw@db:5432/newsletter")
        assert s.DATABASE_URL == "postgresql+asyncpg://surf:pw@db:5432/newsletter"

    def test_sqlite_url_is_left_alone(self):
        s = Settings(DATABASE_URL="sqlite+aiosqlite:///./local.db")
        assert s.DATABASE_URL == "sqlite+aiosqlite:///./local.db"


class TestProductionGuards:

    def test_weak_keys_are_listed(self):
        assert "changeme" in WEAK_SECRET_KEYS
        assert "development-secret-key-change-in-production" in WEAK_SECRET_KEYS

    @pytest.mark.parametrize("secret_key", ["tooshort", "development-secret-key-change-in-production"])
    def test_rejects_weak_or_short_secret(self, secret_key):
        with pytest.raises(ValidationError):
            _settings(ENVIRONMENT="production", SECRET_KEY=secret_key)

    def test_strong_secret_boots_with_debug_and_docs_off(self):
        s = _settings(ENVIRONMENT="production", SECRET_KEY=secrets.token_urlsafe(32), DEBUG=True, DOCS_ENABLED=True)

        assert s.is_production is True
        assert s.DEBUG is False
        assert s.DOCS_ENABLED is False
        assert s.sqlalchemy_echo is False

    def test_development_keeps_sql_echo_with_debug(self):
        s = _settings(ENVIRONMENT="development", DEBUG=True)
        assert s.sqlalchemy_echo is True


class TestPublicBaseUrl:
    """Confirm, unsubscribe and pixel links are built from PUBLIC_HOSTNAME."""

    def test_localhost_fallback(self):
        assert _settings(PUBLIC_HOSTNAME=None).public_base_url == "http://localhost:5000"

    def test_public_hostname_uses_https(self):
        assert _settings(PUBLIC_HOSTNAME="scuoladilongboard.it").public_base_url == "https://scuoladilongboard.it"

    def test_trailing_slash_is_dropped(self):
        assert _settings(PUBLIC_HOSTNAME="scuoladilongboard.it/").public_base_url == "https://scuoladilongboard.it"
