"""
Tests for settings validation.
"""
import pytest

from shopadmin.core.config import Settings


def make_settings(**overrides) -> Settings:
    values = {"DATABASE_URL": "sqlite+aiosqlite:///:memory:", "ENVIRONMENT": "development"}
    values.update(overrides)
    return Settings(**values)


class TestDatabaseUrl:

    @pytest.mark.parametrize("raw", [
        "postgres://u:p@db.internal:5432/shop",
        "postgresql://u:p@db.internal:5432/shop",
    ])
    def test_converted_to_asyncpg(self, raw):
        settings = make_settings(DATABASE_URL=raw)
        assert settings.DATABASE_URL == "postgresql+asyncpg://u:p@db.internal:5432/shop"

    def test_asyncpg_url_untouched(self):
        url = "postgresql+asyncpg://u:p@db.internal:5432/shop"
        assert make_settings(DATABASE_URL=url).DATABASE_URL == url


class TestValidation:

    def test_cors_origins_from_comma_string(self):
        settings = make_settings(CORS_ORIGINS="https://admin.example.com, https://shop.example.com")
        assert settings.CORS_ORIGINS == ["https://admin.example.com", "https://shop.example.com"]

    def test_default_ttl_cannot_exceed_max(self):
        with pytest.raises(ValueError):
            make_settings(RESERVATION_DEFAULT_TTL_MS=10_000, RESERVATION_MAX_TTL_MS=5_000)

    def test_production_rejects_unsafe_values(self):
        with pytest.raises(ValueError) as exc_info:
            make_settings(
                ENVIRONMENT="production",
                DEBUG=True,
                CORS_ORIGINS="*",
            )
        message = str(exc_info.value)
        assert "DEBUG must be false" in message
        assert "SQLite is not supported" in message

    def test_production_accepts_real_config(self):
        settings = make_settings(
            ENVIRONMENT="production",
            DATABASE_URL="postgresql://u:p@db.internal:5432/shop",
            CORS_ORIGINS="https://admin.example.com",
        )
        assert settings.ENVIRONMENT == "production"
        assert settings.USE_VARIANT_LABEL is False
