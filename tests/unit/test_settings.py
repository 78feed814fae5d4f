from portfolio_engine.config import Settings
from portfolio_engine.infrastructure.db.database import normalize_async_url


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("BATCH_MAX_WORKERS", "8")
    monkeypatch.setenv("RECOMMENDATION_TTL_HOURS", "12")

    settings = Settings(_env_file=None)

    assert settings.BATCH_MAX_WORKERS == 8
    assert settings.RECOMMENDATION_TTL_HOURS == 12
    assert settings.OVERNIGHT_JOB_HOUR == 2


def test_async_driver_added():
    assert normalize_async_url("postgresql://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
    assert normalize_async_url("postgresql+asyncpg://u:p@h/db") == "postgresql+asyncpg://u:p@h/db"
    assert normalize_async_url("sqlite+aiosqlite:///tmp.db") == "sqlite+aiosqlite:///tmp.db"
