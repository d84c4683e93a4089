import os

import pytest

# Keep the module-level engine off PostgreSQL during tests
os.environ.setdefault("DATABASE_URL", "sqlite://")


@pytest.fixture
def mock_env_vars(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("DB_HOST", "localhost")
    monkeypatch.setenv("DB_PORT", "5433")
    monkeypatch.setenv("DB_NAME", "test_db")
    monkeypatch.setenv("DB_USER", "test_user")
    monkeypatch.setenv("DB_PASSWORD", "test_password")
    monkeypatch.setenv("ACTIVE_ENTRY_POLICY", "reject")
    monkeypatch.setenv("ACCESS_TOKEN_TTL_SECONDS", "900")


@pytest.fixture
def png_bytes():
    return b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
