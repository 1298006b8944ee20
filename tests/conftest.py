"""Pytest configuration and common fixtures."""

import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict
from unittest.mock import AsyncMock, MagicMock

# Bootstrap variables must be set before any gymbook imports read the environment.
# Per-test isolation is provided by the setup_test_environment fixture.
os.environ.setdefault("NODE_ENV", "test")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest

from gymbook.core.config import Settings, load_settings, reset_settings
from gymbook.models.db_connection import HealthStatus, QueryResult
from gymbook.repositories import User

_MANAGED_VARIABLES = (
    "DATABASE_URL",
    "DB_HOST",
    "DB_PORT",
    "DB_NAME",
    "DB_USER",
    "DB_PASSWORD",
    "JWT_SECRET",
    "JWT_REFRESH_SECRET",
    "JWT_EXPIRES_IN",
    "JWT_REFRESH_EXPIRES_IN",
    "PORT",
    "CORS_ORIGIN",
    "RATE_LIMIT_WINDOW_MS",
    "RATE_LIMIT_MAX_REQUESTS",
)


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch, tmp_path):
    """Automatically set up an isolated test environment for all tests."""
    for name in _MANAGED_VARIABLES:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("NODE_ENV", "test")
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "false")
    monkeypatch.setenv("LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setenv("JWT_SECRET", "test-access-secret-with-enough-length")
    monkeypatch.setenv("JWT_REFRESH_SECRET", "test-refresh-secret-with-enough-length")
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings() -> Settings:
    """Settings built from the test environment only (no .env file)."""
    return load_settings(env_file=None)


@pytest.fixture
def make_user() -> Callable[..., User]:
    """Factory for user entities with sensible defaults."""

    def _make(**overrides: Any) -> User:
        data: Dict[str, Any] = {
            "id": "7f1c9a52-3f0e-4c55-9a8e-2f9c0d5b6e11",
            "email": "member@gymbook.io",
            "full_name": "Jane Member",
            "password": "$2b$04$hash",
            "role": "member",
            "is_active": True,
            "email_verified": True,
            "created_at": datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc),
        }
        data.update(overrides)
        return User(**data)

    return _make


@pytest.fixture
def fake_db() -> MagicMock:
    """Connection pool double: run_transaction hands work a client double."""
    db = MagicMock()
    db.query = AsyncMock(return_value=QueryResult())
    db.client = MagicMock()
    db.client.query = AsyncMock(return_value=QueryResult())

    async def run_transaction(work):
        return await work(db.client)

    db.run_transaction = AsyncMock(side_effect=run_transaction)
    db.check_health = AsyncMock(
        return_value=HealthStatus(
            reachable=True, server_time=datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        )
    )
    db.open = AsyncMock()
    db.shutdown = AsyncMock()
    return db
