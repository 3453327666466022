from datetime import datetime, timezone

import pytest

from spacedeck.srs import database


@pytest.fixture
def now():
    """Fixed review time (a Monday, midday UTC)."""
    return datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def db(tmp_path, monkeypatch):
    """Fresh SQLite database per test, with schema created."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'spacedeck.db'}")
    monkeypatch.delenv("TEST_MODE", raising=False)
    monkeypatch.setenv("SPACEDECK_TIMEZONE", "UTC")
    database.dispose_engines()
    database.init_db()
    yield
    database.dispose_engines()
