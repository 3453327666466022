import pytest

from spacedeck import config


def test_database_url_required(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    with pytest.raises(ValueError):
        config.get_database_url()


def test_test_mode_swaps_database(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@localhost:5432/learning_db")
    monkeypatch.setenv("TEST_MODE", "true")
    assert config.get_database_url().endswith("/test_learning_db")

    monkeypatch.setenv("TEST_MODE", "false")
    assert config.get_database_url().endswith("/learning_db")


def test_timezone_defaults_and_validation(monkeypatch):
    monkeypatch.delenv("SPACEDECK_TIMEZONE", raising=False)
    assert config.get_timezone().key == "UTC"
    assert config.get_timezone("Europe/Madrid").key == "Europe/Madrid"
    with pytest.raises(ValueError):
        config.get_timezone("Nowhere/Special")

