from __future__ import annotations

import pytest

from pulse.config import load_settings


def test_load_settings_reads_environment(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "sqlite:///pulse.db")
    monkeypatch.setenv("OVERDUE_LOOKBACK_DAYS", "30")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("DATABASE_ECHO", "yes")

    settings = load_settings()

    assert settings.database_url == "sqlite:///pulse.db"
    assert settings.overdue_lookback_days == 30
    assert settings.log_level == "DEBUG"
    assert settings.database_echo


def test_database_url_is_required(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "  ")

    with pytest.raises(RuntimeError):
        load_settings()


def test_negative_lookback_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("DATABASE_URL", "sqlite://")
    monkeypatch.setenv("OVERDUE_LOOKBACK_DAYS", "-1")

    with pytest.raises(RuntimeError):
        load_settings()
