import pytest
from pydantic import ValidationError

from core import config as config_module


def _reset_settings_cache():
    config_module.get_settings.cache_clear()


@pytest.fixture(autouse=True)
def _clear_cache_after():
    yield
    _reset_settings_cache()


def test_defaults(monkeypatch):
    monkeypatch.setenv("APP_ENV", "local")
    _reset_settings_cache()

    settings = config_module.get_settings()
    assert settings.refresh_interval_seconds > 0
    assert settings.recent_items_limit == 10
    assert settings.overlap_policy == "drop"


def test_non_local_debug_mode_is_blocked(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("DEBUG", "true")
    monkeypatch.setenv("LEDGER_BACKEND", "http")
    _reset_settings_cache()

    with pytest.raises(ValueError, match="debug=true"):
        config_module.get_settings()


def test_non_local_memory_ledger_is_blocked(monkeypatch):
    monkeypatch.setenv("APP_ENV", "staging")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("LEDGER_BACKEND", "memory")
    _reset_settings_cache()

    with pytest.raises(ValueError, match="in-memory ledger"):
        config_module.get_settings()


def test_non_local_http_ledger_allowed(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("DEBUG", "false")
    monkeypatch.setenv("LEDGER_BACKEND", " HTTP ")
    _reset_settings_cache()

    settings = config_module.get_settings()
    assert settings.ledger_backend == "http"


@pytest.mark.parametrize(
    "name,value",
    [
        ("REFRESH_INTERVAL_SECONDS", "0"),
        ("QUERY_TIMEOUT_SECONDS", "-1"),
        ("MAX_CONCURRENCY", "0"),
        ("RECENT_ITEMS_LIMIT", "-5"),
        ("OVERLAP_POLICY", "drpo"),
        ("LEDGER_BACKEND", "ethereum"),
    ],
)
def test_invalid_refresh_settings_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)

    with pytest.raises(ValidationError):
        config_module.Settings()


def test_choice_settings_are_normalized(monkeypatch):
    monkeypatch.setenv("OVERLAP_POLICY", " Coalesce ")
    monkeypatch.setenv("LEDGER_BACKEND", "HTTP")

    settings = config_module.Settings()
    assert settings.overlap_policy == "coalesce"
    assert settings.ledger_backend == "http"
