"""Tests for settings loading."""

from __future__ import annotations

import pytest

from hoodpulse.config import DEFAULT_EVERGREEN_PATH, Settings, get_settings


@pytest.fixture(autouse=True)
def _fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_defaults():
    settings = Settings(_env_file=None)
    assert settings.timezone == "America/New_York"
    assert settings.cache_ttl_minutes == 120
    assert settings.search_api_key is None
    assert settings.rate_limit_enabled is False
    assert settings.evergreen_path == DEFAULT_EVERGREEN_PATH


def test_env_prefix(monkeypatch):
    monkeypatch.setenv("HOODPULSE_CACHE_TTL_MINUTES", "30")
    monkeypatch.setenv("HOODPULSE_RATE_LIMIT_ENABLED", "true")
    monkeypatch.setenv("HOODPULSE_SEARCH_API_KEY", "tvly-test")
    monkeypatch.setenv("CACHE_TTL_MINUTES", "999")

    settings = Settings(_env_file=None)

    assert settings.cache_ttl_minutes == 30
    assert settings.rate_limit_enabled is True
    assert settings.search_api_key == "tvly-test"


def test_get_settings_is_cached(monkeypatch):
    first = get_settings()
    monkeypatch.setenv("HOODPULSE_MAX_RESULTS", "7")
    assert get_settings() is first

    get_settings.cache_clear()
    assert get_settings().max_results == 7
