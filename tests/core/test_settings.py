"""Tests for core.settings module.

Covers:
- CadenceSettings instantiation with defaults
- CADENCE_* environment variable override
- Field validation
- Cached accessor
"""

import pytest
from pydantic import ValidationError

from cadence.core.settings import CadenceSettings, get_settings


class TestCadenceSettingsDefaults:
    def test_defaults(self):
        s = CadenceSettings()
        assert s.log_level == "INFO"
        assert s.json_logs is None
        assert s.service == "cadence"
        assert s.default_concurrency == 10
        assert s.retry_attempts == 3
        assert s.retry_delay == 0.0
        assert s.keyed_cleanup_interval == 1000


class TestCadenceSettingsEnvOverride:
    def test_concurrency_from_env(self, monkeypatch):
        monkeypatch.setenv("CADENCE_DEFAULT_CONCURRENCY", "4")
        assert CadenceSettings().default_concurrency == 4

    def test_retry_from_env(self, monkeypatch):
        monkeypatch.setenv("CADENCE_RETRY_ATTEMPTS", "6")
        monkeypatch.setenv("CADENCE_RETRY_DELAY", "0.5")
        s = CadenceSettings()
        assert s.retry_attempts == 6
        assert s.retry_delay == 0.5

    def test_json_logs_from_env(self, monkeypatch):
        monkeypatch.setenv("CADENCE_JSON_LOGS", "true")
        assert CadenceSettings().json_logs is True

    def test_unprefixed_env_ignored(self, monkeypatch):
        monkeypatch.setenv("RETRY_ATTEMPTS", "9")
        assert CadenceSettings().retry_attempts == 3


class TestCadenceSettingsValidation:
    @pytest.mark.parametrize(
        "field,value",
        [
            ("default_concurrency", 0),
            ("retry_attempts", 0),
            ("retry_delay", -1.0),
            ("keyed_cleanup_interval", 0),
        ],
    )
    def test_out_of_range(self, field, value):
        with pytest.raises(ValidationError):
            CadenceSettings(**{field: value})


class TestGetSettings:
    def test_cached(self):
        assert get_settings() is get_settings()

    def test_cache_clear_rereads_env(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("CADENCE_SERVICE", "ingest")
        get_settings.cache_clear()
        second = get_settings()
        assert second is not first
        assert second.service == "ingest"
