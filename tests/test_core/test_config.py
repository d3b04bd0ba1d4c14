"""Tests for application configuration settings."""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from timetiles.core.config import Settings


class TestDefaultSettings:
    """Defaults used when nothing is configured."""

    def test_should_use_memory_store_by_default(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("DATA_STORE_BACKEND", None)
            settings = Settings(_env_file=None)

        assert settings.DATA_STORE_BACKEND == "memory"
        assert settings.DATA_STORE_PREFIX == "timetiles"

    def test_should_have_retry_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.RETRY_MAX_RETRIES == 3
        assert settings.RETRY_BASE_DELAY_MS == 30000
        assert settings.RETRY_MAX_DELAY_MS == 300000
        assert settings.RETRY_BACKOFF_MULTIPLIER == 2.0

    def test_should_have_geocoding_defaults(self):
        settings = Settings(_env_file=None)

        assert settings.GEOCODING_MIN_CONFIDENCE == 0.3
        assert settings.GEOCODING_CACHE_STALE_DAYS == 90
        assert settings.GEOCODING_CACHE_MIN_HITS == 3
        assert settings.NOMINATIM_RATE_LIMIT == 1.0


class TestEnvironmentOverrides:
    """Values read from the environment."""

    def test_should_override_batch_size_via_environment(self):
        with patch.dict(os.environ, {"IMPORT_BATCH_SIZE": "250"}):
            settings = Settings(_env_file=None)

        assert settings.IMPORT_BATCH_SIZE == 250

    def test_should_reject_unknown_backend(self):
        with patch.dict(os.environ, {"DATA_STORE_BACKEND": "postgres"}):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_should_reject_non_positive_batch_size(self):
        with patch.dict(os.environ, {"IMPORT_BATCH_SIZE": "0"}):
            with pytest.raises(ValidationError):
                Settings(_env_file=None)

    def test_should_use_test_redis_url_when_testing(self):
        env = {"TESTING": "true", "TEST_REDIS_URL": "redis://test-cache:6379/1"}
        with patch.dict(os.environ, env):
            settings = Settings(_env_file=None)

        assert settings.REDIS_URL == "redis://test-cache:6379/1"


class TestCrossFieldValidation:
    def test_should_reject_max_delay_below_base_delay(self):
        env = {"RETRY_BASE_DELAY_MS": "60000", "RETRY_MAX_DELAY_MS": "1000"}
        with patch.dict(os.environ, env):
            with pytest.raises(ValidationError, match="RETRY_MAX_DELAY_MS"):
                Settings(_env_file=None)

    def test_should_reject_confidence_outside_unit_interval(self):
        with patch.dict(os.environ, {"GEOCODING_MIN_CONFIDENCE": "1.5"}):
            with pytest.raises(ValidationError, match="GEOCODING_MIN_CONFIDENCE"):
                Settings(_env_file=None)
