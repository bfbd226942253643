"""
Unit tests for Config environment parsing and validation.
"""

import pytest

from src.core.config.config import Config, Environment
from src.core.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def _reload_after(monkeypatch):
    yield
    monkeypatch.undo()
    Config.reset()


class TestParsing:
    def test_defaults(self, monkeypatch):
        for key in ("KAFKA_TOPIC", "INGEST_WORKERS", "RECONCILE_ON_STARTUP", "LOG_JSON"):
            monkeypatch.delenv(key, raising=False)

        Config.reset()

        assert Config.KAFKA_TOPIC == "leaderboard-scores"
        assert Config.KAFKA_GROUP_ID == "leaderboard-consumers"
        assert Config.LEADERBOARD_REDIS_KEY == "leaderboard"
        assert Config.INGEST_WORKERS == 1
        assert Config.RECONCILE_ON_STARTUP is True
        assert Config.LOG_JSON is None

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("INGEST_WORKERS", "4")
        monkeypatch.setenv("RECONCILE_ON_STARTUP", "off")
        monkeypatch.setenv("LOG_JSON", "yes")

        Config.reset()

        assert Config.INGEST_WORKERS == 4
        assert Config.RECONCILE_ON_STARTUP is False
        assert Config.LOG_JSON is True

    def test_invalid_int_falls_back(self, monkeypatch):
        monkeypatch.setenv("INGEST_FETCH_TIMEOUT_MS", "soon")

        Config.reset()

        assert Config.INGEST_FETCH_TIMEOUT_MS == 1000
        assert "INGEST_FETCH_TIMEOUT_MS" in Config.get_metrics().validation_errors

    def test_out_of_bounds_int_falls_back(self, monkeypatch):
        monkeypatch.setenv("INGEST_WORKERS", "0")

        Config.reset()

        assert Config.INGEST_WORKERS == 1

    def test_invalid_bool_falls_back(self, monkeypatch):
        monkeypatch.setenv("DATABASE_CREATE_SCHEMA", "maybe")

        Config.reset()

        assert Config.DATABASE_CREATE_SCHEMA is True

    def test_environment_parsing(self):
        assert Environment.from_string("PRODUCTION") is Environment.PRODUCTION
        assert Environment.from_string("nonsense") is Environment.DEVELOPMENT


class TestValidation:
    def test_missing_database_url_raises(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "")

        with pytest.raises(ConfigurationError) as exc_info:
            Config.reset()
            Config.validate()

        assert exc_info.value.config_key == "DATABASE_URL"

    def test_missing_brokers_raises(self, monkeypatch):
        monkeypatch.setenv("KAFKA_BOOTSTRAP_SERVERS", "")

        with pytest.raises(ConfigurationError):
            Config.reset()
            Config.validate()

    def test_invalid_offset_reset_corrected(self, monkeypatch):
        monkeypatch.setenv("KAFKA_AUTO_OFFSET_RESET", "middle")

        Config.reset()
        Config.validate()

        assert Config.KAFKA_AUTO_OFFSET_RESET == "earliest"

    def test_invalid_log_level_corrected(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "LOUD")

        Config.reset()
        Config.validate()

        assert Config.LOG_LEVEL == "INFO"

    def test_summary_has_no_secrets(self, monkeypatch):
        monkeypatch.setenv("REDIS_PASSWORD", "hunter2")
        Config.reset()

        summary = Config.get_config_summary()

        assert summary["redis_password_set"] is True
        assert "hunter2" not in str(summary)
        assert Config.DATABASE_URL not in str(summary)
