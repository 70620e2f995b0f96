"""
Tests for configuration loading, environment overrides and error messages.
"""
import logging

from config.app_config import AppConfig
from memwatch.error_messages import get_user_message
from memwatch.exceptions import MemwatchError, RegistryError
from memwatch.logging_setup import setup_app_logging


class TestAppConfig:

    def test_defaults(self, config):
        assert config.sampling_interval == 5.0
        assert config.sample_history_size == 100
        assert config.memory_warning_threshold == 80.0
        assert config.memory_critical_threshold == 95.0
        assert config.gc_trigger_threshold == 85.0
        assert config.cache_entry_ttl == 3600.0
        assert config.component_idle_ttl == 600.0
        assert config.finding_retention == 3600.0
        assert config.heap_limit_bytes is None

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("MEMWATCH_WARNING_THRESHOLD", "70")
        monkeypatch.setenv("MEMWATCH_SAMPLING_INTERVAL", "2.5")
        monkeypatch.setenv("MEMWATCH_MONITORING", "false")
        monkeypatch.setenv("MEMWATCH_ADMIN_TOKEN", "secret")

        config = AppConfig(create_directories=False)
        assert config.memory_warning_threshold == 70.0
        assert config.sampling_interval == 2.5
        assert config.monitoring_enabled is False
        assert config.admin_token == "secret"

    def test_invalid_environment_value_ignored(self, monkeypatch):
        monkeypatch.setenv("MEMWATCH_PORT", "eighty")
        assert AppConfig(create_directories=False).port == 8000

    def test_inconsistent_thresholds_restored(self):
        config = AppConfig(memory_warning_threshold=97, memory_critical_threshold=90, create_directories=False)
        assert config.memory_warning_threshold == 80.0
        assert config.memory_critical_threshold == 95.0

    def test_validation_fallbacks(self):
        config = AppConfig(heap_probe="jvm", sample_history_size=2, sampling_interval=0,
                           create_directories=False)
        assert config.heap_probe == "none"
        assert config.sample_history_size == 5
        assert config.sampling_interval == 5.0

    def test_heap_limit_bytes(self):
        assert AppConfig(heap_limit_mb=2, create_directories=False).heap_limit_bytes == 2 * 1024 * 1024

    def test_data_dir_override(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MEMWATCH_DATA_DIR", str(tmp_path))
        config = AppConfig()
        assert config.data_dir == tmp_path
        assert config.logs_dir.is_dir()


class TestErrorsAndLogging:

    def test_user_messages(self):
        assert get_user_message("unknown_action", action="defrag") == "Unknown optimization action: defrag"
        assert get_user_message("missing_field") == "Missing required field: {field}"
        assert get_user_message("no_such_key", details="x") == "Unknown error: x"

    def test_error_context_in_str(self):
        error = RegistryError("bad size", context={"size": -1})
        assert isinstance(error, MemwatchError)
        assert str(error) == "bad size (size=-1)"
        assert str(MemwatchError("plain")) == "plain"

    def test_setup_app_logging_writes_file(self, tmp_path):
        logger = setup_app_logging(level="DEBUG", logger_name="memwatch-test", log_dir=tmp_path)
        try:
            assert logger.level == logging.DEBUG
            assert logger.propagate is False
            assert (tmp_path / "memwatch.log").exists()
            assert setup_app_logging(logger_name="memwatch-test", log_dir=tmp_path) is logger
            assert len(logger.handlers) == 2
        finally:
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)
