"""
Tests for configuration and debug trace logging.
"""

import logging

import pytest

from pipefold.config import (
    DEFAULT_LOG_DIR_NAME,
    DEFAULT_PARALLEL_WORKERS,
    PipefoldConfig,
    get_config,
    reset_config,
)
from pipefold.dsl import Pipeline, TryEffect
from pipefold.fsm import State, stay
from pipefold.dsl.catpy import case
from pipefold.logging_config import (
    ROOT_LOGGER_NAME,
    TRACE_LOG_FILENAME,
    get_debug_trace_logger,
)


# =============================================================================
# Configuration
# =============================================================================

class TestConfig:
    """Tests for PipefoldConfig and environment overrides."""

    def test_defaults(self):
        config = PipefoldConfig.from_env()
        assert config.parallel_workers == DEFAULT_PARALLEL_WORKERS
        assert config.debug_log is False
        assert config.log_dir is None

    def test_env_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PIPEFOLD_PARALLEL_WORKERS", "8")
        monkeypatch.setenv("PIPEFOLD_DEBUG_LOG", "true")
        monkeypatch.setenv("PIPEFOLD_LOG_DIR", str(tmp_path))
        config = PipefoldConfig.from_env()
        assert config.parallel_workers == 8
        assert config.debug_log is True
        assert config.resolved_log_dir() == tmp_path

    @pytest.mark.parametrize("raw", ["many", "0", "-2"])
    def test_invalid_workers(self, monkeypatch, raw):
        monkeypatch.setenv("PIPEFOLD_PARALLEL_WORKERS", raw)
        with pytest.raises(ValueError, match="PIPEFOLD_PARALLEL_WORKERS"):
            PipefoldConfig.from_env()

    def test_default_log_dir(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        assert PipefoldConfig().resolved_log_dir() == tmp_path / DEFAULT_LOG_DIR_NAME

    def test_get_config_is_cached_until_reset(self, monkeypatch):
        first = get_config()
        monkeypatch.setenv("PIPEFOLD_PARALLEL_WORKERS", "2")
        assert get_config() is first
        reset_config()
        assert get_config().parallel_workers == 2


# =============================================================================
# Logging
# =============================================================================

class TestDebugTraceLogger:
    """Tests for the opt-in trace handlers."""

    def test_disabled_by_default(self):
        logger = get_debug_trace_logger()
        assert logger.name == ROOT_LOGGER_NAME
        assert logger.handlers == []

    def test_enabled_from_env_writes_trace_file(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PIPEFOLD_DEBUG_LOG", "1")
        monkeypatch.setenv("PIPEFOLD_LOG_DIR", str(tmp_path))
        reset_config()

        logger = get_debug_trace_logger()
        assert len(logger.handlers) == 2
        assert logger.level == logging.DEBUG

        Pipeline.of(1).map(str).run(TryEffect())
        trace = (tmp_path / TRACE_LOG_FILENAME).read_text(encoding="utf-8")
        assert "Evaluating Source -> Map" in trace

    def test_handlers_attached_once(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PIPEFOLD_LOG_DIR", str(tmp_path))
        reset_config()
        get_debug_trace_logger(force=True)
        logger = get_debug_trace_logger(force=True)
        assert len(logger.handlers) == 2

    def test_fsm_transitions_logged(self, caplog):
        pipeline = Pipeline.of(1, 2).fsm(
            State("s", 0),
            lambda b: b.when("s", case(lambda x: True, lambda x: stay())),
        )
        with caplog.at_level(logging.DEBUG, logger=ROOT_LOGGER_NAME):
            pipeline.run(TryEffect())
        assert "'s' --1--> 's'" in caplog.text
