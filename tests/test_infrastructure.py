"""
Tests for the exception hierarchy and the structured logging system.
"""

import io
import json

import pytest

from configmesh.infrastructure.exceptions import (
    BindingError,
    ConfigMeshException,
    ConfigurationError,
    SourceError,
    SourceLoadError,
    SourceWatchError,
)
from configmesh.infrastructure.observability.logging import (
    ConfigMeshLogger,
    ConsoleLogHandler,
    FileLogHandler,
    HumanReadableFormatter,
    JSONLogFormatter,
    LogLevel,
    configure_default_logging,
    get_correlation_id,
    get_logger,
)

from tests.fixtures.logging_fixtures import CapturingLogHandler, LogCapture


class TestExceptionHierarchy:
    """Test structured exceptions."""

    def test_base_exception(self):
        """Base exceptions carry code, context and a correlation ID."""
        error = ConfigMeshException("failed", "SOME_CODE", context={"a": 1})

        assert str(error) == "failed"
        assert error.error_code == "SOME_CODE"
        assert error.context == {"a": 1}
        assert error.correlation_id

    def test_configuration_error(self):
        """Configuration errors record the failing source index."""
        cause = ValueError("bad")
        error = ConfigurationError("source 2 load failed", source_index=2, cause=cause)

        assert error.error_code == "CONFIG_ERROR"
        assert error.context["source_index"] == 2
        assert error.cause is cause

    def test_source_errors(self):
        """Source errors carry the source type and a specific code."""
        load = SourceLoadError("boom", source_type="FileConfigurationSource")
        watch = SourceWatchError("boom")

        assert isinstance(load, SourceError)
        assert load.error_code == "SOURCE_LOAD_ERROR"
        assert load.context["source_type"] == "FileConfigurationSource"
        assert watch.error_code == "SOURCE_WATCH_ERROR"
        assert "source_type" not in watch.context

    def test_binding_error(self):
        """Binding errors expose the failing field path."""
        error = BindingError("failed to set field Cfg.port", field_path="Cfg.port", value="x")

        assert error.field_path == "Cfg.port"
        assert error.context == {"field_path": "Cfg.port", "value": "x"}
        assert error.error_code == "BINDING_ERROR"

    def test_to_dict(self):
        """Exceptions serialize for structured logging."""
        error = ConfigurationError("failed", cause=RuntimeError("inner"), correlation_id="abc")
        data = error.to_dict()

        assert data["error_type"] == "ConfigurationError"
        assert data["message"] == "failed"
        assert data["correlation_id"] == "abc"
        assert data["cause"] == "inner"


class TestLogging:
    """Test the structured logger."""

    def test_level_filtering(self, logger, log_handler):
        """Records below the logger level are dropped."""
        logger.set_level(LogLevel.WARNING)
        logger.info("hidden")
        logger.warning("shown")

        assert [r["message"] for r in log_handler.get_records()] == ["shown"]
        assert not logger.is_enabled_for(LogLevel.DEBUG)
        assert logger.is_enabled_for(LogLevel.ERROR)

    def test_error_with_exception(self, logger, log_handler):
        """Exceptions are attached to the record's extra data."""
        logger.error("failed", {"source_index": 1}, exc_info=ValueError("nope"))

        record = log_handler.get_records(LogLevel.ERROR)[0]
        assert record["extra"]["source_index"] == 1
        assert record["extra"]["exception"] == {"type": "ValueError", "message": "nope", "module": "builtins"}

    def test_correlation_and_source_context(self, logger, log_handler):
        """Context managers tag records and restore the previous state."""
        with logger.correlation_context("corr-1"):
            with logger.source_context("0:env"):
                assert get_correlation_id() == "corr-1"
                logger.info("inside")
        logger.info("outside")

        inside, outside = log_handler.get_records()
        assert inside["correlation_id"] == "corr-1"
        assert inside["source"] == "0:env"
        assert "correlation_id" not in outside
        assert "source" not in outside
        assert get_correlation_id() is None

    def test_generated_correlation_id(self, logger):
        """A correlation ID is generated when none is given."""
        with logger.correlation_context() as correlation_id:
            assert correlation_id
            assert get_correlation_id() == correlation_id

    def test_failing_handler_does_not_break_logging(self, logger, log_handler):
        """A broken handler does not stop other handlers."""

        class BrokenHandler(CapturingLogHandler):
            def emit(self, record):
                raise IOError("disk full")

        logger.handlers.insert(0, BrokenHandler())
        logger.info("still logged")

        assert log_handler.has_record_with_message("still logged")

    def test_remove_handler(self, logger, log_handler):
        """Removed handlers receive nothing."""
        logger.remove_handler(log_handler)
        logger.info("dropped")
        assert log_handler.get_records() == []

    def test_log_capture(self):
        """LogCapture swaps handlers and level for the duration of the block."""
        test_logger = ConfigMeshLogger("capture-test", LogLevel.ERROR)
        with LogCapture(test_logger) as handler:
            test_logger.debug("captured")
        test_logger.debug("not captured")

        assert handler.has_record_with_message("captured")
        assert len(handler.get_records()) == 1
        assert test_logger.level == LogLevel.ERROR


class TestFormattersAndHandlers:
    """Test formatters and output handlers."""

    def test_json_formatter(self):
        """JSON output is one parseable object per record."""
        line = JSONLogFormatter().format({"message": "hello", "extra": {"keys": 3}})
        assert json.loads(line) == {"message": "hello", "extra": {"keys": 3}}

    def test_human_readable_formatter(self):
        """Human-readable output includes source, correlation and sorted extras."""
        line = HumanReadableFormatter().format({
            "timestamp": "t",
            "level": "INFO",
            "message": "configuration updated",
            "source": "1:remote",
            "correlation_id": "c",
            "extra": {"source_index": 1, "keys": 4},
        })
        assert line == "[t] INFO: configuration updated [source=1:remote] [correlation_id=c] [keys=4, source_index=1]"

    def test_console_handler(self):
        """The console handler writes one line per record."""
        stream = io.StringIO()
        ConsoleLogHandler(JSONLogFormatter(), stream).emit({"message": "hi"})
        assert json.loads(stream.getvalue().strip()) == {"message": "hi"}

    def test_file_handler(self, tmp_path):
        """The file handler appends to the log file, creating directories."""
        path = tmp_path / "logs" / "config.log"
        handler = FileLogHandler(JSONLogFormatter(), path)
        handler.emit({"message": "one"})
        handler.emit({"message": "two"})

        lines = path.read_text().splitlines()
        assert [json.loads(line)["message"] for line in lines] == ["one", "two"]

    def test_get_logger_is_shared(self):
        """get_logger returns the same instance per name."""
        assert get_logger("configmesh.test-shared") is get_logger("configmesh.test-shared")

    def test_configure_default_logging(self, tmp_path):
        """Default configuration installs console and optional file handlers."""
        configured = configure_default_logging(
            LogLevel.DEBUG, use_json=False, log_file=tmp_path / "out.log", name="configmesh.test-default"
        )

        assert configured is get_logger("configmesh.test-default")
        assert configured.level == LogLevel.DEBUG
        assert [type(h) for h in configured.handlers] == [ConsoleLogHandler, FileLogHandler]
        assert isinstance(configured.handlers[0].formatter, HumanReadableFormatter)

    @pytest.mark.parametrize("level", list(LogLevel))
    def test_levels_emit_level_name(self, level, logger, log_handler):
        """Every level method records its level name."""
        getattr(logger, level.value.lower())("msg")
        assert log_handler.get_records()[0]["level"] == level.value
