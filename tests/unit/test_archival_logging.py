"""Unit tests for spec archival logging and observability.

This module tests the logging setup, timed operation logging
and the observability hooks.
"""

import json
import logging
from unittest.mock import MagicMock

import pytest

from spec_archival.archival_logging import (
    ROOT_LOGGER_NAME,
    JsonFormatter,
    ObservabilityHooks,
    get_logger,
    log_error_with_context,
    log_operation,
    log_performance,
    setup_logging,
)
from spec_archival.errors import CopyError


class TestJsonFormatter:
    """Test cases for JsonFormatter."""

    def test_json_formatter_basic(self):
        """Test basic JSON formatting."""
        formatter = JsonFormatter()
        record = logging.getLogger("test").makeRecord("test", logging.INFO, "f.py", 1, "Test message", (), None)

        data = json.loads(formatter.format(record))

        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["message"] == "Test message"
        assert "timestamp" in data
        assert "function" in data

    def test_json_formatter_with_extra_fields(self):
        """Test that extra_fields are merged into the JSON entry."""
        formatter = JsonFormatter()
        record = logging.getLogger("test").makeRecord("test", logging.INFO, "f.py", 1, "msg", (), None)
        record.extra_fields = {"spec_name": "auth", "path": object()}

        data = json.loads(formatter.format(record))

        assert data["spec_name"] == "auth"
        assert isinstance(data["path"], str)

    def test_json_formatter_with_exception(self):
        """Test that the JSON formatter includes exception details."""
        formatter = JsonFormatter()
        try:
            raise ValueError("bad")
        except ValueError as e:
            record = logging.getLogger("test").makeRecord(
                "test", logging.ERROR, "f.py", 1, "failed", (), (type(e), e, e.__traceback__)
            )

        data = json.loads(formatter.format(record))

        assert "ValueError: bad" in data["exception"]


class TestSetupLogging:
    """Test cases for logger configuration."""

    def test_string_level(self):
        """Test setting the level by name."""
        setup_logging("debug")

        logger = logging.getLogger(ROOT_LOGGER_NAME)
        assert logger.level == logging.DEBUG
        assert len(logger.handlers) == 1

    def test_file_handler_writes_json(self, tmp_path):
        """Test that the log file receives JSON lines."""
        log_file = tmp_path / "archival.log"
        setup_logging(logging.INFO, log_file)

        get_logger("engine").info("archived", extra={"extra_fields": {"spec_name": "auth"}})
        for handler in logging.getLogger(ROOT_LOGGER_NAME).handlers:
            handler.flush()

        lines = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
        entry = next(line for line in lines if line["message"] == "archived")
        assert entry["logger"] == "spec_archival.engine"
        assert entry["spec_name"] == "auth"

    def test_setup_replaces_handlers(self):
        """Test that repeated setup does not stack handlers."""
        setup_logging("INFO")
        setup_logging("INFO")

        assert len(logging.getLogger(ROOT_LOGGER_NAME).handlers) == 1


class TestTimedLogging:
    """Test cases for log_performance and log_operation."""

    def test_log_performance_returns_result(self, caplog):
        """Test that the performance decorator returns the result."""
        @log_performance("double")
        def double(value):
            return value * 2

        with caplog.at_level(logging.DEBUG, logger=ROOT_LOGGER_NAME):
            assert double(4) == 8

        assert "Completed operation: double" in caplog.text

    def test_log_performance_reraises(self, caplog):
        """Test that the performance decorator re-raises errors."""
        @log_performance("explode")
        def explode():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            explode()

        assert "Failed operation: explode" in caplog.text

    def test_log_operation_success(self, caplog):
        """Test operation logging on success."""
        with caplog.at_level(logging.DEBUG, logger=ROOT_LOGGER_NAME):
            with log_operation("copy", spec_name="auth"):
                pass

        record = next(r for r in caplog.records if r.getMessage().startswith("Completed operation: copy"))
        assert record.extra_fields["spec_name"] == "auth"
        assert record.extra_fields["status"] == "completed"

    def test_log_operation_failure(self, caplog):
        """Test operation logging on failure."""
        with pytest.raises(OSError):
            with log_operation("copy"):
                raise OSError("disk full")

        record = next(r for r in caplog.records if r.getMessage().startswith("Failed operation: copy"))
        assert record.extra_fields["error_type"] == "OSError"


class TestObservabilityHooks:
    """Test cases for ObservabilityHooks."""

    def test_register_and_trigger(self):
        """Test registering and triggering a hook."""
        hooks = ObservabilityHooks()
        callback = MagicMock()
        hooks.register_hook("spec_archived", callback)

        hooks.trigger_hooks("spec_archived", spec_name="auth")

        callback.assert_called_once_with(spec_name="auth")

    def test_failing_hook_does_not_stop_others(self):
        """Test that a failing hook does not stop the others."""
        hooks = ObservabilityHooks()
        failing = MagicMock(side_effect=RuntimeError("hook broke"))
        working = MagicMock()
        hooks.register_hook("spec_archived", failing)
        hooks.register_hook("spec_archived", working)

        hooks.trigger_hooks("spec_archived")

        working.assert_called_once()

    def test_unregister(self):
        """Test unregistering a hook."""
        hooks = ObservabilityHooks()
        callback = MagicMock()
        hooks.register_hook("e", callback)

        assert hooks.unregister_hook("e", callback)
        assert not hooks.unregister_hook("e", callback)
        hooks.trigger_hooks("e")
        callback.assert_not_called()

    def test_log_workflow_event(self, caplog):
        """Test that workflow events reach registered hooks."""
        hooks = ObservabilityHooks()
        callback = MagicMock()
        hooks.register_hook("spec_archived", callback)

        with caplog.at_level(logging.INFO, logger=ROOT_LOGGER_NAME):
            hooks.log_workflow_event("spec_archived", spec_name="auth", archive_path="/a/auth")

        assert "Archival event: spec_archived" in caplog.text
        kwargs = callback.call_args.kwargs
        assert kwargs["spec_name"] == "auth"
        assert kwargs["archive_path"] == "/a/auth"
        assert "event_type" not in kwargs
        assert "timestamp" in kwargs


class TestErrorLogging:
    def test_log_error_with_context_includes_error_details(self, caplog):
        """Test error logging with context."""
        error = CopyError("copy failed", spec_path="/p/specs/auth")

        log_error_with_context(error, {"operation": "archive_spec"})

        record = next(r for r in caplog.records if r.getMessage().startswith("Error in archive_spec"))
        assert record.extra_fields["error"]["code"] == "COPY_FAILED"
        assert record.extra_fields["context"] == {"operation": "archive_spec"}
        assert record.exc_info is not None
