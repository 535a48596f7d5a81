"""Logging and observability utilities for spec archival.

This module provides structured logging, timed operation logging and
observability hooks for scanning, archival and index maintenance.
"""

from __future__ import annotations

import json
import time
import logging as std_logging
from contextlib import contextmanager
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

ROOT_LOGGER_NAME = "spec_archival"


def get_logger(component: str) -> std_logging.Logger:
    """Return the logger for a component, e.g. ``spec_archival.engine``."""
    return std_logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")


def setup_logging(log_level: Union[str, int] = std_logging.INFO, log_file: Optional[Path] = None) -> None:
    """Setup structured logging for spec archival."""

    if isinstance(log_level, str):
        log_level = log_level.upper()

    logger = std_logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(log_level)

    # Clear existing handlers
    logger.handlers.clear()

    detailed_formatter = std_logging.Formatter(
        fmt="%(asctime)s - %(name)s - %(levelname)s - %(module)s:%(funcName)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    # Console handler; stderr keeps stdout free for the MCP stdio transport
    console_handler = std_logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(detailed_formatter)
    logger.addHandler(console_handler)

    if log_file:
        file_handler = std_logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(std_logging.DEBUG)
        file_handler.setFormatter(JsonFormatter())
        logger.addHandler(file_handler)

    logger.debug("Spec archival logging initialized")


class JsonFormatter(std_logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: std_logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        extra_fields = getattr(record, "extra_fields", None)
        if isinstance(extra_fields, dict):
            log_entry.update(extra_fields)

        return json.dumps(log_entry, default=str)


def log_performance(operation_name: str):
    """Decorator to log the duration of an operation."""

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            logger = get_logger("performance")
            logger.debug(f"Starting operation: {operation_name}")

            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration = time.perf_counter() - start_time
                logger.error(
                    f"Failed operation: {operation_name} after {duration:.3f}s - {e}",
                    extra={"extra_fields": {
                        "operation": operation_name,
                        "duration": duration,
                        "status": "error",
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                    }},
                )
                raise

            duration = time.perf_counter() - start_time
            logger.debug(
                f"Completed operation: {operation_name} in {duration:.3f}s",
                extra={"extra_fields": {
                    "operation": operation_name,
                    "duration": duration,
                    "status": "success",
                }},
            )
            return result

        return wrapper

    return decorator


@contextmanager
def log_operation(operation_name: str, **extra_fields):
    """Context manager to log operations with custom fields."""
    logger = get_logger("operations")
    start_time = time.perf_counter()

    logger.debug(f"Starting operation: {operation_name}", extra={"extra_fields": {
        "operation": operation_name,
        "status": "started",
        **extra_fields,
    }})

    try:
        yield
    except Exception as e:
        duration = time.perf_counter() - start_time
        logger.error(f"Failed operation: {operation_name} after {duration:.3f}s - {e}", extra={"extra_fields": {
            "operation": operation_name,
            "status": "failed",
            "duration": duration,
            "error_type": type(e).__name__,
            "error_message": str(e),
            **extra_fields,
        }})
        raise

    duration = time.perf_counter() - start_time
    logger.debug(f"Completed operation: {operation_name} in {duration:.3f}s", extra={"extra_fields": {
        "operation": operation_name,
        "status": "completed",
        "duration": duration,
        **extra_fields,
    }})


class ObservabilityHooks:
    """Callbacks fired on archival lifecycle events."""

    def __init__(self):
        self.hooks: Dict[str, List[Callable[..., Any]]] = {}
        self.logger = get_logger("observability")

    def register_hook(self, event_type: str, callback: Callable[..., Any]) -> None:
        """Register a callback for a specific event type."""
        self.hooks.setdefault(event_type, []).append(callback)
        self.logger.debug(f"Registered hook for event: {event_type}")

    def unregister_hook(self, event_type: str, callback: Callable[..., Any]) -> bool:
        callbacks = self.hooks.get(event_type, [])
        if callback in callbacks:
            callbacks.remove(callback)
            return True
        return False

    def trigger_hooks(self, event_type: str, **data) -> None:
        """Trigger all callbacks for a specific event type.

        A failing callback is logged and does not stop the remaining ones.
        """
        callbacks = list(self.hooks.get(event_type, []))
        if not callbacks:
            return
        self.logger.debug(f"Triggering {len(callbacks)} hooks for event: {event_type}")
        for hook in callbacks:
            try:
                hook(**data)
            except Exception as e:
                self.logger.error(f"Hook failed for event {event_type}: {e}")

    def log_workflow_event(self, event_type: str, spec_name: Optional[str] = None, **data) -> None:
        """Log an archival event and trigger hooks."""
        event_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "spec_name": spec_name,
            **data,
        }

        self.logger.info(f"Archival event: {event_type}", extra={"extra_fields": event_data})

        hook_data = {k: v for k, v in event_data.items() if k != "event_type"}
        self.trigger_hooks(event_type, **hook_data)


# Global observability hooks instance
observability_hooks = ObservabilityHooks()


def log_error_with_context(error: Exception, context: Dict[str, Any], **extra_fields):
    """Log an error with rich context information."""
    logger = get_logger("errors")

    error_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "error_type": type(error).__name__,
        "error_message": str(error),
        "context": context,
        **extra_fields,
    }
    to_dict = getattr(error, "to_dict", None)
    if callable(to_dict):
        error_data["error"] = to_dict()

    logger.error(
        f"Error in {context.get('operation', 'unknown operation')}: {error}",
        extra={"extra_fields": error_data},
        exc_info=error,
    )


# Convenience functions for common events
def log_spec_archived(spec_name: str, archive_path: str, **extra_fields):
    """Log a completed archival."""
    observability_hooks.log_workflow_event(
        "spec_archived", spec_name=spec_name, archive_path=archive_path, **extra_fields
    )


def log_archival_rolled_back(spec_name: str, error: str, **extra_fields):
    """Log an archival attempt that was rolled back."""
    observability_hooks.log_workflow_event(
        "archival_rolled_back", spec_name=spec_name, error=error, **extra_fields
    )


def log_index_repaired(issues: List[str], **extra_fields):
    observability_hooks.log_workflow_event("index_repaired", issues=list(issues), **extra_fields)


def log_config_reset(reason: str, **extra_fields):
    observability_hooks.log_workflow_event("config_reset", reason=reason, **extra_fields)
