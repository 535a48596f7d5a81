"""Error types for spec archival.

Expected problems (a malformed task, an invalid spec, a corrupt index file)
are collected into result objects instead of being raised. The exceptions
below are raised inside a single archival attempt and converted into a
failed ``ArchivalResult`` by the engine.
"""

from __future__ import annotations

from typing import Any, Dict


class ErrorType:
    """Categories shared by parse issues, scan errors and exceptions."""

    FILE_NOT_FOUND = "file_not_found"
    PARSE_ERROR = "parse_error"
    VALIDATION_ERROR = "validation_error"
    CONFIGURATION_ERROR = "configuration_error"
    INTEGRITY_ERROR = "integrity_error"


class ArchivalError(Exception):
    """Base error for a failed archival step."""

    code = "ARCHIVAL_FAILED"
    error_type = ErrorType.VALIDATION_ERROR
    default_recovery = "Re-run the archival after resolving the reported problem"

    def __init__(self, message: str, spec_path: str = "", recovery_action: str = ""):
        super().__init__(message)
        self.message = message
        self.spec_path = str(spec_path)
        self.recovery_action = recovery_action or self.default_recovery

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": type(self).__name__,
            "code": self.code,
            "type": self.error_type,
            "message": self.message,
            "spec_path": self.spec_path,
            "recovery_action": self.recovery_action,
        }


class ValidationError(ArchivalError):
    code = "VALIDATION_FAILED"
    error_type = ErrorType.VALIDATION_ERROR
    default_recovery = "Fix the spec issues reported by validate_spec"


class SpecNotFoundError(ArchivalError):
    code = "SPEC_NOT_FOUND"
    error_type = ErrorType.FILE_NOT_FOUND
    default_recovery = "Check the spec path and the specs root directory"


class CopyError(ArchivalError):
    code = "COPY_FAILED"
    error_type = ErrorType.INTEGRITY_ERROR
    default_recovery = "Check disk space and permissions on the archive location"


class IntegrityError(ArchivalError):
    code = "INTEGRITY_FAILED"
    error_type = ErrorType.INTEGRITY_ERROR
    default_recovery = "Inspect the spec directory for files changing during archival"


class CleanupError(ArchivalError):
    code = "CLEANUP_FAILED"
    error_type = ErrorType.INTEGRITY_ERROR
    default_recovery = "Remove the leftover directory manually and repair the index"


class ConfigurationError(ArchivalError):
    code = "CONFIG_ERROR"
    error_type = ErrorType.CONFIGURATION_ERROR
    default_recovery = "Reset the archival configuration to defaults"


__all__ = [
    "ErrorType",
    "ArchivalError",
    "ValidationError",
    "SpecNotFoundError",
    "CopyError",
    "IntegrityError",
    "CleanupError",
    "ConfigurationError",
]
