"""Spec archival: completion tracking and archival of project specs."""

from .archival_engine import ArchivalEngine
from .archive_index import ArchiveIndexManager
from .completion import SpecCompletionDetector
from .config import ConfigurationManager, migrate_config
from .errors import ArchivalError, ConfigurationError, ErrorType
from .models import (
    ArchivalConfig,
    ArchivalResult,
    ArchivalState,
    ArchiveIndexEntry,
    ArchiveMetadata,
    CompletionStatus,
    ParsedTask,
    Spec,
    Task,
)
from .scanner import SpecScanner
from .task_parser import MarkdownTaskParser, build_task

__version__ = "0.1.0"

__all__ = [
    "ArchivalEngine",
    "ArchiveIndexManager",
    "SpecCompletionDetector",
    "ConfigurationManager",
    "migrate_config",
    "ArchivalError",
    "ConfigurationError",
    "ErrorType",
    "ArchivalConfig",
    "ArchivalResult",
    "ArchivalState",
    "ArchiveIndexEntry",
    "ArchiveMetadata",
    "CompletionStatus",
    "ParsedTask",
    "Spec",
    "Task",
    "SpecScanner",
    "MarkdownTaskParser",
    "build_task",
]
