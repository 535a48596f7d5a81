"""Data models for spec archival.

This module contains the core data structures used throughout the archival
system: parsed tasks, specs, completion and validation results, archive
metadata and the archival policy.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


TASK_STATUSES = ("pending", "completed")
PRIORITIES = ("critical", "high", "medium", "low")
CATEGORIES = ("testing", "documentation", "design", "analysis", "implementation")
EFFORT_SIZES = ("xs", "s", "m", "l", "xl")
NOTIFICATION_LEVELS = ("none", "minimal", "verbose")

CONFIG_VERSION = "1.0"
INDEX_VERSION = "1.0"
METADATA_VERSION = "1.0"
METADATA_FILE_NAME = ".archive-metadata.json"

DEFAULT_ARCHIVE_LOCATION = "specs/archive"
MAX_DELAY_MINUTES = 1440


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime to ISO-8601, ``None`` passes through."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string or epoch number; return None when unusable."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def timestamp_slug(value: Optional[datetime] = None) -> str:
    """Filesystem-safe timestamp such as ``2024-05-01T09-30-00``."""
    return (value or utc_now()).strftime("%Y-%m-%dT%H-%M-%S")


def mtime_datetime(path: Path) -> datetime:
    """Return a file's modification time as an aware UTC datetime."""
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


# ---------------------------------------------------------------------------
# Task parsing
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class TaskReference:
    """Pointer to another task in the same document."""

    number: str
    title: str
    depth: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"number": self.number, "title": self.title, "depth": self.depth}


@dataclass(slots=True)
class ChildSummary:
    """Short view of a subtask, attached to its parent."""

    number: str
    title: str
    completed: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"number": self.number, "title": self.title, "completed": self.completed}


@dataclass(slots=True)
class ParsedTaskMetadata:
    """Values read from ``_Key: value_`` annotations under a task."""

    requirements: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    priority: Optional[str] = None
    effort: Optional[str] = None
    assignee: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requirements": list(self.requirements),
            "dependencies": list(self.dependencies),
            "tags": list(self.tags),
            "priority": self.priority,
            "effort": self.effort,
            "assignee": self.assignee,
        }


@dataclass(slots=True)
class ParsedTask:
    """A checkbox list item recognised as a numbered task."""

    number: str
    title: str
    raw: str
    completed: bool
    checkbox: str
    line_number: int
    description: List[str] = field(default_factory=list)
    metadata: ParsedTaskMetadata = field(default_factory=ParsedTaskMetadata)
    depth: int = 1
    hierarchy: List[TaskReference] = field(default_factory=list)
    parent: Optional[TaskReference] = None
    children: List[ChildSummary] = field(default_factory=list)
    list_type: str = "unordered"
    list_start: int = 1

    def reference(self) -> TaskReference:
        return TaskReference(number=self.number, title=self.title, depth=self.depth)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "number": self.number,
            "title": self.title,
            "raw": self.raw,
            "completed": self.completed,
            "checkbox": self.checkbox,
            "line_number": self.line_number,
            "description": list(self.description),
            "metadata": self.metadata.to_dict(),
            "depth": self.depth,
            "hierarchy": [ref.to_dict() for ref in self.hierarchy],
            "parent": self.parent.to_dict() if self.parent else None,
            "children": [child.to_dict() for child in self.children],
            "list_type": self.list_type,
            "list_start": self.list_start,
        }


@dataclass(slots=True)
class ParseIssue:
    """A task that was skipped, with the reason."""

    type: str
    line: int
    message: str
    task_text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "line": self.line,
            "message": self.message,
            "task_text": self.task_text,
        }


@dataclass(slots=True)
class ParseResult:
    """Tasks accepted by the parser plus the issues for rejected items."""

    tasks: List[ParsedTask] = field(default_factory=list)
    errors: List[ParseIssue] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tasks": [task.to_dict() for task in self.tasks],
            "errors": [error.to_dict() for error in self.errors],
        }


@dataclass(slots=True)
class TaskMetadata:
    """Structural and annotation details kept alongside a task."""

    depth: int = 1
    parent: Optional[TaskReference] = None
    hierarchy: List[TaskReference] = field(default_factory=list)
    children: List[ChildSummary] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    list_type: str = "unordered"
    list_start: int = 1
    requirement_refs: List[str] = field(default_factory=list)
    cross_spec_deps: List[str] = field(default_factory=list)
    original_task_number: Optional[str] = None
    effort_text: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "depth": self.depth,
            "parent": self.parent.to_dict() if self.parent else None,
            "hierarchy": [ref.to_dict() for ref in self.hierarchy],
            "children": [child.to_dict() for child in self.children],
            "tags": list(self.tags),
            "list_type": self.list_type,
            "list_start": self.list_start,
            "requirement_refs": list(self.requirement_refs),
            "cross_spec_deps": list(self.cross_spec_deps),
            "original_task_number": self.original_task_number,
            "effort_text": self.effort_text,
        }


@dataclass(slots=True)
class Task:
    """One checklist item of a spec's tasks document."""

    id: str
    title: str
    description: str
    spec_name: str
    line_number: int
    status: str = "pending"
    priority: str = "medium"
    category: str = "implementation"
    requirements: List[str] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    estimated_effort: str = "xs"
    assignee: Optional[str] = None
    source_file: str = "tasks.md"
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    completed_at: Optional[datetime] = None
    notes: List[str] = field(default_factory=list)
    metadata: TaskMetadata = field(default_factory=TaskMetadata)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "spec_name": self.spec_name,
            "source_file": self.source_file,
            "line_number": self.line_number,
            "status": self.status,
            "priority": self.priority,
            "category": self.category,
            "requirements": list(self.requirements),
            "dependencies": list(self.dependencies),
            "estimated_effort": self.estimated_effort,
            "assignee": self.assignee,
            "created_at": format_datetime(self.created_at),
            "updated_at": format_datetime(self.updated_at),
            "completed_at": format_datetime(self.completed_at),
            "notes": list(self.notes),
            "metadata": self.metadata.to_dict(),
        }

    def is_completed(self) -> bool:
        return self.status == "completed"

    def validate(self) -> List[str]:
        """Validate task data and return any issues."""
        issues = []

        if not self.id:
            issues.append("Task ID is required")
        if not self.title:
            issues.append("Task title is required")
        if self.status not in TASK_STATUSES:
            issues.append(f"Invalid status: {self.status}")
        if self.priority not in PRIORITIES:
            issues.append(f"Invalid priority: {self.priority}")
        if self.category not in CATEGORIES:
            issues.append(f"Invalid category: {self.category}")
        if self.estimated_effort not in EFFORT_SIZES:
            issues.append(f"Invalid effort size: {self.estimated_effort}")

        return issues


# ---------------------------------------------------------------------------
# Specs, completion and validation
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class Spec:
    """A spec directory and the figures derived from scanning it."""

    name: str
    title: str
    path: Path
    requirements_file: Optional[Path] = None
    design_file: Optional[Path] = None
    tasks_file: Optional[Path] = None
    total_tasks: int = 0
    completed_tasks: int = 0
    progress: int = 0
    last_updated: datetime = field(default_factory=utc_now)
    dependencies: List[str] = field(default_factory=list)
    dependents: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "title": self.title,
            "path": str(self.path),
            "requirements_file": str(self.requirements_file) if self.requirements_file else None,
            "design_file": str(self.design_file) if self.design_file else None,
            "tasks_file": str(self.tasks_file) if self.tasks_file else None,
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "progress": self.progress,
            "last_updated": format_datetime(self.last_updated),
            "dependencies": list(self.dependencies),
            "dependents": list(self.dependents),
        }

    def is_complete(self) -> bool:
        return self.total_tasks > 0 and self.completed_tasks == self.total_tasks


@dataclass(slots=True)
class CompletionStatus:
    """Task counts of one tasks document."""

    is_complete: bool
    total_tasks: int
    completed_tasks: int
    percentage: int = 0
    last_modified: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_complete": self.is_complete,
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
            "percentage": self.percentage,
            "last_modified": format_datetime(self.last_modified),
        }


@dataclass(slots=True)
class FormatValidation:
    is_valid: bool
    issues: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"is_valid": self.is_valid, "issues": list(self.issues)}


@dataclass(slots=True)
class SpecValidationResult:
    """Outcome of validating one spec directory."""

    valid: bool
    issues: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "issues": list(self.issues),
            "warnings": list(self.warnings),
        }


@dataclass(slots=True)
class ScanReport:
    """Aggregate validation report over every spec under the specs root."""

    total_specs: int = 0
    valid_specs: List[str] = field(default_factory=list)
    invalid_specs: List[str] = field(default_factory=list)
    issues: Dict[str, List[str]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_specs": self.total_specs,
            "valid_specs": list(self.valid_specs),
            "invalid_specs": list(self.invalid_specs),
            "issues": {name: list(items) for name, items in self.issues.items()},
        }


@dataclass(slots=True)
class ScanError:
    type: str
    file_path: str
    message: str
    line_number: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "file_path": self.file_path,
            "message": self.message,
            "line_number": self.line_number,
        }


@dataclass(slots=True)
class ScanResult:
    """Every spec and task discovered by a full scan."""

    specs: List[Spec] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)
    scanned_at: datetime = field(default_factory=utc_now)
    errors: List[ScanError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "specs": [spec.to_dict() for spec in self.specs],
            "tasks": [task.to_dict() for task in self.tasks],
            "scanned_at": format_datetime(self.scanned_at),
            "errors": [error.to_dict() for error in self.errors],
        }


# ---------------------------------------------------------------------------
# Archival
# ---------------------------------------------------------------------------


class ArchivalState(str, Enum):
    """Stages of a single archival attempt."""

    PENDING = "pending"
    VALIDATING = "validating"
    COPYING = "copying"
    VERIFYING = "verifying"
    INDEXED = "indexed"
    DONE = "done"
    ROLLED_BACK = "rolled_back"


@dataclass(slots=True)
class SafetyCheck:
    is_safe: bool
    can_proceed: bool
    issues: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_safe": self.is_safe,
            "can_proceed": self.can_proceed,
            "issues": list(self.issues),
            "warnings": list(self.warnings),
        }


@dataclass(slots=True)
class ArchivalResult:
    """Outcome of one archival attempt."""

    success: bool
    original_path: str
    archive_path: str = ""
    timestamp: datetime = field(default_factory=utc_now)
    state: ArchivalState = ArchivalState.PENDING
    error: Optional[str] = None
    issues: List[str] = field(default_factory=list)
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "original_path": self.original_path,
            "archive_path": self.archive_path,
            "timestamp": format_datetime(self.timestamp),
            "state": self.state.value,
            "error": self.error,
            "issues": list(self.issues),
            "skipped": self.skipped,
        }


@dataclass(slots=True)
class ArchiveMetadata:
    """Contents of ``.archive-metadata.json`` inside an archived spec."""

    spec_name: str
    original_path: str
    archive_path: str
    completion_date: datetime
    archival_date: datetime
    total_tasks: int
    completed_tasks: int
    version: str = METADATA_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "spec_name": self.spec_name,
            "original_path": self.original_path,
            "archive_path": self.archive_path,
            "completion_date": format_datetime(self.completion_date),
            "archival_date": format_datetime(self.archival_date),
            "total_tasks": self.total_tasks,
            "completed_tasks": self.completed_tasks,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArchiveMetadata":
        """Create from dictionary representation."""
        return cls(
            spec_name=data["spec_name"],
            original_path=data.get("original_path", ""),
            archive_path=data["archive_path"],
            completion_date=parse_datetime(data.get("completion_date")) or utc_now(),
            archival_date=parse_datetime(data.get("archival_date")) or utc_now(),
            total_tasks=int(data.get("total_tasks", 0)),
            completed_tasks=int(data.get("completed_tasks", 0)),
            version=data.get("version", METADATA_VERSION),
        )


@dataclass(slots=True)
class ArchiveIndexEntry:
    """Reduced projection of ``ArchiveMetadata`` stored in the index."""

    spec_name: str
    archive_path: str
    completion_date: datetime
    archival_date: datetime
    total_tasks: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "spec_name": self.spec_name,
            "archive_path": self.archive_path,
            "completion_date": format_datetime(self.completion_date),
            "archival_date": format_datetime(self.archival_date),
            "total_tasks": self.total_tasks,
        }

    @classmethod
    def from_metadata(cls, metadata: ArchiveMetadata) -> "ArchiveIndexEntry":
        return cls(
            spec_name=metadata.spec_name,
            archive_path=metadata.archive_path,
            completion_date=metadata.completion_date,
            archival_date=metadata.archival_date,
            total_tasks=metadata.total_tasks,
        )


@dataclass(slots=True)
class ArchiveIndex:
    """Versioned list of archive entries, most recent first."""

    version: str = INDEX_VERSION
    last_updated: datetime = field(default_factory=utc_now)
    archives: List[ArchiveIndexEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "last_updated": format_datetime(self.last_updated),
            "archives": [entry.to_dict() for entry in self.archives],
        }


@dataclass(slots=True)
class ArchiveStats:
    total_archives: int = 0
    total_tasks: int = 0
    oldest_archive: Optional[datetime] = None
    newest_archive: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_archives": self.total_archives,
            "total_tasks": self.total_tasks,
            "oldest_archive": format_datetime(self.oldest_archive),
            "newest_archive": format_datetime(self.newest_archive),
        }


@dataclass(slots=True)
class RepairReport:
    is_valid: bool
    repaired: bool
    issues: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"is_valid": self.is_valid, "repaired": self.repaired, "issues": list(self.issues)}


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ArchivalConfig:
    """Policy controlling automatic archival."""

    enabled: bool = True
    delay_minutes: float = 10
    archive_location: str = DEFAULT_ARCHIVE_LOCATION
    notification_level: str = "minimal"
    backup_enabled: bool = True
    version: str = CONFIG_VERSION

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "version": self.version,
            "enabled": self.enabled,
            "delay_minutes": self.delay_minutes,
            "archive_location": self.archive_location,
            "notification_level": self.notification_level,
            "backup_enabled": self.backup_enabled,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArchivalConfig":
        """Create from a current-format dictionary. Use migrate_config for anything else."""
        defaults = cls()
        return cls(
            enabled=data.get("enabled", defaults.enabled),
            delay_minutes=data.get("delay_minutes", defaults.delay_minutes),
            archive_location=data.get("archive_location", defaults.archive_location),
            notification_level=data.get("notification_level", defaults.notification_level),
            backup_enabled=data.get("backup_enabled", defaults.backup_enabled),
            version=data.get("version", CONFIG_VERSION),
        )

    def with_changes(self, **changes: Any) -> "ArchivalConfig":
        return replace(self, **changes)

    def validate(self) -> List[str]:
        """Validate the configuration and return any issues."""
        issues = []

        if not isinstance(self.enabled, bool):
            issues.append("enabled must be a boolean")
        if not isinstance(self.backup_enabled, bool):
            issues.append("backup_enabled must be a boolean")
        if isinstance(self.delay_minutes, bool) or not isinstance(self.delay_minutes, (int, float)):
            issues.append("delay_minutes must be a number")
        elif not 0 <= self.delay_minutes <= MAX_DELAY_MINUTES:
            issues.append(f"delay_minutes must be between 0 and {MAX_DELAY_MINUTES}")
        if not isinstance(self.archive_location, str) or not self.archive_location.strip():
            issues.append("archive_location must be a non-empty string")
        else:
            location = self.archive_location.strip()
            if Path(location).is_absolute() or location.startswith("/"):
                issues.append("archive_location must be relative to the project root")
            if ".." in Path(location).parts:
                issues.append("archive_location must not contain '..'")
        if self.notification_level not in NOTIFICATION_LEVELS:
            issues.append(f"Invalid notification_level: {self.notification_level}")

        return issues
