"""Unit tests for spec archival models.

This module tests the core data structures, their validation,
serialization and date handling.
"""

from datetime import datetime, timezone
from pathlib import Path

from spec_archival.models import (
    ArchivalConfig,
    ArchivalResult,
    ArchivalState,
    ArchiveIndex,
    ArchiveIndexEntry,
    ArchiveMetadata,
    CompletionStatus,
    ParsedTask,
    Spec,
    Task,
    TaskReference,
    format_datetime,
    parse_datetime,
    timestamp_slug,
)


class TestDateHelpers:
    """Test cases for datetime parsing and formatting."""

    def test_parse_iso_string_with_z_suffix(self):
        """Test that a trailing Z is read as UTC."""
        parsed = parse_datetime("2024-05-01T09:30:00Z")

        assert parsed == datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc)

    def test_parse_naive_string_assumes_utc(self):
        """Test parsing a timestamp without a zone."""
        parsed = parse_datetime("2024-05-01T09:30:00")

        assert parsed.tzinfo == timezone.utc

    def test_parse_epoch_number(self):
        """Test parsing an epoch number."""
        assert parse_datetime(0) == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_parse_rejects_garbage(self):
        """Test that unusable values yield None instead of raising."""
        assert parse_datetime("not a date") is None
        assert parse_datetime("") is None
        assert parse_datetime(None) is None
        assert parse_datetime(True) is None
        assert parse_datetime({"a": 1}) is None

    def test_format_naive_datetime_as_utc(self):
        """Test formatting a naive datetime."""
        formatted = format_datetime(datetime(2024, 1, 2, 3, 4, 5))

        assert formatted == "2024-01-02T03:04:05+00:00"
        assert format_datetime(None) is None

    def test_timestamp_slug_is_filesystem_safe(self):
        """Test that timestamp slugs are safe in file names."""
        slug = timestamp_slug(datetime(2024, 5, 1, 9, 30, 15, tzinfo=timezone.utc))

        assert slug == "2024-05-01T09-30-15"
        assert ":" not in slug


class TestTask:
    """Test cases for Task model."""

    def test_task_defaults(self):
        """Test Task default values."""
        task = Task(id="auth-1", title="Create service", description="", spec_name="auth", line_number=3)

        assert task.status == "pending"
        assert task.priority == "medium"
        assert task.category == "implementation"
        assert task.estimated_effort == "xs"
        assert not task.is_completed()
        assert task.validate() == []

    def test_task_validation_reports_every_problem(self):
        """Test that validation collects all invalid fields."""
        task = Task(
            id="",
            title="",
            description="",
            spec_name="auth",
            line_number=1,
            status="blocked",
            priority="urgent",
            category="misc",
            estimated_effort="huge",
        )

        issues = task.validate()

        assert "Task ID is required" in issues
        assert "Task title is required" in issues
        assert "Invalid status: blocked" in issues
        assert "Invalid priority: urgent" in issues
        assert "Invalid category: misc" in issues
        assert "Invalid effort size: huge" in issues

    def test_task_to_dict(self):
        """Test converting Task to dictionary."""
        task = Task(
            id="auth-2",
            title="Add form",
            description="Form with two fields",
            spec_name="auth",
            line_number=5,
            status="completed",
            requirements=["1.1"],
        )

        result = task.to_dict()

        assert result["id"] == "auth-2"
        assert result["status"] == "completed"
        assert result["requirements"] == ["1.1"]
        assert result["completed_at"] is None
        assert result["metadata"]["depth"] == 1
        assert result["created_at"].endswith("+00:00")


class TestParsedTask:
    """Test cases for ParsedTask model."""

    def test_reference_carries_depth(self):
        """Test the depth on a task reference."""
        task = ParsedTask(number="1.2", title="Child", raw="1.2. Child", completed=False, checkbox=" ", line_number=4, depth=2)

        assert task.reference() == TaskReference(number="1.2", title="Child", depth=2)

    def test_to_dict_includes_hierarchy(self):
        """Test converting ParsedTask to dictionary."""
        parent = TaskReference(number="1", title="Parent", depth=1)
        task = ParsedTask(
            number="1.1",
            title="Child",
            raw="1.1. Child",
            completed=True,
            checkbox="x",
            line_number=2,
            depth=2,
            hierarchy=[parent],
            parent=parent,
        )

        result = task.to_dict()

        assert result["parent"] == {"number": "1", "title": "Parent", "depth": 1}
        assert result["hierarchy"] == [{"number": "1", "title": "Parent", "depth": 1}]
        assert result["list_type"] == "unordered"


class TestSpec:
    """Test cases for Spec model."""

    def test_zero_tasks_is_not_complete(self):
        """Test that a spec with no tasks is not complete."""
        spec = Spec(name="empty", title="Empty", path=Path("specs/empty"))

        assert not spec.is_complete()

    def test_all_tasks_done_is_complete(self):
        """Test that a spec with all tasks done is complete."""
        spec = Spec(name="done", title="Done", path=Path("specs/done"), total_tasks=2, completed_tasks=2, progress=100)

        assert spec.is_complete()
        assert spec.to_dict()["path"] == str(Path("specs/done"))


class TestCompletionStatus:
    def test_to_dict(self):
        """Test converting CompletionStatus to dictionary."""
        status = CompletionStatus(is_complete=False, total_tasks=2, completed_tasks=1, percentage=50)

        assert status.to_dict() == {
            "is_complete": False,
            "total_tasks": 2,
            "completed_tasks": 1,
            "percentage": 50,
            "last_modified": None,
        }


class TestArchiveMetadata:
    """Test cases for archive metadata and index entries."""

    def test_metadata_from_dict(self):
        """Test that stored metadata loads back into an equivalent object."""
        metadata = ArchiveMetadata(
            spec_name="auth",
            original_path="/p/specs/auth",
            archive_path="/p/specs/archive/auth-2024-05-01T09-30-00",
            completion_date=datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc),
            archival_date=datetime(2024, 5, 1, 9, 30, tzinfo=timezone.utc),
            total_tasks=4,
            completed_tasks=4,
        )

        loaded = ArchiveMetadata.from_dict(metadata.to_dict())

        assert loaded == metadata

    def test_index_entry_projection(self):
        """Test building an index entry from metadata."""
        metadata = ArchiveMetadata(
            spec_name="auth",
            original_path="/p/specs/auth",
            archive_path="/a/auth-x",
            completion_date=datetime(2024, 5, 1, tzinfo=timezone.utc),
            archival_date=datetime(2024, 5, 2, tzinfo=timezone.utc),
            total_tasks=3,
            completed_tasks=3,
        )

        entry = ArchiveIndexEntry.from_metadata(metadata)

        assert entry.spec_name == "auth"
        assert entry.archive_path == "/a/auth-x"
        assert entry.total_tasks == 3
        assert set(entry.to_dict()) == {"spec_name", "archive_path", "completion_date", "archival_date", "total_tasks"}

    def test_index_to_dict_is_versioned(self):
        """Test that the serialized index carries its version."""
        index = ArchiveIndex()

        result = index.to_dict()

        assert result["version"] == "1.0"
        assert result["archives"] == []


class TestArchivalResult:
    def test_state_serialized_as_value(self):
        """Test serializing the archival state."""
        result = ArchivalResult(success=False, original_path="/p/specs/auth", state=ArchivalState.ROLLED_BACK)

        assert result.to_dict()["state"] == "rolled_back"
        assert result.to_dict()["skipped"] is False


class TestArchivalConfig:
    """Test cases for ArchivalConfig validation."""

    def test_defaults_are_valid(self):
        """Test that the default configuration is valid."""
        config = ArchivalConfig()

        assert config.validate() == []
        assert config.enabled is True
        assert config.delay_minutes == 10
        assert config.archive_location == "specs/archive"

    def test_from_dict_round_trip(self):
        """Test creating ArchivalConfig from dictionary."""
        config = ArchivalConfig(enabled=False, delay_minutes=30, notification_level="verbose")

        assert ArchivalConfig.from_dict(config.to_dict()) == config

    def test_with_changes_returns_new_object(self):
        """Test that with_changes leaves the original unchanged."""
        config = ArchivalConfig()

        changed = config.with_changes(delay_minutes=5)

        assert changed.delay_minutes == 5
        assert config.delay_minutes == 10

    def test_delay_bounds(self):
        """Test validation of the delay bounds."""
        assert "delay_minutes must be between 0 and 1440" in ArchivalConfig(delay_minutes=-1).validate()
        assert "delay_minutes must be between 0 and 1440" in ArchivalConfig(delay_minutes=1441).validate()
        assert ArchivalConfig(delay_minutes=1440).validate() == []

    def test_delay_rejects_bool_and_string(self):
        """Test that the delay must be a number."""
        assert "delay_minutes must be a number" in ArchivalConfig(delay_minutes=True).validate()
        assert "delay_minutes must be a number" in ArchivalConfig(delay_minutes="10").validate()

    def test_archive_location_rules(self):
        """Test that the archive location must stay inside the project."""
        assert "archive_location must be relative to the project root" in ArchivalConfig(
            archive_location="/tmp/archive"
        ).validate()
        assert "archive_location must not contain '..'" in ArchivalConfig(
            archive_location="../elsewhere"
        ).validate()
        assert "archive_location must be a non-empty string" in ArchivalConfig(archive_location="  ").validate()

    def test_invalid_notification_level(self):
        """Test validation of the notification level."""
        assert ArchivalConfig(notification_level="loud").validate() == ["Invalid notification_level: loud"]

    def test_flags_must_be_boolean(self):
        """Test that flags must be booleans."""
        issues = ArchivalConfig(enabled="yes", backup_enabled=1).validate()

        assert "enabled must be a boolean" in issues
        assert "backup_enabled must be a boolean" in issues
