"""Completion detection for spec task lists.

Counting uses a line-level regex instead of the full markdown tree: only
checkbox lines carrying a hierarchical task number are counted, which is
the same grammar the task parser accepts.
"""

from __future__ import annotations

import math
import re
from pathlib import Path
from typing import List, Optional, Tuple

from .archival_logging import get_logger
from .filesystem import path_exists
from .models import CompletionStatus, FormatValidation, mtime_datetime

logger = get_logger("completion")

TASKS_FILE = "tasks.md"
ARCHIVE_DIR_NAME = "archive"

_TASK_LINE = re.compile(r"^\s*(?:[-*+]\s*)?\[(?P<mark>[ xX✓])\]\s+(?P<number>\d+(?:\.\d+)*)\.\s+(?P<title>\S.*)$")
_ANY_MARKER = re.compile(r"^\s*(?:[-*+]\s*)?\[[ xX✓]\]")
_MALFORMED_MARKER = re.compile(r"^\s*[-*+]\s*\[(?P<mark>[^\]]?)\]")
_EMPTY_TITLE = re.compile(r"^\s*(?:[-*+]\s*)?\[[ xX✓]\]\s*$")
_LEADING_WS = re.compile(r"^[ \t]*")


def completion_percentage(completed: int, total: int) -> int:
    """Rounded completion percentage, 0 when there are no tasks."""
    if total <= 0:
        return 0
    return int(math.floor(100 * completed / total + 0.5))


class SpecCompletionDetector:
    """Count checked and unchecked tasks in a spec's tasks document."""

    def parse_task_counts(self, content: str) -> Tuple[int, int]:
        """Return ``(total_tasks, completed_tasks)`` for tasks document text."""
        total = 0
        completed = 0
        for line in content.splitlines():
            match = _TASK_LINE.match(line)
            if not match:
                continue
            total += 1
            if match.group("mark") != " ":
                completed += 1
        return total, completed

    def is_tasks_file_complete(self, content: str) -> bool:
        total, completed = self.parse_task_counts(content)
        return total > 0 and completed == total

    def check_spec_completion(self, spec_path: Path | str) -> CompletionStatus:
        """Completion status of the spec at ``spec_path``.

        A missing or unreadable tasks file yields an incomplete status with
        zero counts; this method never raises for expected conditions.
        """
        tasks_file = Path(spec_path) / TASKS_FILE
        if not path_exists(tasks_file):
            logger.debug(f"No tasks file at {tasks_file}")
            return CompletionStatus(is_complete=False, total_tasks=0, completed_tasks=0)

        try:
            content = tasks_file.read_text(encoding="utf-8")
            last_modified = mtime_datetime(tasks_file)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read tasks file {tasks_file}: {e}")
            return CompletionStatus(is_complete=False, total_tasks=0, completed_tasks=0)

        total, completed = self.parse_task_counts(content)
        return CompletionStatus(
            is_complete=total > 0 and completed == total,
            total_tasks=total,
            completed_tasks=completed,
            percentage=completion_percentage(completed, total),
            last_modified=last_modified,
        )

    check_completion = check_spec_completion

    def get_completion_percentage(self, spec_path: Path | str) -> int:
        status = self.check_spec_completion(spec_path)
        return completion_percentage(status.completed_tasks, status.total_tasks)

    def get_all_completed_specs(self, specs_dir: Path | str, exclude: Optional[List[Path]] = None) -> List[Path]:
        """Paths of every complete spec directly under ``specs_dir``."""
        specs_dir = Path(specs_dir)
        if not specs_dir.is_dir():
            return []
        excluded = {Path(p).resolve() for p in exclude or []}
        completed: List[Path] = []
        for entry in sorted(specs_dir.iterdir()):
            if not entry.is_dir() or entry.name == ARCHIVE_DIR_NAME or entry.name.startswith("."):
                continue
            if entry.resolve() in excluded:
                continue
            if self.check_spec_completion(entry).is_complete:
                completed.append(entry)
        return completed

    def validate_tasks_format(self, content: str) -> FormatValidation:
        """Structural checks on a tasks document, independent of completion."""
        issues: List[str] = []

        if not content.strip():
            return FormatValidation(is_valid=False, issues=["Tasks file is empty"])

        lines = content.splitlines()

        if not any(_ANY_MARKER.match(line) for line in lines):
            issues.append("No valid task markers found (expected format: - [x] or - [ ])")

        malformed = []
        for line in lines:
            match = _MALFORMED_MARKER.match(line)
            if match and match.group("mark") not in (" ", "x", "X", "✓"):
                malformed.append(line.strip())
        if malformed:
            issues.append(f"Found malformed task markers: {', '.join(malformed)}")

        for number, line in enumerate(lines, start=1):
            if _EMPTY_TITLE.match(line):
                issues.append(f"Line {number}: checkbox has no task title")

        issues.extend(self._indentation_issues(lines))

        return FormatValidation(is_valid=not issues, issues=issues)

    def _indentation_issues(self, lines: List[str]) -> List[str]:
        issues: List[str] = []
        indents: List[Tuple[int, str]] = []
        for number, line in enumerate(lines, start=1):
            if not _ANY_MARKER.match(line):
                continue
            indent = _LEADING_WS.match(line).group(0)
            if indent:
                indents.append((number, indent))

        uses_tabs = any("\t" in indent for _, indent in indents)
        uses_spaces = any(" " in indent for _, indent in indents)
        if uses_tabs and uses_spaces:
            issues.append("Inconsistent indentation: task lines mix tabs and spaces")
            return issues

        widths = [(number, len(indent)) for number, indent in indents]
        if not widths:
            return issues
        unit = min(width for _, width in widths)
        for number, width in widths:
            if width % unit:
                issues.append(
                    f"Line {number}: inconsistent indentation ({width} is not a multiple of {unit})"
                )
        return issues
