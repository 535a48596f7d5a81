"""Spec discovery and validation.

A spec is a directory directly under the specs root holding at least one
of ``requirements.md``, ``design.md`` or ``tasks.md``. The archive
directory is never treated as a spec.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .archival_logging import get_logger, log_performance
from .completion import ARCHIVE_DIR_NAME, TASKS_FILE, SpecCompletionDetector
from .errors import ErrorType
from .filesystem import path_exists
from .models import (
    ScanError,
    ScanReport,
    ScanResult,
    Spec,
    SpecValidationResult,
    Task,
    mtime_datetime,
    utc_now,
)
from .task_parser import MarkdownTaskParser, build_task

logger = get_logger("scanner")

REQUIREMENTS_FILE = "requirements.md"
DESIGN_FILE = "design.md"
SPEC_FILES = (REQUIREMENTS_FILE, DESIGN_FILE, TASKS_FILE)
REQUIRED_FILES = (TASKS_FILE,)
RECOMMENDED_FILES = (REQUIREMENTS_FILE, DESIGN_FILE)
OPTIONAL_FILES = ("notes.md", "testing.md")

MAX_RECOMMENDED_TASKS = 50
MIN_DOCUMENT_LENGTH = 100

_INTRODUCTION = re.compile(r"^## Introduction[ \t]*\n\s*\n?([^\n]+)", re.MULTILINE)


class SpecScanner:
    """Discover, classify and validate specs under a specs root."""

    def __init__(
        self,
        specs_root: Path | str,
        archive_location: Optional[Path | str] = None,
        completion_detector: Optional[SpecCompletionDetector] = None,
        task_parser: Optional[MarkdownTaskParser] = None,
    ):
        self.specs_root = Path(specs_root)
        self.archive_location = Path(archive_location).resolve() if archive_location else None
        self.completion_detector = completion_detector or SpecCompletionDetector()
        self.task_parser = task_parser or MarkdownTaskParser()

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def is_spec_directory(self, path: Path | str) -> bool:
        path = Path(path)
        return path.is_dir() and any((path / name).is_file() for name in SPEC_FILES)

    def _is_archive_directory(self, path: Path) -> bool:
        if path.name == ARCHIVE_DIR_NAME:
            return True
        return self.archive_location is not None and path.resolve() == self.archive_location

    def get_all_specs(self) -> List[Path]:
        """Sorted spec directories under the specs root, excluding the archive."""
        if not self.specs_root.is_dir():
            logger.warning(
                f"Specs root not found: {self.specs_root}",
                extra={"extra_fields": {"error_type": ErrorType.FILE_NOT_FOUND}},
            )
            return []

        specs = []
        for entry in sorted(self.specs_root.iterdir()):
            if entry.name.startswith(".") or not entry.is_dir() or self._is_archive_directory(entry):
                continue
            if self.is_spec_directory(entry):
                specs.append(entry)
        return specs

    def get_completed_specs(self) -> List[Path]:
        return [
            spec for spec in self.get_all_specs()
            if self.completion_detector.check_spec_completion(spec).is_complete
        ]

    def get_incomplete_specs(self) -> List[Path]:
        completed = set(self.get_completed_specs())
        return [spec for spec in self.get_all_specs() if spec not in completed]

    def get_specs_ready_for_archival(self) -> List[Path]:
        """Specs that are both complete and valid."""
        ready = []
        for spec in self.get_completed_specs():
            validation = self.validate_spec(spec)
            if validation.valid:
                ready.append(spec)
            else:
                logger.info(f"Spec '{spec.name}' is complete but not valid; skipping archival")
        return ready

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_spec(self, spec_path: Path | str) -> SpecValidationResult:
        """Check one spec directory. Problems are returned, never raised."""
        spec_path = Path(spec_path)
        issues: List[str] = []
        warnings: List[str] = []

        if not path_exists(spec_path):
            return SpecValidationResult(valid=False, issues=[f"Spec directory not found: {spec_path}"])
        if not spec_path.is_dir():
            return SpecValidationResult(valid=False, issues=[f"Spec path is not a directory: {spec_path}"])

        for name in REQUIRED_FILES:
            problem = self._file_problem(spec_path / name)
            if problem:
                issues.append(f"{problem}: {name}")

        for name in RECOMMENDED_FILES:
            path = spec_path / name
            if not path_exists(path):
                warnings.append(f"Recommended file missing: {name}")
            elif not path.is_file():
                warnings.append(f"{name} is not a regular file")
            elif path.stat().st_size == 0:
                warnings.append(f"{name} is empty")

        if not any(issue.endswith(TASKS_FILE) for issue in issues):
            self._validate_tasks_file(spec_path, issues, warnings)

        self._check_unexpected_entries(spec_path, warnings)
        self._check_document_content(spec_path, warnings)

        return SpecValidationResult(valid=not issues, issues=issues, warnings=warnings)

    @staticmethod
    def _file_problem(path: Path) -> Optional[str]:
        if not path_exists(path):
            return "Missing required file"
        if not path.is_file():
            return "Required file is not a regular file"
        if path.stat().st_size == 0:
            return "Required file is empty"
        return None

    def _validate_tasks_file(self, spec_path: Path, issues: List[str], warnings: List[str]) -> None:
        tasks_path = spec_path / TASKS_FILE
        try:
            content = tasks_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            issues.append(f"Failed to validate {TASKS_FILE}: {e}")
            return

        format_result = self.completion_detector.validate_tasks_format(content)
        issues.extend(f"{TASKS_FILE}: {issue}" for issue in format_result.issues)

        parsed = self.task_parser.parse(content)
        warnings.extend(f"{TASKS_FILE} line {error.line}: {error.message}" for error in parsed.errors)

        total, completed = self.completion_detector.parse_task_counts(content)
        if total == 0:
            warnings.append(f"{TASKS_FILE} contains no tasks")
        elif total > MAX_RECOMMENDED_TASKS:
            warnings.append(
                f"{TASKS_FILE} contains many tasks ({total}) - consider breaking into smaller specs"
            )
        if total > 0 and completed == total:
            warnings.append("All tasks completed - spec may be ready for archival")

    def _check_unexpected_entries(self, spec_path: Path, warnings: List[str]) -> None:
        known = set(SPEC_FILES) | set(OPTIONAL_FILES)
        for entry in sorted(spec_path.iterdir()):
            if entry.name.startswith("."):
                continue
            if entry.is_dir():
                warnings.append(f"Unexpected subdirectory found: {entry.name}")
            elif entry.name not in known:
                warnings.append(f"Unexpected file found: {entry.name}")

    def _check_document_content(self, spec_path: Path, warnings: List[str]) -> None:
        for name in RECOMMENDED_FILES:
            path = spec_path / name
            if not path.is_file():
                continue
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                warnings.append(f"{name} could not be read")
                continue
            if not content.strip():
                continue
            if len(content.strip()) < MIN_DOCUMENT_LENGTH:
                warnings.append(f"{name} is very short - may need more detail")
            if name == REQUIREMENTS_FILE and "requirement" not in content.lower():
                warnings.append(f"{name} may not contain actual requirements")

    def scan_and_validate_all_specs(self) -> ScanReport:
        """Validation report over every spec, keyed by spec name."""
        report = ScanReport()
        specs = self.get_all_specs()
        report.total_specs = len(specs)
        for spec in specs:
            validation = self.validate_spec(spec)
            if validation.valid:
                report.valid_specs.append(spec.name)
            else:
                report.invalid_specs.append(spec.name)
            collected = list(validation.issues)
            collected.extend(f"WARNING: {warning}" for warning in validation.warnings)
            if collected:
                report.issues[spec.name] = collected
        return report

    def get_spec_stats(self) -> Dict[str, int]:
        all_specs = self.get_all_specs()
        completed = self.get_completed_specs()
        report = self.scan_and_validate_all_specs()
        return {
            "total": len(all_specs),
            "completed": len(completed),
            "incomplete": len(all_specs) - len(completed),
            "valid": len(report.valid_specs),
            "invalid": len(report.invalid_specs),
            "ready_for_archival": len(self.get_specs_ready_for_archival()),
        }

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def extract_title(self, spec_path: Path | str) -> str:
        """Title from requirements.md, falling back to the directory name."""
        spec_path = Path(spec_path)
        requirements = spec_path / REQUIREMENTS_FILE
        try:
            content = requirements.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return spec_path.name

        for line in content.splitlines():
            if line.startswith("# ") and "Requirements Document" not in line:
                return line[2:].strip()
        introduction = _INTRODUCTION.search(content)
        if introduction and introduction.group(1).strip():
            return introduction.group(1).strip()
        return spec_path.name

    def load_spec(self, spec_path: Path | str) -> Spec:
        spec_path = Path(spec_path)
        status = self.completion_detector.check_spec_completion(spec_path)
        files = {name: spec_path / name for name in SPEC_FILES}
        return Spec(
            name=spec_path.name,
            title=self.extract_title(spec_path),
            path=spec_path,
            requirements_file=files[REQUIREMENTS_FILE] if files[REQUIREMENTS_FILE].is_file() else None,
            design_file=files[DESIGN_FILE] if files[DESIGN_FILE].is_file() else None,
            tasks_file=files[TASKS_FILE] if files[TASKS_FILE].is_file() else None,
            total_tasks=status.total_tasks,
            completed_tasks=status.completed_tasks,
            progress=status.percentage,
            last_updated=status.last_modified or mtime_datetime(spec_path),
        )

    def extract_tasks(self, spec_path: Path | str) -> Tuple[List[Task], List[ScanError]]:
        """Tasks of one spec plus the parse problems found on the way."""
        spec_path = Path(spec_path)
        tasks_path = spec_path / TASKS_FILE
        result = self.task_parser.parse_file(tasks_path)
        tasks = [build_task(parsed, spec_path.name) for parsed in result.tasks]
        errors = [
            ScanError(
                type=issue.type,
                file_path=str(tasks_path),
                message=issue.message,
                line_number=issue.line or None,
            )
            for issue in result.errors
        ]
        return tasks, errors

    @log_performance("scan_all_specs")
    def scan_all_specs(self) -> ScanResult:
        result = ScanResult(scanned_at=utc_now())
        for spec_path in self.get_all_specs():
            try:
                spec = self.load_spec(spec_path)
                tasks, errors = self.extract_tasks(spec_path)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Failed to scan spec {spec_path}: {e}")
                result.errors.append(ScanError(
                    type=ErrorType.PARSE_ERROR,
                    file_path=str(spec_path),
                    message=f"Failed to scan spec: {e}",
                ))
                continue
            result.specs.append(spec)
            result.tasks.extend(tasks)
            result.errors.extend(errors)
        logger.info(f"Scanned {len(result.specs)} spec(s) with {len(result.tasks)} task(s)")
        return result

