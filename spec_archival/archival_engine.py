"""Archival of completed specs.

An archival attempt moves one spec directory into the archive location in
strictly ordered steps::

    validate -> copy -> verify -> write metadata -> remove original -> index

Any failure after the copy has started rolls the attempt back: the original
directory is restored if it had already been removed, the destination is
deleted and the index is left unchanged. The engine assumes it is the only
writer of the specs tree while it runs; there is no cross-process lock.
"""

from __future__ import annotations

import math
import os
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .archival_logging import (
    get_logger,
    log_archival_rolled_back,
    log_error_with_context,
    log_operation,
    log_spec_archived,
    observability_hooks,
)
from .archive_index import ArchiveIndexManager
from .completion import SpecCompletionDetector
from .config import ConfigurationManager
from .errors import ArchivalError, CleanupError, CopyError, IntegrityError, SpecNotFoundError, ValidationError
from .filesystem import (
    copy_tree_with_metadata,
    list_files,
    path_exists,
    remove_tree,
    restore_tree,
    write_json_atomic,
)
from .models import (
    METADATA_FILE_NAME,
    ArchivalConfig,
    ArchivalResult,
    ArchivalState,
    ArchiveIndexEntry,
    ArchiveMetadata,
    ArchiveStats,
    CompletionStatus,
    RepairReport,
    SafetyCheck,
    ScanReport,
    timestamp_slug,
    utc_now,
)
from .scanner import SpecScanner

logger = get_logger("engine")

SPECS_DIR_NAME = "specs"
WOULD_ARCHIVE = "Would archive"


class ArchivalEngine:
    """Coordinate scanning, archival and index maintenance for one project."""

    def __init__(
        self,
        project_root: Path | str,
        specs_dir_name: str = SPECS_DIR_NAME,
        config_manager: Optional[ConfigurationManager] = None,
        completion_detector: Optional[SpecCompletionDetector] = None,
    ):
        self.project_root = Path(project_root).resolve()
        self.specs_root = self.project_root / specs_dir_name
        self.config_manager = config_manager or ConfigurationManager(self.project_root)
        self.completion_detector = completion_detector or SpecCompletionDetector()
        self._index_manager: Optional[ArchiveIndexManager] = None
        self._scanner: Optional[SpecScanner] = None

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    @property
    def archive_location(self) -> Path:
        return self.config_manager.get_archive_location()

    @property
    def index_manager(self) -> ArchiveIndexManager:
        """Index manager for the configured archive location."""
        location = self.archive_location
        if self._index_manager is None or self._index_manager.archive_location != location:
            self._index_manager = ArchiveIndexManager(location)
        return self._index_manager

    @property
    def scanner(self) -> SpecScanner:
        location = self.archive_location.resolve()
        if self._scanner is None or self._scanner.archive_location != location:
            self._scanner = SpecScanner(self.specs_root, location, self.completion_detector)
        return self._scanner

    # ------------------------------------------------------------------
    # Safety and policy
    # ------------------------------------------------------------------

    def validate_archival_safety(self, spec_path: Path | str) -> SafetyCheck:
        """Checks that must pass before any file is touched."""
        spec_path = Path(spec_path).resolve()
        issues: List[str] = []
        warnings: List[str] = []

        if not spec_path.is_dir():
            issues.append(f"Spec directory not found: {spec_path}")
            return SafetyCheck(is_safe=False, can_proceed=False, issues=issues)

        archive_root = self.archive_location.resolve()
        if spec_path == archive_root or archive_root in spec_path.parents:
            issues.append("Spec is inside the archive location")
        if spec_path.parent != self.specs_root.resolve():
            issues.append(f"Spec is not directly under the specs root: {self.specs_root}")

        validation = self.scanner.validate_spec(spec_path)
        issues.extend(validation.issues)
        warnings.extend(validation.warnings)

        status = self.completion_detector.check_spec_completion(spec_path)
        if not status.is_complete:
            issues.append(
                f"Spec is not complete ({status.completed_tasks}/{status.total_tasks} tasks completed)"
            )

        existing_parent = archive_root
        while not existing_parent.exists() and existing_parent != existing_parent.parent:
            existing_parent = existing_parent.parent
        if not os.access(existing_parent, os.W_OK):
            issues.append(f"Archive location is not writable: {archive_root}")

        return SafetyCheck(is_safe=not issues, can_proceed=not issues, issues=issues, warnings=warnings)

    def should_archive_spec(self, spec_path: Path | str) -> Tuple[bool, str]:
        """Whether the configured policy allows archiving ``spec_path`` now."""
        config = self.config_manager.get_config()
        if not config.enabled:
            return False, "Archival is disabled"

        status = self.completion_detector.check_spec_completion(spec_path)
        if not status.is_complete:
            return False, "Spec is not complete"

        if status.last_modified is not None and config.delay_minutes > 0:
            elapsed = (utc_now() - status.last_modified).total_seconds() / 60
            if elapsed < config.delay_minutes:
                remaining = math.ceil(config.delay_minutes - elapsed)
                return False, f"Waiting for delay period ({remaining} minutes remaining)"

        return True, "Ready for archival"

    def create_archive_metadata(
        self,
        spec_path: Path,
        archive_path: Path,
        status: CompletionStatus,
    ) -> ArchiveMetadata:
        now = utc_now()
        return ArchiveMetadata(
            spec_name=spec_path.name,
            original_path=str(spec_path),
            archive_path=str(archive_path),
            completion_date=status.last_modified or now,
            archival_date=now,
            total_tasks=status.total_tasks,
            completed_tasks=status.completed_tasks,
        )

    def _destination(self, spec_name: str) -> Path:
        base = self.archive_location / f"{spec_name}-{timestamp_slug()}"
        candidate = base
        counter = 2
        while path_exists(candidate):
            candidate = base.with_name(f"{base.name}-{counter}")
            counter += 1
        return candidate

    # ------------------------------------------------------------------
    # Archival
    # ------------------------------------------------------------------

    def archive_spec(self, spec_path: Path | str) -> ArchivalResult:
        """Archive one spec. Expected failures are returned, not raised."""
        spec_path = Path(spec_path).resolve()
        result = ArchivalResult(success=False, original_path=str(spec_path), state=ArchivalState.VALIDATING)

        safety = self.validate_archival_safety(spec_path)
        if not safety.is_safe:
            result.error = "Spec failed archival safety checks"
            result.issues = list(safety.issues)
            logger.info(f"Not archiving '{spec_path.name}': {'; '.join(safety.issues)}")
            return result

        status = self.completion_detector.check_spec_completion(spec_path)
        self.archive_location.mkdir(parents=True, exist_ok=True)
        destination = self._destination(spec_path.name)
        result.archive_path = str(destination)
        removal_started = False

        try:
            with log_operation("archive_spec", spec_name=spec_path.name, archive_path=str(destination)):
                result.state = ArchivalState.COPYING
                try:
                    copy_tree_with_metadata(spec_path, destination)
                except OSError as e:
                    raise CopyError(f"Failed to copy spec: {e}", spec_path=str(spec_path)) from e

                result.state = ArchivalState.VERIFYING
                self._verify_copy(spec_path, destination)

                metadata = self.create_archive_metadata(spec_path, destination, status)
                try:
                    write_json_atomic(destination / METADATA_FILE_NAME, metadata.to_dict())
                except OSError as e:
                    raise CopyError(f"Failed to write archive metadata: {e}", spec_path=str(spec_path)) from e

                removal_started = True
                try:
                    shutil.rmtree(spec_path)
                except OSError as e:
                    raise CleanupError(f"Failed to remove original spec: {e}", spec_path=str(spec_path)) from e

                self.index_manager.add_archive_entry(metadata)
                result.state = ArchivalState.INDEXED
        except Exception as e:
            self._rollback(spec_path, destination, removal_started, result)
            result.state = ArchivalState.ROLLED_BACK
            result.error = str(e)
            log_error_with_context(e, {
                "operation": "archive_spec",
                "spec_path": str(spec_path),
                "archive_path": str(destination),
            })
            log_archival_rolled_back(spec_path.name, str(e), archive_path=str(destination))
            if not isinstance(e, (ArchivalError, OSError)):
                raise
            return result

        result.state = ArchivalState.DONE
        result.success = True
        result.timestamp = metadata.archival_date
        log_spec_archived(spec_path.name, str(destination), total_tasks=metadata.total_tasks)
        return result

    def _verify_copy(self, source: Path, destination: Path) -> None:
        expected = list_files(source)
        actual = list_files(destination)
        problems: List[str] = []
        missing = sorted(set(expected) - set(actual))
        extra = sorted(set(actual) - set(expected))
        if missing:
            problems.append(f"missing in archive: {', '.join(missing)}")
        if extra:
            problems.append(f"unexpected in archive: {', '.join(extra)}")
        mismatched = sorted(name for name in set(expected) & set(actual) if expected[name] != actual[name])
        if mismatched:
            problems.append(f"size mismatch: {', '.join(mismatched)}")
        if problems:
            raise IntegrityError(
                f"Archive verification failed ({'; '.join(problems)})", spec_path=str(source)
            )
        logger.debug(f"Verified {len(actual)} file(s) in {destination}")

    def _rollback(self, spec_path: Path, destination: Path, removal_started: bool, result: ArchivalResult) -> None:
        try:
            if removal_started and destination.is_dir():
                restore_tree(destination, spec_path, skip=(METADATA_FILE_NAME,))
                logger.warning(f"Restored original spec {spec_path} from {destination}")
            remove_tree(destination)
        except OSError as e:
            message = f"Rollback incomplete for {spec_path.name}: {e}"
            logger.error(message)
            result.issues.append(message)

    def archive_spec_with_config(self, spec_path: Path | str) -> ArchivalResult:
        """Archive ``spec_path`` if the configured policy allows it now."""
        should_archive, reason = self.should_archive_spec(spec_path)
        if not should_archive:
            logger.debug(f"Skipping archival of {spec_path}: {reason}")
            return ArchivalResult(
                success=False,
                original_path=str(Path(spec_path).resolve()),
                skipped=True,
                issues=[reason],
            )
        result = self.archive_spec(spec_path)
        self._notify(result)
        return result

    def auto_archive_completed_specs(self, dry_run: bool = False) -> List[ArchivalResult]:
        """Archive every spec that is complete and valid.

        A failure for one spec is recorded in its result and the remaining
        specs are still processed. With ``dry_run`` nothing is modified and
        every result is marked skipped with the decision that would be taken.
        """
        results: List[ArchivalResult] = []
        with log_operation("auto_archive_completed_specs", dry_run=dry_run):
            ready = self.scanner.get_specs_ready_for_archival()
            for spec_path in ready:
                if dry_run:
                    should_archive, reason = self.should_archive_spec(spec_path)
                    results.append(ArchivalResult(
                        success=False,
                        original_path=str(spec_path.resolve()),
                        skipped=True,
                        issues=[WOULD_ARCHIVE if should_archive else reason],
                    ))
                    continue
                try:
                    results.append(self.archive_spec_with_config(spec_path))
                except Exception as e:
                    log_error_with_context(e, {"operation": "auto_archive", "spec_path": str(spec_path)})
                    results.append(ArchivalResult(
                        success=False,
                        original_path=str(spec_path),
                        state=ArchivalState.ROLLED_BACK,
                        error=str(e),
                    ))

        archived = sum(1 for result in results if result.success)
        failed = sum(1 for result in results if not result.success and not result.skipped)
        if self.config_manager.get_config().notification_level != "none":
            logger.info(
                f"Auto-archival finished: {archived} archived, {failed} failed, "
                f"{len(results) - archived - failed} skipped"
            )
        observability_hooks.log_workflow_event(
            "auto_archive_finished", archived=archived, failed=failed, dry_run=dry_run
        )
        return results

    def _notify(self, result: ArchivalResult) -> None:
        level = self.config_manager.get_config().notification_level
        name = Path(result.original_path).name
        if result.success and level in ("minimal", "verbose"):
            logger.info(f"Archived spec '{name}' to {result.archive_path}")
        elif not result.success and level == "verbose":
            details = "; ".join(result.issues) or result.error or "unknown error"
            logger.info(f"Archival of '{name}' failed: {details}")

    # ------------------------------------------------------------------
    # Archive maintenance
    # ------------------------------------------------------------------

    def remove_archived_spec(self, archive_path: Path | str) -> bool:
        """Delete an archived spec and its index entry."""
        target = Path(archive_path)
        if not target.is_absolute():
            target = self.archive_location / target
        target = target.resolve()
        archive_root = self.archive_location.resolve()
        if archive_root not in target.parents:
            raise ValidationError(f"Not inside the archive location: {target}", spec_path=str(target))

        entry = self.index_manager.get_archive_by_path(str(target))
        removed_dir = remove_tree(target)
        removed_entry = self.index_manager.remove_archive_entry(entry.archive_path if entry else str(target))
        if removed_dir or removed_entry:
            logger.info(f"Removed archived spec {target}")
        return removed_dir or removed_entry

    def cleanup_partial_archives(self, dry_run: bool = False) -> List[str]:
        """Remove archive directories with neither metadata nor an index entry."""
        location = self.archive_location
        if not location.is_dir():
            return []
        partial: List[str] = []
        for entry in sorted(location.iterdir()):
            if not entry.is_dir() or entry.name.startswith("."):
                continue
            if (entry / METADATA_FILE_NAME).exists():
                continue
            if self.index_manager.get_archive_by_path(str(entry)) is not None:
                continue
            partial.append(str(entry))
            if not dry_run:
                remove_tree(entry)
                logger.warning(f"Removed partial archive {entry}")
        return partial

    # ------------------------------------------------------------------
    # Read paths
    # ------------------------------------------------------------------

    def get_archived_specs(self) -> List[ArchiveIndexEntry]:
        return self.index_manager.get_all_archives()

    def search_archived_specs(self, query: str) -> List[ArchiveIndexEntry]:
        return self.index_manager.search_archives(query)

    def get_archive_stats(self) -> ArchiveStats:
        return self.index_manager.get_archive_stats()

    def validate_and_repair_archive_index(self) -> RepairReport:
        return self.index_manager.validate_and_repair_index()

    def get_spec_path(self, spec_name: str) -> Path:
        """Directory of the spec called ``spec_name`` under the specs root."""
        if not spec_name or "/" in spec_name or "\\" in spec_name or spec_name in {".", ".."}:
            raise ValidationError(f"Invalid spec name '{spec_name}'.", spec_path=spec_name)
        path = self.specs_root / spec_name
        if not path.is_dir():
            raise SpecNotFoundError(f"Spec '{spec_name}' not found under {self.specs_root}.", spec_path=str(path))
        return path

    def get_all_specs(self) -> List[Path]:
        return self.scanner.get_all_specs()

    def get_completed_specs(self) -> List[Path]:
        return self.scanner.get_completed_specs()

    def get_specs_ready_for_archival(self) -> List[Path]:
        return self.scanner.get_specs_ready_for_archival()

    def scan_and_validate_specs(self) -> ScanReport:
        return self.scanner.scan_and_validate_all_specs()

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def get_config(self) -> ArchivalConfig:
        return self.config_manager.get_config()

    def update_config(self, updates: Dict[str, Any]) -> ArchivalConfig:
        return self.config_manager.update_config(updates)

    def is_archival_enabled(self) -> bool:
        return self.config_manager.is_archival_enabled()

    def get_archival_delay(self) -> float:
        return self.config_manager.get_archival_delay()
