"""Persisted index of archived specs.

The index is a single JSON document, ``.archive-index.json``, stored in the
archive directory. Entries are kept most-recent-first and there is at most
one entry per archive path.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Optional, Tuple

from .archival_logging import get_logger, log_index_repaired
from .errors import ConfigurationError
from .filesystem import path_exists, write_json_atomic
from .models import (
    INDEX_VERSION,
    METADATA_FILE_NAME,
    ArchiveIndex,
    ArchiveIndexEntry,
    ArchiveMetadata,
    ArchiveStats,
    RepairReport,
    parse_datetime,
    timestamp_slug,
    utc_now,
)

logger = get_logger("archive_index")

INDEX_FILE_NAME = ".archive-index.json"


def _first(data: dict, *keys: str) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return None


class ArchiveIndexManager:
    """Load, update, search and repair the archive index."""

    def __init__(self, archive_location: Path | str):
        self.archive_location = Path(archive_location)
        self.index_path = self.archive_location / INDEX_FILE_NAME
        self.load_warnings: List[str] = []
        self._index: Optional[ArchiveIndex] = None

    # ------------------------------------------------------------------
    # Loading and saving
    # ------------------------------------------------------------------

    def load_index(self) -> ArchiveIndex:
        """Return the index, reading it from disk on first use.

        A missing file is created empty. Fields of malformed entries are
        coerced to defaults and the cleaned index is written back after the
        original file is moved aside. Each fix is logged and kept in
        ``load_warnings``; dangling entries are left for the repair pass.
        """
        if self._index is not None:
            return self._index

        self.archive_location.mkdir(parents=True, exist_ok=True)
        self.load_warnings = []

        if not path_exists(self.index_path):
            self.save_index(ArchiveIndex())
            return self._index

        try:
            raw = json.loads(self.index_path.read_text(encoding="utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            self._warn(f"Archive index is not valid JSON ({e}); rebuilding from archive metadata")
            self._move_aside()
            index = ArchiveIndex(archives=self._entries_from_metadata())
            self._sort(index)
            self.save_index(index)
            return index
        except OSError as e:
            raise ConfigurationError(f"Cannot read archive index: {e}", spec_path=str(self.index_path)) from e

        index, coerced = self._coerce(raw)
        if coerced:
            self._move_aside()
            self.save_index(index)
        else:
            self._index = index
        return index

    def reload(self) -> ArchiveIndex:
        self._index = None
        return self.load_index()

    def save_index(self, index: Optional[ArchiveIndex] = None) -> None:
        """Write ``index`` (default: the cached index) and cache it.

        The cache only changes once the write has succeeded.
        """
        if index is None:
            index = self._index if self._index is not None else ArchiveIndex()
        try:
            write_json_atomic(self.index_path, index.to_dict())
        except OSError as e:
            raise ConfigurationError(f"Failed to write archive index: {e}", spec_path=str(self.index_path)) from e
        self._index = index

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.load_warnings.append(message)

    def _move_aside(self) -> None:
        if not path_exists(self.index_path):
            return
        aside = self.index_path.with_name(f"{INDEX_FILE_NAME}.corrupt-{timestamp_slug()}")
        self.index_path.replace(aside)
        logger.warning(f"Previous archive index kept at {aside}")

    def _coerce(self, raw: Any) -> Tuple[ArchiveIndex, bool]:
        if not isinstance(raw, dict):
            self._warn("Archive index is not a JSON object; starting from an empty index")
            return ArchiveIndex(), True

        coerced = False
        version = raw.get("version")
        if not isinstance(version, str):
            self._warn("Archive index has no version; assuming current version")
            version = INDEX_VERSION
            coerced = True

        last_updated = parse_datetime(_first(raw, "last_updated", "lastUpdated"))
        if last_updated is None:
            last_updated = utc_now()
            coerced = True

        archives = raw.get("archives")
        entries: List[ArchiveIndexEntry] = []
        if isinstance(archives, list):
            for position, item in enumerate(archives):
                entry, fixed = self._coerce_entry(position, item)
                coerced = coerced or fixed
                if entry is not None:
                    entries.append(entry)
        else:
            self._warn("Archive index 'archives' is not a list; rebuilding from archive metadata")
            entries = self._entries_from_metadata()
            coerced = True

        index = ArchiveIndex(version=version, last_updated=last_updated, archives=entries)
        self._sort(index)
        return index, coerced

    def _coerce_entry(self, position: int, item: Any) -> Tuple[Optional[ArchiveIndexEntry], bool]:
        if not isinstance(item, dict):
            self._warn(f"Dropping archive index entry #{position}: not an object")
            return None, True

        fixed = "specName" in item or "archivePath" in item
        spec_name = _first(item, "spec_name", "specName")
        archive_path = _first(item, "archive_path", "archivePath")
        if not isinstance(archive_path, str):
            self._warn(f"Archive index entry #{position} has no archive path")
            archive_path = ""
            fixed = True
        if not isinstance(spec_name, str):
            self._warn(f"Archive index entry #{position} has no spec name")
            spec_name = ""
            fixed = True
        archival_date = parse_datetime(_first(item, "archival_date", "archivalDate"))
        completion_date = parse_datetime(_first(item, "completion_date", "completionDate"))
        if archival_date is None:
            self._warn(f"Archive index entry '{spec_name}' has no valid archival date")
            archival_date = completion_date or utc_now()
            fixed = True
        if completion_date is None:
            completion_date = archival_date
            fixed = True

        total_tasks = _first(item, "total_tasks", "totalTasks")
        if isinstance(total_tasks, bool) or not isinstance(total_tasks, int) or total_tasks < 0:
            if total_tasks is not None:
                self._warn(f"Archive index entry '{spec_name}' has an invalid task count")
            total_tasks = 0
            fixed = True

        return ArchiveIndexEntry(
            spec_name=spec_name,
            archive_path=archive_path,
            completion_date=completion_date,
            archival_date=archival_date,
            total_tasks=total_tasks,
        ), fixed

    def _entries_from_metadata(self) -> List[ArchiveIndexEntry]:
        entries: List[ArchiveIndexEntry] = []
        for directory in sorted(self.archive_location.iterdir()):
            metadata_file = directory / METADATA_FILE_NAME
            if not directory.is_dir() or not metadata_file.is_file():
                continue
            try:
                metadata = ArchiveMetadata.from_dict(json.loads(metadata_file.read_text(encoding="utf-8")))
            except (OSError, ValueError, KeyError, TypeError) as e:
                self._warn(f"Skipping unreadable archive metadata {metadata_file}: {e}")
                continue
            metadata.archive_path = str(directory)
            entries.append(ArchiveIndexEntry.from_metadata(metadata))
        return entries

    @staticmethod
    def _sort(index: ArchiveIndex) -> None:
        index.archives.sort(key=lambda entry: entry.archival_date, reverse=True)

    def _resolve(self, archive_path: str) -> Path:
        """Absolute path for an index entry.

        Relative paths are tried against the archive location first, then
        against each of its parents; older indexes store paths relative to
        the project root (``specs/archive/<name>``).
        """
        path = Path(archive_path)
        if path.is_absolute():
            return path.resolve()
        location = self.archive_location.resolve()
        for base in (location, *location.parents):
            if path_exists(base / path):
                return (base / path).resolve()
        return (location / path).resolve()

    def _same_path(self, left: str, right: str) -> bool:
        return self._resolve(left) == self._resolve(right)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_archive_entry(self, entry: ArchiveIndexEntry | ArchiveMetadata) -> ArchiveIndexEntry:
        """Insert or replace the entry for ``entry.archive_path`` and save."""
        if isinstance(entry, ArchiveMetadata):
            entry = ArchiveIndexEntry.from_metadata(entry)

        current = self.load_index()
        archives = [
            existing for existing in current.archives
            if not self._same_path(existing.archive_path, entry.archive_path)
        ]
        archives.append(entry)
        index = ArchiveIndex(version=current.version, last_updated=utc_now(), archives=archives)
        self._sort(index)
        self.save_index(index)
        logger.debug(f"Indexed archive {entry.archive_path}")
        return entry

    def remove_archive_entry(self, archive_path: str) -> bool:
        """Remove the entry for ``archive_path``; saves only when something changed."""
        current = self.load_index()
        kept = [entry for entry in current.archives if not self._same_path(entry.archive_path, str(archive_path))]
        if len(kept) == len(current.archives):
            return False
        self.save_index(ArchiveIndex(version=current.version, last_updated=utc_now(), archives=kept))
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_all_archives(self) -> List[ArchiveIndexEntry]:
        return list(self.load_index().archives)

    def search_archives(self, query: str) -> List[ArchiveIndexEntry]:
        """Entries whose spec name contains ``query``, ignoring case."""
        needle = query.lower()
        return [entry for entry in self.load_index().archives if needle in entry.spec_name.lower()]

    def get_archive_by_spec_name(self, spec_name: str) -> Optional[ArchiveIndexEntry]:
        """Most recent archive of ``spec_name``, if any."""
        for entry in self.load_index().archives:
            if entry.spec_name == spec_name:
                return entry
        return None

    def get_archive_by_path(self, archive_path: str) -> Optional[ArchiveIndexEntry]:
        for entry in self.load_index().archives:
            if self._same_path(entry.archive_path, str(archive_path)):
                return entry
        return None

    def get_archive_stats(self) -> ArchiveStats:
        archives = self.load_index().archives
        if not archives:
            return ArchiveStats()
        ordered = sorted(archives, key=lambda entry: entry.archival_date)
        return ArchiveStats(
            total_archives=len(archives),
            total_tasks=sum(entry.total_tasks for entry in archives),
            oldest_archive=ordered[0].archival_date,
            newest_archive=ordered[-1].archival_date,
        )

    # ------------------------------------------------------------------
    # Repair
    # ------------------------------------------------------------------

    def validate_and_repair_index(self) -> RepairReport:
        """Drop duplicate and dangling entries. Saves only when a repair was made."""
        current = self.load_index()
        issues: List[str] = []
        seen: set[Path] = set()
        kept: List[ArchiveIndexEntry] = []

        for entry in current.archives:
            if not entry.archive_path:
                issues.append(f"Archive path not found, entry removed: {entry.archive_path}")
                continue
            key = self._resolve(entry.archive_path)
            if key in seen:
                issues.append(f"Duplicate archive entry removed: {entry.archive_path}")
                continue
            seen.add(key)
            if not path_exists(key):
                issues.append(f"Archive path not found, entry removed: {entry.archive_path}")
                continue
            kept.append(entry)

        if not issues:
            return RepairReport(is_valid=True, repaired=False)

        self.save_index(ArchiveIndex(version=current.version, last_updated=utc_now(), archives=kept))
        for issue in issues:
            logger.warning(issue)
        log_index_repaired(issues, index_path=str(self.index_path))
        return RepairReport(is_valid=False, repaired=True, issues=issues)
