"""MCP server exposing spec completion and archival tools."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from spec_archival import ArchivalEngine
from spec_archival.archival_logging import log_error_with_context, setup_logging
from spec_archival.errors import ArchivalError

mcp = FastMCP("spec-archival")


PROJECT_MARKER_DIRECTORIES = ("specs",)
ROOT_ENV = "SPEC_ARCHIVAL_PROJECT_ROOT"
LOG_LEVEL_ENV = "SPEC_ARCHIVAL_LOG_LEVEL"
SERVER_ROOT = Path(__file__).resolve().parent


def _candidate_bases() -> List[Path]:
    cwd = Path.cwd().resolve()
    bases: List[Path] = [cwd]
    bases.extend(cwd.parents)
    seen: set[Path] = set()
    ordered: List[Path] = []
    for base in bases:
        if base not in seen:
            seen.add(base)
            ordered.append(base)
    return ordered


def _locate_workspace_root() -> Optional[Path]:
    for base in _candidate_bases():
        for marker in PROJECT_MARKER_DIRECTORIES:
            if (base / marker).is_dir():
                return base
    return None


def _resolve_root(root: Optional[str]) -> Path:
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    env_root = os.getenv(ROOT_ENV)
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.exists():
            raise ValueError(
                f"Environment variable {ROOT_ENV} points to '{env_root}', which does not exist."
            )
        return env_path

    detected_root = _locate_workspace_root()
    if detected_root:
        return detected_root

    raise ValueError(
        "Unable to determine project root automatically. Provide the 'root' argument when calling the tool "
        f"or set the {ROOT_ENV} environment variable."
    )


def _engine(root: Optional[str]) -> ArchivalEngine:
    return ArchivalEngine(_resolve_root(root))


def _engine_optional(root: Optional[str]) -> Optional[ArchivalEngine]:
    try:
        return _engine(root)
    except ValueError:
        return None


def _spec_path(engine: ArchivalEngine, spec_name: str) -> Path:
    try:
        return engine.get_spec_path(spec_name)
    except ArchivalError as e:
        raise ValueError(e.message) from e


@mcp.tool()
def list_specs(root: Optional[str] = None) -> Dict[str, Any]:
    """List every spec under specs/ with its title and task progress."""

    engine = _engine(root)
    specs = [engine.scanner.load_spec(path).to_dict() for path in engine.get_all_specs()]
    return {"specs_root": str(engine.specs_root), "specs": specs}


@mcp.tool()
def spec_completion(spec_name: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Report total and completed task counts for one spec."""

    engine = _engine(root)
    status = engine.completion_detector.check_spec_completion(_spec_path(engine, spec_name))
    return {"spec_name": spec_name, **status.to_dict()}


@mcp.tool()
def validate_spec(spec_name: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Validate a spec's files and tasks document; returns issues and warnings."""

    engine = _engine(root)
    result = engine.scanner.validate_spec(_spec_path(engine, spec_name))
    return {"spec_name": spec_name, **result.to_dict()}


@mcp.tool()
def list_spec_tasks(
    spec_name: str,
    status: Optional[str] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """List the tasks of a spec with hierarchy and metadata. Optionally filter by status."""

    engine = _engine(root)
    tasks, errors = engine.scanner.extract_tasks(_spec_path(engine, spec_name))
    if status:
        if status not in {"pending", "completed"}:
            raise ValueError("status must be 'pending' or 'completed'")
        tasks = [task for task in tasks if task.status == status]
    return {
        "spec_name": spec_name,
        "tasks": [task.to_dict() for task in tasks],
        "errors": [error.to_dict() for error in errors],
    }


@mcp.tool()
def scan_specs(root: Optional[str] = None) -> Dict[str, Any]:
    """Validate all specs and return a report of valid and invalid specs."""

    engine = _engine(root)
    return engine.scan_and_validate_specs().to_dict()


@mcp.tool()
def specs_ready_for_archival(root: Optional[str] = None) -> Dict[str, Any]:
    """List specs that are complete and valid, with the archival policy decision for each."""

    engine = _engine(root)
    ready = []
    for path in engine.get_specs_ready_for_archival():
        should_archive, reason = engine.should_archive_spec(path)
        ready.append({
            "spec_name": path.name,
            "path": str(path),
            "archive_now": should_archive,
            "reason": reason,
        })
    return {"ready": ready}


@mcp.tool()
def archive_spec(spec_name: str, force: bool = False, root: Optional[str] = None) -> Dict[str, Any]:
    """Archive one completed spec.

    The configured policy (enabled flag, delay) is respected unless force is set.
    Safety checks always apply."""

    engine = _engine(root)
    path = _spec_path(engine, spec_name)
    if force:
        result = engine.archive_spec(path)
    else:
        result = engine.archive_spec_with_config(path)
    return {"spec_name": spec_name, **result.to_dict()}


@mcp.tool()
def auto_archive_specs(dry_run: bool = False, root: Optional[str] = None) -> Dict[str, Any]:
    """Archive every spec that is complete, valid and past the configured delay."""

    engine = _engine(root)
    results = engine.auto_archive_completed_specs(dry_run=dry_run)
    return {
        "dry_run": dry_run,
        "archived": sum(1 for result in results if result.success),
        "failed": sum(1 for result in results if not result.success and not result.skipped),
        "skipped": sum(1 for result in results if result.skipped),
        "results": [result.to_dict() for result in results],
    }


@mcp.tool()
def list_archived_specs(root: Optional[str] = None) -> Dict[str, Any]:
    """List archived specs, most recent first."""

    engine = _engine(root)
    return {
        "archive_location": str(engine.archive_location),
        "archives": [entry.to_dict() for entry in engine.get_archived_specs()],
        "warnings": list(engine.index_manager.load_warnings),
    }


@mcp.tool()
def search_archived_specs(query: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Find archived specs whose name contains the query (case-insensitive)."""

    engine = _engine(root)
    return {"query": query, "archives": [entry.to_dict() for entry in engine.search_archived_specs(query)]}


@mcp.tool()
def archive_stats(root: Optional[str] = None) -> Dict[str, Any]:
    """Summary statistics over the archive index."""

    engine = _engine(root)
    return engine.get_archive_stats().to_dict()


@mcp.tool()
def repair_archive_index(root: Optional[str] = None) -> Dict[str, Any]:
    """Remove duplicate entries and entries whose archive directory no longer exists."""

    engine = _engine(root)
    return engine.validate_and_repair_archive_index().to_dict()


@mcp.tool()
def cleanup_partial_archives(dry_run: bool = False, root: Optional[str] = None) -> Dict[str, Any]:
    """Remove archive directories left behind by an interrupted archival."""

    engine = _engine(root)
    removed = engine.cleanup_partial_archives(dry_run=dry_run)
    return {"dry_run": dry_run, "partial_archives": removed}


@mcp.tool()
def get_archival_config(root: Optional[str] = None) -> Dict[str, Any]:
    """Return the archival policy and the file it is stored in."""

    engine = _engine(root)
    config = engine.get_config()
    return {"config_path": str(engine.config_manager.get_config_file_path()), "config": config.to_dict()}


@mcp.tool()
def update_archival_config(
    enabled: Optional[bool] = None,
    delay_minutes: Optional[float] = None,
    archive_location: Optional[str] = None,
    notification_level: Optional[str] = None,
    backup_enabled: Optional[bool] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Change one or more archival policy settings. Unset arguments keep their value."""

    engine = _engine(root)
    updates = {
        key: value
        for key, value in {
            "enabled": enabled,
            "delay_minutes": delay_minutes,
            "archive_location": archive_location,
            "notification_level": notification_level,
            "backup_enabled": backup_enabled,
        }.items()
        if value is not None
    }
    if not updates:
        raise ValueError("Provide at least one setting to update.")

    manager = engine.config_manager
    backup_path = manager.backup_config() if manager.get_config().backup_enabled else None
    try:
        config = engine.update_config(updates)
    except ArchivalError as e:
        log_error_with_context(e, {"operation": "update_archival_config", "updates": updates})
        raise ValueError(e.message) from e
    return {
        "config": config.to_dict(),
        "backup_path": str(backup_path) if backup_path else None,
    }


@mcp.tool()
def backup_archival_config(root: Optional[str] = None) -> Dict[str, str]:
    """Write a timestamped backup of the archival policy."""

    engine = _engine(root)
    return {"backup_path": str(engine.config_manager.backup_config())}


@mcp.tool()
def restore_archival_config(backup_path: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Restore the archival policy from a backup file."""

    engine = _engine(root)
    try:
        config = engine.config_manager.restore_from_backup(Path(backup_path).expanduser())
    except ArchivalError as e:
        raise ValueError(e.message) from e
    return {"config": config.to_dict(), "restored_from": backup_path}


@mcp.resource("spec-archival://archives")
def resource_archives() -> str:
    """Resource view listing archived specs for discovery."""

    engine = _engine_optional(None)
    if not engine:
        return f"No project root detected. Launch tools with a 'root' argument or set {ROOT_ENV}."

    archives = engine.get_archived_specs()
    if not archives:
        return "No specs have been archived yet."

    lines = ["Archived Specs"]
    for entry in archives:
        lines.append("")
        lines.append(f"- {entry.spec_name} ({entry.total_tasks} tasks)")
        lines.append(f"  Archived: {entry.archival_date.isoformat()}")
        lines.append(f"  Path: {entry.archive_path}")
    return "\n".join(lines)


def main() -> None:
    setup_logging(os.getenv(LOG_LEVEL_ENV, "WARNING"))
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
