"""Command-line entry point: archive every completed spec in a project."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .archival_engine import WOULD_ARCHIVE, ArchivalEngine
from .archival_logging import setup_logging
from .errors import ArchivalError
from .models import ArchivalResult


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="archive-completed-specs",
        description="Archive specs whose tasks are all completed",
    )
    parser.add_argument(
        "--root",
        type=Path,
        default=Path.cwd(),
        help="Project root containing the specs/ directory (default: current directory)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Report every spec that was checked, not only archived ones",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be archived without changing anything",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the results as JSON",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write structured JSON logs to this file",
    )
    return parser


def _describe(result: ArchivalResult, dry_run: bool, verbose: bool) -> Optional[str]:
    name = Path(result.original_path).name
    if dry_run:
        reason = result.issues[0] if result.issues else ""
        if reason == WOULD_ARCHIVE:
            return f"[DRY RUN] Would archive: {name}"
        return f"[DRY RUN] Would skip: {name} ({reason})" if verbose else None
    if result.success:
        return f"Archived: {name} -> {result.archive_path}"
    if result.skipped:
        return f"Skipped: {name} ({'; '.join(result.issues)})" if verbose else None
    details = result.error or "unknown error"
    if verbose and result.issues:
        details = f"{details}: {'; '.join(result.issues)}"
    return f"Failed to archive {name}: {details}"


def main(argv: Optional[List[str]] = None) -> int:
    """Run one archival pass. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.WARNING, args.log_file)

    engine = ArchivalEngine(args.root)
    if not engine.specs_root.is_dir():
        print(f"No specs directory found at {engine.specs_root}")
        return 0

    if args.verbose and not args.json:
        print(f"Found {len(engine.get_all_specs())} spec(s) to check")

    try:
        results = engine.auto_archive_completed_specs(dry_run=args.dry_run)
    except (ArchivalError, OSError) as e:
        print(f"Archival failed: {e}", file=sys.stderr)
        return 1

    archived = sum(1 for result in results if result.success)
    errors = sum(1 for result in results if not result.success and not result.skipped)

    if args.json:
        print(json.dumps({
            "dry_run": args.dry_run,
            "archived": archived,
            "errors": errors,
            "results": [result.to_dict() for result in results],
        }, indent=2))
        return 1 if errors else 0

    for result in results:
        line = _describe(result, args.dry_run, args.verbose)
        if line:
            print(line, file=sys.stderr if not result.success and not result.skipped else sys.stdout)

    if args.dry_run:
        would = sum(1 for result in results if result.issues == [WOULD_ARCHIVE])
        print(f"Summary: {would} would be archived (dry run)")
    elif archived == 0 and errors == 0:
        print("No completed specs to archive")
    else:
        print(f"Summary: {archived} archived, {errors} errors")

    return 1 if errors else 0


if __name__ == "__main__":
    sys.exit(main())
