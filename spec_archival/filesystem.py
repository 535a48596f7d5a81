"""Filesystem helpers shared by the index, configuration and archival engine."""

from __future__ import annotations

import json
import os
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, List


def path_exists(path: Path | str) -> bool:
    """Return True when ``path`` exists. Never raises."""
    try:
        return Path(path).exists()
    except (OSError, ValueError):
        return False


def list_files(root: Path) -> Dict[str, int]:
    """Map every regular file under ``root`` (relative POSIX path) to its size."""
    files: Dict[str, int] = {}
    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in filenames:
            full = Path(dirpath) / filename
            files[full.relative_to(root).as_posix()] = full.stat().st_size
    return files


def copy_tree_with_metadata(source: Path, destination: Path) -> List[str]:
    """Copy ``source`` into a new ``destination`` directory.

    File permission bits and access/modification times are preserved for
    files and directories. Returns the relative paths of the copied files.
    """
    shutil.copytree(source, destination, copy_function=shutil.copy2)
    for dirpath, dirnames, _filenames in os.walk(source):
        for dirname in dirnames:
            src_dir = Path(dirpath) / dirname
            shutil.copystat(src_dir, destination / src_dir.relative_to(source))
    shutil.copystat(source, destination)
    return sorted(list_files(destination))


def restore_tree(source: Path, destination: Path, skip: tuple[str, ...] = ()) -> None:
    """Copy ``source`` back over ``destination``, refilling whatever is missing."""
    shutil.copytree(
        source,
        destination,
        copy_function=shutil.copy2,
        dirs_exist_ok=True,
        ignore=shutil.ignore_patterns(*skip) if skip else None,
    )


def write_text_atomic(path: Path, content: str) -> None:
    """Write ``content`` to a temporary sibling, fsync it, then rename over ``path``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def write_json_atomic(path: Path, data: Any) -> None:
    write_text_atomic(path, json.dumps(data, indent=2) + "\n")


def remove_tree(path: Path) -> bool:
    """Remove a directory tree. Returns False when nothing was there."""
    if not path_exists(path):
        return False
    shutil.rmtree(path)
    return True
