"""Shared fixtures for spec archival tests."""

import logging
from pathlib import Path
from typing import Optional

import pytest

from spec_archival.archival_logging import ROOT_LOGGER_NAME

REQUIREMENTS_TEXT = """# Requirements Document

## Introduction

User login for the dashboard.

## Requirements

### Requirement 1

The system shall let registered users sign in with an email address and password.
"""

DESIGN_TEXT = """# Design Document

## Overview

A session service issues signed cookies after the password check succeeds.
The dashboard reads the cookie on every request and redirects to login when it is missing.
"""

COMPLETE_TASKS = """# Implementation Plan

- [x] 1. Create the session service
  _Requirements: 1.1_
- [x] 2. Add the login form
"""

INCOMPLETE_TASKS = """# Implementation Plan

- [x] 1. Create the session service
- [ ] 2. Add the login form
"""


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Empty project with a specs/ directory."""
    (tmp_path / "specs").mkdir()
    return tmp_path


@pytest.fixture
def make_spec(project_root: Path):
    """Factory writing a spec directory under ``project_root/specs``."""

    def _make_spec(
        name: str,
        tasks: Optional[str] = COMPLETE_TASKS,
        requirements: Optional[str] = REQUIREMENTS_TEXT,
        design: Optional[str] = DESIGN_TEXT,
    ) -> Path:
        spec_dir = project_root / "specs" / name
        spec_dir.mkdir(parents=True)
        if tasks is not None:
            (spec_dir / "tasks.md").write_text(tasks, encoding="utf-8")
        if requirements is not None:
            (spec_dir / "requirements.md").write_text(requirements, encoding="utf-8")
        if design is not None:
            (spec_dir / "design.md").write_text(design, encoding="utf-8")
        return spec_dir

    return _make_spec


@pytest.fixture(autouse=True)
def reset_archival_logger():
    """Drop handlers and level installed by setup_logging during a test."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    level = logger.level
    yield
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(level)
