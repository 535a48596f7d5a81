"""Archival policy persistence.

The policy lives in ``.archival-config.json`` at the project root. Every
load runs the migration, so files written by older releases (camelCase
keys, ``autoArchive``/``waitMinutes`` style names) keep working. A file
that cannot be parsed is moved aside and replaced with the defaults.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .archival_logging import get_logger, log_config_reset, log_operation
from .errors import ConfigurationError
from .filesystem import path_exists, write_json_atomic
from .models import (
    CONFIG_VERSION,
    ArchivalConfig,
    format_datetime,
    timestamp_slug,
    utc_now,
)

logger = get_logger("config")

CONFIG_FILE_NAME = ".archival-config.json"

_CURRENT_FIELDS = (
    "enabled",
    "delay_minutes",
    "archive_location",
    "notification_level",
    "backup_enabled",
)

_LEGACY_FIELDS = {
    "autoArchive": "enabled",
    "waitMinutes": "delay_minutes",
    "delayMinutes": "delay_minutes",
    "archivePath": "archive_location",
    "archiveLocation": "archive_location",
    "verboseMode": "notification_level",
    "notificationLevel": "notification_level",
    "backupEnabled": "backup_enabled",
}


def _migrate(raw: Any) -> Tuple[ArchivalConfig, List[str]]:
    defaults = ArchivalConfig()
    if not isinstance(raw, dict):
        return defaults, ["Configuration is not a JSON object; using defaults"]

    candidates: Dict[str, Any] = {}
    for legacy, current in _LEGACY_FIELDS.items():
        if legacy in raw:
            value = raw[legacy]
            if legacy == "verboseMode":
                value = "verbose" if value else "minimal"
            candidates[current] = value
    for name in _CURRENT_FIELDS:
        if name in raw:
            candidates[name] = raw[name]

    warnings: List[str] = []
    accepted: Dict[str, Any] = {}
    for name, value in candidates.items():
        issues = defaults.with_changes(**{name: value}).validate()
        if issues:
            warnings.append(f"Ignoring invalid {name} ({value!r}): {'; '.join(issues)}")
        else:
            accepted[name] = value

    return defaults.with_changes(version=CONFIG_VERSION, **accepted), warnings


def migrate_config(raw: Any) -> ArchivalConfig:
    """Build a current-version config from any stored shape.

    Starts from the defaults, keeps every valid field, renames legacy
    fields and stamps the current version. ``raw`` is never modified.
    """
    config, warnings = _migrate(raw)
    for warning in warnings:
        logger.warning(warning)
    return config


class ConfigurationManager:
    """Load, validate, migrate and save the archival policy."""

    def __init__(self, project_root: Path | str, config_file_name: str = CONFIG_FILE_NAME):
        self.project_root = Path(project_root).resolve()
        self.config_path = self.project_root / config_file_name
        self._config: Optional[ArchivalConfig] = None

    def get_config_file_path(self) -> Path:
        return self.config_path

    def config_file_exists(self) -> bool:
        return path_exists(self.config_path)

    def load_config(self) -> ArchivalConfig:
        """Read the policy from disk, falling back to defaults.

        A missing file is created with the defaults. A corrupt file is
        moved aside, the defaults are saved and a warning is logged.
        Migrated files are written back in the current format.
        """
        if not self.config_file_exists():
            logger.info(f"No archival configuration at {self.config_path}; writing defaults")
            return self.save_config(ArchivalConfig())

        try:
            raw = json.loads(self.config_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            aside = self.config_path.with_name(f"{self.config_path.name}.corrupt-{timestamp_slug()}")
            logger.warning(f"Configuration file {self.config_path} is unreadable ({e}); resetting to defaults")
            if path_exists(self.config_path):
                self.config_path.replace(aside)
            log_config_reset(str(e), config_path=str(self.config_path), moved_to=str(aside))
            return self.save_config(ArchivalConfig())

        config, warnings = _migrate(raw)
        for warning in warnings:
            logger.warning(warning)

        if not isinstance(raw, dict) or raw.get("version") != CONFIG_VERSION or warnings or any(
            key in raw for key in _LEGACY_FIELDS
        ):
            logger.info(f"Migrated archival configuration to version {CONFIG_VERSION}")
            return self.save_config(config)

        self._config = config
        return config

    def save_config(self, config: ArchivalConfig) -> ArchivalConfig:
        """Validate and persist ``config``; raises ConfigurationError when invalid."""
        issues = config.validate()
        if issues:
            raise ConfigurationError(
                f"Invalid archival configuration: {'; '.join(issues)}",
                spec_path=str(self.config_path),
            )
        payload = config.to_dict()
        payload["last_updated"] = format_datetime(utc_now())
        try:
            with log_operation("save_archival_config", path=str(self.config_path)):
                write_json_atomic(self.config_path, payload)
        except OSError as e:
            raise ConfigurationError(
                f"Failed to write configuration: {e}", spec_path=str(self.config_path)
            ) from e
        self._config = config
        return config

    def get_config(self) -> ArchivalConfig:
        if self._config is None:
            return self.load_config()
        return self._config

    def validate_config(self, config: ArchivalConfig) -> bool:
        return not config.validate()

    def update_config(self, updates: Dict[str, Any]) -> ArchivalConfig:
        """Apply ``updates`` to the current policy and save it."""
        unknown = sorted(set(updates) - set(_CURRENT_FIELDS))
        if unknown:
            raise ConfigurationError(f"Unknown configuration field(s): {', '.join(unknown)}")
        return self.save_config(self.get_config().with_changes(**updates))

    def update_setting(self, key: str, value: Any) -> ArchivalConfig:
        return self.update_config({key: value})

    def reset_to_defaults(self) -> ArchivalConfig:
        log_config_reset("requested", config_path=str(self.config_path))
        return self.save_config(ArchivalConfig())

    def backup_config(self) -> Path:
        """Write the current policy to a timestamped backup beside the config file."""
        config = self.get_config()
        backup_path = self.config_path.with_name(
            f"{self.config_path.stem}.backup-{timestamp_slug()}.json"
        )
        counter = 2
        while path_exists(backup_path):
            backup_path = self.config_path.with_name(
                f"{self.config_path.stem}.backup-{timestamp_slug()}-{counter}.json"
            )
            counter += 1
        payload = config.to_dict()
        payload["_backup_created"] = format_datetime(utc_now())
        payload["_original_path"] = str(self.config_path)
        write_json_atomic(backup_path, payload)
        logger.info(f"Archival configuration backed up to {backup_path}")
        return backup_path

    def restore_from_backup(self, backup_path: Path | str) -> ArchivalConfig:
        backup_path = Path(backup_path)
        try:
            raw = json.loads(backup_path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ConfigurationError(f"Cannot read backup {backup_path}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Backup {backup_path} does not contain a configuration object")

        stripped = {key: value for key, value in raw.items() if not key.startswith("_")}
        config = migrate_config(stripped)
        restored = self.save_config(config)
        logger.info(f"Archival configuration restored from {backup_path}")
        return restored

    # Convenience accessors

    def is_archival_enabled(self) -> bool:
        return bool(self.get_config().enabled)

    def get_archival_delay(self) -> float:
        return self.get_config().delay_minutes

    def get_archive_location(self) -> Path:
        """Archive directory resolved against the project root."""
        return self.project_root / self.get_config().archive_location.strip()
