"""Backup helpers for settings persistence.

Provides:
- Pre-save backup creation (.bak file)
- Recovery from backup when the primary file is missing or corrupt
- Corrupt-file quarantine (.corrupt file)
"""

import json
import logging
import shutil
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def _read_json_object(path: Path) -> dict[str, Any] | None:
    """Read *path* as a JSON object, returning None if it is absent, empty or not a dict.

    Raises:
        json.JSONDecodeError: If the file holds invalid JSON.
        OSError: If the file cannot be read.
    """
    if not path.exists() or path.stat().st_size == 0:
        return None
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        logger.warning("%s holds %s instead of a JSON object", path, type(data).__name__)
        return None
    return data


def _create_settings_backup(settings_path: Path) -> bool:
    """Copy settings.json to settings.json.bak before it is overwritten.

    A corrupt or empty primary file is never copied over a good backup.
    Failures are logged, not raised.

    Returns:
        True if a backup was written.
    """
    try:
        if _read_json_object(settings_path) is None:
            logger.debug("Nothing valid to back up at %s", settings_path)
            return False
        backup_path = settings_path.with_suffix(".json.bak")
        shutil.copy2(settings_path, backup_path)
        logger.debug("Created settings backup at %s", backup_path)
        return True
    except json.JSONDecodeError:
        logger.warning("Settings file contains invalid JSON, skipping backup")
        return False
    except OSError as e:
        logger.warning("Failed to create settings backup: %s", e)
        return False


def _recover_from_backup(settings_path: Path) -> dict[str, Any] | None:
    """Load settings from the .bak file next to *settings_path*.

    Returns:
        Parsed settings dict, or None when no usable backup exists.
    """
    backup_path = settings_path.with_suffix(".json.bak")
    try:
        data = _read_json_object(backup_path)
    except json.JSONDecodeError as e:
        logger.error("Backup file %s is corrupted (invalid JSON): %s", backup_path, e)
        return None
    except OSError as e:
        logger.error("Cannot read backup file %s: %s", backup_path, e)
        return None
    if data is not None:
        logger.info("Recovered %d settings from backup file %s", len(data), backup_path)
    return data


def _quarantine_corrupt_file(settings_path: Path) -> None:
    """Keep a copy of an unreadable settings file as settings.json.corrupt."""
    corrupt_path = settings_path.with_suffix(".json.corrupt")
    try:
        shutil.copy(settings_path, corrupt_path)
        logger.info("Backed up corrupted settings to %s", corrupt_path)
    except OSError as e:
        logger.warning("Failed to backup corrupted settings: %s", e)
