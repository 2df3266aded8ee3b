"""Main Settings dataclass for Bedtime Stories.

Settings are stored in settings.json next to the src package and can be
edited by hand or through the CLI flags that override individual values.
"""

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, ClassVar

from src.settings import _validation as _validation_mod
from src.settings._backup import (
    _create_settings_backup,
    _quarantine_corrupt_file,
    _recover_from_backup,
)
from src.settings._paths import SETTINGS_FILE

logger = logging.getLogger(__name__)


def _merge_with_defaults(data: dict[str, Any], settings_cls: "type[Settings]") -> bool:
    """Merge loaded JSON data with dataclass defaults.

    - Adds missing keys with their default values
    - Removes keys that no longer exist in the dataclass

    Modifies *data* in place.

    Returns:
        True if any changes were made, False otherwise.
    """
    default_dict = asdict(settings_cls())
    known_fields = {f.name for f in fields(settings_cls)}
    changed = False

    for key in list(data):
        if key not in known_fields:
            logger.info("Removing obsolete setting: %s", key)
            del data[key]
            changed = True

    for key in sorted(known_fields):
        if key not in data:
            logger.info("Adding new setting with default: %s", key)
            data[key] = default_dict[key]
            changed = True

    return changed


def _atomic_write_json(path: Path | str, data: dict[str, Any]) -> None:
    """Write JSON to *path* atomically via a temp file + rename."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError as cleanup_err:
            logger.warning("Failed to remove temp settings file %s: %s", tmp_path, cleanup_err)
        raise


@dataclass
class Settings:
    """Application settings, stored as JSON."""

    # Backend
    backend_url: str = "http://localhost:3000"
    api_token: str = ""  # Bearer token; empty sends no Authorization header
    request_timeout: float = 300.0  # Generation calls can take minutes
    health_check_timeout: float = 5.0
    log_level: str = "INFO"

    # Narration
    language: str = "en"
    voice: str = "coral"
    enable_illustrations: bool = True

    # Playback
    playback_tick_interval: float = 0.1  # Seconds between engine polls
    previous_track_threshold: float = 3.0  # Below this, "previous" changes track
    skip_interval_seconds: float = 15.0
    default_playback_speed: float = 1.0
    queue_auto_advance: bool = True  # Play next queued story when one finishes

    # Generation
    illustration_retry_limit: int = 3
    background_task_grace_seconds: float = 30.0  # Extra run time once backgrounded
    event_history_size: int = 100

    def save(self) -> None:
        """Save settings to JSON file."""
        self.validate()
        _create_settings_backup(SETTINGS_FILE)
        _atomic_write_json(SETTINGS_FILE, asdict(self))
        logger.debug("Settings saved to %s", SETTINGS_FILE)

    def validate(self) -> bool:
        """Validate all settings fields. Delegates to _validation module.

        Returns:
            True if any settings were normalized during validation.

        Raises:
            ValueError: If any field contains an invalid value.
        """
        return _validation_mod.validate(self)

    # Class-level cache for settings (speeds up repeated load() calls)
    _cached_instance: ClassVar["Settings | None"] = None

    @classmethod
    def load(cls, use_cache: bool = True) -> "Settings":
        """Load settings from JSON file, or create defaults.

        New settings get default values and removed settings are cleaned up;
        customized values are preserved.

        Args:
            use_cache: If True, return cached instance if available. Set to False
                to force reload from disk (useful after save() or in tests).

        Returns:
            Settings instance.

        Raises:
            ValueError: If a stored value is invalid.
        """
        if use_cache and cls._cached_instance is not None:
            return cls._cached_instance

        data: dict[str, Any] = {}
        loaded_from_file = False

        if SETTINGS_FILE.exists():
            try:
                with open(SETTINGS_FILE, encoding="utf-8") as f:
                    raw = json.load(f)
                if isinstance(raw, dict):
                    data = raw
                    loaded_from_file = bool(raw)
                else:
                    logger.error(
                        "Corrupted settings file (expected JSON object, got %s)",
                        type(raw).__name__,
                    )
                    _quarantine_corrupt_file(SETTINGS_FILE)
            except json.JSONDecodeError as e:
                logger.error("Corrupted settings file (invalid JSON): %s", e)
                _quarantine_corrupt_file(SETTINGS_FILE)
            except OSError as e:
                logger.error("Cannot read settings file: %s", e)

        recovered_from_backup = False
        if not data:
            recovered = _recover_from_backup(SETTINGS_FILE)
            if recovered is not None:
                data = recovered
                loaded_from_file = True
                recovered_from_backup = True

        logger.info(
            "Settings load: loaded_from_file=%s, keys_read=%d",
            loaded_from_file,
            len(data),
        )

        changed = _merge_with_defaults(data, cls)

        # A wrong type (e.g. "request_timeout": "slow") surfaces as TypeError
        # from the range comparisons; report it as ValueError like the rest.
        try:
            settings = cls(**data)
            changed = settings.validate() or changed
        except TypeError as e:
            raise ValueError(f"A setting has an invalid type: {e}") from e

        if changed or not loaded_from_file:
            if loaded_from_file and not recovered_from_backup:
                _create_settings_backup(SETTINGS_FILE)
            try:
                _atomic_write_json(SETTINGS_FILE, asdict(settings))
                logger.info("Settings written to %s", SETTINGS_FILE)
            except OSError as write_err:
                logger.warning("Could not persist settings to disk: %s", write_err)

        cls._cached_instance = settings
        return settings

    @classmethod
    def clear_cache(cls) -> None:
        """Clear the cached settings instance.

        Use this in tests that need to verify settings loading behavior,
        or after programmatically modifying settings files.
        """
        cls._cached_instance = None

    def with_overrides(self, **overrides: Any) -> "Settings":
        """Return a validated copy with some fields replaced.

        Used by the CLI so flags never mutate the cached instance.

        Raises:
            ValueError: If an override names an unknown field or is invalid.
        """
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown settings: {sorted(unknown)}")
        data = asdict(self)
        data.update({k: v for k, v in overrides.items() if v is not None})
        updated = type(self)(**data)
        updated.validate()
        return updated
