"""Settings package for Bedtime Stories.

Focused modules:
- _paths.py: Path constants for settings and output directories
- _types.py: Choice tables (log levels, languages, voices, speed bounds)
- _validation.py: Settings validation functions
- _backup.py: Backup/recovery helpers for the settings file
- _settings.py: Main Settings dataclass
"""

from src.settings._paths import SETTINGS_FILE
from src.settings._settings import Settings
from src.settings._types import (
    LOG_LEVELS,
    MAX_PLAYBACK_SPEED,
    MIN_PLAYBACK_SPEED,
    SUPPORTED_LANGUAGES,
    SUPPORTED_VOICES,
)

__all__ = [
    "LOG_LEVELS",
    "MAX_PLAYBACK_SPEED",
    "MIN_PLAYBACK_SPEED",
    "SETTINGS_FILE",
    "SUPPORTED_LANGUAGES",
    "SUPPORTED_VOICES",
    "Settings",
]
