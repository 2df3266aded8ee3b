"""Validation functions for Settings."""

import logging
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from src.settings._types import (
    LOG_LEVELS,
    MAX_PLAYBACK_SPEED,
    MIN_PLAYBACK_SPEED,
    SUPPORTED_LANGUAGES,
    SUPPORTED_VOICES,
)

if TYPE_CHECKING:
    from src.settings._settings import Settings

logger = logging.getLogger(__name__)


def validate(settings: "Settings") -> bool:
    """Validate all settings fields.

    Returns:
        True if any settings were normalized during validation, False otherwise.
        Callers can use this to decide whether to re-save the settings file.

    Raises:
        ValueError: If any field contains an invalid value.
    """
    _validate_log_level(settings)
    _validate_backend_url(settings)
    changed = _validate_narration(settings)
    _validate_timeouts(settings)
    _validate_playback(settings)
    _validate_limits(settings)
    return changed


def _validate_log_level(settings: "Settings") -> None:
    """Validate log_level is a known logging level."""
    if settings.log_level not in LOG_LEVELS:
        raise ValueError(
            f"log_level must be one of {list(LOG_LEVELS.keys())}, got {settings.log_level}"
        )


def _validate_backend_url(settings: "Settings") -> None:
    """Validate URL format for backend_url."""
    try:
        parsed = urlparse(settings.backend_url)
    except (AttributeError, TypeError) as e:
        raise ValueError(f"Invalid backend_url: {settings.backend_url} - {e}") from e
    if parsed.scheme not in ("http", "https"):
        raise ValueError(f"Invalid URL scheme in backend_url: {settings.backend_url}")
    if not parsed.netloc:
        raise ValueError(f"Invalid URL (missing host) in backend_url: {settings.backend_url}")


def _validate_narration(settings: "Settings") -> bool:
    """Validate language and voice, normalizing their case.

    Returns:
        True if either value was normalized.
    """
    changed = False
    language = settings.language.strip().lower()
    voice = settings.voice.strip().lower()
    if language != settings.language:
        logger.info("Normalizing language %r -> %r", settings.language, language)
        settings.language = language
        changed = True
    if voice != settings.voice:
        logger.info("Normalizing voice %r -> %r", settings.voice, voice)
        settings.voice = voice
        changed = True

    if settings.language not in SUPPORTED_LANGUAGES:
        raise ValueError(
            f"language must be one of {list(SUPPORTED_LANGUAGES)}, got {settings.language}"
        )
    if settings.voice not in SUPPORTED_VOICES:
        raise ValueError(f"voice must be one of {list(SUPPORTED_VOICES)}, got {settings.voice}")
    return changed


def _validate_timeouts(settings: "Settings") -> None:
    """Validate network and background timeouts."""
    if not 1.0 <= settings.request_timeout <= 900.0:
        raise ValueError(
            f"request_timeout must be between 1 and 900 seconds, got {settings.request_timeout}"
        )
    if not 1.0 <= settings.health_check_timeout <= 60.0:
        raise ValueError(
            f"health_check_timeout must be between 1 and 60 seconds, "
            f"got {settings.health_check_timeout}"
        )
    if settings.background_task_grace_seconds <= 0:
        raise ValueError(
            f"background_task_grace_seconds must be positive, "
            f"got {settings.background_task_grace_seconds}"
        )


def _validate_playback(settings: "Settings") -> None:
    """Validate playback tick, navigation and speed settings."""
    if not 0.01 <= settings.playback_tick_interval <= 1.0:
        raise ValueError(
            f"playback_tick_interval must be between 0.01 and 1.0 seconds, "
            f"got {settings.playback_tick_interval}"
        )
    if settings.previous_track_threshold < 0:
        raise ValueError(
            f"previous_track_threshold must be non-negative, "
            f"got {settings.previous_track_threshold}"
        )
    if settings.skip_interval_seconds <= 0:
        raise ValueError(
            f"skip_interval_seconds must be positive, got {settings.skip_interval_seconds}"
        )
    if not MIN_PLAYBACK_SPEED <= settings.default_playback_speed <= MAX_PLAYBACK_SPEED:
        raise ValueError(
            f"default_playback_speed must be between {MIN_PLAYBACK_SPEED} and "
            f"{MAX_PLAYBACK_SPEED}, got {settings.default_playback_speed}"
        )


def _validate_limits(settings: "Settings") -> None:
    """Validate retry and bookkeeping limits."""
    if not 1 <= settings.illustration_retry_limit <= 10:
        raise ValueError(
            f"illustration_retry_limit must be between 1 and 10, "
            f"got {settings.illustration_retry_limit}"
        )
    if not 10 <= settings.event_history_size <= 10000:
        raise ValueError(
            f"event_history_size must be between 10 and 10000, "
            f"got {settings.event_history_size}"
        )
