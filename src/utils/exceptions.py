"""Centralized exception hierarchy for Bedtime Stories.

Exception Hierarchy:

    BedtimeStoriesError (base for all application errors)
    ├── ContentServiceError (backend call failed, carries an ErrorKind)
    ├── GenerationError (generation pipeline misuse)
    │   ├── SessionActiveError (start while a run is in flight)
    │   └── InvalidStageTransitionError (retry/skip not allowed for the step)
    └── PlaybackError (playback engine could not play)

Usage:
    from src.utils.exceptions import ContentServiceError, ErrorKind

    try:
        await repository.generate_audio(story_id, "en", "coral")
    except ContentServiceError as e:
        if e.kind is ErrorKind.RATE_LIMIT_EXCEEDED:
            logger.warning("Backend is throttling us")
"""

import logging
from enum import StrEnum

logger = logging.getLogger(__name__)


class ErrorKind(StrEnum):
    """Failure kinds surfaced to callers instead of transport exceptions."""

    NETWORK_UNAVAILABLE = "network_unavailable"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    VALIDATION_ERROR = "validation_error"
    SERVER_ERROR = "server_error"
    DECODING_ERROR = "decoding_error"
    UNKNOWN = "unknown"


# Kinds whose message does not depend on the error detail
_FIXED_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.NETWORK_UNAVAILABLE: "Network error. Please check your internet connection",
    ErrorKind.UNAUTHORIZED: "Please sign in to continue",
    ErrorKind.FORBIDDEN: "You don't have access to this resource",
    ErrorKind.NOT_FOUND: "Resource not found",
    ErrorKind.RATE_LIMIT_EXCEEDED: "Rate limit exceeded. Please try again later",
    ErrorKind.SERVER_ERROR: "Server error. Please try again later",
}


class BedtimeStoriesError(Exception):
    """Base exception for all Bedtime Stories errors.

    All custom exceptions should inherit from this class to allow
    catching all application-specific errors with a single except clause.
    """

    pass


class ContentServiceError(BedtimeStoriesError):
    """Raised when a content backend call fails.

    Every transport, HTTP or decoding failure is folded into exactly one
    ErrorKind so callers never need to inspect httpx or pydantic errors.

    Attributes:
        kind: The failure kind.
        detail: Raw detail message (backend message, exception text).
        fields: Field-level messages for validation errors.
    """

    def __init__(
        self,
        kind: ErrorKind,
        detail: str = "",
        fields: dict[str, str] | None = None,
    ):
        """Initialize ContentServiceError with its kind.

        Args:
            kind: The failure kind.
            detail: Raw detail message for logs and the unknown/decoding messages.
            fields: Field-level messages, only meaningful for validation errors.
        """
        self.kind = kind
        self.detail = detail
        self.fields = dict(fields or {})
        super().__init__(self.user_message)
        logger.debug(
            "ContentServiceError initialized: kind=%s, detail=%s, fields=%s",
            kind,
            detail,
            self.fields,
        )

    @property
    def user_message(self) -> str:
        """Human readable message for display next to a retry/skip affordance."""
        if self.kind == ErrorKind.VALIDATION_ERROR:
            if self.fields:
                joined = ", ".join(f"{key}: {value}" for key, value in self.fields.items())
                return f"Validation error: {joined}"
            return f"Validation error: {self.detail}" if self.detail else "Validation error"
        if self.kind == ErrorKind.DECODING_ERROR:
            return f"Failed to parse response: {self.detail}"
        if self.kind in _FIXED_MESSAGES:
            return _FIXED_MESSAGES[self.kind]
        return f"Unexpected error: {self.detail}"


class GenerationError(BedtimeStoriesError):
    """Base exception for misuse of the generation pipeline.

    These are raised synchronously to the caller; backend failures are
    never raised this way but stored on the session instead.
    """

    pass


class SessionActiveError(GenerationError):
    """Raised when a generation run is requested while another is in flight."""

    pass


class InvalidStageTransitionError(GenerationError):
    """Raised when a retry or skip is not allowed for the requested step.

    Attributes:
        step: The step name the caller asked for.
    """

    def __init__(self, message: str, step: str | None = None):
        """Initialize InvalidStageTransitionError.

        Args:
            message: Human-readable error message.
            step: The step the caller asked to retry or skip.
        """
        super().__init__(message)
        self.step = step


class PlaybackError(BedtimeStoriesError):
    """Raised when the playback engine cannot start or control audio."""

    pass
