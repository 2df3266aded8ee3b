"""Logging configuration for Bedtime Stories."""

import logging
import sys
import time
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

logger = logging.getLogger(__name__)

# Default log file location
DEFAULT_LOG_FILE = Path(__file__).parent.parent.parent / "logs" / "bedtime_stories.log"

# Third-party loggers that are kept at WARNING regardless of the app level
NOISY_LOGGERS = ("httpx", "httpcore", "asyncio")

_suppression_logged = False


class ContextFilter(logging.Filter):
    """Add context information to log records."""

    def __init__(self) -> None:
        super().__init__()
        self.correlation_id: str | None = None

    def filter(self, record: logging.LogRecord) -> bool:
        """Add correlation ID to log record if available."""
        if self.correlation_id:
            record.correlation_id = self.correlation_id
        else:
            record.correlation_id = "-"
        return True


# Global context filter instance
_context_filter = ContextFilter()


class FlushingRotatingFileHandler(RotatingFileHandler):
    """RotatingFileHandler that flushes immediately after each log."""

    def emit(self, record: logging.LogRecord) -> None:
        super().emit(record)
        self.flush()


def _parse_level(level: str) -> int:
    """Resolve a level name to its numeric value.

    Raises:
        ValueError: If the name is not a standard logging level.
    """
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"Invalid log level: {level}")
    return resolved


def _suppress_noisy_loggers() -> None:
    """Pin chatty third-party loggers to WARNING.

    Always re-applied so a library that resets its own level is corrected
    on the next call; the debug trace is only written once.
    """
    global _suppression_logged
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    if not _suppression_logged:
        logger.debug("Suppressing noisy third-party loggers: %s", ", ".join(NOISY_LOGGERS))
        _suppression_logged = True


def reset_logger_suppression() -> None:
    """Forget that the suppression trace was logged (tests only)."""
    global _suppression_logged
    _suppression_logged = False


def setup_logging(level: str = "INFO", log_file: str | None = "default") -> None:
    """Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_file: File path for logs. "default" uses logs/bedtime_stories.log,
                  None disables file logging.

    Raises:
        ValueError: If level is not a known logging level.
    """
    log_level = _parse_level(level)

    # Create formatter with correlation ID
    formatter = logging.Formatter(
        fmt="%(asctime)s [%(levelname)s] [%(correlation_id)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # Filter must be on HANDLERS, not logger, for child logger records
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(_context_filter)
    root_logger.addHandler(console_handler)

    if log_file == "default":
        log_path: Path | None = DEFAULT_LOG_FILE
    elif log_file:
        log_path = Path(log_file)
    else:
        log_path = None

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)

        # Max 10MB per file, keep 5 backup files (50MB total)
        file_handler = FlushingRotatingFileHandler(
            log_path,
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(_context_filter)
        root_logger.addHandler(file_handler)

        root_logger.info("Logging to file: %s (max 10MB, 5 backups)", log_path)

    _suppress_noisy_loggers()


def set_log_level(level: str) -> None:
    """Change the root logger and handler levels at runtime.

    Args:
        level: New level name.

    Raises:
        ValueError: If level is not a known logging level.
    """
    log_level = _parse_level(level)
    root_logger = logging.getLogger()

    if root_logger.level == log_level:
        logger.debug("Log level already set to %s", level.upper())
        _suppress_noisy_loggers()
        return

    root_logger.setLevel(log_level)
    for handler in root_logger.handlers:
        handler.setLevel(log_level)
    _suppress_noisy_loggers()
    logger.info("Log level changed to %s", level.upper())


@contextmanager
def log_context(correlation_id: str | None = None) -> Generator[str]:
    """Context manager for setting correlation ID in logs.

    Args:
        correlation_id: Optional correlation ID. If not provided, generates a new UUID.

    Yields:
        The correlation ID being used.

    Example:
        with log_context(session.id[:8]):
            logger.info("Generating story")  # Will include correlation_id in log
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())[:8]

    old_id = _context_filter.correlation_id
    _context_filter.correlation_id = correlation_id
    try:
        yield correlation_id
    finally:
        _context_filter.correlation_id = old_id


@contextmanager
def log_performance(logger: logging.Logger, operation: str) -> Generator[None]:
    """Context manager for logging operation performance.

    Args:
        logger: Logger instance to use
        operation: Name of the operation being timed

    Example:
        with log_performance(logger, "audio_generation"):
            await repository.generate_audio(...)  # Logs duration after completion
    """
    start_time = time.time()
    logger.info("%s: Starting", operation)
    try:
        yield
    except BaseException as e:
        duration = time.time() - start_time
        logger.error("%s: Failed after %.2fs - %s", operation, duration, str(e) or type(e).__name__)
        raise
    else:
        duration = time.time() - start_time
        logger.info("%s: Completed in %.2fs", operation, duration)
