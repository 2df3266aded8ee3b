"""Fold transport, HTTP and decoding failures into a single ErrorKind.

The generation pipeline calls classify_error() at every stage boundary so the
session only ever stores ContentServiceError instances.
"""

import json
import logging
from typing import Any

import httpx
import pydantic

from src.utils.exceptions import ContentServiceError, ErrorKind

logger = logging.getLogger(__name__)

_STATUS_KINDS: dict[int, ErrorKind] = {
    400: ErrorKind.VALIDATION_ERROR,
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.FORBIDDEN,
    404: ErrorKind.NOT_FOUND,
    422: ErrorKind.VALIDATION_ERROR,
    429: ErrorKind.RATE_LIMIT_EXCEEDED,
}


def kind_for_status(status_code: int) -> ErrorKind:
    """Map an HTTP status code to an ErrorKind.

    Args:
        status_code: Non-2xx response status.

    Returns:
        The matching kind; 5xx is a server error, anything unmapped is unknown.
    """
    if status_code in _STATUS_KINDS:
        return _STATUS_KINDS[status_code]
    if 500 <= status_code <= 599:
        return ErrorKind.SERVER_ERROR
    return ErrorKind.UNKNOWN


def error_from_response(response: httpx.Response) -> ContentServiceError:
    """Build a ContentServiceError from a failed backend response.

    The backend wraps errors as ``{"error": {"code", "message", "details"}}``.
    Field-level details are kept for validation errors.
    """
    kind = kind_for_status(response.status_code)
    detail = f"HTTP {response.status_code}"
    fields: dict[str, str] = {}
    try:
        body: Any = response.json()
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError):
        body = None

    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        error_body = body["error"]
        detail = str(error_body.get("message") or detail)
        details = error_body.get("details")
        if isinstance(details, dict):
            fields = {str(k): str(v) for k, v in details.items()}

    logger.debug(
        "Backend error response: status=%d kind=%s detail=%s",
        response.status_code,
        kind,
        detail,
    )
    return ContentServiceError(kind, detail, fields if kind == ErrorKind.VALIDATION_ERROR else None)


def classify_error(error: BaseException) -> ContentServiceError:
    """Map any exception raised by a backend call to a ContentServiceError.

    Args:
        error: The exception caught at a stage boundary.

    Returns:
        The error itself when it is already classified, otherwise a new
        ContentServiceError carrying exactly one ErrorKind.
    """
    if isinstance(error, ContentServiceError):
        return error
    if isinstance(error, httpx.HTTPStatusError):
        return error_from_response(error.response)
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError, ConnectionError)):
        return ContentServiceError(ErrorKind.NETWORK_UNAVAILABLE, str(error))
    if isinstance(error, (pydantic.ValidationError, json.JSONDecodeError)):
        return ContentServiceError(ErrorKind.DECODING_ERROR, str(error))
    logger.debug("Unclassified backend error %s: %s", type(error).__name__, error)
    return ContentServiceError(ErrorKind.UNKNOWN, str(error) or type(error).__name__)


def missing_backend_id(entity: str, purpose: str | None = None) -> ContentServiceError:
    """Error for an entity that should have been synced to the backend but was not.

    Args:
        entity: Entity name for the message ("Hero", "Story").
        purpose: Optional operation the id was needed for.
    """
    message = f"{entity} has no backend ID"
    if purpose:
        message = f"{message} for {purpose}"
    logger.error("Local state corruption: %s", message)
    return ContentServiceError(ErrorKind.UNKNOWN, message)
