"""Tests for classifying backend failures into ErrorKind."""

import json
import logging

import httpx
import pydantic
import pytest

from src.utils.error_mapping import (
    classify_error,
    error_from_response,
    kind_for_status,
    missing_backend_id,
)
from src.utils.exceptions import ContentServiceError, ErrorKind


class TestKindForStatus:
    """Tests for HTTP status mapping."""

    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (400, ErrorKind.VALIDATION_ERROR),
            (401, ErrorKind.UNAUTHORIZED),
            (403, ErrorKind.FORBIDDEN),
            (404, ErrorKind.NOT_FOUND),
            (422, ErrorKind.VALIDATION_ERROR),
            (429, ErrorKind.RATE_LIMIT_EXCEEDED),
            (500, ErrorKind.SERVER_ERROR),
            (503, ErrorKind.SERVER_ERROR),
            (409, ErrorKind.UNKNOWN),
            (302, ErrorKind.UNKNOWN),
        ],
    )
    def test_status_maps_to_kind(self, status, kind):
        """Each status lands on exactly one kind."""
        assert kind_for_status(status) == kind


class TestErrorFromResponse:
    """Tests for building errors from backend responses."""

    def test_reads_message_and_validation_details(self):
        """Validation details become field messages."""
        response = httpx.Response(
            422,
            json={
                "error": {
                    "code": "VALIDATION_ERROR",
                    "message": "Invalid story request",
                    "details": {"heroId": "is required"},
                }
            },
        )

        error = error_from_response(response)

        assert error.kind == ErrorKind.VALIDATION_ERROR
        assert error.detail == "Invalid story request"
        assert error.fields == {"heroId": "is required"}

    def test_drops_details_for_non_validation_errors(self):
        """Only validation errors carry field messages."""
        response = httpx.Response(
            500, json={"error": {"message": "boom", "details": {"trace": "abc"}}}
        )

        error = error_from_response(response)

        assert error.kind == ErrorKind.SERVER_ERROR
        assert error.fields == {}

    def test_non_json_body_uses_status_as_detail(self):
        """A plain-text error page still produces a classified error."""
        response = httpx.Response(502, text="<html>Bad Gateway</html>")

        error = error_from_response(response)

        assert error.kind == ErrorKind.SERVER_ERROR
        assert error.detail == "HTTP 502"


class TestClassifyError:
    """Tests for classify_error()."""

    def test_passes_classified_errors_through(self):
        """An already classified error is returned unchanged."""
        original = ContentServiceError(ErrorKind.FORBIDDEN)

        assert classify_error(original) is original

    def test_http_status_error_uses_response(self):
        """raise_for_status() errors are mapped by status."""
        request = httpx.Request("GET", "http://backend/api/v1/stories/1")
        response = httpx.Response(404, request=request)
        exc = httpx.HTTPStatusError("not found", request=request, response=response)

        assert classify_error(exc).kind == ErrorKind.NOT_FOUND

    @pytest.mark.parametrize(
        "exc",
        [
            httpx.ConnectError("refused"),
            httpx.ReadTimeout("slow"),
            httpx.RemoteProtocolError("closed"),
            ConnectionResetError("reset"),
        ],
    )
    def test_transport_failures_are_network_unavailable(self, exc):
        """Connect, timeout and protocol failures all mean the network is unavailable."""
        assert classify_error(exc).kind == ErrorKind.NETWORK_UNAVAILABLE

    def test_json_error_is_decoding_error(self):
        """Malformed JSON is a decoding error."""
        try:
            json.loads("{not json")
        except json.JSONDecodeError as exc:
            assert classify_error(exc).kind == ErrorKind.DECODING_ERROR

    def test_pydantic_error_is_decoding_error(self):
        """A body that does not match the schema is a decoding error."""

        class Model(pydantic.BaseModel):
            title: str

        with pytest.raises(pydantic.ValidationError) as exc_info:
            Model.model_validate({})

        assert classify_error(exc_info.value).kind == ErrorKind.DECODING_ERROR

    def test_anything_else_is_unknown(self):
        """Unexpected exceptions become unknown with their message."""
        error = classify_error(RuntimeError("disk full"))

        assert error.kind == ErrorKind.UNKNOWN
        assert error.user_message == "Unexpected error: disk full"


class TestMissingBackendId:
    """Tests for missing_backend_id()."""

    def test_message_names_entity_and_purpose(self, caplog):
        """The error says what was missing and why it was needed."""
        with caplog.at_level(logging.ERROR, logger="src.utils.error_mapping"):
            error = missing_backend_id("Story", "audio generation")

        assert error.kind == ErrorKind.UNKNOWN
        assert error.detail == "Story has no backend ID for audio generation"
        assert "Local state corruption" in caplog.text

    def test_message_without_purpose(self):
        """Purpose is optional."""
        assert missing_backend_id("Hero").detail == "Hero has no backend ID"
