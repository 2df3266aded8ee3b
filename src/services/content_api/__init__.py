"""HTTP implementation of ContentRepository on top of httpx."""

import logging
from typing import Any, TypeVar

import httpx
import pydantic

from src.memory.story_state import EventSpec, Story
from src.services.content_api._models import (
    ApiEnvelope,
    AudioDTO,
    AudioRequest,
    StoryCreateRequest,
    StoryDTO,
    StoryUpdateRequest,
)
from src.services.content_repository import AudioResult
from src.services.network_monitor import NetworkMonitor
from src.settings import Settings
from src.utils.error_mapping import error_from_response
from src.utils.exceptions import ContentServiceError, ErrorKind

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)

API_PREFIX = "/api/v1"


class HttpContentRepository:
    """Talks to the content-generation backend over its JSON API.

    One request per call, no retries. Transport failures become
    network_unavailable; HTTP errors are classified by status.
    """

    def __init__(
        self,
        settings: Settings,
        monitor: NetworkMonitor | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Create the repository.

        Args:
            settings: Supplies backend_url, api_token and request_timeout.
            monitor: Shared connectivity state; a private one is created if omitted.
            client: Pre-built client (tests pass one with a MockTransport).
        """
        self.settings = settings
        self.monitor = monitor or NetworkMonitor()
        self._owns_client = client is None
        if client is None:
            headers = {"Accept": "application/json"}
            if settings.api_token:
                headers["Authorization"] = f"Bearer {settings.api_token}"
            client = httpx.AsyncClient(
                base_url=settings.backend_url,
                timeout=settings.request_timeout,
                headers=headers,
            )
        self._client = client

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpContentRepository":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def check_connectivity(self) -> bool:
        """Probe the health endpoint and update the shared monitor."""
        return await self.monitor.check(self._client, timeout=self.settings.health_check_timeout)

    async def _send(
        self, method: str, path: str, payload: pydantic.BaseModel | None
    ) -> httpx.Response:
        if self.monitor.known_offline:
            logger.warning("%s %s skipped: network known to be unavailable", method, path)
            raise ContentServiceError(ErrorKind.NETWORK_UNAVAILABLE, "No network connection")

        body: dict[str, Any] | None = None
        if payload is not None:
            body = payload.model_dump(by_alias=True, exclude_none=True)

        logger.debug("-> %s %s", method, path)
        try:
            response = await self._client.request(method, path, json=body)
        except httpx.ConnectError as e:
            self.monitor.mark_offline()
            raise ContentServiceError(ErrorKind.NETWORK_UNAVAILABLE, str(e)) from e
        except httpx.TransportError as e:
            detail = str(e) or type(e).__name__
            raise ContentServiceError(ErrorKind.NETWORK_UNAVAILABLE, detail) from e

        self.monitor.mark_online()
        logger.debug("<- %d %s %s", response.status_code, method, path)
        if response.is_error:
            raise error_from_response(response)
        return response

    async def _request(
        self,
        method: str,
        path: str,
        model: type[ModelT],
        payload: pydantic.BaseModel | None = None,
    ) -> ModelT:
        """Send a request and unwrap the envelope's data as *model*.

        Raises:
            ContentServiceError: On any failure; a missing data field is unknown,
                a body that does not match the schema is a decoding error.
        """
        response = await self._send(method, path, payload)
        try:
            envelope = ApiEnvelope[model].model_validate_json(response.content)
        except pydantic.ValidationError as e:
            raise ContentServiceError(ErrorKind.DECODING_ERROR, str(e)) from e

        if envelope.error is not None:
            fields = envelope.error.details or {}
            raise ContentServiceError(ErrorKind.UNKNOWN, envelope.error.message, fields)
        if envelope.data is None:
            raise ContentServiceError(ErrorKind.UNKNOWN, f"No data in response to {method} {path}")
        return envelope.data

    async def generate_story(self, hero_id: str, event: EventSpec, language: str) -> Story:
        request = StoryCreateRequest(
            hero_id=hero_id,
            title=None,
            event_type=event.event_type,
            custom_event_id=event.custom_event_id,
            language=language,
        )
        dto = await self._request("POST", f"{API_PREFIX}/stories", StoryDTO, request)
        story = dto.to_story()
        logger.info("Backend generated story %s: %s", dto.id, story.title)
        return story

    async def generate_audio(self, story_id: str, language: str, voice: str) -> AudioResult:
        dto = await self._request(
            "POST",
            f"{API_PREFIX}/stories/{story_id}/audio",
            AudioDTO,
            AudioRequest(language=language, voice=voice),
        )
        return AudioResult(audio_ref=dto.audio_url, duration=dto.duration)

    async def generate_illustrations(self, story_id: str) -> Story:
        path = f"{API_PREFIX}/stories/{story_id}/illustrations"
        dto = await self._request("POST", path, StoryDTO)
        story = dto.to_story()
        logger.info(
            "Backend returned %d illustrations for story %s (%d failed)",
            len(story.illustrations),
            story_id,
            len(story.failed_illustrations()),
        )
        return story

    async def fetch_story(self, story_id: str) -> Story:
        dto = await self._request("GET", f"{API_PREFIX}/stories/{story_id}", StoryDTO)
        return dto.to_story()

    async def update_story(
        self,
        story_id: str,
        *,
        title: str | None = None,
        content: str | None = None,
        is_favorite: bool | None = None,
    ) -> Story:
        request = StoryUpdateRequest(title=title, content=content, is_favorite=is_favorite)
        dto = await self._request("PATCH", f"{API_PREFIX}/stories/{story_id}", StoryDTO, request)
        return dto.to_story()

    async def delete_story(self, story_id: str) -> None:
        await self._send("DELETE", f"{API_PREFIX}/stories/{story_id}", None)
        logger.info("Deleted story %s on backend", story_id)


__all__ = ["HttpContentRepository"]
