"""Backend response envelope and DTOs, decoded with pydantic.

The backend answers ``{"data": ..., "error": {...}, "pagination": ..., "message": ...}``
with camelCase keys. DTOs convert into the domain models in src.memory.
"""

import logging
from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from src.memory.story_state import Illustration, IllustrationStatus, Story
from src.utils.exceptions import ErrorKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Backend illustration status that means the image exists
COMPLETED_STATUS = "completed"
FAILED_STATUS = "failed"


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ApiErrorBody(_ApiModel):
    code: str = "UNKNOWN"
    message: str = ""
    details: dict[str, str] | None = None


class Pagination(_ApiModel):
    total: int
    limit: int
    offset: int
    has_more: bool = False


class ApiEnvelope(_ApiModel, Generic[T]):
    """Generic wrapper every backend response comes in."""

    data: T | None = None
    error: ApiErrorBody | None = None
    pagination: Pagination | None = None
    message: str | None = None


class IllustrationDTO(_ApiModel):
    id: str
    image_url: str | None = None
    image_prompt: str = ""
    scene_description: str | None = None
    display_order: int
    audio_timestamp: float | None = None
    generation_status: str = "pending"
    error_message: str | None = None

    def to_illustration(self, fallback_timestamp: float) -> Illustration:
        """Convert to the domain model.

        Args:
            fallback_timestamp: Used when the backend sent no timestamp or one
                that would move backwards; keeps scene order monotonic.
        """
        timestamp = self.audio_timestamp
        if timestamp is None or timestamp < fallback_timestamp:
            if timestamp is not None:
                logger.warning(
                    "Illustration %s timestamp %.2fs precedes previous scene, clamping to %.2fs",
                    self.id,
                    timestamp,
                    fallback_timestamp,
                )
            timestamp = fallback_timestamp

        status = self.generation_status.lower()
        if status == COMPLETED_STATUS:
            generation_status = IllustrationStatus.GENERATED
        elif status == FAILED_STATUS:
            generation_status = IllustrationStatus.FAILED
        else:
            generation_status = IllustrationStatus.PENDING

        return Illustration(
            backend_id=self.id,
            display_order=self.display_order,
            timestamp=timestamp,
            image_ref=self.image_url if generation_status == IllustrationStatus.GENERATED else None,
            image_prompt=self.image_prompt,
            scene_description=self.scene_description or "",
            generation_status=generation_status,
            last_error=ErrorKind.SERVER_ERROR
            if generation_status == IllustrationStatus.FAILED
            else None,
            last_error_message=self.error_message,
        )


class StoryDTO(_ApiModel):
    id: str
    title: str
    content: str
    hero_id: str
    event_type: str | None = None
    custom_event_id: str | None = None
    language: str = "en"
    audio_url: str | None = None
    audio_duration: float | None = None
    illustrations: list[IllustrationDTO] | None = None
    is_favorite: bool = False
    play_count: int = 0
    last_played_at: datetime | None = None
    created_at: datetime

    def to_story(self) -> Story:
        """Convert to the domain model with backend_id set to the backend id."""
        illustrations: list[Illustration] = []
        last_timestamp = 0.0
        for dto in sorted(self.illustrations or [], key=lambda item: item.display_order):
            illustration = dto.to_illustration(last_timestamp)
            last_timestamp = illustration.timestamp
            illustrations.append(illustration)

        return Story(
            backend_id=self.id,
            hero_id=self.hero_id,
            title=self.title,
            content=self.content,
            event_type=self.event_type,
            custom_event_id=self.custom_event_id,
            language=self.language,
            audio_ref=self.audio_url,
            estimated_duration=self.audio_duration or 0.0,
            illustrations=illustrations,
            is_favorite=self.is_favorite,
            play_count=self.play_count,
            last_played_at=self.last_played_at,
            created_at=self.created_at,
        )


class AudioDTO(_ApiModel):
    story_id: str
    audio_url: str
    duration: float | None = None


class StoryCreateRequest(_ApiModel):
    hero_id: str
    title: str | None = None
    event_type: str | None = None
    custom_event_id: str | None = None
    language: str
    # Stages are requested one by one so each can fail and retry on its own
    generate_audio: bool = False
    generate_illustrations: bool = False


class StoryUpdateRequest(_ApiModel):
    title: str | None = None
    content: str | None = None
    is_favorite: bool | None = None


class AudioRequest(_ApiModel):
    language: str
    voice: str


__all__ = [
    "ApiEnvelope",
    "ApiErrorBody",
    "AudioDTO",
    "AudioRequest",
    "IllustrationDTO",
    "Pagination",
    "StoryCreateRequest",
    "StoryDTO",
    "StoryUpdateRequest",
]
