"""Story entities shared by the generation pipeline and the player."""

import logging
import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, model_validator

from src.utils.exceptions import ErrorKind

logger = logging.getLogger(__name__)

# Manual plus automatic retries allowed before an illustration stays a placeholder
MAX_ILLUSTRATION_RETRIES = 3


def _new_id() -> str:
    return str(uuid.uuid4())


class StoryEvent(StrEnum):
    """Built-in story occasions, valued by their display title."""

    BEDTIME = "Bedtime Adventure"
    SCHOOL_DAY = "School Day Fun"
    BIRTHDAY = "Birthday Celebration"
    WEEKEND = "Weekend Explorer"
    RAINY_DAY = "Rainy Day Magic"
    FAMILY = "Family Time"
    FRIENDSHIP = "Making Friends"
    LEARNING = "Learning Something New"
    HELPING = "Helping Others"
    HOLIDAY = "Holiday Adventure"

    @property
    def prompt_seed(self) -> str:
        """English seed sentence the backend expands into a story."""
        return _EVENT_PROMPT_SEEDS[self]

    @property
    def key(self) -> str:
        """Lowercase identifier used on the command line (e.g. "rainy_day")."""
        return self.name.lower()


_EVENT_PROMPT_SEEDS: dict[StoryEvent, str] = {
    StoryEvent.BEDTIME: "a calm bedtime adventure that helps prepare for sleep",
    StoryEvent.SCHOOL_DAY: "an exciting day at school with learning and fun",
    StoryEvent.BIRTHDAY: "a magical birthday celebration with surprises",
    StoryEvent.WEEKEND: "a fun weekend adventure exploring new places",
    StoryEvent.RAINY_DAY: "a creative indoor adventure on a rainy day",
    StoryEvent.FAMILY: "a heartwarming adventure with family",
    StoryEvent.FRIENDSHIP: "a story about making new friends and friendship",
    StoryEvent.LEARNING: "an adventure while learning something exciting and new",
    StoryEvent.HELPING: "a story about helping others and being kind",
    StoryEvent.HOLIDAY: "a festive holiday adventure full of joy",
}


class EventSpec(BaseModel):
    """The occasion a story is written for: a built-in event or a custom one."""

    title: str
    prompt_seed: str
    event_type: str | None = None  # Built-in event key sent to the backend
    custom_event_id: str | None = None  # Backend id of a user-defined event

    @classmethod
    def from_event(cls, event: StoryEvent) -> "EventSpec":
        """Build a spec for a built-in event."""
        return cls(title=event.value, prompt_seed=event.prompt_seed, event_type=event.key)

    @classmethod
    def custom(cls, custom_event_id: str, title: str, prompt_seed: str) -> "EventSpec":
        """Build a spec for a user-defined event already stored on the backend."""
        return cls(title=title, prompt_seed=prompt_seed, custom_event_id=custom_event_id)


class Hero(BaseModel):
    """The child's hero character a story is generated for."""

    id: str = Field(default_factory=_new_id)
    backend_id: str | None = None
    name: str
    avatar_ref: str | None = None  # Generated avatar image; required for illustrations

    @property
    def has_avatar(self) -> bool:
        """Whether the hero has the visual reference illustrations are drawn from."""
        return bool(self.avatar_ref)


class IllustrationStatus(StrEnum):
    """Generation state of a single scene illustration."""

    PENDING = "pending"
    GENERATED = "generated"
    FAILED = "failed"


class Illustration(BaseModel):
    """A scene image shown while the narration passes its timestamp."""

    id: str = Field(default_factory=_new_id)
    backend_id: str | None = None
    display_order: int = Field(ge=0)
    timestamp: float = Field(ge=0.0)  # Seconds into the narration
    image_ref: str | None = None
    image_prompt: str = ""
    scene_description: str = ""
    generation_status: IllustrationStatus = IllustrationStatus.PENDING
    retry_count: int = 0
    last_error: ErrorKind | None = None
    last_error_message: str | None = None

    @property
    def is_generated(self) -> bool:
        return self.generation_status == IllustrationStatus.GENERATED and bool(self.image_ref)

    @property
    def is_placeholder(self) -> bool:
        """True when the slot failed, or finished without an image."""
        if self.generation_status == IllustrationStatus.FAILED:
            return True
        return self.generation_status == IllustrationStatus.GENERATED and not self.image_ref

    def reached_retry_limit(self, limit: int = MAX_ILLUSTRATION_RETRIES) -> bool:
        return self.retry_count >= limit

    @property
    def has_reached_retry_limit(self) -> bool:
        return self.reached_retry_limit()

    def record_failure(self, kind: ErrorKind, message: str | None = None) -> None:
        """Mark this illustration as a failed placeholder and count the attempt."""
        self.generation_status = IllustrationStatus.FAILED
        self.retry_count += 1
        self.last_error = kind
        self.last_error_message = message
        logger.debug(
            "Illustration #%d failed (%s), retry_count=%d",
            self.display_order + 1,
            kind,
            self.retry_count,
        )

    def reset_error(self) -> None:
        """Clear the failure so the slot can be generated again."""
        self.generation_status = IllustrationStatus.PENDING
        self.last_error = None
        self.last_error_message = None


def _order_illustrations(illustrations: list[Illustration]) -> list[Illustration]:
    """Sort by display_order and check timestamps never go backwards.

    Raises:
        ValueError: If two illustrations share a display_order or a later
            scene starts before an earlier one.
    """
    ordered = sorted(illustrations, key=lambda ill: ill.display_order)
    for previous, current in zip(ordered, ordered[1:], strict=False):
        if current.display_order == previous.display_order:
            raise ValueError(f"Duplicate illustration display_order {current.display_order}")
        if current.timestamp < previous.timestamp:
            raise ValueError(
                f"Illustration #{current.display_order} starts at {current.timestamp}s, "
                f"before #{previous.display_order} at {previous.timestamp}s"
            )
    return ordered


class Story(BaseModel):
    """A generated story with its narration audio and scene illustrations."""

    id: str = Field(default_factory=_new_id)
    backend_id: str | None = None
    hero_id: str | None = None
    title: str
    content: str
    event_type: str | None = None
    custom_event_id: str | None = None
    language: str = "en"
    audio_ref: str | None = None
    audio_needs_regeneration: bool = False
    estimated_duration: float = 0.0  # Seconds
    illustrations: list[Illustration] = Field(default_factory=list)
    play_count: int = 0
    is_favorite: bool = False
    created_at: datetime = Field(default_factory=datetime.now)
    last_played_at: datetime | None = None

    @model_validator(mode="after")
    def sort_illustrations(self) -> "Story":
        self.illustrations = _order_illustrations(self.illustrations)
        return self

    @property
    def has_playable_audio(self) -> bool:
        """Audio exists and was produced for the current content."""
        return bool(self.audio_ref) and not self.audio_needs_regeneration

    @property
    def has_illustrations(self) -> bool:
        return bool(self.illustrations)

    def update_content(self, content: str) -> bool:
        """Replace the narration text, flagging existing audio as stale.

        Returns:
            True if the text changed.
        """
        if content == self.content:
            return False
        self.content = content
        if self.audio_ref:
            self.audio_needs_regeneration = True
            logger.info("Story %s content edited; audio flagged for regeneration", self.id[:8])
        return True

    def attach_audio(self, audio_ref: str, duration: float | None = None) -> None:
        """Store freshly generated narration for the current content."""
        self.audio_ref = audio_ref
        self.audio_needs_regeneration = False
        if duration:
            self.estimated_duration = duration

    def clear_audio_regeneration_flag(self) -> None:
        self.audio_needs_regeneration = False

    def replace_illustrations(self, illustrations: list[Illustration]) -> None:
        """Swap in a new illustration list, keeping retry counts of known slots.

        Slots are matched by display_order so a retried scene keeps its history
        and the carousel order never changes.
        """
        previous = {ill.display_order: ill for ill in self.illustrations}
        for ill in illustrations:
            before = previous.get(ill.display_order)
            if before is not None:
                ill.id = before.id
                ill.retry_count = max(ill.retry_count, before.retry_count)
        self.illustrations = _order_illustrations(illustrations)

    def record_play(self) -> None:
        self.play_count += 1
        self.last_played_at = datetime.now()

    def failed_illustrations(self) -> list[Illustration]:
        return [ill for ill in self.illustrations if ill.is_placeholder]

    def retryable_illustrations(self, limit: int = MAX_ILLUSTRATION_RETRIES) -> list[Illustration]:
        """Placeholders that have not used up their retries."""
        return [
            ill
            for ill in self.illustrations
            if ill.is_placeholder and not ill.reached_retry_limit(limit)
        ]

    def illustration_index(self, illustration_id: str) -> int | None:
        for index, ill in enumerate(self.illustrations):
            if ill.id == illustration_id:
                return index
        return None

    def summary(self) -> dict[str, Any]:
        """Compact description for logs and the CLI."""
        return {
            "id": self.id,
            "backend_id": self.backend_id,
            "title": self.title,
            "audio": self.audio_ref,
            "needs_regeneration": self.audio_needs_regeneration,
            "illustrations": len(self.illustrations),
            "failed_illustrations": len(self.failed_illustrations()),
            "play_count": self.play_count,
        }
