"""Content backend boundary: the repository protocol and its result types.

Every method makes exactly one remote attempt; retry policy lives in the
coordinators, never here.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

from src.memory.story_state import EventSpec, Story
from src.utils.error_mapping import missing_backend_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AudioResult:
    """Narration produced for a story."""

    audio_ref: str
    duration: float | None = None


class ContentRepository(Protocol):
    """Async, fallible calls to the content-generation backend."""

    async def generate_story(self, hero_id: str, event: EventSpec, language: str) -> Story: ...

    async def generate_audio(self, story_id: str, language: str, voice: str) -> AudioResult: ...

    async def generate_illustrations(self, story_id: str) -> Story: ...

    async def fetch_story(self, story_id: str) -> Story: ...

    async def update_story(
        self,
        story_id: str,
        *,
        title: str | None = None,
        content: str | None = None,
        is_favorite: bool | None = None,
    ) -> Story: ...

    async def delete_story(self, story_id: str) -> None: ...


async def generate_story_audio(
    repository: ContentRepository,
    story: Story,
    language: str,
    voice: str,
) -> AudioResult:
    """Generate narration for *story* and attach it.

    Shared by the pipeline's audio stage and the player's play() fallback so
    both go through the same backend call.

    Raises:
        ContentServiceError: With kind unknown when the story was never synced,
            or whatever the repository raised.
    """
    if not story.backend_id:
        raise missing_backend_id("Story", "audio generation")
    result = await repository.generate_audio(story.backend_id, language, voice)
    story.attach_audio(result.audio_ref, result.duration)
    logger.info(
        "Attached audio to story %s (%s, %s)",
        story.id[:8],
        result.audio_ref,
        f"{result.duration:.1f}s" if result.duration else "duration unknown",
    )
    return result
