"""Story maintenance functions for GenerationCoordinator.

Edits, audio regeneration and deletion of stories that already finished the
pipeline. These run outside a session and report failures through
``coord.last_error_message`` or by raising ContentServiceError.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from src.memory.story_state import Story
from src.services.background_service import HOLD_AUDIO_GENERATION
from src.services.content_repository import generate_story_audio
from src.utils.error_mapping import classify_error
from src.utils.exceptions import ContentServiceError

if TYPE_CHECKING:
    from . import GenerationCoordinator

logger = logging.getLogger(__name__)


async def regenerate_audio(coord: "GenerationCoordinator", story: Story) -> None:
    """Throw away stale narration and generate it again for the current text.

    Raises:
        ContentServiceError: Classified backend failure; the story is left
            without audio and unflagged, so play() will generate it on demand.
    """
    coord.idle.disable_idle_timer(HOLD_AUDIO_GENERATION)
    try:
        async with coord.guard.exclusive(story, "audio regeneration"):
            story.audio_ref = None
            story.clear_audio_regeneration_flag()
            await generate_story_audio(
                coord.repository, story, coord.settings.language, coord.settings.voice
            )
    except asyncio.CancelledError:
        raise
    except Exception as e:
        error = classify_error(e)
        logger.error("Audio regeneration failed for story %s: %s", story.id[:8], error.user_message)
        raise error from e
    finally:
        coord.idle.enable_idle_timer(HOLD_AUDIO_GENERATION)
    logger.info("Audio regenerated for story %s", story.id[:8])


async def check_and_regenerate_audio_if_needed(
    coord: "GenerationCoordinator", story: Story
) -> bool:
    if not story.audio_needs_regeneration:
        return False
    try:
        await regenerate_audio(coord, story)
    except ContentServiceError as e:
        coord.last_error_message = f"Failed to regenerate audio: {e.user_message}"
        return False
    return True


async def update_story_content(
    coord: "GenerationCoordinator", story: Story, content: str
) -> Story:
    """Edit the story text locally and on the backend.

    Existing audio is flagged for regeneration; the backend copy is only
    patched when the story has been synced.

    Raises:
        ContentServiceError: If the backend update fails. The local edit is kept.
    """
    if not story.update_content(content):
        logger.debug("Story %s content unchanged", story.id[:8])
        return story

    if not story.backend_id:
        logger.warning("Story %s edited locally only: no backend ID", story.id[:8])
        return story

    try:
        await coord.repository.update_story(story.backend_id, content=content)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        raise classify_error(e) from e
    return story


async def delete_story(coord: "GenerationCoordinator", story: Story) -> bool:
    """Delete the story on the backend.

    Returns:
        False (with last_error_message set) if it has no backend id or the call failed.
    """
    if not story.backend_id:
        coord.last_error_message = "Failed to delete story: Story has no backend ID"
        logger.error("Cannot delete story %s: no backend ID", story.id[:8])
        return False

    try:
        await coord.repository.delete_story(story.backend_id)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        error = classify_error(e)
        coord.last_error_message = f"Failed to delete story: {error.user_message}"
        logger.error("Failed to delete story %s: %s", story.id[:8], error.user_message)
        return False

    coord.guard.forget(story)
    logger.info("Deleted story %s", story.id[:8])
    return True
