"""Illustration retry functions for GenerationCoordinator."""

import asyncio
import logging
from typing import TYPE_CHECKING

from src.memory.story_state import Illustration, IllustrationStatus, Story
from src.services.background_service import HOLD_ILLUSTRATION_GENERATION
from src.utils.error_mapping import classify_error
from src.utils.exceptions import ErrorKind

if TYPE_CHECKING:
    from . import GenerationCoordinator

logger = logging.getLogger(__name__)


def merge_illustrations(story: Story, generated: Story) -> None:
    """Fold the backend's illustration list into the local story.

    Slots keep their ids and retry history; every slot the backend reports as
    failed counts one more attempt and stays a placeholder.
    """
    story.replace_illustrations(generated.illustrations)
    for illustration in story.illustrations:
        if illustration.generation_status == IllustrationStatus.FAILED:
            illustration.record_failure(
                illustration.last_error or ErrorKind.SERVER_ERROR,
                illustration.last_error_message,
            )
    if generated.estimated_duration and not story.estimated_duration:
        story.estimated_duration = generated.estimated_duration


def _record_error(coord: "GenerationCoordinator", message: str) -> None:
    coord.illustration_errors.append(message)
    logger.error(message)


async def _regenerate(coord: "GenerationCoordinator", story: Story, purpose: str) -> None:
    """One backend illustration call, merged under the story's write lock."""
    if not story.backend_id:
        raise ValueError(f"Story {story.id} has no backend ID")
    coord.idle.disable_idle_timer(HOLD_ILLUSTRATION_GENERATION)
    try:
        async with coord.guard.exclusive(story, purpose):
            generated = await coord.repository.generate_illustrations(story.backend_id)
            merge_illustrations(story, generated)
    finally:
        coord.idle.enable_idle_timer(HOLD_ILLUSTRATION_GENERATION)


async def retry_illustration(
    coord: "GenerationCoordinator", story: Story, illustration: Illustration
) -> bool:
    """Reset one illustration and ask the backend to draw the story's scenes again.

    Raises:
        ValueError: If the illustration does not belong to the story.
    """
    index = story.illustration_index(illustration.id)
    if index is None:
        raise ValueError(f"Illustration {illustration.id} is not part of story {story.id}")

    if not story.backend_id:
        _record_error(coord, "Cannot retry - story not available")
        return False

    illustration.reset_error()
    illustration.retry_count = 0
    logger.info(
        "Retrying illustration #%d of story %s", illustration.display_order + 1, story.id[:8]
    )

    try:
        await _regenerate(coord, story, "illustration retry")
    except asyncio.CancelledError:
        raise
    except Exception as e:
        error = classify_error(e)
        illustration.record_failure(error.kind, error.user_message)
        _record_error(coord, f"Failed to retry illustration: {error.user_message}")
        return False

    refreshed = story.illustrations[index]
    if refreshed.is_placeholder:
        _record_error(
            coord, f"Illustration #{refreshed.display_order + 1} failed again"
        )
        return False
    return True


async def retry_all_failed_illustrations(coord: "GenerationCoordinator", story: Story) -> int:
    limit = coord.settings.illustration_retry_limit
    retryable = story.retryable_illustrations(limit)
    if not retryable:
        logger.info("No failed illustrations to retry")
        return 0

    if not story.backend_id:
        _record_error(coord, "Cannot retry - story not available")
        return 0

    orders = {ill.display_order for ill in retryable}
    logger.info("Retrying %d failed illustrations for story %s", len(orders), story.id[:8])

    try:
        await _regenerate(coord, story, "bulk illustration retry")
    except asyncio.CancelledError:
        raise
    except Exception as e:
        error = classify_error(e)
        for illustration in retryable:
            illustration.record_failure(error.kind, error.user_message)
        _record_error(coord, f"Failed to retry illustrations: {error.user_message}")
        return 0

    recovered = [
        ill for ill in story.illustrations if ill.display_order in orders and not ill.is_placeholder
    ]
    still_failed = len(orders) - len(recovered)
    if still_failed:
        _record_error(coord, f"{still_failed} illustrations still failed after retry")
    logger.info("Recovered %d of %d illustrations", len(recovered), len(orders))
    return len(recovered)
