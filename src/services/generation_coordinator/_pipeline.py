"""Pipeline functions for GenerationCoordinator: stages, retry, skip and cancel."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING

from src.memory.generation_state import (
    FAILURE_POLICY,
    PROGRESS_AUDIO_DONE,
    PROGRESS_AUDIO_RETRY_STARTED,
    PROGRESS_ILLUSTRATIONS_RETRY_STARTED,
    PROGRESS_STORY_DONE,
    PROGRESS_STORY_STARTED,
    GenerationSession,
    GenerationStep,
    Running,
)
from src.memory.story_state import EventSpec, Hero
from src.services.background_service import (
    GENERATION_HOLDS,
    HOLD_AUDIO_GENERATION,
    HOLD_ILLUSTRATION_GENERATION,
    HOLD_STORY_GENERATION,
)
from src.services.content_repository import generate_story_audio
from src.utils.error_mapping import classify_error, missing_backend_id
from src.utils.exceptions import (
    ContentServiceError,
    ErrorKind,
    InvalidStageTransitionError,
    SessionActiveError,
)
from src.utils.logging_config import log_context, log_performance

from ._illustrations import merge_illustrations

if TYPE_CHECKING:
    from . import GenerationCoordinator

logger = logging.getLogger(__name__)


async def start(
    coord: "GenerationCoordinator",
    hero: Hero,
    event: EventSpec,
    include_illustrations: bool | None,
) -> GenerationSession:
    """Replace the current session with a new one and run it from the story stage."""
    if coord.is_running:
        raise SessionActiveError("A story is already being generated")

    if include_illustrations is None:
        include_illustrations = coord.settings.enable_illustrations

    session = GenerationSession(
        hero=hero, event=event, include_illustrations=include_illustrations
    )
    coord.session = session
    coord.illustration_errors.clear()
    coord.last_error_message = None
    logger.info(
        "Starting generation session %s: '%s' for %s (illustrations=%s)",
        session.correlation_id,
        event.title,
        hero.name,
        session.wants_illustrations,
    )
    coord._emit("session_start", None, f"Creating a {event.title} story for {hero.name}")

    await _execute(coord, session, GenerationStep.STORY)
    return session


async def retry_stage(coord: "GenerationCoordinator", step: GenerationStep) -> GenerationSession:
    """Re-run the failed stage and everything after it.

    Raises:
        SessionActiveError: If a run is in flight.
        InvalidStageTransitionError: If the step cannot be retried in place or
            is not the step the session failed at.
    """
    if coord.is_running:
        raise SessionActiveError("A story is already being generated")
    if not FAILURE_POLICY[step].retryable:
        raise InvalidStageTransitionError(
            f"{step.display_name} cannot be retried; start a new story instead", step=step
        )

    session = coord.session
    if session is None or session.last_failed_step != step:
        raise InvalidStageTransitionError(
            f"{step.display_name} has not failed; nothing to retry", step=step
        )

    if step == GenerationStep.AUDIO:
        progress = PROGRESS_AUDIO_RETRY_STARTED
    else:
        progress = PROGRESS_ILLUSTRATIONS_RETRY_STARTED

    coord.illustration_errors.clear()
    logger.info("Retrying %s for session %s", step, session.correlation_id)
    coord._emit("retry", step, f"Retrying {step.display_name.lower()}")

    await _execute(coord, session, step, progress)
    return session


def skip_stage(coord: "GenerationCoordinator", step: GenerationStep) -> GenerationSession:
    """Complete a session that failed at a skippable step.

    Raises:
        InvalidStageTransitionError: For required steps, or when the session
            did not fail at this step.
    """
    if not FAILURE_POLICY[step].skippable:
        raise InvalidStageTransitionError(
            f"{step.display_name} is required and cannot be skipped", step=step
        )

    session = coord.session
    if session is None or session.last_failed_step != step:
        raise InvalidStageTransitionError(
            f"{step.display_name} has not failed; nothing to skip", step=step
        )

    session.complete()
    logger.info("Session %s completed without %s", session.correlation_id, step)
    coord._emit("stage_skipped", step, f"Continuing without {step.value}")
    return session


def cancel(coord: "GenerationCoordinator") -> bool:
    task = coord._task
    if task is None or task.done():
        logger.debug("Cancel requested but no generation is running")
        return False

    coord._cancel_requested = True
    task.cancel()
    logger.info(
        "Cancelling generation session %s",
        coord.session.correlation_id if coord.session else "-",
    )
    return True


def on_background_expired(coord: "GenerationCoordinator") -> None:
    """Background grace period ran out: stop work and let the device sleep."""
    logger.warning("Background time expired during generation; cancelling")
    cancel(coord)
    coord.idle.release(GENERATION_HOLDS)


async def continue_from_failed_step(coord: "GenerationCoordinator") -> GenerationSession | None:
    """Retry whatever failed, or clear a story failure so the user can start over."""
    session = coord.session
    step = session.last_failed_step if session else None
    if step is None:
        logger.debug("No failed step to continue from")
        return session
    if step == GenerationStep.STORY:
        clear_error(coord)
        return session
    return await retry_stage(coord, step)


def clear_error(coord: "GenerationCoordinator") -> None:
    if coord.session is not None:
        coord.session.reset()
    coord.illustration_errors.clear()
    coord.last_error_message = None


async def _execute(
    coord: "GenerationCoordinator",
    session: GenerationSession,
    first_step: GenerationStep,
    first_progress: float | None = None,
) -> None:
    """Run the pipeline in its own task so cancel() can abandon the in-flight call."""
    coord._cancel_requested = False
    task = asyncio.create_task(
        _run(coord, session, first_step, first_progress),
        name=f"generation-{session.correlation_id}",
    )
    coord._task = task
    try:
        await task
    except asyncio.CancelledError:
        if not coord._cancel_requested:
            raise
        # The task may be cancelled before its first step ran
        session.reset()
        logger.info("Generation session %s cancelled", session.correlation_id)
    finally:
        if coord._task is task:
            coord._task = None


async def _run(
    coord: "GenerationCoordinator",
    session: GenerationSession,
    first_step: GenerationStep,
    first_progress: float | None,
) -> None:
    token = None
    if coord.background is not None:
        token = coord.background.begin(HOLD_STORY_GENERATION, coord._on_background_expired)
    coord.idle.disable_idle_timer(HOLD_STORY_GENERATION)

    try:
        with log_context(session.correlation_id):
            await _run_stages(coord, session, first_step, first_progress)
    except asyncio.CancelledError:
        step = session.stage.step if isinstance(session.stage, Running) else None
        session.reset()
        coord._emit("cancelled", step, "Generation cancelled")
        raise
    finally:
        coord.idle.release(GENERATION_HOLDS)
        if token is not None and coord.background is not None:
            coord.background.end(token)


async def _run_stages(
    coord: "GenerationCoordinator",
    session: GenerationSession,
    first_step: GenerationStep,
    first_progress: float | None,
) -> None:
    if first_step == GenerationStep.STORY:
        if not await _story_stage(coord, session):
            return
        first_progress = None

    if first_step in (GenerationStep.STORY, GenerationStep.AUDIO):
        if not await _audio_stage(coord, session, first_progress):
            return
        first_progress = None

    if session.wants_illustrations:
        if not await _illustration_stage(coord, session, first_progress):
            return
    elif session.include_illustrations:
        logger.info("Skipping illustrations: %s has no avatar", session.hero.name)
    else:
        logger.info("Skipping illustrations: not requested")

    session.complete()
    story = session.story
    logger.info("Generation session %s completed", session.correlation_id)
    coord._emit(
        "completed",
        None,
        f"'{story.title}' is ready" if story else "Story is ready",
        {"story": story.summary()} if story else None,
    )


async def _network_available(coord: "GenerationCoordinator") -> bool:
    monitor = coord.monitor
    if monitor is None or not monitor.known_offline:
        return True
    if coord.connectivity_probe is None:
        return False
    logger.info("Network was offline, re-checking before next stage")
    return await coord.connectivity_probe()


def _fail(
    coord: "GenerationCoordinator",
    session: GenerationSession,
    step: GenerationStep,
    error: ContentServiceError,
) -> None:
    session.fail(step, error)
    policy = FAILURE_POLICY[step]
    logger.error(
        "%s failed (%s): %s",
        step.display_name,
        error.kind,
        error.detail or error.user_message,
    )
    coord._emit(
        "stage_failed",
        step,
        error.user_message,
        {"kind": error.kind.value, "retryable": policy.retryable, "skippable": policy.skippable},
    )


async def _run_stage(
    coord: "GenerationCoordinator",
    session: GenerationSession,
    step: GenerationStep,
    operation: Callable[[], Awaitable[None]],
    hold: str | None = None,
) -> bool:
    """Run one stage's backend work, storing any failure on the session.

    Returns:
        True if the stage succeeded.
    """
    if not await _network_available(coord):
        _fail(
            coord,
            session,
            step,
            ContentServiceError(ErrorKind.NETWORK_UNAVAILABLE, "Network known to be unavailable"),
        )
        return False

    if hold:
        coord.idle.disable_idle_timer(hold)
    try:
        with log_performance(logger, f"{step.value}_generation"):
            await operation()
    except asyncio.CancelledError:
        raise
    except Exception as e:
        if not isinstance(e, ContentServiceError):
            logger.debug("%s raised %s", step, type(e).__name__, exc_info=True)
        _fail(coord, session, step, classify_error(e))
        return False
    finally:
        if hold:
            coord.idle.enable_idle_timer(hold)
    return True


async def _story_stage(coord: "GenerationCoordinator", session: GenerationSession) -> bool:
    step = GenerationStep.STORY
    session.enter(step, PROGRESS_STORY_STARTED)
    coord._emit("stage_start", step, "Creating your story...")

    async def generate() -> None:
        hero = session.hero
        if not hero.backend_id:
            raise missing_backend_id("Hero")
        story = await coord.repository.generate_story(
            hero.backend_id, session.event, coord.settings.language
        )
        if not story.content.strip():
            raise ContentServiceError(ErrorKind.UNKNOWN, "Backend returned a story without content")
        session.story = story

    if not await _run_stage(coord, session, step, generate):
        return False

    session.progress = PROGRESS_STORY_DONE
    title = session.story.title if session.story else ""
    coord._emit("stage_complete", step, f"Story '{title}' created")
    return True


async def _audio_stage(
    coord: "GenerationCoordinator", session: GenerationSession, progress: float | None = None
) -> bool:
    step = GenerationStep.AUDIO
    session.enter(step, progress)
    coord._emit("stage_start", step, "Recording the narration...")

    async def generate() -> None:
        story = session.story
        if story is None:
            raise ContentServiceError(ErrorKind.UNKNOWN, "No story to narrate")
        async with coord.guard.exclusive(story, "audio generation"):
            await generate_story_audio(
                coord.repository, story, coord.settings.language, coord.settings.voice
            )

    if not await _run_stage(coord, session, step, generate, HOLD_AUDIO_GENERATION):
        return False

    session.progress = PROGRESS_AUDIO_DONE
    coord._emit("stage_complete", step, "Narration ready")
    return True


async def _illustration_stage(
    coord: "GenerationCoordinator", session: GenerationSession, progress: float | None = None
) -> bool:
    step = GenerationStep.ILLUSTRATIONS
    session.enter(step, progress)
    coord._emit("stage_start", step, "Drawing the illustrations...")

    async def generate() -> None:
        story = session.story
        if story is None or not story.audio_ref:
            raise ContentServiceError(ErrorKind.UNKNOWN, "Illustrations need narration audio first")
        if not story.backend_id:
            raise missing_backend_id("Story", "illustration generation")
        async with coord.guard.exclusive(story, "illustration generation"):
            generated = await coord.repository.generate_illustrations(story.backend_id)
            merge_illustrations(story, generated)

    if not await _run_stage(coord, session, step, generate, HOLD_ILLUSTRATION_GENERATION):
        return False

    story = session.story
    total = len(story.illustrations) if story else 0
    failed = len(story.failed_illustrations()) if story else 0
    if failed:
        logger.warning("%d of %d illustrations failed and are shown as placeholders", failed, total)
    coord._emit(
        "stage_complete",
        step,
        f"{total - failed} of {total} illustrations ready",
        {"total": total, "failed": failed},
    )
    return True
