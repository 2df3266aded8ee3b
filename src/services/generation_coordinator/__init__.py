"""Generation coordinator - runs the story -> audio -> illustrations pipeline.

This package provides GenerationCoordinator and GenerationEvent, split into
sub-modules along the lines of the work they do.

Sub-modules:
    _pipeline       - Session start, the three stages, retry, skip and cancel
    _illustrations  - Per-illustration retries after a run has finished
    _maintenance    - Audio regeneration, content edits and deletion
"""

import asyncio
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from src.memory.generation_state import FAILURE_POLICY, GenerationSession, GenerationStep
from src.memory.story_state import EventSpec, Hero, Illustration, Story
from src.services.background_service import BackgroundTaskIssuer, IdleTimerManager
from src.services.content_repository import ContentRepository
from src.services.network_monitor import NetworkMonitor
from src.services.story_guard import StoryGuard
from src.settings import Settings

from . import _illustrations, _maintenance, _pipeline

logger = logging.getLogger(__name__)

__all__ = ["GenerationCoordinator", "GenerationEvent"]


@dataclass
class GenerationEvent:
    """An event in the generation pipeline for UI updates."""

    event_type: str  # "session_start", "stage_start", "stage_complete", "stage_failed", ...
    step: GenerationStep | None
    message: str
    data: dict[str, Any] | None = None
    timestamp: datetime | None = None
    correlation_id: str | None = None
    progress: float | None = None  # Overall progress 0.0-1.0


class GenerationCoordinator:
    """Drives one generation session at a time and exposes its state.

    The session is only mutated from the coordinator's own task; callers read
    ``session`` and listen to ``events``.
    """

    def __init__(
        self,
        settings: Settings,
        repository: ContentRepository,
        background: BackgroundTaskIssuer | None = None,
        idle: IdleTimerManager | None = None,
        monitor: NetworkMonitor | None = None,
        guard: StoryGuard | None = None,
        connectivity_probe: Callable[[], Awaitable[bool]] | None = None,
        on_event: Callable[[GenerationEvent], None] | None = None,
    ):
        """Create a coordinator.

        Args:
            settings: Language, voice, illustration defaults and event history size.
            repository: Backend the stages call.
            background: Issuer of background continuation tokens; runs without one if omitted.
            idle: Idle-prevention holds; a private manager is created if omitted.
            monitor: Connectivity knowledge used to fail fast while offline.
            guard: Shared story write locks; must be the player's guard too.
            connectivity_probe: Re-checks the network when the monitor says offline.
            on_event: Called with every emitted GenerationEvent.
        """
        self.settings = settings
        self.repository = repository
        self.background = background
        self.idle = idle or IdleTimerManager()
        self.monitor = monitor
        self.guard = guard or StoryGuard()
        self.connectivity_probe = connectivity_probe
        self.on_event = on_event

        # Use deque with maxlen to prevent unbounded memory growth
        self.events: deque[GenerationEvent] = deque(maxlen=settings.event_history_size)
        self.session: GenerationSession | None = None
        # Messages for illustration retries and other post-run operations
        self.illustration_errors: list[str] = []
        self.last_error_message: str | None = None

        self._task: asyncio.Task[None] | None = None
        self._cancel_requested = False

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def can_retry_failed_step(self) -> bool:
        step = self.session.last_failed_step if self.session else None
        return step is not None and FAILURE_POLICY[step].retryable

    @property
    def can_skip_failed_step(self) -> bool:
        step = self.session.last_failed_step if self.session else None
        return step is not None and FAILURE_POLICY[step].skippable

    def _emit(
        self,
        event_type: str,
        step: GenerationStep | None,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> GenerationEvent:
        """Record a pipeline event and notify the listener."""
        session = self.session
        event = GenerationEvent(
            event_type=event_type,
            step=step,
            message=message,
            data=data or {},
            timestamp=datetime.now(),
            correlation_id=session.correlation_id if session else None,
            progress=session.progress if session else None,
        )
        self.events.append(event)
        if self.on_event:
            self.on_event(event)
        return event

    # ========== PIPELINE ==========

    async def start(
        self, hero: Hero, event: EventSpec, include_illustrations: bool | None = None
    ) -> GenerationSession:
        """Run a new session to completion, failure or cancellation.

        Args:
            hero: Hero the story is about; needs a backend id.
            event: Occasion the story is written for.
            include_illustrations: Defaults to settings.enable_illustrations.

        Returns:
            The session in its final stage.

        Raises:
            SessionActiveError: If another session is running.
        """
        return await _pipeline.start(self, hero, event, include_illustrations)

    async def retry_stage(self, step: GenerationStep | str) -> GenerationSession:
        """Re-run a failed audio or illustrations stage, reusing the story."""
        return await _pipeline.retry_stage(self, GenerationStep(step))

    def skip_stage(self, step: GenerationStep | str) -> GenerationSession:
        """Finish a session whose illustrations failed, without illustrations."""
        return _pipeline.skip_stage(self, GenerationStep(step))

    def cancel(self) -> bool:
        """Cancel the running session. Returns False when nothing was running."""
        return _pipeline.cancel(self)

    async def continue_from_failed_step(self) -> GenerationSession | None:
        return await _pipeline.continue_from_failed_step(self)

    def clear_error(self) -> None:
        _pipeline.clear_error(self)

    def _on_background_expired(self) -> None:
        _pipeline.on_background_expired(self)

    # ========== ILLUSTRATIONS ==========

    async def retry_illustration(self, story: Story, illustration: Illustration) -> bool:
        """Regenerate one failed illustration. Returns True if it now has an image."""
        return await _illustrations.retry_illustration(self, story, illustration)

    async def retry_all_failed_illustrations(self, story: Story) -> int:
        """Retry every placeholder under the retry limit.

        Returns:
            Number of illustrations that now have an image.
        """
        return await _illustrations.retry_all_failed_illustrations(self, story)

    def has_retryable_failed_illustrations(self, story: Story) -> bool:
        return bool(story.retryable_illustrations(self.settings.illustration_retry_limit))

    def failed_illustration_count(self, story: Story) -> int:
        return len(story.failed_illustrations())

    # ========== STORY MAINTENANCE ==========

    async def regenerate_audio(self, story: Story) -> None:
        """Regenerate narration for edited content.

        Raises:
            ContentServiceError: If the backend call fails.
        """
        await _maintenance.regenerate_audio(self, story)

    async def check_and_regenerate_audio_if_needed(self, story: Story) -> bool:
        """Regenerate audio when the story is flagged. Returns True if it ran and succeeded."""
        return await _maintenance.check_and_regenerate_audio_if_needed(self, story)

    async def update_story_content(self, story: Story, content: str) -> Story:
        return await _maintenance.update_story_content(self, story, content)

    async def delete_story(self, story: Story) -> bool:
        return await _maintenance.delete_story(self, story)
