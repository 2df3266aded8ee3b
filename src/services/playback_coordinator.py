"""Playback coordinator - transport, story queue and the time-update loop.

The engine is the source of truth for position: every write of
current_time/duration/is_playing on the session comes from one engine
snapshot taken in _refresh_from_engine().
"""

import asyncio
import logging
from collections.abc import Callable, Coroutine, Sequence
from typing import Any

from src.memory.playback_state import PlaybackSession
from src.memory.story_state import Illustration, Story
from src.services.background_service import HOLD_AUDIO_PLAYBACK, IdleTimerManager
from src.services.content_repository import ContentRepository, generate_story_audio
from src.services.illustration_sync import IllustrationSyncEngine
from src.services.playback_engine import NowPlayingMetadata, PlaybackEngine, TrackCommand
from src.services.story_guard import StoryGuard
from src.settings import MAX_PLAYBACK_SPEED, MIN_PLAYBACK_SPEED, Settings
from src.utils.error_mapping import classify_error
from src.utils.exceptions import PlaybackError

logger = logging.getLogger(__name__)


class PlaybackCoordinator:
    """Plays stories one at a time or from a queue and keeps the carousel in sync."""

    def __init__(
        self,
        settings: Settings,
        engine: PlaybackEngine,
        repository: ContentRepository,
        guard: StoryGuard | None = None,
        idle: IdleTimerManager | None = None,
        sync: IllustrationSyncEngine | None = None,
        on_update: Callable[[PlaybackSession], None] | None = None,
    ):
        """Create a coordinator and register for the engine's track commands.

        Args:
            settings: Tick interval, previous-track threshold, skip interval and speed.
            engine: Audio engine to drive.
            repository: Backend used when a story needs audio before it can play.
            guard: Story write locks shared with the generation coordinator.
            idle: Idle-prevention holds; a private manager is created if omitted.
            sync: Carousel sync engine; a private one is created if omitted.
            on_update: Called with a session snapshot after every change.
        """
        self.settings = settings
        self.engine = engine
        self.repository = repository
        self.guard = guard or StoryGuard()
        self.idle = idle or IdleTimerManager()
        self.sync = sync or IllustrationSyncEngine()
        self.on_update = on_update

        self.session = PlaybackSession(playback_speed=settings.default_playback_speed)
        self._tick_task: asyncio.Task[None] | None = None
        self._command_tasks: set[asyncio.Task[Any]] = set()

        engine.set_command_handler(self._on_track_command)

    def snapshot(self) -> PlaybackSession:
        return self.session.copy()

    def _notify(self) -> None:
        if self.on_update:
            self.on_update(self.snapshot())

    def _refresh_from_engine(self) -> None:
        """Copy one consistent engine snapshot into the session."""
        is_playing = self.engine.is_playing
        current_time = self.engine.current_time
        duration = self.engine.duration

        session = self.session
        session.is_playing = is_playing
        session.current_time = current_time
        session.duration = duration
        self.sync.update(current_time)

    # ========== TIME UPDATES ==========

    def tick(self) -> bool:
        """Run one time update.

        Returns:
            True while the engine is still playing.
        """
        self._refresh_from_engine()
        self._notify()
        if not self.session.is_playing:
            self.idle.enable_idle_timer(HOLD_AUDIO_PLAYBACK)
            return False
        return True

    async def _tick_loop(self) -> None:
        interval = self.settings.playback_tick_interval
        logger.debug("Time updates started (every %.2fs)", interval)
        while True:
            await asyncio.sleep(interval)
            if not self.tick():
                logger.debug("Time updates stopped: playback ended")
                return

    def _start_ticking(self) -> None:
        if self._tick_task is None or self._tick_task.done():
            self._tick_task = asyncio.create_task(self._tick_loop(), name="playback-tick")

    def _stop_ticking(self) -> None:
        task = self._tick_task
        # The loop ends by itself when a command arrives from inside a tick
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._tick_task = None

    # ========== TRANSPORT ==========

    async def play(self, story: Story) -> bool:
        """Play *story*, generating its audio first if it is missing or stale.

        Failures are reported through ``session.playback_error``; the previous
        story stays loaded and the carousel keeps following it.

        Returns:
            True if the engine started.
        """
        session = self.session
        session.playback_error = None

        if not story.has_playable_audio:
            logger.info("Story %s has no current audio; generating before playback", story.id[:8])
            try:
                async with self.guard.exclusive(story, "playback audio"):
                    # Another writer may have produced it while we waited
                    if not story.has_playable_audio:
                        await generate_story_audio(
                            self.repository,
                            story,
                            self.settings.language,
                            self.settings.voice,
                        )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                error = classify_error(e)
                session.playback_error = f"Failed to generate audio: {error.user_message}"
                logger.error("Audio generation for playback failed: %s", error.user_message)
                self._notify()
                return False

        try:
            self.engine.play(story.audio_ref or "", NowPlayingMetadata.for_story(story))
        except PlaybackError as e:
            session.playback_error = f"Failed to play audio: {e}"
            logger.error("Engine refused story %s: %s", story.id[:8], e)
            self._notify()
            return False

        self.engine.set_speed(session.playback_speed)
        # Bound only once the engine has accepted the new audio
        session.current_story = story
        self.sync.configure(story)
        story.record_play()
        self.idle.disable_idle_timer(HOLD_AUDIO_PLAYBACK)
        self._refresh_from_engine()
        self._start_ticking()
        self._notify()
        logger.info("Playing story '%s' (play #%d)", story.title, story.play_count)
        return True

    def pause(self) -> None:
        self.engine.pause()
        self._stop_ticking()
        self.idle.enable_idle_timer(HOLD_AUDIO_PLAYBACK)
        self._refresh_from_engine()
        self._notify()

    def resume(self) -> None:
        if self.session.current_story is None:
            logger.debug("Resume ignored: nothing loaded")
            return
        self.engine.resume()
        self.idle.disable_idle_timer(HOLD_AUDIO_PLAYBACK)
        self._refresh_from_engine()
        self._start_ticking()
        self._notify()

    def stop(self) -> None:
        self.engine.stop()
        self._stop_ticking()
        self.idle.enable_idle_timer(HOLD_AUDIO_PLAYBACK)
        self._refresh_from_engine()
        self._notify()

    def toggle_play_pause(self) -> None:
        if self.session.is_playing:
            self.pause()
        elif self.session.is_paused:
            self.resume()

    def _seek_engine(self, time: float) -> None:
        target = min(max(time, 0.0), self.engine.duration)
        self.engine.seek(target)
        self._refresh_from_engine()

    def seek(self, time: float) -> None:
        """Jump to *time* (clamped to the track) and put the carousel back on auto."""
        self._seek_engine(time)
        self.sync.resume_auto(self.session.current_time)
        self._notify()

    def skip_forward(self, seconds: float | None = None) -> None:
        seconds = seconds if seconds is not None else self.settings.skip_interval_seconds
        self._refresh_from_engine()
        self.seek(min(self.session.current_time + seconds, self.session.duration))

    def skip_backward(self, seconds: float | None = None) -> None:
        seconds = seconds if seconds is not None else self.settings.skip_interval_seconds
        self._refresh_from_engine()
        self.seek(max(self.session.current_time - seconds, 0.0))

    def set_speed(self, rate: float) -> None:
        """Set the playback rate.

        Raises:
            ValueError: If rate is outside the supported range.
        """
        if not MIN_PLAYBACK_SPEED <= rate <= MAX_PLAYBACK_SPEED:
            raise ValueError(
                f"Playback speed must be between {MIN_PLAYBACK_SPEED} and "
                f"{MAX_PLAYBACK_SPEED}, got {rate}"
            )
        self.session.playback_speed = rate
        self.engine.set_speed(rate)
        self._notify()

    def clear_error(self) -> None:
        self.session.playback_error = None
        self._notify()

    # ========== QUEUE ==========

    def setup_queue(self, stories: Sequence[Story], start_index: int = 0) -> None:
        """Enter queue mode with *stories*, positioned at start_index.

        Raises:
            IndexError: If start_index is outside a non-empty list.
        """
        if stories and not 0 <= start_index < len(stories):
            raise IndexError(f"Queue start index {start_index} out of range")
        session = self.session
        session.queue = list(stories)
        session.queue_index = start_index if stories else 0
        session.is_queue_mode = True
        session.current_story = session.queue[start_index] if stories else None
        logger.info("Queue set up with %d stories at index %d", len(stories), session.queue_index)
        self._notify()

    def clear_queue(self) -> None:
        session = self.session
        session.queue = []
        session.queue_index = 0
        session.is_queue_mode = False
        self._notify()

    async def play_next(self) -> bool:
        session = self.session
        if not session.is_queue_mode or session.queue_index >= len(session.queue) - 1:
            logger.debug("No next story in queue")
            return False
        session.queue_index += 1
        self.stop()
        return await self.play(session.queue[session.queue_index])

    async def play_previous(self) -> bool:
        """Go to the previous story, or restart this one.

        Within the first ``previous_track_threshold`` seconds of a queued story
        that is not the first, the previous story plays; otherwise the current
        one restarts from 0.
        """
        session = self.session
        if not session.is_queue_mode:
            self.seek(0.0)
            return False

        self._refresh_from_engine()
        within_threshold = session.current_time < self.settings.previous_track_threshold
        if within_threshold and session.queue_index > 0:
            session.queue_index -= 1
            self.stop()
            return await self.play(session.queue[session.queue_index])

        self.seek(0.0)
        return False

    # ========== CAROUSEL ==========

    def seek_to_illustration(self, illustration: Illustration) -> None:
        """Jump the narration to a tapped scene; the carousel stays manual until the next seek."""
        self.seek(illustration.timestamp)
        self.sync.move_to_illustration(illustration)
        self._notify()

    def on_carousel_swipe(self, index: int, seek_audio: bool = True) -> None:
        """The user swiped to *index*; optionally move the narration there too."""
        self.sync.move_to_index(index)
        if seek_audio:
            self._seek_engine(self.sync.time_for_index(index))
        self._notify()

    def next_illustration(self) -> bool:
        """Step the carousel forward; while narrating, the audio follows."""
        return self._step_illustration(self.sync.move_to_next)

    def previous_illustration(self) -> bool:
        return self._step_illustration(self.sync.move_to_previous)

    def _step_illustration(self, move: Callable[[], bool]) -> bool:
        if not move():
            return False
        if self.engine.is_playing:
            self._seek_engine(self.sync.time_for_index(self.sync.active_index or 0))
        self._notify()
        return True

    # ========== ENGINE COMMANDS ==========

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._command_tasks.add(task)
        task.add_done_callback(self._on_command_done)

    def _on_command_done(self, task: asyncio.Task[Any]) -> None:
        self._command_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Track command failed: %s", task.exception())

    def _on_track_command(self, command: TrackCommand) -> None:
        logger.debug("Track command: %s", command)
        if command == TrackCommand.FINISHED:
            self._handle_finished()
        elif command == TrackCommand.NEXT:
            self._spawn(self.play_next())
        elif command == TrackCommand.PREVIOUS:
            self._spawn(self.play_previous())

    def _handle_finished(self) -> None:
        story = self.session.current_story
        logger.info("Finished playing '%s'", story.title if story else "-")
        self._stop_ticking()
        self.idle.enable_idle_timer(HOLD_AUDIO_PLAYBACK)
        self._refresh_from_engine()
        self._notify()
        if self.settings.queue_auto_advance and self.session.has_next:
            self._spawn(self.play_next())

    async def wait_for_commands(self) -> None:
        """Wait until commands already dispatched from the engine have finished."""
        while self._command_tasks:
            await asyncio.gather(*list(self._command_tasks), return_exceptions=True)

    async def close(self) -> None:
        """Stop playback and cancel background tasks."""
        self.engine.set_command_handler(None)
        tasks = list(self._command_tasks)
        if self._tick_task is not None:
            tasks.append(self._tick_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tick_task = None
        self.engine.stop()
        self.idle.enable_idle_timer(HOLD_AUDIO_PLAYBACK)
        logger.debug("Playback coordinator closed")
