"""Audio playback engine boundary.

PlaybackCoordinator drives any object satisfying PlaybackEngine. The engine
reports transport commands (remote next/previous, end of track) through one
registered callback instead of a delegate object.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from src.memory.story_state import Story
from src.utils.exceptions import PlaybackError

logger = logging.getLogger(__name__)


class TrackCommand(StrEnum):
    """Commands an engine sends back to the coordinator."""

    NEXT = "next"
    PREVIOUS = "previous"
    FINISHED = "finished"


CommandHandler = Callable[[TrackCommand], None]


@dataclass(frozen=True)
class NowPlayingMetadata:
    """What the system media controls show for the current story."""

    title: str
    duration: float = 0.0
    artwork_ref: str | None = None

    @classmethod
    def for_story(cls, story: Story) -> "NowPlayingMetadata":
        artwork = next((ill.image_ref for ill in story.illustrations if ill.is_generated), None)
        return cls(title=story.title, duration=story.estimated_duration, artwork_ref=artwork)


class PlaybackEngine(Protocol):
    """Plays one audio reference at a time."""

    @property
    def is_playing(self) -> bool: ...

    @property
    def current_time(self) -> float: ...

    @property
    def duration(self) -> float: ...

    def play(self, audio_ref: str, metadata: NowPlayingMetadata) -> None:
        """Load and start *audio_ref*.

        Raises:
            PlaybackError: If the audio cannot be loaded.
        """
        ...

    def pause(self) -> None: ...

    def resume(self) -> None: ...

    def stop(self) -> None: ...

    def seek(self, time: float) -> None: ...

    def set_speed(self, rate: float) -> None: ...

    def set_command_handler(self, handler: CommandHandler | None) -> None: ...


class SimulatedPlaybackEngine:
    """Engine that advances a clock instead of producing sound.

    Used by the command-line player and the tests. Position is derived from
    the clock on every read; reaching the end stops playback, rewinds to 0
    and sends FINISHED once.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._handler: CommandHandler | None = None
        self._audio_ref: str | None = None
        self._metadata: NowPlayingMetadata | None = None
        self._duration = 0.0
        self._position = 0.0
        self._anchor = 0.0
        self._speed = 1.0
        self._playing = False

    @property
    def audio_ref(self) -> str | None:
        return self._audio_ref

    @property
    def metadata(self) -> NowPlayingMetadata | None:
        return self._metadata

    @property
    def speed(self) -> float:
        return self._speed

    @property
    def is_playing(self) -> bool:
        self._advance()
        return self._playing

    @property
    def current_time(self) -> float:
        self._advance()
        return self._position

    @property
    def duration(self) -> float:
        return self._duration

    def set_command_handler(self, handler: CommandHandler | None) -> None:
        self._handler = handler

    def send_command(self, command: TrackCommand) -> None:
        """Deliver a transport command as the system media controls would."""
        logger.debug("Engine command: %s", command)
        if self._handler is not None:
            self._handler(command)

    def _advance(self) -> None:
        if not self._playing:
            return
        now = self._clock()
        self._position += (now - self._anchor) * self._speed
        self._anchor = now
        if self._position >= self._duration:
            logger.debug("Reached end of %s", self._audio_ref)
            self._playing = False
            self._position = 0.0
            self.send_command(TrackCommand.FINISHED)

    def play(self, audio_ref: str, metadata: NowPlayingMetadata) -> None:
        if not audio_ref:
            raise PlaybackError("No audio to play")
        if metadata.duration <= 0:
            raise PlaybackError(f"Cannot play {audio_ref}: unknown duration")
        self._audio_ref = audio_ref
        self._metadata = metadata
        self._duration = metadata.duration
        self._position = 0.0
        self._anchor = self._clock()
        self._playing = True
        logger.info("Playing '%s' (%.1fs) from %s", metadata.title, metadata.duration, audio_ref)

    def pause(self) -> None:
        self._advance()
        self._playing = False

    def resume(self) -> None:
        if self._audio_ref is None or self._playing:
            return
        self._anchor = self._clock()
        self._playing = True

    def stop(self) -> None:
        self._playing = False
        self._position = 0.0

    def seek(self, time: float) -> None:
        self._advance()
        self._position = min(max(time, 0.0), self._duration)
        self._anchor = self._clock()

    def set_speed(self, rate: float) -> None:
        self._advance()
        self._speed = rate
