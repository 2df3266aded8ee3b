"""Playback and illustration-sync session state."""

from dataclasses import dataclass, field, replace
from enum import StrEnum

from src.memory.story_state import Story


class SyncMode(StrEnum):
    """Whether the carousel follows the audio clock or the user's last swipe."""

    AUTO = "auto"
    MANUAL = "manual"


@dataclass
class IllustrationSyncState:
    mode: SyncMode = SyncMode.AUTO
    active_index: int | None = None


@dataclass
class PlaybackSession:
    """Transport state of the player plus its story queue.

    current_time, duration and is_playing are always written together from
    one engine snapshot.
    """

    current_story: Story | None = None
    current_time: float = 0.0
    duration: float = 0.0
    is_playing: bool = False
    playback_speed: float = 1.0
    queue: list[Story] = field(default_factory=list)
    queue_index: int = 0
    is_queue_mode: bool = False
    playback_error: str | None = None

    @property
    def is_paused(self) -> bool:
        return self.duration > 0 and not self.is_playing and self.current_time > 0

    @property
    def has_next(self) -> bool:
        return self.is_queue_mode and self.queue_index < len(self.queue) - 1

    @property
    def has_previous(self) -> bool:
        return self.is_queue_mode and self.queue_index > 0

    def copy(self) -> "PlaybackSession":
        """Shallow copy for read-only snapshots (stories are shared references)."""
        return replace(self, queue=list(self.queue))
