"""Keeps the illustration carousel in step with the narration clock.

In auto mode the active illustration is the last one whose timestamp has been
reached. A swipe switches to manual mode, which ignores the clock until the
next explicit seek.
"""

import logging
from bisect import bisect_right
from collections.abc import Callable, Sequence
from dataclasses import replace

from src.memory.playback_state import IllustrationSyncState, SyncMode
from src.memory.story_state import Illustration, Story

logger = logging.getLogger(__name__)


class IllustrationSyncEngine:
    """Maps playback time to the active illustration index."""

    def __init__(self, on_change: Callable[[IllustrationSyncState], None] | None = None):
        self._story: Story | None = None
        self._state = IllustrationSyncState()
        self._time = 0.0
        self.on_change = on_change

    @staticmethod
    def index_for_time(time: float, illustrations: Sequence[Illustration]) -> int | None:
        """Index of the last illustration whose timestamp is <= time.

        Returns:
            None when there are no illustrations or time precedes the first one.
        """
        if not illustrations:
            return None
        timestamps = sorted(ill.timestamp for ill in illustrations)
        position = bisect_right(timestamps, time)
        return position - 1 if position > 0 else None

    @property
    def state(self) -> IllustrationSyncState:
        return replace(self._state)

    @property
    def mode(self) -> SyncMode:
        return self._state.mode

    @property
    def active_index(self) -> int | None:
        return self._state.active_index

    @property
    def illustrations(self) -> list[Illustration]:
        return self._story.illustrations if self._story else []

    @property
    def current_illustration(self) -> Illustration | None:
        index = self._state.active_index
        illustrations = self.illustrations
        if index is None or index >= len(illustrations):
            return None
        return illustrations[index]

    @property
    def progress_to_next(self) -> float:
        """Fraction of the way from the active scene to the next one, 0.0 to 1.0.

        Read from the live illustration list and the last clock time seen, so it
        is 0.0 on the final scene or when two scenes share a timestamp.
        """
        index = self._state.active_index
        illustrations = self.illustrations
        if index is None or index + 1 >= len(illustrations):
            return 0.0
        start = illustrations[index].timestamp
        span = illustrations[index + 1].timestamp - start
        if span <= 0:
            return 0.0
        return min(1.0, max(0.0, (self._time - start) / span))

    def _publish(self, mode: SyncMode, index: int | None) -> None:
        if mode == self._state.mode and index == self._state.active_index:
            return
        self._state = IllustrationSyncState(mode=mode, active_index=index)
        logger.debug("Illustration sync: mode=%s index=%s", mode, index)
        if self.on_change:
            self.on_change(self.state)

    def configure(self, story: Story | None) -> None:
        """Follow a new story from its first illustration in auto mode."""
        self._story = story
        self._time = 0.0
        self._publish(SyncMode.AUTO, 0 if story and story.illustrations else None)

    def reset(self) -> None:
        self.configure(None)

    def update(self, time: float) -> None:
        """Clock tick; ignored in manual mode."""
        self._time = time
        if self._state.mode != SyncMode.AUTO:
            return
        index = self.index_for_time(time, self.illustrations)
        if index is not None:
            self._publish(SyncMode.AUTO, index)

    def resume_auto(self, time: float) -> None:
        """Return to auto mode after a seek and jump to the matching scene."""
        self._time = time
        index = self.index_for_time(time, self.illustrations)
        if index is None:
            index = self._state.active_index
        self._publish(SyncMode.AUTO, index)

    def move_to_index(self, index: int) -> None:
        """Show illustration *index* and stop following the clock.

        Raises:
            IndexError: If index is outside the story's illustrations.
        """
        if not 0 <= index < len(self.illustrations):
            raise IndexError(f"Illustration index {index} out of range")
        self._publish(SyncMode.MANUAL, index)

    def move_to_next(self) -> bool:
        """Step the carousel one scene forward in manual mode.

        Returns:
            False when already on the last scene.
        """
        index = self._state.active_index
        if index is None or index + 1 >= len(self.illustrations):
            return False
        self.move_to_index(index + 1)
        return True

    def move_to_previous(self) -> bool:
        index = self._state.active_index
        if index is None or index == 0:
            return False
        self.move_to_index(index - 1)
        return True

    def move_to_illustration(self, illustration: Illustration) -> None:
        """Raises ValueError if the illustration is not in the current story."""
        index = self._story.illustration_index(illustration.id) if self._story else None
        if index is None:
            raise ValueError(f"Illustration {illustration.id} is not in the current story")
        self.move_to_index(index)

    def time_for_index(self, index: int) -> float:
        """Narration time at which illustration *index* starts."""
        illustrations = self.illustrations
        if not 0 <= index < len(illustrations):
            raise IndexError(f"Illustration index {index} out of range")
        return illustrations[index].timestamp
