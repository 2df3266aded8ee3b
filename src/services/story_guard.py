"""Exclusive write access to a Story's mutable fields.

The pipeline, bulk illustration retries and the player's audio fallback all
write audio and illustration fields. They take the story's lock for the whole
read-call-write sequence so two writers never interleave across an await.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from src.memory.story_state import Story

logger = logging.getLogger(__name__)


class StoryGuard:
    """One asyncio.Lock per story id."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, story: Story) -> asyncio.Lock:
        lock = self._locks.get(story.id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[story.id] = lock
        return lock

    def is_locked(self, story: Story) -> bool:
        lock = self._locks.get(story.id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def exclusive(self, story: Story, purpose: str = "") -> AsyncIterator[Story]:
        """Hold the story's write lock for the duration of the block."""
        lock = self._lock_for(story)
        if lock.locked():
            logger.debug("Waiting for story %s write lock (%s)", story.id[:8], purpose or "write")
        async with lock:
            yield story

    def forget(self, story: Story) -> None:
        """Drop the lock of a deleted story."""
        lock = self._locks.get(story.id)
        if lock is not None and not lock.locked():
            del self._locks[story.id]
