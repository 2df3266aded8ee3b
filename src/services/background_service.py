"""Background continuation tokens and idle-prevention holds.

A host that suspends the app grants bounded extra run time through a
BackgroundTaskIssuer; the pipeline begins a token before its first stage and
ends it exactly once when the run exits. IdleTimerManager keeps the device
awake while any named hold is active.
"""

import asyncio
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)

# Idle-prevention hold names
HOLD_STORY_GENERATION = "StoryGeneration"
HOLD_AUDIO_GENERATION = "AudioGeneration"
HOLD_ILLUSTRATION_GENERATION = "IllustrationGeneration"
HOLD_AUDIO_PLAYBACK = "AudioPlayback"

GENERATION_HOLDS = (HOLD_STORY_GENERATION, HOLD_AUDIO_GENERATION, HOLD_ILLUSTRATION_GENERATION)


@dataclass(eq=False)
class BackgroundToken:
    """Handle for one granted background continuation."""

    id: int
    name: str
    ended: bool = False
    expired: bool = False
    _handle: asyncio.TimerHandle | None = field(default=None, repr=False)


class BackgroundTaskIssuer(Protocol):
    """Grants extra run time while the host app is suspended."""

    def begin(self, name: str, on_expire: Callable[[], None]) -> BackgroundToken: ...

    def end(self, token: BackgroundToken) -> None: ...


class AsyncioBackgroundTaskIssuer:
    """Issuer that expires tokens after a fixed grace period on the running loop.

    on_expire runs once, from the event loop, if the token is still open when
    the grace period elapses. end() is idempotent.
    """

    def __init__(self, grace_seconds: float = 30.0):
        self.grace_seconds = grace_seconds
        self._ids = itertools.count(1)
        self._active: dict[int, BackgroundToken] = {}

    @property
    def active_tokens(self) -> list[BackgroundToken]:
        return list(self._active.values())

    def begin(self, name: str, on_expire: Callable[[], None]) -> BackgroundToken:
        token = BackgroundToken(id=next(self._ids), name=name)
        loop = asyncio.get_running_loop()
        token._handle = loop.call_later(self.grace_seconds, self._expire, token, on_expire)
        self._active[token.id] = token
        logger.debug("Background task %s #%d begun (%.0fs)", name, token.id, self.grace_seconds)
        return token

    def _expire(self, token: BackgroundToken, on_expire: Callable[[], None]) -> None:
        if token.ended:
            return
        token.expired = True
        logger.warning("Background task %s #%d expired", token.name, token.id)
        try:
            on_expire()
        finally:
            self.end(token)

    def end(self, token: BackgroundToken) -> None:
        if token.ended:
            logger.debug("Background task %s #%d already ended", token.name, token.id)
            return
        token.ended = True
        if token._handle is not None:
            token._handle.cancel()
        self._active.pop(token.id, None)
        logger.debug("Background task %s #%d ended", token.name, token.id)


class IdleTimerManager:
    """Reference-counted holds that keep the device from sleeping.

    The device may sleep only when no hold is active. The optional callback
    receives True when the first hold is taken and False when the last is
    released.
    """

    def __init__(self, on_change: Callable[[bool], None] | None = None):
        self._holds: set[str] = set()
        self._on_change = on_change

    @property
    def is_idle_timer_disabled(self) -> bool:
        return bool(self._holds)

    @property
    def active_holds(self) -> frozenset[str]:
        return frozenset(self._holds)

    def disable_idle_timer(self, reason: str) -> None:
        was_disabled = self.is_idle_timer_disabled
        self._holds.add(reason)
        logger.debug("Idle hold added: %s (active=%s)", reason, sorted(self._holds))
        if not was_disabled and self._on_change:
            self._on_change(True)

    def enable_idle_timer(self, reason: str) -> None:
        if reason not in self._holds:
            return
        self._holds.discard(reason)
        logger.debug("Idle hold released: %s (active=%s)", reason, sorted(self._holds))
        if not self._holds and self._on_change:
            self._on_change(False)

    def release(self, reasons: tuple[str, ...]) -> None:
        for reason in reasons:
            self.enable_idle_timer(reason)

    def release_all(self) -> None:
        self.release(tuple(self._holds))
