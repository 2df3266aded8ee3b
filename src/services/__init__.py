"""Services layer - generation, playback and the backend they talk to.

This module wires the coordinators to one shared set of collaborators: a
single StoryGuard, IdleTimerManager and NetworkMonitor, so the generation
pipeline and the player see the same locks, holds and connectivity state.
"""

import logging
import time
from dataclasses import dataclass

from src.settings import Settings

from .background_service import AsyncioBackgroundTaskIssuer, IdleTimerManager
from .content_api import HttpContentRepository
from .content_repository import ContentRepository
from .generation_coordinator import GenerationCoordinator, GenerationEvent
from .illustration_sync import IllustrationSyncEngine
from .network_monitor import NetworkMonitor
from .playback_coordinator import PlaybackCoordinator
from .playback_engine import PlaybackEngine, SimulatedPlaybackEngine
from .story_guard import StoryGuard

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Dependency injection container for all services.

    Usage:
        settings = Settings.load()
        services = ServiceContainer(settings, engine=SimulatedPlaybackEngine())

        session = await services.generation.start(hero, EventSpec.from_event(StoryEvent.BEDTIME))
        await services.playback.play(session.story)
        await services.aclose()
    """

    settings: Settings
    monitor: NetworkMonitor
    repository: ContentRepository
    background: AsyncioBackgroundTaskIssuer
    idle: IdleTimerManager
    guard: StoryGuard
    sync: IllustrationSyncEngine
    generation: GenerationCoordinator
    playback: PlaybackCoordinator

    def __init__(
        self,
        settings: Settings | None = None,
        engine: PlaybackEngine | None = None,
        repository: ContentRepository | None = None,
    ):
        """Create and wire service instances that share a Settings object.

        Args:
            settings: Application settings; loaded via Settings.load() if omitted.
            engine: Audio engine for the player; a SimulatedPlaybackEngine if omitted.
            repository: Content backend; an HttpContentRepository if omitted.
        """
        t0 = time.perf_counter()
        logger.info("Initializing ServiceContainer...")
        self.settings = settings or Settings.load()
        self.monitor = NetworkMonitor()
        self.repository = repository or HttpContentRepository(self.settings, self.monitor)
        self.background = AsyncioBackgroundTaskIssuer(self.settings.background_task_grace_seconds)
        self.idle = IdleTimerManager()
        self.guard = StoryGuard()
        self.sync = IllustrationSyncEngine()

        probe = None
        if isinstance(self.repository, HttpContentRepository):
            probe = self.repository.check_connectivity

        self.generation = GenerationCoordinator(
            self.settings,
            self.repository,
            background=self.background,
            idle=self.idle,
            monitor=self.monitor,
            guard=self.guard,
            connectivity_probe=probe,
        )
        self.playback = PlaybackCoordinator(
            self.settings,
            engine or SimulatedPlaybackEngine(),
            self.repository,
            guard=self.guard,
            idle=self.idle,
            sync=self.sync,
        )
        logger.info("ServiceContainer initialized in %.2fs", time.perf_counter() - t0)

    async def aclose(self) -> None:
        """Stop playback, cancel generation and close the backend client."""
        self.generation.cancel()
        await self.playback.close()
        if isinstance(self.repository, HttpContentRepository):
            await self.repository.aclose()


__all__ = [
    "ContentRepository",
    "GenerationCoordinator",
    "GenerationEvent",
    "HttpContentRepository",
    "IllustrationSyncEngine",
    "NetworkMonitor",
    "PlaybackCoordinator",
    "ServiceContainer",
    "SimulatedPlaybackEngine",
    "StoryGuard",
]
