"""Pytest fixtures for Bedtime Stories tests."""

import logging
from collections.abc import Callable
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.memory.story_state import (
    EventSpec,
    Hero,
    Illustration,
    IllustrationStatus,
    Story,
    StoryEvent,
)
from src.services.content_repository import AudioResult
from src.services.playback_engine import NowPlayingMetadata, TrackCommand
from src.settings import Settings
from src.utils.exceptions import PlaybackError


@pytest.fixture(autouse=True, scope="function")
def cleanup_production_log_handlers():
    """Remove file handlers pointing to the production log after each test.

    Tests that call setup_logging() with the default file would otherwise
    leave handlers writing to logs/bedtime_stories.log.
    """
    yield

    root_logger = logging.getLogger()
    production_log_name = "bedtime_stories.log"

    handlers_to_remove = []
    for handler in root_logger.handlers:
        if isinstance(handler, logging.FileHandler):
            if hasattr(handler, "baseFilename") and production_log_name in handler.baseFilename:
                handlers_to_remove.append(handler)

    for handler in handlers_to_remove:
        handler.close()
        root_logger.removeHandler(handler)


@pytest.fixture(autouse=True)
def clear_settings_cache_per_test():
    """Clear Settings cache before each test to ensure isolation.

    This is autouse because caching can cause test pollution when tests
    modify settings or patch SETTINGS_FILE to different paths.
    """
    Settings.clear_cache()
    yield
    Settings.clear_cache()


@pytest.fixture(autouse=True)
def isolate_settings_file(tmp_path, monkeypatch):
    """Redirect SETTINGS_FILE so no test reads or writes src/settings.json.

    The Settings class imports the path by name, so it is patched where it is used.
    """
    import src.settings._settings as settings_module

    settings_file = tmp_path / "settings.json"
    monkeypatch.setattr(settings_module, "SETTINGS_FILE", settings_file)
    yield settings_file


@pytest.fixture
def tmp_settings() -> Settings:
    """Default settings without loading from the settings.json file."""
    settings = Settings()
    settings.validate()
    return settings


@pytest.fixture
def hero() -> Hero:
    return Hero(backend_id="hero-1", name="Luna", avatar_ref="https://cdn.example/luna.png")


@pytest.fixture
def hero_without_avatar() -> Hero:
    return Hero(backend_id="hero-2", name="Max")


@pytest.fixture
def bedtime() -> EventSpec:
    return EventSpec.from_event(StoryEvent.BEDTIME)


def make_illustration(
    order: int,
    timestamp: float,
    status: IllustrationStatus = IllustrationStatus.GENERATED,
    **kwargs,
) -> Illustration:
    """Build an illustration; generated ones get an image URL."""
    image_ref = kwargs.pop(
        "image_ref",
        f"https://cdn.example/scene-{order}.png" if status == IllustrationStatus.GENERATED else None,
    )
    return Illustration(
        display_order=order,
        timestamp=timestamp,
        generation_status=status,
        image_ref=image_ref,
        scene_description=kwargs.pop("scene_description", f"Scene {order + 1}"),
        **kwargs,
    )


def make_story(**kwargs) -> Story:
    """Build a synced story with sensible defaults."""
    defaults = {
        "backend_id": "story-1",
        "hero_id": "hero-1",
        "title": "Luna and the Sleepy Moon",
        "content": "Once upon a time, Luna found a moon that could not sleep.",
        "event_type": "bedtime",
        "estimated_duration": 60.0,
    }
    defaults.update(kwargs)
    return Story(**defaults)


@pytest.fixture
def story_factory() -> Callable[..., Story]:
    return make_story


@pytest.fixture
def illustration_factory() -> Callable[..., Illustration]:
    return make_illustration


@pytest.fixture
def mock_repository() -> AsyncMock:
    """ContentRepository double whose calls all succeed by default."""
    repo = AsyncMock()
    repo.generate_story.return_value = make_story(audio_ref=None)
    repo.generate_audio.return_value = AudioResult(audio_ref="a.mp3", duration=42.0)
    repo.generate_illustrations.return_value = make_story(
        illustrations=[make_illustration(0, 0.0), make_illustration(1, 10.0)]
    )
    repo.delete_story.return_value = None
    return repo


class FakePlaybackEngine:
    """In-memory PlaybackEngine whose clock the test moves by hand."""

    def __init__(self) -> None:
        self.is_playing = False
        self.current_time = 0.0
        self.duration = 0.0
        self.speed = 1.0
        self.played: list[tuple[str, NowPlayingMetadata]] = []
        self.seeks: list[float] = []
        self.fail_next_play: str | None = None
        self.handler: Callable[[TrackCommand], None] | None = None

    def play(self, audio_ref: str, metadata: NowPlayingMetadata) -> None:
        if self.fail_next_play:
            message, self.fail_next_play = self.fail_next_play, None
            raise PlaybackError(message)
        self.played.append((audio_ref, metadata))
        self.duration = metadata.duration
        self.current_time = 0.0
        self.is_playing = True

    def pause(self) -> None:
        self.is_playing = False

    def resume(self) -> None:
        self.is_playing = True

    def stop(self) -> None:
        self.is_playing = False
        self.current_time = 0.0

    def seek(self, time: float) -> None:
        self.seeks.append(time)
        self.current_time = time

    def set_speed(self, rate: float) -> None:
        self.speed = rate

    def set_command_handler(self, handler) -> None:
        self.handler = handler

    def finish(self) -> None:
        """Simulate reaching the end of the track."""
        self.is_playing = False
        self.current_time = 0.0
        if self.handler:
            self.handler(TrackCommand.FINISHED)

    def press(self, command: TrackCommand) -> None:
        if self.handler:
            self.handler(command)


@pytest.fixture
def fake_engine() -> FakePlaybackEngine:
    return FakePlaybackEngine()


@pytest.fixture
def mock_issuer() -> MagicMock:
    """BackgroundTaskIssuer double that never expires."""
    issuer = MagicMock()
    issuer.begin.return_value = MagicMock(name="token")
    return issuer


@pytest.fixture
def settings_path(isolate_settings_file: Path) -> Path:
    return isolate_settings_file
