#!/usr/bin/env python3
"""Bedtime Stories - story, narration and illustration generation for a child's hero.

Usage:
    python main.py events                                   # List built-in story events
    python main.py generate --hero-id HERO [--event bedtime] [--no-illustrations]
    python main.py play --story-id STORY [--speed 1.5]      # Simulated playback
"""

import argparse
import asyncio
import logging
import sys
import time
from typing import TYPE_CHECKING

from src.utils.logging_config import setup_logging

if TYPE_CHECKING:
    from src.memory.playback_state import IllustrationSyncState
    from src.services import GenerationEvent

logger = logging.getLogger(__name__)


def _event_choices() -> list[str]:
    from src.memory.story_state import StoryEvent

    return [event.key for event in StoryEvent]


def list_events() -> int:
    from src.memory.story_state import StoryEvent

    print("Story events:")
    print("-" * 40)
    for event in StoryEvent:
        print(f"  {event.key:<12} {event.value}")
        print(f"  {'':<12} {event.prompt_seed}")
    return 0


def _print_event(event: "GenerationEvent") -> None:
    progress = f"{event.progress:.0%}" if event.progress is not None else "--"
    step = event.step.value if event.step else "session"
    print(f"  [{progress:>4}] [{step}] {event.message}")


async def run_generate(args: argparse.Namespace) -> int:
    """Generate a story for a hero and report how each stage went."""
    from src.memory.story_state import EventSpec, Hero, StoryEvent
    from src.services import ServiceContainer
    from src.settings import Settings

    settings = Settings.load().with_overrides(backend_url=args.backend_url)
    services = ServiceContainer(settings)
    services.generation.on_event = _print_event

    hero = Hero(backend_id=args.hero_id, name=args.hero_name, avatar_ref=args.avatar)
    event = EventSpec.from_event(StoryEvent[args.event.upper()])
    include_illustrations = False if args.no_illustrations else None

    try:
        session = await services.generation.start(hero, event, include_illustrations)
    finally:
        await services.aclose()

    if session.is_failed:
        step = session.last_failed_step
        print(f"\n{step.display_name if step else 'Generation'} failed: {session.error_message}")
        return 1

    story = session.story
    if story is None:
        print("\nGeneration was cancelled")
        return 1

    print("\n" + "=" * 60)
    print(story.title)
    print("=" * 60)
    print(story.content)
    print("-" * 40)
    for key, value in story.summary().items():
        print(f"  {key}: {value}")
    return 0


async def run_play(args: argparse.Namespace) -> int:
    """Fetch a story and play it on the simulated engine until it ends."""
    from src.services import ServiceContainer
    from src.settings import Settings
    from src.utils.exceptions import ContentServiceError

    settings = Settings.load().with_overrides(backend_url=args.backend_url)
    services = ServiceContainer(settings)
    playback = services.playback

    def on_illustration(state: "IllustrationSyncState") -> None:
        if state.active_index is not None:
            illustration = services.sync.illustrations[state.active_index]
            print(f"  [scene {illustration.display_order + 1}] {illustration.scene_description}")

    services.sync.on_change = on_illustration

    try:
        story = await services.repository.fetch_story(args.story_id)
        if args.speed is not None:
            playback.set_speed(args.speed)
        print(f"Playing '{story.title}'")
        if not await playback.play(story):
            print(f"Error: {playback.session.playback_error}")
            return 1
        while playback.session.is_playing:
            await asyncio.sleep(settings.playback_tick_interval)
        print(f"Finished '{story.title}' (played {story.play_count} times)")
        return 0
    except ContentServiceError as e:
        print(f"Error: {e.user_message}")
        return 1
    finally:
        await services.aclose()


def main() -> None:
    """Main entry point."""
    t0 = time.perf_counter()
    parser = argparse.ArgumentParser(description="Bedtime Stories - story generation and playback")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: the persisted setting, INFO)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default="default",
        help="Log file path (default: logs/bedtime_stories.log, use 'none' to disable)",
    )
    parser.add_argument(
        "--backend-url",
        type=str,
        default=None,
        help="Content backend base URL (default: the persisted setting)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate a story for a hero")
    generate.add_argument("--hero-id", required=True, help="Backend ID of the hero")
    generate.add_argument("--hero-name", default="Hero", help="Hero name for messages")
    generate.add_argument(
        "--event",
        choices=_event_choices(),
        default="bedtime",
        help="Story event (default: bedtime)",
    )
    generate.add_argument(
        "--no-illustrations",
        action="store_true",
        help="Skip the illustration stage",
    )
    generate.add_argument(
        "--avatar",
        metavar="URL",
        default=None,
        help="Hero avatar image; illustrations are only drawn when set",
    )

    play = subparsers.add_parser("play", help="Play a story with simulated audio")
    play.add_argument("--story-id", required=True, help="Backend ID of the story")
    play.add_argument("--speed", type=float, default=None, help="Playback speed 0.5-2.0")

    subparsers.add_parser("events", help="List built-in story events")

    args = parser.parse_args()

    # Configure logging first so environment check failures are logged
    log_file = None if args.log_file.lower() == "none" else args.log_file
    setup_logging(level=args.log_level or "INFO", log_file=log_file)

    from src.utils.environment import check_environment

    check_environment()

    # If no explicit --log-level on CLI, respect the persisted setting
    if args.log_level is None:
        from src.settings import Settings

        try:
            settings = Settings.load()
            if settings.log_level != "INFO":
                from src.utils.logging_config import set_log_level

                set_log_level(settings.log_level)
        except (FileNotFoundError, ValueError) as e:
            logger.debug("Could not apply persisted log level: %s", e)

    logger.info("Startup complete in %.2fs, running '%s'", time.perf_counter() - t0, args.command)

    try:
        if args.command == "events":
            code = list_events()
        elif args.command == "generate":
            code = asyncio.run(run_generate(args))
        else:
            code = asyncio.run(run_play(args))
    except KeyboardInterrupt:
        logger.info("Interrupted")
        code = 130
    except ValueError as e:
        logger.error("Invalid input: %s", e)
        print(f"Error: {e}", file=sys.stderr)
        code = 1

    sys.exit(code)


if __name__ == "__main__":
    main()
