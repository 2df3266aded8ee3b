"""Generation session state: the stage tagged union and the failure policy.

A session moves through::

    Idle -> Running(story) -> Running(audio) -> [Running(illustrations)] -> Completed
                 \\                \\                   \\
                  Failed(story)    Failed(audio)       Failed(illustrations)

Only GenerationCoordinator mutates a session; everything else reads it.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from src.memory.story_state import EventSpec, Hero, Story
from src.utils.exceptions import ContentServiceError, ErrorKind

logger = logging.getLogger(__name__)

# Overall progress checkpoints
PROGRESS_STORY_STARTED = 0.10
PROGRESS_STORY_DONE = 0.33
PROGRESS_AUDIO_RETRY_STARTED = 0.5
PROGRESS_AUDIO_DONE = 0.66
PROGRESS_ILLUSTRATIONS_RETRY_STARTED = 0.7
PROGRESS_COMPLETE = 1.0


class GenerationStep(StrEnum):
    """The three sequential pipeline stages."""

    STORY = "story"
    AUDIO = "audio"
    ILLUSTRATIONS = "illustrations"

    @property
    def display_name(self) -> str:
        return _STEP_DISPLAY[self][0]

    @property
    def retry_label(self) -> str:
        """Label for the retry affordance shown next to the error."""
        return _STEP_DISPLAY[self][1]


_STEP_DISPLAY: dict[GenerationStep, tuple[str, str]] = {
    GenerationStep.STORY: ("Story Generation", "Try Again"),
    GenerationStep.AUDIO: ("Audio Generation", "Retry Audio"),
    GenerationStep.ILLUSTRATIONS: ("Illustration Generation", "Retry Illustrations"),
}


@dataclass(frozen=True)
class StepPolicy:
    """What a failure at one step allows and keeps."""

    retryable: bool
    skippable: bool
    story_preserved: bool
    audio_preserved: bool


FAILURE_POLICY: dict[GenerationStep, StepPolicy] = {
    GenerationStep.STORY: StepPolicy(
        retryable=False, skippable=False, story_preserved=False, audio_preserved=False
    ),
    GenerationStep.AUDIO: StepPolicy(
        retryable=True, skippable=False, story_preserved=True, audio_preserved=False
    ),
    GenerationStep.ILLUSTRATIONS: StepPolicy(
        retryable=True, skippable=True, story_preserved=True, audio_preserved=True
    ),
}


@dataclass(frozen=True)
class Idle:
    name = "idle"


@dataclass(frozen=True)
class Running:
    step: GenerationStep

    @property
    def name(self) -> str:
        return f"generating_{self.step.value}"


@dataclass(frozen=True)
class Completed:
    name = "completed"


@dataclass(frozen=True)
class Failed:
    step: GenerationStep
    error: ContentServiceError

    name = "failed"

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind

    @property
    def message(self) -> str:
        return self.error.user_message


GenerationStage = Idle | Running | Completed | Failed


@dataclass
class GenerationSession:
    """One run of the pipeline for a single (hero, event) request."""

    hero: Hero
    event: EventSpec
    include_illustrations: bool
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    stage: GenerationStage = field(default_factory=Idle)
    progress: float = 0.0
    story: Story | None = None
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None

    @property
    def correlation_id(self) -> str:
        return self.id[:8]

    @property
    def is_running(self) -> bool:
        return isinstance(self.stage, Running)

    @property
    def is_completed(self) -> bool:
        return isinstance(self.stage, Completed)

    @property
    def is_failed(self) -> bool:
        return isinstance(self.stage, Failed)

    @property
    def last_failed_step(self) -> GenerationStep | None:
        """The failed step, present only while the session is failed."""
        return self.stage.step if isinstance(self.stage, Failed) else None

    @property
    def error(self) -> ContentServiceError | None:
        return self.stage.error if isinstance(self.stage, Failed) else None

    @property
    def error_message(self) -> str | None:
        return self.stage.message if isinstance(self.stage, Failed) else None

    @property
    def wants_illustrations(self) -> bool:
        """Illustrations were requested and the hero can be drawn."""
        return self.include_illustrations and self.hero.has_avatar

    def enter(self, step: GenerationStep, progress: float | None = None) -> None:
        self.stage = Running(step)
        if progress is not None:
            self.progress = progress
        logger.debug("Session %s -> %s (%.2f)", self.correlation_id, self.stage.name, self.progress)

    def fail(self, step: GenerationStep, error: ContentServiceError) -> None:
        self.stage = Failed(step, error)
        logger.debug("Session %s failed at %s: %s", self.correlation_id, step, error.kind)

    def complete(self) -> None:
        self.stage = Completed()
        self.progress = PROGRESS_COMPLETE
        self.completed_at = datetime.now()

    def reset(self) -> None:
        """Back to Idle with no progress; the produced story is kept for inspection."""
        self.stage = Idle()
        self.progress = 0.0
