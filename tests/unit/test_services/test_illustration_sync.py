"""Tests for IllustrationSyncEngine."""

import pytest

from src.memory.playback_state import SyncMode
from src.memory.story_state import IllustrationStatus
from src.services.illustration_sync import IllustrationSyncEngine


@pytest.fixture
def story(story_factory, illustration_factory):
    return story_factory(
        illustrations=[
            illustration_factory(0, 0.0),
            illustration_factory(1, 5.0),
            illustration_factory(2, 12.0),
        ]
    )


@pytest.fixture
def engine(story) -> IllustrationSyncEngine:
    sync = IllustrationSyncEngine()
    sync.configure(story)
    return sync


class TestIndexForTime:
    """Tests for mapping narration time to an illustration."""

    @pytest.mark.parametrize(
        ("time", "expected"),
        [(0.0, 0), (4.9, 0), (5.0, 1), (11.99, 1), (12.0, 2), (20.0, 2)],
    )
    def test_last_reached_timestamp_wins(self, story, time, expected):
        """The active scene is the last one whose timestamp has passed."""
        assert IllustrationSyncEngine.index_for_time(time, story.illustrations) == expected

    def test_no_illustrations(self):
        """Without illustrations there is no index."""
        assert IllustrationSyncEngine.index_for_time(3.0, []) is None

    def test_before_first_timestamp(self, story_factory, illustration_factory):
        """Time before the first scene has no index."""
        story = story_factory(illustrations=[illustration_factory(0, 2.0)])

        assert IllustrationSyncEngine.index_for_time(1.0, story.illustrations) is None


class TestAutoMode:
    """Tests for following the audio clock."""

    def test_configure_starts_at_first_in_auto(self, engine):
        """A new story shows its first scene."""
        assert engine.mode == SyncMode.AUTO
        assert engine.active_index == 0
        assert engine.current_illustration.display_order == 0

    def test_configure_without_illustrations(self, story_factory):
        """A story with no scenes has no active index."""
        sync = IllustrationSyncEngine()
        sync.configure(story_factory())

        assert sync.active_index is None
        assert sync.current_illustration is None

    def test_update_follows_clock(self, engine):
        """Ticks move the carousel forward and back with the clock."""
        engine.update(6.0)
        assert engine.active_index == 1

        engine.update(13.0)
        assert engine.active_index == 2

        engine.update(1.0)
        assert engine.active_index == 0

    def test_update_before_first_keeps_index(self, story_factory, illustration_factory):
        """A time with no matching scene leaves the current one."""
        sync = IllustrationSyncEngine()
        sync.configure(story_factory(illustrations=[illustration_factory(0, 3.0)]))

        sync.update(1.0)

        assert sync.active_index == 0

    def test_reset(self, engine):
        """Reset clears the story and returns to auto."""
        engine.move_to_index(2)

        engine.reset()

        assert engine.mode == SyncMode.AUTO
        assert engine.active_index is None
        assert engine.illustrations == []


class TestManualMode:
    """Tests for swipes and seeks."""

    def test_swipe_enters_manual_and_ignores_clock(self, engine):
        """After a swipe the clock no longer moves the carousel."""
        engine.move_to_index(2)

        engine.update(1.0)

        assert engine.mode == SyncMode.MANUAL
        assert engine.active_index == 2

    def test_resume_auto_jumps_to_time(self, engine):
        """An explicit seek returns to auto at the matching scene."""
        engine.move_to_index(2)

        engine.resume_auto(6.0)

        assert engine.mode == SyncMode.AUTO
        assert engine.active_index == 1

    def test_move_to_index_out_of_range(self, engine):
        """Invalid indices are rejected and the state is unchanged."""
        with pytest.raises(IndexError):
            engine.move_to_index(3)

        assert engine.mode == SyncMode.AUTO

    def test_move_to_illustration(self, engine, story):
        """Moving to an illustration object selects its index."""
        engine.move_to_illustration(story.illustrations[1])

        assert engine.active_index == 1
        assert engine.mode == SyncMode.MANUAL

    def test_move_to_foreign_illustration(self, engine, illustration_factory):
        """An illustration from another story is rejected."""
        with pytest.raises(ValueError):
            engine.move_to_illustration(illustration_factory(0, 0.0))

    def test_time_for_index(self, engine):
        """Each scene starts at its timestamp."""
        assert engine.time_for_index(2) == 12.0
        with pytest.raises(IndexError):
            engine.time_for_index(-1)


class TestChangeNotifications:
    """Tests for the on_change callback."""

    def test_called_only_on_change(self, story):
        """Repeated ticks on the same scene are not republished."""
        states = []
        sync = IllustrationSyncEngine(on_change=states.append)
        sync.configure(story)

        sync.update(1.0)
        sync.update(2.0)
        sync.update(5.5)
        sync.move_to_index(1)

        assert [(s.mode, s.active_index) for s in states] == [
            (SyncMode.AUTO, 0),
            (SyncMode.AUTO, 1),
            (SyncMode.MANUAL, 1),
        ]

    def test_state_is_a_copy(self, engine):
        """Callers cannot mutate the engine through its state."""
        state = engine.state
        state.active_index = 2

        assert engine.active_index == 0


class TestStepNavigation:
    """Tests for stepping through scenes one at a time."""

    def test_next_and_previous_enter_manual(self, engine):
        """Each step moves one scene and stops following the clock."""
        assert engine.move_to_next() is True
        assert engine.mode == SyncMode.MANUAL
        assert engine.active_index == 1

        engine.update(13.0)
        assert engine.active_index == 1

        assert engine.move_to_previous() is True
        assert engine.active_index == 0

    def test_stops_at_either_end(self, engine):
        """Stepping past the first or last scene does nothing."""
        assert engine.move_to_previous() is False
        assert engine.mode == SyncMode.AUTO

        engine.move_to_index(2)
        assert engine.move_to_next() is False
        assert engine.active_index == 2

    def test_without_illustrations(self, story_factory):
        sync = IllustrationSyncEngine()
        sync.configure(story_factory())

        assert sync.move_to_next() is False
        assert sync.move_to_previous() is False


class TestProgressToNext:
    """Tests for the fraction elapsed between the active scene and the next."""

    @pytest.mark.parametrize(
        ("time", "expected"),
        [(0.0, 0.0), (2.5, 0.5), (5.0, 0.0), (8.5, 0.5), (11.99, pytest.approx(0.9986, abs=1e-4))],
    )
    def test_follows_clock(self, engine, time, expected):
        engine.update(time)

        assert engine.progress_to_next == expected

    def test_last_scene_has_no_progress(self, engine):
        engine.update(20.0)

        assert engine.progress_to_next == 0.0

    def test_clamped_in_manual_mode(self, engine):
        """A scene chosen by hand reports 0 before it starts and 1 once the next is reached."""
        engine.move_to_index(1)

        engine.update(1.0)
        assert engine.progress_to_next == 0.0

        engine.update(30.0)
        assert engine.progress_to_next == 1.0

    def test_shared_timestamps(self, story_factory, illustration_factory):
        """Two scenes at the same time have no span to measure."""
        sync = IllustrationSyncEngine()
        sync.configure(
            story_factory(
                illustrations=[illustration_factory(0, 0.0), illustration_factory(1, 0.0)]
            )
        )

        sync.move_to_index(0)
        sync.update(3.0)

        assert sync.progress_to_next == 0.0

    def test_no_story(self):
        assert IllustrationSyncEngine().progress_to_next == 0.0


class TestLiveIllustrations:
    """Tests that ticks read the story's current illustration list."""

    @pytest.fixture
    def story_with_placeholder(self, story_factory, illustration_factory):
        return story_factory(
            illustrations=[
                illustration_factory(0, 0.0),
                illustration_factory(1, 5.0, status=IllustrationStatus.FAILED),
                illustration_factory(2, 12.0),
            ]
        )

    def test_retried_scene_replaces_placeholder(self, story_with_placeholder, illustration_factory):
        """After a retry the active scene is the replacement, not the stale placeholder."""
        sync = IllustrationSyncEngine()
        sync.configure(story_with_placeholder)
        sync.update(6.0)
        placeholder = sync.current_illustration
        assert placeholder.is_placeholder

        story_with_placeholder.replace_illustrations(
            [
                illustration_factory(0, 0.0),
                illustration_factory(1, 5.0),
                illustration_factory(2, 12.0),
            ]
        )
        sync.update(6.5)

        current = sync.current_illustration
        assert sync.illustrations is story_with_placeholder.illustrations
        assert current is story_with_placeholder.illustrations[1]
        assert current is not placeholder
        assert current.id == placeholder.id
        assert current.is_generated

    def test_index_recomputed_from_new_timestamps(
        self, story_with_placeholder, illustration_factory
    ):
        """New timings from the backend move the active scene on the next tick."""
        sync = IllustrationSyncEngine()
        sync.configure(story_with_placeholder)
        sync.update(6.0)
        assert sync.active_index == 1

        story_with_placeholder.replace_illustrations(
            [
                illustration_factory(0, 0.0),
                illustration_factory(1, 8.0),
                illustration_factory(2, 12.0),
            ]
        )
        sync.update(6.0)

        assert sync.active_index == 0
