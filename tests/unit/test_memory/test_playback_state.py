"""Tests for playback session state."""

from src.memory.playback_state import IllustrationSyncState, PlaybackSession, SyncMode


class TestPlaybackSession:
    """Tests for derived playback flags."""

    def test_paused_needs_position(self):
        """Stopped at zero is not paused."""
        session = PlaybackSession(duration=60.0, current_time=0.0)

        assert not session.is_paused

        session.current_time = 12.0
        assert session.is_paused

        session.is_playing = True
        assert not session.is_paused

    def test_queue_navigation_flags(self, story_factory):
        """has_next and has_previous follow the queue index."""
        stories = [story_factory(title=f"Story {i}") for i in range(3)]
        session = PlaybackSession(queue=stories, queue_index=0, is_queue_mode=True)

        assert session.has_next
        assert not session.has_previous

        session.queue_index = 2
        assert not session.has_next
        assert session.has_previous

    def test_flags_off_outside_queue_mode(self, story_factory):
        """A queue that is not active never navigates."""
        session = PlaybackSession(queue=[story_factory(), story_factory()], queue_index=1)

        assert not session.has_next
        assert not session.has_previous

    def test_copy_does_not_share_queue_list(self, story_factory):
        """Snapshots cannot reorder the live queue."""
        session = PlaybackSession(queue=[story_factory()])

        snapshot = session.copy()
        snapshot.queue.clear()

        assert len(session.queue) == 1


def test_sync_state_defaults():
    """Sync starts in auto mode with nothing shown."""
    state = IllustrationSyncState()

    assert state.mode == SyncMode.AUTO
    assert state.active_index is None
