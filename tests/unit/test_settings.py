"""Tests for the Settings dataclass: defaults, validation, load and save."""

import json

import pytest

from src.settings import (
    MAX_PLAYBACK_SPEED,
    MIN_PLAYBACK_SPEED,
    SUPPORTED_LANGUAGES,
    SUPPORTED_VOICES,
    Settings,
)


class TestDefaults:
    """Tests for default values."""

    def test_defaults_are_valid(self):
        """A fresh Settings passes validation without changes."""
        settings = Settings()

        assert settings.validate() is False

    def test_playback_defaults(self):
        """Playback defaults match the player's behaviour."""
        settings = Settings()

        assert settings.playback_tick_interval == 0.1
        assert settings.previous_track_threshold == 3.0
        assert settings.skip_interval_seconds == 15.0
        assert settings.default_playback_speed == 1.0
        assert settings.queue_auto_advance is True

    def test_backend_defaults(self):
        """Generation calls get a long timeout."""
        settings = Settings()

        assert settings.request_timeout == 300.0
        assert settings.language in SUPPORTED_LANGUAGES
        assert settings.voice in SUPPORTED_VOICES
        assert settings.illustration_retry_limit == 3


class TestValidation:
    """Tests for Settings.validate()."""

    @pytest.mark.parametrize(
        ("field", "value", "match"),
        [
            ("log_level", "CHATTY", "log_level"),
            ("backend_url", "ftp://stories.example", "URL scheme"),
            ("backend_url", "http://", "missing host"),
            ("language", "xx", "language"),
            ("voice", "robot", "voice"),
            ("request_timeout", 0.0, "request_timeout"),
            ("health_check_timeout", 120.0, "health_check_timeout"),
            ("background_task_grace_seconds", 0.0, "background_task_grace_seconds"),
            ("playback_tick_interval", 0.0, "playback_tick_interval"),
            ("previous_track_threshold", -1.0, "previous_track_threshold"),
            ("skip_interval_seconds", 0.0, "skip_interval_seconds"),
            ("default_playback_speed", MAX_PLAYBACK_SPEED + 0.5, "default_playback_speed"),
            ("default_playback_speed", MIN_PLAYBACK_SPEED - 0.1, "default_playback_speed"),
            ("illustration_retry_limit", 0, "illustration_retry_limit"),
            ("illustration_retry_limit", 11, "illustration_retry_limit"),
            ("event_history_size", 5, "event_history_size"),
        ],
    )
    def test_invalid_values_raise(self, field, value, match):
        """Each out-of-range field is rejected with its name in the message."""
        settings = Settings()
        setattr(settings, field, value)

        with pytest.raises(ValueError, match=match):
            settings.validate()

    def test_language_and_voice_are_normalized(self):
        """Case and whitespace are normalized and reported as a change."""
        settings = Settings(language=" EN ", voice="Coral")

        assert settings.validate() is True
        assert settings.language == "en"
        assert settings.voice == "coral"


class TestLoadAndSave:
    """Tests for Settings.load() and save()."""

    def test_load_creates_file_with_defaults(self, settings_path):
        """A missing file is created from defaults."""
        settings = Settings.load()

        assert settings == Settings()
        assert json.loads(settings_path.read_text())["backend_url"] == "http://localhost:3000"

    def test_load_is_cached(self, settings_path):
        """Repeated loads return the same instance until the cache is cleared."""
        first = Settings.load()

        assert Settings.load() is first
        assert Settings.load(use_cache=False) is not first

    def test_save_round_trips_custom_values(self, settings_path):
        """Saved values are read back."""
        settings = Settings(voice="nova", previous_track_threshold=5.0)
        settings.save()
        Settings.clear_cache()

        loaded = Settings.load()

        assert loaded.voice == "nova"
        assert loaded.previous_track_threshold == 5.0

    def test_load_merges_new_and_obsolete_keys(self, settings_path):
        """Unknown keys are dropped and missing ones filled in."""
        settings_path.write_text(json.dumps({"voice": "sage", "narration_engine": "legacy"}))

        settings = Settings.load()

        assert settings.voice == "sage"
        stored = json.loads(settings_path.read_text())
        assert "narration_engine" not in stored
        assert stored["queue_auto_advance"] is True

    def test_invalid_stored_value_raises(self, settings_path):
        """An invalid value in the file is reported, not silently replaced."""
        settings_path.write_text(json.dumps({"default_playback_speed": 4.0}))

        with pytest.raises(ValueError, match="default_playback_speed"):
            Settings.load()

    def test_wrong_type_raises_value_error(self, settings_path):
        """A wrong type surfaces as ValueError."""
        settings_path.write_text(json.dumps({"request_timeout": "slow"}))

        with pytest.raises(ValueError):
            Settings.load()

    def test_corrupt_file_is_quarantined(self, settings_path):
        """Invalid JSON is copied aside and defaults are used."""
        settings_path.write_text("{not json")

        settings = Settings.load()

        assert settings == Settings()
        assert settings_path.with_suffix(".json.corrupt").exists()

    def test_corrupt_file_recovers_from_backup(self, settings_path):
        """A good .bak file is used when the primary file is unreadable."""
        settings_path.with_suffix(".json.bak").write_text(json.dumps({"voice": "echo"}))
        settings_path.write_text("[]")

        settings = Settings.load()

        assert settings.voice == "echo"


class TestWithOverrides:
    """Tests for Settings.with_overrides()."""

    def test_returns_validated_copy(self):
        """Overrides produce a new instance and leave the original alone."""
        settings = Settings()

        updated = settings.with_overrides(backend_url="https://stories.example", voice=None)

        assert updated.backend_url == "https://stories.example"
        assert updated.voice == settings.voice
        assert settings.backend_url == "http://localhost:3000"

    def test_unknown_field_raises(self):
        """Typos in override names are rejected."""
        with pytest.raises(ValueError, match="Unknown settings"):
            Settings().with_overrides(backend="http://x")

    def test_invalid_override_raises(self):
        """Overrides are validated."""
        with pytest.raises(ValueError, match="URL scheme"):
            Settings().with_overrides(backend_url="stories.example")
