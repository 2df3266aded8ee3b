"""Tests for settings file backup, recovery and quarantine."""

import json
import logging
from unittest.mock import patch

import pytest

from src.settings import Settings
from src.settings._backup import (
    _create_settings_backup,
    _quarantine_corrupt_file,
    _recover_from_backup,
)


class TestCreateSettingsBackup:
    """Tests for _create_settings_backup()."""

    def test_copies_valid_file(self, tmp_path):
        """A valid settings file is copied to .bak."""
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"voice": "nova"}))

        assert _create_settings_backup(path) is True
        assert json.loads(path.with_suffix(".json.bak").read_text()) == {"voice": "nova"}

    def test_missing_file_is_not_backed_up(self, tmp_path):
        """Nothing to copy means no backup."""
        assert _create_settings_backup(tmp_path / "settings.json") is False

    def test_corrupt_file_never_overwrites_good_backup(self, tmp_path):
        """Invalid JSON is skipped so the previous backup survives."""
        path = tmp_path / "settings.json"
        backup = path.with_suffix(".json.bak")
        backup.write_text(json.dumps({"voice": "echo"}))
        path.write_text("{broken")

        assert _create_settings_backup(path) is False
        assert json.loads(backup.read_text()) == {"voice": "echo"}

    def test_non_object_file_is_skipped(self, tmp_path):
        """A JSON list is not a settings file."""
        path = tmp_path / "settings.json"
        path.write_text("[1, 2]")

        assert _create_settings_backup(path) is False

    def test_copy_failure_is_logged(self, tmp_path, caplog):
        """OS errors are logged, not raised."""
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"voice": "nova"}))

        with (
            patch("src.settings._backup.shutil.copy2", side_effect=OSError("disk full")),
            caplog.at_level(logging.WARNING, logger="src.settings._backup"),
        ):
            assert _create_settings_backup(path) is False

        assert "Failed to create settings backup" in caplog.text


class TestRecoverFromBackup:
    """Tests for _recover_from_backup()."""

    def test_returns_backup_contents(self, tmp_path):
        """A valid backup is returned as a dict."""
        path = tmp_path / "settings.json"
        path.with_suffix(".json.bak").write_text(json.dumps({"language": "fr"}))

        assert _recover_from_backup(path) == {"language": "fr"}

    def test_missing_backup_returns_none(self, tmp_path):
        """No backup file means nothing to recover."""
        assert _recover_from_backup(tmp_path / "settings.json") is None

    def test_empty_backup_returns_none(self, tmp_path):
        """An empty backup file is ignored."""
        path = tmp_path / "settings.json"
        path.with_suffix(".json.bak").write_text("")

        assert _recover_from_backup(path) is None

    def test_corrupt_backup_returns_none(self, tmp_path, caplog):
        """A corrupt backup is logged and ignored."""
        path = tmp_path / "settings.json"
        path.with_suffix(".json.bak").write_text("{nope")

        with caplog.at_level(logging.ERROR, logger="src.settings._backup"):
            assert _recover_from_backup(path) is None

        assert "is corrupted" in caplog.text


class TestQuarantineCorruptFile:
    """Tests for _quarantine_corrupt_file()."""

    def test_keeps_copy(self, tmp_path):
        """The unreadable file is kept for inspection."""
        path = tmp_path / "settings.json"
        path.write_text("{garbage")

        _quarantine_corrupt_file(path)

        assert path.with_suffix(".json.corrupt").read_text() == "{garbage"

    def test_copy_failure_is_logged(self, tmp_path, caplog):
        """A failed quarantine does not raise."""
        path = tmp_path / "settings.json"
        path.write_text("{garbage")

        with (
            patch("src.settings._backup.shutil.copy", side_effect=OSError("read-only")),
            caplog.at_level(logging.WARNING, logger="src.settings._backup"),
        ):
            _quarantine_corrupt_file(path)

        assert "Failed to backup corrupted settings" in caplog.text


class TestSaveCreatesBackup:
    """Tests for the backup taken by Settings.save()."""

    def test_save_backs_up_previous_file(self, settings_path):
        """The file on disk before save() ends up in .bak."""
        Settings(voice="onyx").save()
        Settings(voice="fable").save()

        backup = json.loads(settings_path.with_suffix(".json.bak").read_text())
        current = json.loads(settings_path.read_text())
        assert backup["voice"] == "onyx"
        assert current["voice"] == "fable"

    def test_invalid_settings_are_not_saved(self, settings_path):
        """save() validates before touching the disk."""
        settings = Settings(voice="robot")

        with pytest.raises(ValueError, match="voice"):
            settings.save()

        assert not settings_path.exists()
