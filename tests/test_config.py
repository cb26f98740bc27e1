"""
Tests for settings loading.
"""
import json

from ops_timeline.core import BoardSettings, load_settings, save_settings
from ops_timeline.core.config import DB_PATH_ENV


class TestSettings:
    """Tests for load_settings/save_settings."""

    def test_missing_file_gives_defaults(self, tmp_path, monkeypatch):
        """No settings file means default settings."""
        monkeypatch.delenv(DB_PATH_ENV, raising=False)

        settings = load_settings(tmp_path / "missing.json")

        assert settings == BoardSettings()

    def test_round_trip(self, tmp_path, monkeypatch):
        """Saved settings load back unchanged."""
        monkeypatch.delenv(DB_PATH_ENV, raising=False)
        path = tmp_path / "settings.json"

        save_settings(BoardSettings(debounce_ms=150, initial_zoom="week"), path)
        settings = load_settings(path)

        assert settings.debounce_ms == 150
        assert settings.initial_zoom == "week"

    def test_unknown_keys_ignored(self, tmp_path, monkeypatch):
        """Keys the settings do not know are skipped."""
        monkeypatch.delenv(DB_PATH_ENV, raising=False)
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"history_limit": 20, "theme": "dark"}), encoding="utf-8")

        settings = load_settings(path)

        assert settings.history_limit == 20

    def test_malformed_file_gives_defaults(self, tmp_path, monkeypatch):
        """Unparseable JSON falls back to defaults."""
        monkeypatch.delenv(DB_PATH_ENV, raising=False)
        path = tmp_path / "settings.json"
        path.write_text("{not json", encoding="utf-8")

        assert load_settings(path) == BoardSettings()

    def test_environment_overrides_db_path(self, tmp_path, monkeypatch):
        """The environment variable wins over the file's database path."""
        path = tmp_path / "settings.json"
        save_settings(BoardSettings(db_path="from-file.db"), path)
        monkeypatch.setenv(DB_PATH_ENV, str(tmp_path / "env.db"))

        settings = load_settings(path)

        assert settings.resolved_db_path() == tmp_path / "env.db"
