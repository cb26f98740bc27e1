"""
Application settings for the Operations Timeline board.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Environment variable overriding the database path
DB_PATH_ENV = "OPS_TIMELINE_DB"
# Environment variable overriding the settings file location
SETTINGS_PATH_ENV = "OPS_TIMELINE_SETTINGS"


def config_dir() -> Path:
    """Per-user configuration directory (%APPDATA% on Windows, ~/.config elsewhere)."""
    if sys.platform == "win32":
        base = os.environ.get("APPDATA", "")
        root = Path(base) if base else Path.home() / "AppData" / "Roaming"
    else:
        root = Path.home() / ".config"
    return root / "OpsTimeline"


def default_settings_path() -> Path:
    env_path = os.environ.get(SETTINGS_PATH_ENV, "").strip()
    if env_path:
        return Path(env_path)
    return config_dir() / "settings.json"


@dataclass
class BoardSettings:
    """Tunable settings for the store, history, sync and windowing layers."""
    db_path: str = ""
    seed_demo: bool = True

    debounce_ms: int = 300
    history_limit: int = 50
    duplicate_offset_hours: float = 24.0

    # Row windowing (pixels)
    row_height: int = 40
    header_height: int = 50
    wheel_step_px: int = 30

    initial_zoom: str = "day"
    log_level: str = "INFO"

    def resolved_db_path(self) -> Path:
        """Database file path, defaulting next to the settings file."""
        if self.db_path:
            return Path(self.db_path).expanduser()
        return config_dir() / "database.db"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "db_path": self.db_path,
            "seed_demo": self.seed_demo,
            "debounce_ms": self.debounce_ms,
            "history_limit": self.history_limit,
            "duplicate_offset_hours": self.duplicate_offset_hours,
            "row_height": self.row_height,
            "header_height": self.header_height,
            "wheel_step_px": self.wheel_step_px,
            "initial_zoom": self.initial_zoom,
            "log_level": self.log_level,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BoardSettings:
        """Deserialize from dictionary, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning("Ignoring unknown settings keys: %s", sorted(unknown))
        defaults = cls()
        return cls(
            db_path=str(data.get("db_path", defaults.db_path) or ""),
            seed_demo=bool(data.get("seed_demo", defaults.seed_demo)),
            debounce_ms=int(data.get("debounce_ms", defaults.debounce_ms)),
            history_limit=int(data.get("history_limit", defaults.history_limit)),
            duplicate_offset_hours=float(
                data.get("duplicate_offset_hours", defaults.duplicate_offset_hours)
            ),
            row_height=int(data.get("row_height", defaults.row_height)),
            header_height=int(data.get("header_height", defaults.header_height)),
            wheel_step_px=int(data.get("wheel_step_px", defaults.wheel_step_px)),
            initial_zoom=str(data.get("initial_zoom", defaults.initial_zoom)),
            log_level=str(data.get("log_level", defaults.log_level)),
        )


def load_settings(path: Optional[Path] = None) -> BoardSettings:
    """
    Load settings.

    Order: settings JSON file (if present) < OPS_TIMELINE_DB environment variable.
    A malformed file is reported and the defaults are used instead.
    """
    settings_path = Path(path) if path is not None else default_settings_path()
    settings = BoardSettings()

    if settings_path.is_file():
        try:
            with open(settings_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            settings = BoardSettings.from_dict(data)
        except (json.JSONDecodeError, OSError, TypeError, ValueError) as e:
            logger.warning("Failed to read settings from %s: %s", settings_path, e)

    env_db = os.environ.get(DB_PATH_ENV, "").strip()
    if env_db:
        settings.db_path = env_db

    return settings


def save_settings(settings: BoardSettings, path: Optional[Path] = None) -> Path:
    """Write settings as JSON and return the path written."""
    settings_path = Path(path) if path is not None else default_settings_path()
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    with open(settings_path, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, indent=2)
    return settings_path
