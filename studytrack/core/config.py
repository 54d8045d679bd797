"""Configuration loader for StudyTrack.

Handles loading, saving, and default creation of config.json.
Resolves platform-appropriate data directories:
  - macOS:   ~/Library/Application Support/StudyTrack
  - Windows: %APPDATA%/StudyTrack
  - Other:   ~/.studytrack
"""

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from studytrack.core.pomodoro import PomodoroSettings

logger = logging.getLogger(__name__)


def get_data_directory() -> Path:
    """Return the platform-appropriate data directory for StudyTrack."""
    if sys.platform == "darwin":
        base = Path.home() / "Library" / "Application Support"
    elif sys.platform == "win32":
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else Path.home() / "AppData" / "Roaming"
    else:
        base = Path.home()
        return base / ".studytrack"
    return base / "StudyTrack"


def get_default_config() -> dict[str, Any]:
    """Return the default configuration dictionary."""
    data_dir = get_data_directory()
    return {
        "user_id": "local",
        "user_name": "",
        "database_path": str(data_dir / "studytrack.db"),
        "tick_interval_seconds": 1,
        "min_session_seconds": 1,
        "default_mode": "stopwatch",
        "pomodoro": {
            "work_minutes": 25,
            "short_break_minutes": 5,
            "long_break_minutes": 15,
            "long_break_interval": 4,
            "near_end_seconds": 3,
            "auto_advance_delay_seconds": 0,
        },
        "web": {
            "host": "127.0.0.1",
            "port": 5556,
        },
    }


def get_default_config_path() -> Path:
    """Return the default path for config.json."""
    return get_data_directory() / "config.json"


def load_config(path: str | Path | None = None) -> dict[str, Any]:
    """Load configuration from a JSON file.

    If *path* is ``None``, the platform default location is used.
    When the file does not exist, a default configuration is created,
    written to disk, and returned.  If the file exists but is invalid
    JSON, the error is logged and defaults are returned.
    """
    config_path = Path(path) if path is not None else get_default_config_path()

    if not config_path.exists():
        logger.info("Config file not found at %s, creating defaults.", config_path)
        defaults = get_default_config()
        save_config(defaults, config_path)
        return defaults

    try:
        with open(config_path, "r", encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError("Top-level JSON value must be an object")
        return data
    except (json.JSONDecodeError, ValueError, OSError) as exc:
        logger.error("Failed to load config from %s: %s (using defaults)", config_path, exc)
        return get_default_config()


def save_config(config: dict[str, Any], path: str | Path | None = None) -> None:
    """Write *config* to a JSON file.

    If *path* is ``None``, the platform default location is used.
    Parent directories are created automatically.
    """
    config_path = Path(path) if path is not None else get_default_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w", encoding="utf-8") as fh:
        json.dump(config, fh, indent=2, ensure_ascii=False)
        fh.write("\n")


def pomodoro_settings(config: dict[str, Any]) -> PomodoroSettings:
    """Build PomodoroSettings from the ``pomodoro`` block, filling gaps from defaults."""
    block = dict(get_default_config()["pomodoro"])
    block.update(config.get("pomodoro") or {})
    return PomodoroSettings(
        work_seconds=int(block["work_minutes"] * 60),
        short_break_seconds=int(block["short_break_minutes"] * 60),
        long_break_seconds=int(block["long_break_minutes"] * 60),
        long_break_interval=int(block["long_break_interval"]),
        near_end_seconds=int(block["near_end_seconds"]),
        auto_advance_delay_seconds=float(block["auto_advance_delay_seconds"]),
    )


def min_session_ms(config: dict[str, Any]) -> int:
    return int(float(config.get("min_session_seconds", 1)) * 1000)
