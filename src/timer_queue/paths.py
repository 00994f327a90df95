"""Locations of the queue store and engine log."""

from __future__ import annotations

import os
from pathlib import Path

from platformdirs import PlatformDirs


APP_NAME = "TimerQueue"
HOME_ENV = "TIMER_QUEUE_HOME"


def _platform_dirs() -> PlatformDirs:
    return PlatformDirs(appname=APP_NAME, appauthor=False, roaming=True, ensure_exists=True)


def _home_override() -> Path | None:
    value = os.environ.get(HOME_ENV)
    if not value:
        return None
    path = Path(value).expanduser()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Directory holding the store; ``TIMER_QUEUE_HOME`` wins over the platform default."""
    return _home_override() or Path(_platform_dirs().user_data_path)


def get_log_dir() -> Path:
    home = _home_override()
    if home is not None:
        path = home / "logs"
        path.mkdir(exist_ok=True)
        return path
    return Path(_platform_dirs().user_log_path)


def get_store_path() -> Path:
    return get_data_dir() / "queue.sqlite3"


def get_log_path() -> Path:
    return get_log_dir() / "engine.log"
