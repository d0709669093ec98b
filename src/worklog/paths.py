"""Where the work log keeps its files."""

from __future__ import annotations

from pathlib import Path

from platformdirs import PlatformDirs


APP_NAME = "Worklog"
APP_AUTHOR = "Worklog"
DB_FILE_NAME = "worklog.sqlite3"


def get_data_dir() -> Path:
    """Return (and create) the per-user data directory."""
    dirs = PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR, roaming=True)
    path = Path(dirs.user_data_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_db_path() -> Path:
    return get_data_dir() / DB_FILE_NAME
