"""Configuration for the work log tools."""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from .paths import get_db_path


@dataclass(slots=True)
class TrackerSettings:
    """Where the work log lives and where the dashboard listens."""

    db_path: Path
    host: str = "127.0.0.1"
    port: int = 8765

    @classmethod
    def from_environment(cls) -> "TrackerSettings":
        db_path = os.environ.get("WORKLOG_DB_PATH")
        return cls(
            db_path=Path(db_path) if db_path else get_db_path(),
            host=os.environ.get("WORKLOG_HOST", "127.0.0.1"),
            port=int(os.environ.get("WORKLOG_PORT", "8765")),
        )

    def with_db_path(self, db_path: Optional[Path]) -> "TrackerSettings":
        if db_path is None:
            return self
        return replace(self, db_path=Path(db_path))
