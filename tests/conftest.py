from __future__ import annotations

from pathlib import Path

import pytest

from worklog.clock import FixedClock
from worklog.store import WorkLogStore

START = 1_700_000_000_000


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(START)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "worklog.sqlite3"


@pytest.fixture
def store(db_path: Path) -> WorkLogStore:
    return WorkLogStore(db_path)
