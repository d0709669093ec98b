"""Query surface used by the CLI and the dashboard."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from . import db
from .clock import Clock, now_millis
from .models import Status
from .work_item import WorkItem

logger = logging.getLogger(__name__)


class WorkLogStore:
    """Work item persistence bound to one database file.

    Every call opens its own connection and closes it again, so instances are
    cheap and hold no state besides the path.
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def insert(self, item: WorkItem) -> int:
        with db.database_connection(self.db_path) as conn:
            return db.insert_item(conn, item)

    def update(self, items: Sequence[WorkItem]) -> None:
        if not items:
            return
        with db.database_connection(self.db_path) as conn:
            db.update_items(conn, items)

    def find_by_id(self, item_id: int) -> Optional[WorkItem]:
        with db.database_connection(self.db_path) as conn:
            return db.fetch_item(conn, item_id)

    def find_by_status(self, status: Status) -> list[WorkItem]:
        with db.database_connection(self.db_path) as conn:
            return db.fetch_items_by_status(conn, status)

    def find_by_time_range(self, start: int, end: int) -> list[WorkItem]:
        with db.database_connection(self.db_path) as conn:
            return db.fetch_items_by_time_range(conn, start, end)

    def list_all(self) -> list[WorkItem]:
        with db.database_connection(self.db_path) as conn:
            return db.fetch_all_items(conn)

    def delete(self, item_id: int) -> Optional[WorkItem]:
        with db.database_connection(self.db_path) as conn:
            return db.delete_item(conn, item_id)

    def clear(self) -> None:
        with db.database_connection(self.db_path) as conn:
            db.clear_items(conn)

    # ------------------------------------------------------------------
    # Batch transitions
    # ------------------------------------------------------------------

    def pause_all_in_progress(self, *, clock: Clock = now_millis) -> list[WorkItem]:
        """Pause every item currently in progress in a single batch."""
        items = self.find_by_status(Status.IN_PROGRESS)
        for item in items:
            item.pause(clock=clock)
        self.update(items)
        if items:
            logger.info("Paused %d work item(s) in progress", len(items))
        return items

    def finish_all_paused(self, *, clock: Clock = now_millis) -> list[WorkItem]:
        """Finish every paused item in a single batch."""
        items = self.find_by_status(Status.PAUSED)
        for item in items:
            item.finish(clock=clock)
        self.update(items)
        if items:
            logger.info("Finished %d paused work item(s)", len(items))
        return items
