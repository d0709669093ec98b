"""SQLite persistence for work items (header, tags and event log)."""

from __future__ import annotations

import logging
import sqlite3
from collections import defaultdict
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence

from .models import Event, EventKind, Status
from .work_item import WorkItem

logger = logging.getLogger(__name__)


# Additive schema patches, applied in ascending version order.
PATCHES: tuple[tuple[int, tuple[str, ...]], ...] = (
    (
        1,
        (
            """
            CREATE TABLE logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                description TEXT NOT NULL,
                status TEXT NOT NULL
            )
            """,
            """
            CREATE TABLE log_tags (
                log_id INTEGER NOT NULL,
                tag TEXT NOT NULL,
                PRIMARY KEY (log_id, tag),
                FOREIGN KEY (log_id) REFERENCES logs(id)
            )
            """,
            """
            CREATE TABLE log_events (
                log_id INTEGER NOT NULL,
                timestamp INTEGER NOT NULL,
                event TEXT NOT NULL,
                PRIMARY KEY (log_id, timestamp, event),
                FOREIGN KEY (log_id) REFERENCES logs(id)
            )
            """,
        ),
    ),
    (
        2,
        (
            """
            CREATE INDEX idx_log_events_event_timestamp
                ON log_events(event, timestamp)
            """,
        ),
    ),
)

LATEST_VERSION = PATCHES[-1][0]


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open the SQLite database and bring its schema up to date."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    enable_foreign_keys(conn)
    try:
        migrate(conn)
    except BaseException:
        conn.close()
        raise
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def enable_foreign_keys(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA foreign_keys = ON;")


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the block as one write transaction; roll back on any error.

    ``BEGIN IMMEDIATE`` takes the database write lock up front so concurrent
    processes serialise on the file lock instead of failing mid-batch.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


# ----------------------------------------------------------------------
# Schema versioning
# ----------------------------------------------------------------------


def read_version(conn: sqlite3.Connection) -> int:
    """Return the stored schema version, or -1 for an uninitialised database."""
    exists = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = 'info'"
    ).fetchone()
    if exists is None:
        return -1
    row = conn.execute("SELECT version FROM info").fetchone()
    return row["version"] if row else -1


def migrate(conn: sqlite3.Connection, target: int = LATEST_VERSION) -> int:
    """Apply every pending patch up to ``target`` and return the final version."""
    if read_version(conn) < 0:
        with transaction(conn):
            # Another process may have initialised it while we waited for the lock.
            if read_version(conn) < 0:
                conn.execute("CREATE TABLE IF NOT EXISTS info (version INTEGER PRIMARY KEY)")
                conn.execute("DELETE FROM info")
                conn.execute("INSERT INTO info (version) VALUES (0)")

    version = read_version(conn)
    for patch_version, statements in PATCHES:
        if patch_version > target:
            break
        if patch_version <= version:
            continue
        with transaction(conn):
            if read_version(conn) >= patch_version:
                continue
            for statement in statements:
                conn.execute(statement)
            conn.execute("UPDATE info SET version = ?", (patch_version,))
        logger.info("Patched work log database to version %d", patch_version)
        version = patch_version
    return read_version(conn)


# ----------------------------------------------------------------------
# Writes
# ----------------------------------------------------------------------


def insert_item(conn: sqlite3.Connection, item: WorkItem) -> int:
    """Insert header, tags and events of a new item as one transaction."""
    if item.id is not None:
        raise ValueError(f"Work item {item.id} is already persisted")

    with transaction(conn):
        cur = conn.execute(
            "INSERT INTO logs (description, status) VALUES (?, ?)",
            (item.description, item.status.value),
        )
        item_id = int(cur.lastrowid)  # type: ignore[arg-type]
        _write_children(conn, item_id, item)

    item.assign_id(item_id)
    logger.debug("Inserted work item %d with %d events", item_id, len(item.events))
    return item_id


def update_items(conn: sqlite3.Connection, items: Sequence[WorkItem]) -> None:
    """Replace the stored state of every item; all of them or none."""
    with transaction(conn):
        for item in items:
            if item.id is None:
                raise ValueError("Cannot update a work item that was never inserted")
            cur = conn.execute(
                "UPDATE logs SET description = ?, status = ? WHERE id = ?",
                (item.description, item.status.value, item.id),
            )
            if cur.rowcount == 0:
                raise LookupError(f"No work item found for id={item.id}")
            _delete_children(conn, item.id)
            _write_children(conn, item.id, item)
    logger.debug("Updated %d work item(s)", len(items))


def delete_item(conn: sqlite3.Connection, item_id: int) -> Optional[WorkItem]:
    """Delete an item and return it as it was, or ``None`` if it did not exist."""
    with transaction(conn):
        item = fetch_item(conn, item_id)
        if item is None:
            return None
        _delete_children(conn, item_id)
        conn.execute("DELETE FROM logs WHERE id = ?", (item_id,))
    logger.debug("Deleted work item %d", item_id)
    return item


def clear_items(conn: sqlite3.Connection) -> None:
    with transaction(conn):
        conn.execute("DELETE FROM log_events")
        conn.execute("DELETE FROM log_tags")
        conn.execute("DELETE FROM logs")
    logger.debug("Cleared all work items")


def _write_children(conn: sqlite3.Connection, item_id: int, item: WorkItem) -> None:
    conn.executemany(
        "INSERT INTO log_tags (log_id, tag) VALUES (?, ?)",
        [(item_id, tag) for tag in item.tags],
    )
    conn.executemany(
        "INSERT INTO log_events (log_id, timestamp, event) VALUES (?, ?, ?)",
        [(item_id, event.timestamp, event.kind.value) for event in item.events],
    )


def _delete_children(conn: sqlite3.Connection, item_id: int) -> None:
    conn.execute("DELETE FROM log_tags WHERE log_id = ?", (item_id,))
    conn.execute("DELETE FROM log_events WHERE log_id = ?", (item_id,))


# ----------------------------------------------------------------------
# Reads
# ----------------------------------------------------------------------


def fetch_item(conn: sqlite3.Connection, item_id: int) -> Optional[WorkItem]:
    items = _load_items(conn, "WHERE id = ?", (item_id,))
    return items[0] if items else None


def fetch_all_items(conn: sqlite3.Connection) -> list[WorkItem]:
    return _load_items(conn, "", ())


def fetch_items_by_status(conn: sqlite3.Connection, status: Status) -> list[WorkItem]:
    """Items whose event log currently ends in ``status``.

    The stored status column is only a cache, so the filter runs on the
    replayed status.
    """
    return [item for item in fetch_all_items(conn) if item.status is status]


def fetch_items_by_time_range(
    conn: sqlite3.Connection, start: int, end: int
) -> list[WorkItem]:
    """Items whose STARTED event falls in ``[start, end)``."""
    return _load_items(
        conn,
        """
        WHERE id IN (
            SELECT log_id FROM log_events
            WHERE event = 'STARTED' AND timestamp >= ? AND timestamp < ?
        )
        """,
        (start, end),
    )


def _load_items(
    conn: sqlite3.Connection, where: str, params: Iterable[object]
) -> list[WorkItem]:
    params = tuple(params)
    headers = conn.execute(
        f"SELECT id, description, status FROM logs {where}", params
    ).fetchall()
    if not headers:
        return []

    scope = f"log_id IN (SELECT id FROM logs {where})"
    tags: defaultdict[int, list[str]] = defaultdict(list)
    for row in conn.execute(f"SELECT log_id, tag FROM log_tags WHERE {scope}", params):
        tags[row["log_id"]].append(row["tag"])

    events: defaultdict[int, list[Event]] = defaultdict(list)
    for row in conn.execute(
        f"""
        SELECT log_id, timestamp, event FROM log_events
        WHERE {scope}
        ORDER BY rowid
        """,
        params,
    ):
        events[row["log_id"]].append(
            Event(EventKind.parse(row["event"]), int(row["timestamp"]))
        )

    items = [
        WorkItem.from_events(
            row["id"],
            row["description"],
            tags[row["id"]],
            events[row["id"]],
            stored_status=Status.parse(row["status"]),
        )
        for row in headers
    ]
    items.sort(key=lambda item: (item.created_timestamp, item.id))
    return items
