from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from worklog import db
from worklog.clock import FixedClock
from worklog.errors import CorruptDataError
from worklog.models import EventKind, Status
from worklog.store import WorkLogStore
from worklog.work_item import WorkItem

from conftest import START


class TestSchema:
    def test_new_database_is_patched_to_latest(self, db_path: Path) -> None:
        with db.database_connection(db_path) as conn:
            assert db.read_version(conn) == db.LATEST_VERSION
            tables = {
                row["name"]
                for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
            }
        assert {"info", "logs", "log_tags", "log_events"} <= tables

    def test_migration_from_older_version(self, db_path: Path) -> None:
        conn = sqlite3.connect(db_path, isolation_level=None)
        conn.row_factory = sqlite3.Row
        assert db.migrate(conn, target=1) == 1
        indexes = conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'index' AND name = ?",
            ("idx_log_events_event_timestamp",),
        ).fetchall()
        assert indexes == []
        assert db.migrate(conn) == db.LATEST_VERSION
        assert db.migrate(conn) == db.LATEST_VERSION
        conn.close()

    def test_failed_patch_is_rolled_back(
        self, db_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        broken = (
            3,
            (
                "CREATE TABLE extra_notes (note TEXT)",
                "CREATE TABLE logs (id INTEGER)",
            ),
        )
        with db.database_connection(db_path) as conn:
            monkeypatch.setattr(db, "PATCHES", db.PATCHES + (broken,))
            with pytest.raises(sqlite3.OperationalError):
                db.migrate(conn, target=3)

            assert db.read_version(conn) == 2
            leftover = conn.execute(
                "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
                ("extra_notes",),
            ).fetchall()
            assert leftover == []

    def test_reopening_keeps_data(self, store: WorkLogStore, clock: FixedClock) -> None:
        item_id = store.insert(WorkItem("x", clock=clock))
        assert WorkLogStore(store.db_path).find_by_id(item_id) is not None


class TestInsertAndFind:
    def test_round_trip(self, store: WorkLogStore, clock: FixedClock) -> None:
        item = WorkItem("Review PR", ["review", "code"], clock=clock)
        clock.advance(1_000)
        item.pause(clock=clock)
        clock.advance(1_000)
        item.resume(clock=clock)

        item_id = store.insert(item)
        assert item.id == item_id

        loaded = store.find_by_id(item_id)
        assert loaded is not None
        assert loaded.id == item_id
        assert loaded.description == "Review PR"
        assert set(loaded.tags) == {"review", "code"}
        assert loaded.events == item.events
        assert loaded.status is Status.IN_PROGRESS

    def test_item_without_tags_is_found(self, store: WorkLogStore, clock: FixedClock) -> None:
        item_id = store.insert(WorkItem("untagged", clock=clock))
        loaded = store.find_by_id(item_id)
        assert loaded is not None
        assert loaded.tags == ()

    def test_missing_id_is_none(self, store: WorkLogStore) -> None:
        assert store.find_by_id(42) is None

    def test_insert_twice_rejected(self, store: WorkLogStore, clock: FixedClock) -> None:
        item = WorkItem("x", clock=clock)
        store.insert(item)
        with pytest.raises(ValueError):
            store.insert(item)

    def test_same_millisecond_events_keep_order(
        self, store: WorkLogStore, clock: FixedClock
    ) -> None:
        item_id = store.insert(WorkItem.logged("instant", [], 0, clock=clock))
        loaded = store.find_by_id(item_id)
        assert loaded is not None
        assert [event.kind for event in loaded.events] == [
            EventKind.STARTED,
            EventKind.FINISHED,
        ]
        assert loaded.status is Status.DONE

    def test_failed_insert_leaves_nothing_behind(
        self, store: WorkLogStore, clock: FixedClock
    ) -> None:
        item = WorkItem("dup events", clock=clock)
        item.pause(clock=clock)
        item.resume(clock=clock)
        item.pause(clock=clock)  # second PAUSED at the same millisecond
        with pytest.raises(sqlite3.IntegrityError):
            store.insert(item)
        assert item.id is None
        assert store.list_all() == []


class TestQueries:
    def test_find_by_status(self, store: WorkLogStore, clock: FixedClock) -> None:
        running = WorkItem("running", clock=clock)
        paused = WorkItem("paused", clock=clock)
        paused.pause(clock=clock)
        done = WorkItem.logged("done", [], 1_000, clock=clock)
        for item in (running, paused, done):
            store.insert(item)

        assert [i.id for i in store.find_by_status(Status.IN_PROGRESS)] == [running.id]
        assert [i.id for i in store.find_by_status(Status.PAUSED)] == [paused.id]
        assert [i.id for i in store.find_by_status(Status.DONE)] == [done.id]

        clock.advance(500)
        running.finish(clock=clock)
        store.update([running])
        assert store.find_by_status(Status.IN_PROGRESS) == []
        assert {i.id for i in store.find_by_status(Status.DONE)} == {running.id, done.id}

    def test_find_by_time_range_uses_start_event(
        self, store: WorkLogStore, clock: FixedClock
    ) -> None:
        early = WorkItem("early", clock=clock)
        clock.advance(10_000)
        early.finish(clock=clock)  # finished inside the range, started before it
        late = WorkItem("late", clock=clock)
        store.insert(early)
        store.insert(late)

        found = store.find_by_time_range(START + 5_000, START + 20_000)
        assert [item.id for item in found] == [late.id]
        found = store.find_by_time_range(START, START + 10_000)
        assert [item.id for item in found] == [early.id]

    def test_time_range_end_is_exclusive(self, store: WorkLogStore, clock: FixedClock) -> None:
        item_id = store.insert(WorkItem("x", clock=clock))
        assert store.find_by_time_range(START - 10, START) == []
        assert [i.id for i in store.find_by_time_range(START, START + 1)] == [item_id]

    def test_list_all_ordered_by_start(self, store: WorkLogStore, clock: FixedClock) -> None:
        second = WorkItem("second", clock=clock)
        first = WorkItem.logged("first", [], 60_000, clock=clock)
        store.insert(second)
        store.insert(first)
        assert [item.description for item in store.list_all()] == ["first", "second"]


class TestUpdate:
    def test_update_replaces_fields_tags_and_events(
        self, store: WorkLogStore, clock: FixedClock
    ) -> None:
        item = WorkItem("draft", ["a", "b"], clock=clock)
        store.insert(item)

        item.description = "final"
        item.set_tags(["c"])
        clock.advance(100)
        item.pause(clock=clock)
        store.update([item])

        loaded = store.find_by_id(item.id)
        assert loaded is not None
        assert loaded.description == "final"
        assert loaded.tags == ("c",)
        assert loaded.status is Status.PAUSED
        assert len(loaded.events) == 2

    def test_batch_is_atomic(self, store: WorkLogStore, clock: FixedClock) -> None:
        kept = WorkItem("kept", clock=clock)
        store.insert(kept)
        ghost = WorkItem.from_events(999, "ghost", [], kept.events)

        kept.description = "changed"
        with pytest.raises(LookupError):
            store.update([kept, ghost])

        loaded = store.find_by_id(kept.id)
        assert loaded is not None
        assert loaded.description == "kept"

    def test_update_requires_id(self, store: WorkLogStore, clock: FixedClock) -> None:
        with pytest.raises(ValueError):
            store.update([WorkItem("never inserted", clock=clock)])

    def test_pause_all_in_progress(self, store: WorkLogStore, clock: FixedClock) -> None:
        a = WorkItem("a", clock=clock)
        b = WorkItem("b", clock=clock)
        store.insert(a)
        store.insert(b)
        clock.advance(1_000)

        paused = store.pause_all_in_progress(clock=clock)
        assert {item.id for item in paused} == {a.id, b.id}
        assert store.find_by_status(Status.IN_PROGRESS) == []

        finished = store.finish_all_paused(clock=clock)
        assert len(finished) == 2
        assert len(store.find_by_status(Status.DONE)) == 2


class TestDeleteAndClear:
    def test_delete_returns_item(self, store: WorkLogStore, clock: FixedClock) -> None:
        item_id = store.insert(WorkItem("x", ["t"], clock=clock))
        deleted = store.delete(item_id)
        assert deleted is not None
        assert deleted.id == item_id
        assert deleted.tags == ("t",)
        assert store.find_by_id(item_id) is None
        with db.database_connection(store.db_path) as conn:
            for table, column in (("log_tags", "log_id"), ("log_events", "log_id")):
                count = conn.execute(
                    f"SELECT COUNT(*) FROM {table} WHERE {column} = ?", (item_id,)
                ).fetchone()[0]
                assert count == 0

    def test_deleted_ids_are_not_reused(self, store: WorkLogStore, clock: FixedClock) -> None:
        first = store.insert(WorkItem("first", clock=clock))
        store.delete(first)
        second = store.insert(WorkItem("second", clock=clock))
        assert second != first
        assert store.find_by_id(first) is None

    def test_delete_missing(self, store: WorkLogStore) -> None:
        assert store.delete(1) is None

    def test_clear(self, store: WorkLogStore, clock: FixedClock) -> None:
        ids = [store.insert(WorkItem(str(n), clock=clock)) for n in range(3)]
        store.clear()
        assert store.list_all() == []
        assert all(store.find_by_id(item_id) is None for item_id in ids)


class TestCorruptRows:
    def test_unknown_status_token(self, store: WorkLogStore, clock: FixedClock) -> None:
        item_id = store.insert(WorkItem("x", clock=clock))
        with db.database_connection(store.db_path) as conn:
            conn.execute("UPDATE logs SET status = 'STOPPED' WHERE id = ?", (item_id,))
        with pytest.raises(CorruptDataError):
            store.find_by_id(item_id)

    def test_unknown_event_token(self, store: WorkLogStore, clock: FixedClock) -> None:
        item_id = store.insert(WorkItem("x", clock=clock))
        with db.database_connection(store.db_path) as conn:
            conn.execute("UPDATE log_events SET event = 'BEGUN' WHERE log_id = ?", (item_id,))
        with pytest.raises(CorruptDataError):
            store.list_all()

    def test_missing_started_event(self, store: WorkLogStore, clock: FixedClock) -> None:
        item_id = store.insert(WorkItem("x", clock=clock))
        with db.database_connection(store.db_path) as conn:
            conn.execute("DELETE FROM log_events WHERE log_id = ?", (item_id,))
        with pytest.raises(CorruptDataError):
            store.find_by_id(item_id)

    def test_drifted_status_column_is_ignored(
        self, store: WorkLogStore, clock: FixedClock
    ) -> None:
        item_id = store.insert(WorkItem("x", clock=clock))
        with db.database_connection(store.db_path) as conn:
            conn.execute("UPDATE logs SET status = 'DONE' WHERE id = ?", (item_id,))
        assert [i.id for i in store.find_by_status(Status.IN_PROGRESS)] == [item_id]
        assert store.find_by_status(Status.DONE) == []
