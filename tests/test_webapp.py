from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from worklog.clock import FixedClock, day_range, from_millis
from worklog.webapp import create_app

from conftest import START


@pytest.fixture
def client(db_path: Path, clock: FixedClock) -> TestClient:
    return TestClient(create_app(db_path=db_path, clock=clock))


class TestItemsApi:
    def test_lifecycle(self, client: TestClient, clock: FixedClock) -> None:
        created = client.post("/api/items", json={"description": "API work", "tags": ["api"]})
        assert created.status_code == 201
        item_id = created.json()["id"]
        assert created.json()["status"] == "IN_PROGRESS"

        clock.advance(2_000)
        paused = client.post(f"/api/items/{item_id}/pause")
        assert paused.status_code == 200
        assert paused.json()["time_taken_ms"] == 2_000

        clock.advance(2_000)
        assert client.post(f"/api/items/{item_id}/continue").json()["status"] == "IN_PROGRESS"
        clock.advance(1_000)
        finished = client.post(f"/api/items/{item_id}/finish")
        assert finished.json()["status"] == "DONE"
        assert finished.json()["time_taken_ms"] == 3_000
        assert [e["kind"] for e in finished.json()["events"]] == [
            "STARTED",
            "PAUSED",
            "CONTINUED",
            "FINISHED",
        ]

    def test_rejected_transition_is_conflict(self, client: TestClient) -> None:
        item_id = client.post("/api/items", json={"description": "x"}).json()["id"]
        response = client.post(f"/api/items/{item_id}/continue")
        assert response.status_code == 409
        assert response.json()["detail"] == "cannot continue: not paused"

    def test_missing_item(self, client: TestClient) -> None:
        assert client.get("/api/items/123").status_code == 404
        assert client.delete("/api/items/123").status_code == 404

    def test_filter_by_status(self, client: TestClient) -> None:
        first = client.post("/api/items", json={"description": "first"}).json()["id"]
        second = client.post("/api/items", json={"description": "second"}).json()["id"]
        paused = client.get("/api/items", params={"status": "PAUSED"}).json()["items"]
        running = client.get("/api/items", params={"status": "IN_PROGRESS"}).json()["items"]
        assert [item["id"] for item in paused] == [first]
        assert [item["id"] for item in running] == [second]

    def test_patch_and_delete(self, client: TestClient) -> None:
        item_id = client.post("/api/items", json={"description": "x", "tags": ["a"]}).json()["id"]
        patched = client.patch(
            f"/api/items/{item_id}", json={"description": "y", "tags": ["b", "a"]}
        )
        assert patched.json()["description"] == "y"
        assert patched.json()["tags"] == ["a", "b"]
        assert client.delete(f"/api/items/{item_id}").json()["id"] == item_id
        assert client.get("/api/items").json()["items"] == []

    def test_summary_counts_parallel_work_once(
        self, client: TestClient, clock: FixedClock
    ) -> None:
        client.post("/api/items", json={"description": "a"})
        client.post("/api/items", json={"description": "b", "pause_others": False})
        clock.advance(60_000)

        day = from_millis(START).date().isoformat()
        totals = client.get("/api/summary", params={"date": day}).json()["totals"]
        assert totals == {"summed_ms": 120_000, "unique_ms": 60_000}

    def test_summary_clips_work_to_the_day(
        self, db_path: Path, clock: FixedClock
    ) -> None:
        day = from_millis(START).date()
        _, end = day_range(day)
        clock.set(end - 30_000)
        client = TestClient(create_app(db_path=db_path, clock=clock))
        client.post("/api/items", json={"description": "late"})
        clock.set(end + 90_000)

        body = client.get("/api/summary", params={"date": day.isoformat()}).json()
        assert body["totals"] == {"summed_ms": 30_000, "unique_ms": 30_000}
        assert body["items"][0]["time_taken_ms"] == 120_000

    def test_status_lists_running_items(self, client: TestClient, db_path: Path) -> None:
        client.post("/api/items", json={"description": "a"})
        running = client.post("/api/items", json={"description": "b"}).json()["id"]

        body = client.get("/api/status").json()
        assert body == {"database_path": str(db_path), "in_progress": [running]}

    def test_invalid_date(self, client: TestClient) -> None:
        assert client.get("/api/summary", params={"date": "yesterday"}).status_code == 400
