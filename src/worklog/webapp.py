"""FastAPI application exposing the work log as a local JSON API."""

from __future__ import annotations

import logging
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict

from .calculator import unique_total_time
from .clock import Clock, day_range, now_millis, to_millis
from .config import TrackerSettings
from .errors import InvalidTransitionError
from .models import Status
from .store import WorkLogStore
from .work_item import WorkItem

logger = logging.getLogger(__name__)


class ItemCreate(BaseModel):
    description: str
    tags: List[str] = []
    pause_others: bool = True

    model_config = ConfigDict(extra="forbid")


class ItemUpdate(BaseModel):
    description: Optional[str] = None
    tags: Optional[List[str]] = None

    model_config = ConfigDict(extra="forbid")


class FinishPayload(BaseModel):
    at: Optional[datetime] = None

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    clock: Clock = now_millis,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    resolved_db_path = Path(db_path or TrackerSettings.from_environment().db_path)
    store = WorkLogStore(resolved_db_path)

    app = FastAPI(title="Worklog", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = resolved_db_path

    @app.get("/api/status")
    def status() -> Dict[str, Any]:
        in_progress = store.find_by_status(Status.IN_PROGRESS)
        return {
            "database_path": str(resolved_db_path),
            "in_progress": [item.id for item in in_progress],
        }

    @app.get("/api/items")
    def list_items(
        status: Optional[Status] = Query(default=None, description="Filter by status."),
        date: Optional[str] = Query(
            default=None,
            description="Only items started on this date (YYYY-MM-DD).",
        ),
    ) -> Dict[str, Any]:
        if date:
            items = store.find_by_time_range(*day_range(_parse_date(date)))
            if status:
                items = [item for item in items if item.status is status]
        elif status:
            items = store.find_by_status(status)
        else:
            items = store.list_all()
        now = clock()
        return {"items": [_item_payload(item, now) for item in items]}

    @app.post("/api/items", status_code=201)
    def create_item(payload: ItemCreate) -> Dict[str, Any]:
        description = payload.description.strip()
        if not description:
            raise HTTPException(status_code=400, detail="description is required")
        if payload.pause_others:
            store.pause_all_in_progress(clock=clock)
        item = WorkItem(description, payload.tags, clock=clock)
        store.insert(item)
        return _item_payload(item, clock())

    @app.get("/api/items/{item_id}")
    def get_item(item_id: int) -> Dict[str, Any]:
        return _item_payload(_load(store, item_id), clock())

    @app.patch("/api/items/{item_id}")
    def update_item(item_id: int, payload: ItemUpdate) -> Dict[str, Any]:
        item = _load(store, item_id)
        updates = payload.model_dump(exclude_unset=True)
        if updates.get("description"):
            item.description = updates["description"]
        if updates.get("tags") is not None:
            item.set_tags(updates["tags"])
        store.update([item])
        return _item_payload(item, clock())

    @app.delete("/api/items/{item_id}")
    def delete_item(item_id: int) -> Dict[str, Any]:
        item = store.delete(item_id)
        if item is None:
            raise HTTPException(status_code=404, detail="Work item not found")
        return _item_payload(item, clock())

    @app.post("/api/items/{item_id}/pause")
    def pause_item(item_id: int) -> Dict[str, Any]:
        return _transition(store, item_id, lambda item: item.pause(clock=clock), clock)

    @app.post("/api/items/{item_id}/continue")
    def continue_item(item_id: int) -> Dict[str, Any]:
        return _transition(store, item_id, lambda item: item.resume(clock=clock), clock)

    @app.post("/api/items/{item_id}/finish")
    def finish_item(item_id: int, payload: Optional[FinishPayload] = None) -> Dict[str, Any]:
        at = to_millis(payload.at) if payload and payload.at else None
        return _transition(
            store, item_id, lambda item: item.finish(at=at, clock=clock), clock
        )

    @app.get("/api/summary")
    def summary(
        date: Optional[str] = Query(
            default=None,
            description="Target date in YYYY-MM-DD format.",
        ),
    ) -> Dict[str, Any]:
        target_day = _parse_date(date)
        start, end = day_range(target_day)
        items = store.find_by_time_range(start, end)
        now = clock()
        entries = [_item_payload(item, now) for item in items]
        return {
            "date": target_day.isoformat(),
            "totals": {
                "summed_ms": sum(
                    unique_total_time([item], now, start, end) for item in items
                ),
                "unique_ms": unique_total_time(items, now, start, end),
            },
            "items": entries,
        }

    return app


def _load(store: WorkLogStore, item_id: int) -> WorkItem:
    item = store.find_by_id(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Work item not found")
    return item


def _transition(
    store: WorkLogStore,
    item_id: int,
    apply: Callable[[WorkItem], object],
    clock: Clock,
) -> Dict[str, Any]:
    item = _load(store, item_id)
    try:
        apply(item)
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=exc.reason) from exc
    store.update([item])
    logger.info("Work item %d is now %s", item_id, item.status.value)
    return _item_payload(item, clock())


def _parse_date(value: Optional[str]) -> date:
    if not value:
        return date.today()
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc


def _item_payload(item: WorkItem, now: int) -> Dict[str, Any]:
    return {
        "id": item.id,
        "description": item.description,
        "tags": list(item.tags),
        "status": item.status.value,
        "created_timestamp": item.created_timestamp,
        "time_taken_ms": item.time_taken(clock=lambda: now),
        "events": [
            {"kind": event.kind.value, "timestamp": event.timestamp}
            for event in item.events
        ],
    }
