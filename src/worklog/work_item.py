"""The work item aggregate and its lifecycle state machine."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Sequence

from .clock import Clock, now_millis
from .errors import CorruptDataError, InvalidTransitionError
from .models import Event, EventKind, Status

logger = logging.getLogger(__name__)

# Statuses an event kind may be appended from. ``None`` means "empty log".
_ALLOWED_FROM: dict[EventKind, tuple[Optional[Status], ...]] = {
    EventKind.STARTED: (None,),
    EventKind.PAUSED: (Status.IN_PROGRESS,),
    EventKind.CONTINUED: (Status.PAUSED,),
    EventKind.FINISHED: (Status.IN_PROGRESS, Status.PAUSED),
}

_REJECTIONS: dict[EventKind, str] = {
    EventKind.PAUSED: "cannot pause: not in progress",
    EventKind.CONTINUED: "cannot continue: not paused",
    EventKind.FINISHED: "cannot finish: already finished",
}


def replay_status(events: Sequence[Event]) -> Status:
    """Run ``events`` (already sorted) through the state machine.

    Returns the resulting status or raises ``CorruptDataError`` when the log
    could not have been produced by the lifecycle transitions.
    """
    if not events:
        raise CorruptDataError("A work item must have a STARTED event")
    if events[0].kind is not EventKind.STARTED:
        raise CorruptDataError(
            f"Event log starts with {events[0].kind.value} instead of STARTED"
        )

    status = Status.IN_PROGRESS
    for event in events[1:]:
        if status not in _ALLOWED_FROM[event.kind]:
            raise CorruptDataError(
                f"Event {event.kind.value} at {event.timestamp} is not allowed "
                f"after status {status.value}"
            )
        status = Status.after(event.kind)
    return status


def normalize_tags(tags: Iterable[str]) -> set[str]:
    return {tag.strip() for tag in tags if tag and tag.strip()}


class WorkItem:
    """A trackable unit of work.

    The event log is the source of truth: ``status`` always mirrors the last
    event and ``time_taken`` is computed by walking the log.
    """

    def __init__(
        self,
        description: str,
        tags: Iterable[str] = (),
        *,
        clock: Clock = now_millis,
    ) -> None:
        self._id: Optional[int] = None
        self.description = description
        self._tags = normalize_tags(tags)
        self._events: list[Event] = [Event(EventKind.STARTED, clock())]
        self._status = Status.IN_PROGRESS

    @classmethod
    def logged(
        cls,
        description: str,
        tags: Iterable[str],
        duration_ms: int,
        *,
        clock: Clock = now_millis,
    ) -> "WorkItem":
        """Create an item for work already done, ending now."""
        if duration_ms < 0:
            raise ValueError("duration must not be negative")
        now = clock()
        item = cls(description, tags, clock=lambda: now - duration_ms)
        item.finish(at=now)
        return item

    @classmethod
    def from_events(
        cls,
        item_id: Optional[int],
        description: str,
        tags: Iterable[str],
        events: Iterable[Event],
        stored_status: Optional[Status] = None,
    ) -> "WorkItem":
        """Rebuild an aggregate from persisted rows.

        Events may arrive in any order; the sort is stable so rows sharing a
        timestamp keep their insertion order.
        """
        ordered = sorted(events, key=lambda event: event.timestamp)
        status = replay_status(ordered)
        if stored_status is not None and stored_status is not status:
            logger.warning(
                "Stored status %s of work item %s disagrees with its event log (%s)",
                stored_status.value,
                item_id,
                status.value,
            )

        item = cls.__new__(cls)
        item._id = item_id
        item.description = description
        item._tags = normalize_tags(tags)
        item._events = ordered
        item._status = status
        return item

    def __repr__(self) -> str:
        return (
            f"WorkItem(id={self._id!r}, description={self.description!r}, "
            f"tags={list(self.tags)!r}, status={self._status.value})"
        )

    # ------------------------------------------------------------------
    # Identity and fields
    # ------------------------------------------------------------------

    @property
    def id(self) -> Optional[int]:
        return self._id

    def assign_id(self, item_id: int) -> None:
        if self._id is not None:
            raise ValueError(f"Work item already has id {self._id}")
        self._id = item_id

    @property
    def tags(self) -> tuple[str, ...]:
        return tuple(sorted(self._tags))

    def set_tags(self, tags: Iterable[str]) -> None:
        self._tags = normalize_tags(tags)

    def add_tag(self, tag: str) -> None:
        self._tags |= normalize_tags([tag])

    @property
    def status(self) -> Status:
        return self._status

    @property
    def events(self) -> tuple[Event, ...]:
        return tuple(self._events)

    @property
    def created_timestamp(self) -> int:
        for event in self._events:
            if event.kind is EventKind.STARTED:
                return event.timestamp
        raise CorruptDataError("A work item must have a STARTED event")

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def pause(self, *, clock: Clock = now_millis) -> Event:
        return self._append(EventKind.PAUSED, clock())

    def resume(self, *, clock: Clock = now_millis) -> Event:
        """Continue working on a paused item."""
        return self._append(EventKind.CONTINUED, clock())

    def finish(self, at: Optional[int] = None, *, clock: Clock = now_millis) -> Event:
        return self._append(EventKind.FINISHED, clock() if at is None else at)

    def _append(self, kind: EventKind, timestamp: int) -> Event:
        if self._status not in _ALLOWED_FROM[kind]:
            raise InvalidTransitionError(kind.value, self._status, _REJECTIONS[kind])
        last = self._events[-1]
        if timestamp < last.timestamp:
            verb = _REJECTIONS[kind].split(":", 1)[0]
            raise InvalidTransitionError(
                kind.value,
                self._status,
                f"{verb}: timestamp {timestamp} precedes last event at {last.timestamp}",
            )

        event = Event(kind, timestamp)
        self._events.append(event)
        self._status = Status.after(kind)
        return event

    # ------------------------------------------------------------------
    # Durations
    # ------------------------------------------------------------------

    def active_intervals(self, now: int) -> list[tuple[int, int]]:
        """Return ``(start, end)`` spans during which the item was in progress.

        A trailing open span is closed at ``now`` only while in progress.
        """
        spans: list[tuple[int, int]] = []
        open_start: Optional[int] = None
        for event in self._events:
            if event.is_start_like:
                open_start = event.timestamp
            elif open_start is not None:
                spans.append((open_start, event.timestamp))
                open_start = None

        if open_start is not None and self._status is Status.IN_PROGRESS:
            spans.append((open_start, max(now, open_start)))
        return spans

    def time_taken(self, *, clock: Clock = now_millis) -> int:
        """Milliseconds spent actively working on the item."""
        now = clock() if self._status is Status.IN_PROGRESS else self._events[-1].timestamp
        return sum(end - start for start, end in self.active_intervals(now))
