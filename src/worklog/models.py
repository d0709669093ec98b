"""Value types describing work item lifecycle events."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .errors import CorruptDataError


class EventKind(str, Enum):
    """Lifecycle transition recorded in a work item's event log."""

    STARTED = "STARTED"
    PAUSED = "PAUSED"
    CONTINUED = "CONTINUED"
    FINISHED = "FINISHED"

    @property
    def is_start_like(self) -> bool:
        return self in (EventKind.STARTED, EventKind.CONTINUED)

    @classmethod
    def parse(cls, token: str) -> "EventKind":
        try:
            return cls(token)
        except ValueError as exc:
            raise CorruptDataError(f"Unknown event kind {token!r}") from exc


class Status(str, Enum):
    """Status of a work item, derived from the last event of its log."""

    DONE = "DONE"
    IN_PROGRESS = "IN_PROGRESS"
    PAUSED = "PAUSED"

    @classmethod
    def parse(cls, token: str) -> "Status":
        try:
            return cls(token)
        except ValueError as exc:
            raise CorruptDataError(f"Unknown status {token!r}") from exc

    @classmethod
    def after(cls, kind: EventKind) -> "Status":
        """Return the status an item is in right after an event of ``kind``."""
        if kind.is_start_like:
            return cls.IN_PROGRESS
        if kind is EventKind.PAUSED:
            return cls.PAUSED
        return cls.DONE


@dataclass(frozen=True, slots=True)
class Event:
    """A single timestamped lifecycle transition (milliseconds since epoch, UTC)."""

    kind: EventKind
    timestamp: int

    @property
    def is_start_like(self) -> bool:
        return self.kind.is_start_like
