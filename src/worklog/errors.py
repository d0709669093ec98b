"""Exceptions raised by the work log core."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Status


class WorklogError(Exception):
    """Base class for work log errors."""


class InvalidTransitionError(WorklogError):
    """A lifecycle transition was requested from a state that does not allow it."""

    def __init__(self, transition: str, status: "Status", reason: str) -> None:
        super().__init__(reason)
        self.transition = transition
        self.status = status
        self.reason = reason


class CorruptDataError(WorklogError):
    """Persisted data could not be interpreted as a valid work item."""


class MalformedMarkersError(AssertionError):
    """Start/end markers handed to the duration calculator do not balance."""
