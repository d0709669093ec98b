"""Overlap-aware duration totals across several work items."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from .errors import MalformedMarkersError
from .work_item import WorkItem


@dataclass(frozen=True, slots=True)
class TimeMarker:
    """Start or end of one active interval."""

    is_start: bool
    timestamp: int


def calculate_unique_total_time(markers: Iterable[TimeMarker]) -> int:
    """Return the length of the union of the intervals described by ``markers``.

    Parallel work is only counted once: ``[10, 20]`` and ``[15, 30]`` add up
    to 20, not 25. Markers may be passed in any order.
    """
    total = 0
    active = 0
    union_start = 0
    # Starts sort before ends on equal timestamps so zero-length intervals
    # never push the active count below zero.
    for marker in sorted(markers, key=lambda m: (m.timestamp, not m.is_start)):
        if marker.is_start:
            active += 1
            if active == 1:
                union_start = marker.timestamp
        else:
            active -= 1
            if active < 0:
                raise MalformedMarkersError(
                    f"End marker at {marker.timestamp} has no matching start"
                )
            if active == 0:
                total += marker.timestamp - union_start

    if active != 0:
        raise MalformedMarkersError(f"{active} start marker(s) were never closed")
    return total


def markers_for_items(
    items: Iterable[WorkItem],
    now: int,
    start: Optional[int] = None,
    end: Optional[int] = None,
) -> list[TimeMarker]:
    """Pool one start/end marker pair per active interval of every item.

    When ``start``/``end`` are given, intervals are clipped to ``[start, end)``
    and dropped if nothing remains.
    """
    markers: list[TimeMarker] = []
    for item in items:
        for span_start, span_end in item.active_intervals(now):
            if start is not None:
                span_start = max(span_start, start)
            if end is not None:
                span_end = min(span_end, end)
            if span_end <= span_start:
                continue
            markers.append(TimeMarker(True, span_start))
            markers.append(TimeMarker(False, span_end))
    return markers


def unique_total_time(
    items: Iterable[WorkItem],
    now: int,
    start: Optional[int] = None,
    end: Optional[int] = None,
) -> int:
    return calculate_unique_total_time(markers_for_items(items, now, start, end))
