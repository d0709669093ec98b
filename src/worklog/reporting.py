"""Simple reporting utilities for CLI output and exports."""

from __future__ import annotations

import re
from datetime import date
from typing import Iterable, Optional, Sequence

from .calculator import unique_total_time
from .clock import Clock, from_millis, now_millis
from .work_item import WorkItem

_DURATION_PART = re.compile(r"(\d+)\s*([hms])")
_DURATION_FULL = re.compile(r"\s*(\d+\s*[hms]\s*)+")
_UNIT_SECONDS = {"h": 3600, "m": 60, "s": 1}


def parse_duration(value: str) -> int:
    """Parse ``"2h 3m 12s"``-style text into milliseconds."""
    if not _DURATION_FULL.fullmatch(value):
        raise ValueError(f"Could not parse duration from {value!r}")
    seconds = sum(
        int(amount) * _UNIT_SECONDS[unit]
        for amount, unit in _DURATION_PART.findall(value)
    )
    return seconds * 1000


def format_duration(milliseconds: int) -> str:
    """Format milliseconds as ``"2h 13m 5s"``, leaving out empty units."""
    total_seconds = max(int(milliseconds) // 1000, 0)
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    parts = [
        f"{amount}{unit}"
        for amount, unit in ((hours, "h"), (minutes, "m"), (secs, "s"))
        if amount
    ]
    return " ".join(parts) or "0s"


def format_tags(tags: Iterable[str]) -> str:
    return ", ".join(f"#{tag}" for tag in tags)


class ItemPrinter:
    """Render human-readable work item listings in the console."""

    def __init__(self, clock: Clock = now_millis) -> None:
        self.clock = clock

    def print_items(self, items: Sequence[WorkItem]) -> None:
        if not items:
            print("No work items found.")
            return

        now = self.clock()
        ordered = sorted(items, key=lambda item: item.created_timestamp, reverse=True)
        last_day: Optional[date] = None
        for item in ordered:
            started = from_millis(item.created_timestamp)
            if started.date() != last_day:
                print()
                print(f"# {started.strftime('%A - %d. %B %Y')}")
                print()
                last_day = started.date()
            print(
                f"  #{item.id} [{started.strftime('%H:%M')}] {item.description}"
                f" - {format_duration(item.time_taken(clock=lambda: now))}"
                f" ({item.status.value}) {format_tags(item.tags)}".rstrip()
            )

        print()
        print(f"Total time: {format_duration(unique_total_time(items, now))}")

    def print_item(self, item: WorkItem) -> None:
        now = self.clock()
        print(f"Work item #{item.id}")
        print("-" * 40)
        print(f"Description: {item.description}")
        print(f"Tags:        {format_tags(item.tags) or '-'}")
        print(f"Status:      {item.status.value}")
        print(f"Time taken:  {format_duration(item.time_taken(clock=lambda: now))}")
        print()
        print("Events:")
        for event in item.events:
            stamp = from_millis(event.timestamp).strftime("%Y-%m-%d %H:%M:%S")
            print(f"  {stamp}  {event.kind.value}")


def render_markdown(items: Iterable[WorkItem], now: int) -> str:
    lines = [
        f"- {item.description} ({', '.join(item.tags)}), "
        f"took {item.time_taken(clock=lambda: now) // 1000 // 60} minutes"
        for item in items
    ]
    return "".join(f"{line}\n" for line in lines)
