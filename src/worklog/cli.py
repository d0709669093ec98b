"""Command-line interface for the work log."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

import typer

from .clock import day_range, now_millis, to_millis
from .config import TrackerSettings
from .errors import InvalidTransitionError
from .models import Status
from .store import WorkLogStore
from .work_item import WorkItem

app = typer.Typer(help="Track the time spent on work items.")

DB_OPTION = typer.Option(
    None,
    "--db",
    path_type=Path,
    help="Location of the work log SQLite database.",
)


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


@app.command()
def start(
    description: str = typer.Argument(..., help="Description of the work item."),
    tags: str = typer.Option("", "--tags", "-t", help="Comma separated tags."),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Start working on a new item, pausing whatever is in progress."""
    store = _open_store(db_path)
    paused = store.pause_all_in_progress()
    for item in paused:
        typer.echo(f"Paused work item #{item.id}.")
    item_id = store.insert(WorkItem(description, _split_tags(tags)))
    typer.echo(f"Created work item #{item_id}.")


@app.command()
def pause(
    item_id: int = typer.Argument(..., help="ID of the work item to pause."),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Pause working on an item in progress."""
    store = _open_store(db_path)
    item = _load(store, item_id)
    _apply(item.pause)
    store.update([item])
    typer.echo(f"Paused work item #{item_id}.")


@app.command("continue")
def continue_item(
    item_id: int = typer.Argument(..., help="ID of the work item to continue."),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Continue working on a paused item, pausing whatever is in progress."""
    store = _open_store(db_path)
    item = _load(store, item_id)
    _apply(item.resume)
    others = store.find_by_status(Status.IN_PROGRESS)
    for other in others:
        other.pause()
    store.update([*others, item])
    for other in others:
        typer.echo(f"Paused work item #{other.id}.")
    typer.echo(f"Continued work item #{item_id}.")


@app.command()
def finish(
    item_id: int = typer.Argument(..., help="ID of the work item to finish."),
    at: Optional[datetime] = typer.Option(
        None,
        "--at",
        formats=["%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M"],
        help="When the work was finished (defaults to now).",
    ),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Finish working on an item."""
    store = _open_store(db_path)
    item = _load(store, item_id)
    _apply(lambda: item.finish(at=to_millis(at) if at else None))
    store.update([item])
    typer.echo(f"Finished work item #{item_id}.")


@app.command()
def log(
    description: str = typer.Argument(..., help="Description of the work done."),
    duration: str = typer.Argument(..., help="Time spent, e.g. '2h 3m 12s' or '45m'."),
    tags: str = typer.Option("", "--tags", "-t", help="Comma separated tags."),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Log an already finished work item."""
    from .reporting import parse_duration

    try:
        duration_ms = parse_duration(duration)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="DURATION") from exc

    item_id = _open_store(db_path).insert(
        WorkItem.logged(description, _split_tags(tags), duration_ms)
    )
    typer.echo(f"Created work item #{item_id}.")


@app.command("list")
def list_items(
    show_all: bool = typer.Option(False, "--all", help="Show every work item."),
    filter_: str = typer.Option(
        "today",
        "--filter",
        help="'today', 'yesterday', a date (YYYY-MM-DD) or a work item ID.",
    ),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """List work items."""
    from .reporting import ItemPrinter

    store = _open_store(db_path)
    if show_all:
        items = store.list_all()
    elif filter_.isdigit():
        found = store.find_by_id(int(filter_))
        items = [found] if found else []
    else:
        start_ms, end_ms = day_range(_parse_day(filter_))
        items = store.find_by_time_range(start_ms, end_ms)
    ItemPrinter().print_items(items)


@app.command()
def show(
    item_id: int = typer.Argument(..., help="ID of the work item to show."),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Show the details and event log of a work item."""
    from .reporting import ItemPrinter

    ItemPrinter().print_item(_load(_open_store(db_path), item_id))


@app.command()
def edit(
    item_id: int = typer.Argument(..., help="ID of the work item to edit."),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="New description."),
    tags: Optional[str] = typer.Option(None, "--tags", "-t", help="New comma separated tags."),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Change the description or tags of a work item."""
    store = _open_store(db_path)
    item = _load(store, item_id)
    if description:
        item.description = description
    if tags is not None:
        item.set_tags(_split_tags(tags))
    store.update([item])
    typer.echo(f"Updated work item #{item_id}.")


@app.command()
def delete(
    item_id: int = typer.Argument(..., help="ID of the work item to delete."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Delete a work item."""
    if not yes:
        typer.confirm(f"Delete work item #{item_id}?", abort=True)
    deleted = _open_store(db_path).delete(item_id)
    if deleted is None:
        typer.echo(f"Could not find work item #{item_id}.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Deleted work item #{item_id} ({deleted.description}).")


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Delete every work item."""
    if not yes:
        typer.confirm("Delete ALL work items? This cannot be undone.", abort=True)
    _open_store(db_path).clear()
    typer.echo("Cleared all work items.")


@app.command()
def export(
    path: Path = typer.Option(Path("log_export.md"), "--path", help="File to write the markdown export to."),
    db_path: Optional[Path] = DB_OPTION,
) -> None:
    """Export every work item as a markdown list."""
    from .reporting import render_markdown

    items = _open_store(db_path).list_all()
    path.write_text(render_markdown(items, now_millis()), encoding="utf-8")
    typer.echo(f"Exported {len(items)} work item(s) to {path}.")


@app.command()
def web(
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind the dashboard."),
    port: Optional[int] = typer.Option(
        None, "--port", min=1, max=65535, help="TCP port for the dashboard."
    ),
    db_path: Optional[Path] = DB_OPTION,
    open_browser: bool = typer.Option(
        True,
        "--open-browser/--no-open-browser",
        help="Automatically launch the dashboard in your default browser.",
    ),
) -> None:
    """Start the local dashboard."""
    from .server_runner import run_dashboard

    settings = TrackerSettings.from_environment().with_db_path(db_path)
    run_dashboard(
        host=host or settings.host,
        port=port or settings.port,
        db_path=settings.db_path,
        open_browser=open_browser,
    )


def _open_store(db_path: Optional[Path]) -> WorkLogStore:
    return WorkLogStore(TrackerSettings.from_environment().with_db_path(db_path).db_path)


def _load(store: WorkLogStore, item_id: int) -> WorkItem:
    item = store.find_by_id(item_id)
    if item is None:
        typer.echo(f"Could not find work item #{item_id}.", err=True)
        raise typer.Exit(code=1)
    return item


def _apply(transition: Callable[[], object]) -> None:
    try:
        transition()
    except InvalidTransitionError as exc:
        typer.echo(f"Error: {exc.reason}", err=True)
        raise typer.Exit(code=1) from exc


def _split_tags(value: str) -> list[str]:
    return [tag.strip() for tag in value.split(",") if tag.strip()]


def _parse_day(value: str) -> date:
    keyword = value.strip().lower()
    if keyword == "today":
        return date.today()
    if keyword == "yesterday":
        return date.today() - timedelta(days=1)
    try:
        return datetime.strptime(keyword, "%Y-%m-%d").date()
    except ValueError as exc:
        raise typer.BadParameter(
            "Expected 'today', 'yesterday', YYYY-MM-DD or a work item ID",
            param_hint="--filter",
        ) from exc
