"""
recallkit: terminal interface for the progress engine.

Commands:
- recallkit review   - Record one rating
- recallkit due      - List items due for review
- recallkit study    - Rate due and new items one after another
- recallkit stats    - Show streaks, heatmap and totals
- recallkit modules  - Show the course catalog
- recallkit export   - Write a progress snapshot
- recallkit import   - Restore a progress snapshot
- recallkit clear    - Wipe one course's progress (backup first)
- recallkit backups  - List backup files
"""
from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from loguru import logger
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table

from .catalog import CourseCatalog
from .clock import DayClock
from .config import Settings, get_settings
from .errors import RecallkitError
from .scheduler import InterleaveConfig, Rating, RatingEvent, StudyScheduler
from .state_store import ProgressStore
from .streaks import HeatmapCell, StreakAggregator
from .transfer import LedgerTransfer

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="recallkit",
    help="recallkit: offline spaced-repetition progress tracking",
    no_args_is_help=True,
)
console = Console()


# =============================================================================
# Styling
# =============================================================================

STYLES = {
    "rating": {
        Rating.PEEKED: "bold red",
        Rating.STRUGGLED: "bold yellow",
        Rating.RECALLED: "bold green",
    },
    "kind": {
        "warmup": "cyan",
        "challenge": "magenta",
        "flashcard": "blue",
    },
}

HEAT_LEVELS = [(0, "[dim]·[/dim]"), (1, "[green]▪[/green]"), (5, "[bold green]■[/bold green]")]


def style_kind(kind: str) -> str:
    color = STYLES["kind"].get(kind, "white")
    return f"[{color}]{kind}[/{color}]"


# =============================================================================
# Helpers
# =============================================================================


def _components(settings: Settings) -> tuple[ProgressStore, DayClock]:
    return ProgressStore(settings.db_path), DayClock.from_name(settings.timezone)


def _scheduler(store: ProgressStore, clock: DayClock, settings: Settings) -> StudyScheduler:
    config = InterleaveConfig(
        new_items_per_session=settings.new_items_per_session,
        max_due_items=settings.max_due_items,
    )
    return StudyScheduler(store, clock=clock, config=config)


def _load_catalog(course: str, content_root: Optional[Path], settings: Settings) -> CourseCatalog:
    catalog = CourseCatalog(course, content_root or settings.content_root)
    catalog.load()
    return catalog


def _fail(error: Exception) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")
    raise typer.Exit(1)


def _parse_when(value: Optional[str], clock: DayClock) -> datetime:
    if value is None:
        return clock.now()
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise typer.BadParameter(f"Not an ISO timestamp: {value}") from e


def _heat_symbol(count: int) -> str:
    symbol = HEAT_LEVELS[0][1]
    for threshold, glyph in HEAT_LEVELS:
        if count >= threshold:
            symbol = glyph
    return symbol


def _render_heatmap(cells: list[HeatmapCell]) -> str:
    """Weekday rows x week columns, like a contribution graph."""
    rows: dict[int, list[str]] = {weekday: [] for weekday in range(7)}
    if cells:
        # Pad the first week so columns line up on weekdays
        for weekday in range(cells[0].day.weekday()):
            rows[weekday].append(" ")
    for cell in cells:
        rows[cell.day.weekday()].append(_heat_symbol(cell.count))
    labels = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    return "\n".join(f"{labels[wd]} {' '.join(rows[wd])}" for wd in range(7))


# =============================================================================
# Commands
# =============================================================================


@app.command()
def review(
    course: str = typer.Argument(..., help="Course id"),
    item: str = typer.Argument(..., help="Item id"),
    rating: str = typer.Argument(..., help="peeked | struggled | recalled (or p/s/r)"),
    at: Optional[str] = typer.Option(None, "--at", help="ISO timestamp (default: now)"),
) -> None:
    """Record one rating for an item."""
    settings = get_settings()
    store, clock = _components(settings)
    with store:
        when = _parse_when(at, clock)
        try:
            state = _scheduler(store, clock, settings).record_review(
                RatingEvent(course_id=course, item_id=item, rating=rating, timestamp=when)
            )
        except RecallkitError as e:
            _fail(e)

    style = STYLES["rating"][Rating.parse(rating)]
    console.print(
        f"[{style}]{Rating.parse(rating).value}[/{style}] {item}: next review "
        f"{state.due_date.isoformat()} (interval {state.interval_days}d, ease {state.ease_factor:.2f})"
    )


@app.command()
def due(
    course: str = typer.Argument(..., help="Course id"),
    module: Optional[int] = typer.Option(None, "--module", "-m", help="Only this module"),
    include_new: bool = typer.Option(
        False, "--new/--no-new", help="Append never-studied catalog items"
    ),
    content_root: Optional[Path] = typer.Option(None, "--content", "-c", help="Content root"),
) -> None:
    """List items due for review."""
    settings = get_settings()
    store, clock = _components(settings)
    with store:
        try:
            catalog_ids = None
            if include_new or module is not None:
                catalog = _load_catalog(course, content_root, settings)
                catalog_ids = catalog.item_ids(module)
            ids = _scheduler(store, clock, settings).due_items(course, clock.now(), catalog_ids)
            if module is not None:
                scope = set(catalog_ids or [])
                ids = [iid for iid in ids if iid in scope]
            course_state = store.load(course)
        except RecallkitError as e:
            _fail(e)

    if not ids:
        console.print("[green]Nothing due for review![/green]")
        return

    table = Table(title=f"Due in {course}")
    table.add_column("Item")
    table.add_column("Status")
    table.add_column("Due")
    for iid in ids:
        state = course_state.items.get(iid)
        if state is None:
            table.add_row(iid, "[green]new[/green]", "-")
        else:
            table.add_row(iid, "[yellow]due[/yellow]", state.due_date.isoformat())
    console.print(table)


@app.command()
def study(
    course: str = typer.Argument(..., help="Course id"),
    module: Optional[int] = typer.Option(None, "--module", "-m", help="Study one module"),
    shuffle: bool = typer.Option(False, "--shuffle", "-s", help="Shuffle across all modules"),
    content_root: Optional[Path] = typer.Option(None, "--content", "-c", help="Content root"),
) -> None:
    """
    Rate due and new items one after another.

    Items are shown by id only; open them in the course site and come back
    to rate them.
    """
    settings = get_settings()
    store, clock = _components(settings)
    with store:
        catalog = _load_catalog(course, content_root, settings)
        if len(catalog) == 0:
            console.print(f"\n[red]No items found in {catalog.course_dir}[/red]")
            raise typer.Exit(1)

        scheduler = _scheduler(store, clock, settings)
        try:
            session = scheduler.build_session(
                catalog, clock.now(), module_id=module, shuffle=shuffle
            )
        except RecallkitError as e:
            _fail(e)
        if session.total_items == 0:
            console.print("\n[green]Nothing due for review![/green]")
            console.print("All caught up. Check back tomorrow.")
            return

        console.print(f"\n[bold]Session: {session.total_items} items[/bold]")
        console.print(f"  Due reviews: {len(session.due_items)}")
        console.print(f"  New items: {len(session.new_items)}")
        console.print(f"  Estimated time: ~{session.estimated_minutes} min\n")

        completed = 0
        for i, entry in enumerate(session.queue, 1):
            console.print(Panel(
                f"{entry.item_id}\n[dim]{entry.concept or ''}[/dim]",
                title=f"{i}/{session.total_items}  |  {style_kind(entry.kind)}  |  Module {entry.module_id}",
                title_align="left",
                border_style="cyan",
            ))
            answer = Prompt.ask("Rating", choices=["p", "s", "r", "q"], default="r")
            if answer == "q":
                break
            try:
                scheduler.record_review(
                    RatingEvent(course, entry.item_id, answer, clock.now())
                )
            except RecallkitError as e:
                _fail(e)
            completed += 1

    console.print(f"\n[green]Rated {completed} item(s).[/green]")


@app.command()
def stats(
    course: str = typer.Argument(..., help="Course id"),
    days: Optional[int] = typer.Option(None, "--days", "-d", help="Heatmap window in days"),
) -> None:
    """Show streaks, activity heatmap and totals."""
    settings = get_settings()
    store, clock = _components(settings)
    with store:
        try:
            aggregator = StreakAggregator(store, clock, default_window=settings.heatmap_days)
            now = clock.now()
            summary = aggregator.streak(course, now)
            cells = aggregator.heatmap(course, now, days)
            totals = store.get_stats(course, clock.calendar_day(now))
        except (RecallkitError, ValueError) as e:
            _fail(e)

    console.print(f"\n[bold cyan]Progress: {course}[/bold cyan]")
    console.print("=" * 40)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="dim")
    table.add_column("Value", style="bold")
    table.add_row("Current streak", f"{summary.current} day(s)")
    table.add_row("Best streak", f"{summary.best} day(s)")
    table.add_row("Reviewed today", str(summary.today))
    table.add_row("Items tracked", str(totals["total_items_tracked"]))
    table.add_row("Items due", str(totals["items_due"]))
    table.add_row("Mature items", str(totals["mature_items"]))
    table.add_row("Total reviews", str(totals["total_reviews"]))
    table.add_row("Lapses", str(totals["total_lapses"]))
    table.add_row("Average ease", f"{totals['avg_ease_factor']:.2f}")
    console.print(table)

    console.print(f"\n[bold]Last {len(cells)} days[/bold]")
    console.print(_render_heatmap(cells))


@app.command()
def modules(
    course: str = typer.Argument(..., help="Course id"),
    content_root: Optional[Path] = typer.Option(None, "--content", "-c", help="Content root"),
) -> None:
    """Show catalog modules and item counts."""
    settings = get_settings()
    catalog = _load_catalog(course, content_root, settings)
    catalog_stats = catalog.get_stats()

    console.print(f"[green]Loaded {catalog_stats['total_items']} items "
                  f"from {catalog_stats['files_loaded']} files[/green]")

    table = Table()
    table.add_column("Module")
    table.add_column("Items")
    for module_id, count in catalog_stats["modules"].items():
        table.add_row(str(module_id), str(count))
    console.print(table)


@app.command()
def export(
    course: Optional[str] = typer.Option(None, "--course", help="Export one course only"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="File to write"),
) -> None:
    """Write a progress snapshot (stdout unless --output is given)."""
    settings = get_settings()
    store, _ = _components(settings)
    with store:
        try:
            text = LedgerTransfer(store).export_json(course)
        except RecallkitError as e:
            _fail(e)

    if output is None:
        typer.echo(text)
        return
    output.write_text(text, encoding="utf-8")
    console.print(f"[green]Exported progress to {output}[/green]")


@app.command("import")
def import_(
    path: Path = typer.Argument(..., help="Snapshot file written by 'export'"),
    replace_all: bool = typer.Option(
        False, "--replace-all", help="Also clear courses missing from the snapshot"
    ),
    confirm: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Restore progress from a snapshot file."""
    if not confirm and not Confirm.ask(
        f"Replace progress with the contents of {path}?", default=False
    ):
        raise typer.Exit(0)

    settings = get_settings()
    store, _ = _components(settings)
    with store:
        transfer = LedgerTransfer(store)
        try:
            result = transfer.import_file(
                path, replace_all=replace_all, backup_dir=settings.backup_dir
            )
        except RecallkitError as e:
            _fail(e)

    console.print(
        f"[green]Imported {result.items} items across {len(result.courses)} course(s)[/green]"
    )
    for dropped in result.dropped_courses:
        console.print(f"[yellow]Cleared course not in snapshot: {dropped}[/yellow]")


@app.command()
def clear(
    course: str = typer.Argument(..., help="Course id"),
    confirm: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Clear one course's progress. A backup is written first."""
    if not confirm and not Confirm.ask(
        f"Clear ALL progress for {course}? A backup is saved first.", default=False
    ):
        raise typer.Exit(0)

    settings = get_settings()
    store, _ = _components(settings)
    with store:
        try:
            backup = LedgerTransfer(store).write_backup(settings.backup_dir, course)
            count = store.clear(course)
        except RecallkitError as e:
            _fail(e)

    console.print(f"[green]Cleared {count} items from {course}[/green] (backup: {backup.name})")


@app.command()
def backups() -> None:
    """List backup files, newest first."""
    files = LedgerTransfer.list_backups(get_settings().backup_dir)
    if not files:
        console.print("[dim]No backups yet.[/dim]")
        return
    for f in files:
        typer.echo(str(f))


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """CLI entry point."""
    # Configure logging
    logger.remove()
    logger.add(
        sys.stderr,
        level=get_settings().log_level,
        format="<level>{message}</level>",
    )

    app()


if __name__ == "__main__":
    main()
