"""mneme CLI: scheduling, review and maintenance commands."""

import json
import logging
import sys
from pathlib import Path
from typing import Annotated

import typer

from mneme.domain.errors import ValidationError
from mneme.domain.ratings import normalize_response
from mneme.domain.schedule.models import Algorithm
from mneme.interface._common import (
    _resolve_with_overrides,
    open_scheduler,
    parse_moment,
    schedule_row,
)

# ---------------------------------------------------------------------------
# Root app
# ---------------------------------------------------------------------------

app = typer.Typer(
    help="mneme: dual-algorithm (SM-2 / FSRS) spaced-repetition scheduler.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(help="Inspect mneme configuration.")
app.add_typer(config_app, name="config")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s:%(name)s:%(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger(__name__)

LOG_LEVELS = {0: logging.WARNING, 1: logging.INFO}


# ---------------------------------------------------------------------------
# Global callback
# ---------------------------------------------------------------------------


@app.callback()
def main_callback(
    ctx: typer.Context,
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose", "-v", count=True, help="Increase verbosity. Repeat for more detail."
        ),
    ] = 0,
    data: Annotated[
        Path | None, typer.Option("--data", help="Scheduler data file. Defaults to config.")
    ] = None,
    vault: Annotated[
        Path | None,
        typer.Option("--vault", help="Vault root; new items must exist as markdown files here."),
    ] = None,
):
    """Global settings for mneme."""
    ctx.ensure_object(dict)
    ctx.obj["overrides"] = {"data_path": data, "vault_root": vault, "verbose": verbose}
    logging.getLogger().setLevel(LOG_LEVELS.get(verbose, logging.DEBUG))


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


@app.command()
def add(
    ctx: typer.Context,
    items: Annotated[list[str] | None, typer.Argument(help="Item ids to schedule.")] = None,
    days: Annotated[int, typer.Option(help="Days until the first SM-2 review.")] = 0,
    all_items: Annotated[
        bool, typer.Option("--all", help="Schedule every markdown file in the vault.")
    ] = False,
):
    """[bold green]Schedule[/bold green] items for review, in the order given."""
    from mneme.infrastructure.adapters.vault import VaultItemCheck

    ids = list(items or [])
    if all_items:
        settings = _resolve_with_overrides(ctx)
        if settings.vault_root is None:
            typer.secho("--all needs a vault (--vault or vault_root in config).", fg="red")
            raise typer.Exit(2)
        ids.extend(VaultItemCheck(settings.vault_root).list_items())

    if not ids:
        typer.secho("Nothing to schedule.", fg="yellow")
        raise typer.Exit(1)

    with open_scheduler(ctx) as scheduler:
        count = scheduler.schedule_notes_in_order(ids, days_from_now=days)

    typer.echo(f"Scheduled {count} of {len(ids)} item(s).")


@app.command()
def due(
    ctx: typer.Context,
    date: Annotated[str | None, typer.Option(help="ISO date to check. Defaults to now.")] = None,
    exact: Annotated[
        bool, typer.Option("--exact", help="Only items due on that UTC day.")
    ] = False,
    no_custom_order: Annotated[
        bool, typer.Option("--no-custom-order", help="Sort by due date only.")
    ] = False,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """List items due for review."""
    with open_scheduler(ctx) as scheduler:
        notes = scheduler.get_due_notes_with_custom_order(
            parse_moment(date), use_custom_order=not no_custom_order, match_exact_date=exact
        )

    if json_output:
        typer.echo(json.dumps([schedule_row(s) for s in notes], indent=2))
        return

    if not notes:
        typer.secho("Nothing due.", fg="green")
        return
    for s in notes:
        typer.echo(f"{s.item_id}  [{s.algorithm.value}]  due {s.next_review_date:%Y-%m-%d %H:%M}")


@app.command()
def upcoming(
    ctx: typer.Context,
    days: Annotated[int, typer.Option(help="Days to look ahead.")] = 7,
):
    """List items coming due in the next few days."""
    with open_scheduler(ctx) as scheduler:
        notes = scheduler.get_upcoming_reviews(days)

    if not notes:
        typer.echo("No upcoming reviews.")
        return
    for s in notes:
        typer.echo(f"{s.item_id}  due {s.next_review_date:%Y-%m-%d %H:%M}")


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


@app.command()
def review(
    ctx: typer.Context,
    item: Annotated[str, typer.Argument(help="Item id.")],
    response: Annotated[
        str,
        typer.Argument(
            help=(
                "Quality 0-5 (SM-2), rating 1-4 (FSRS), a name such as "
                "'good' or 'perfect_recall', or a score like 0.85."
            )
        ),
    ],
    at: Annotated[str | None, typer.Option("--at", help="Review moment (ISO).")] = None,
):
    """[bold green]Record[/bold green] a review outcome."""
    with open_scheduler(ctx) as scheduler:
        schedule = scheduler.get_schedule(item)
        if schedule is None:
            typer.secho(f"{item} is not scheduled.", fg="red")
            raise typer.Exit(1)
        try:
            normalize_response(response, schedule.algorithm)
        except ValidationError as e:
            raise typer.BadParameter(str(e), param_hint="RESPONSE") from None

        recorded = scheduler.record_review(item, response, review_moment=parse_moment(at))
        updated = scheduler.get_schedule(item)

    if not recorded:
        typer.secho(f"{item} is not due yet; nothing recorded.", fg="yellow")
        return
    typer.secho(
        f"Recorded. Next review of {item}: {updated.next_review_date:%Y-%m-%d %H:%M}",
        fg="green",
    )


@app.command()
def skip(
    ctx: typer.Context,
    item: Annotated[str, typer.Argument(help="Item id.")],
    at: Annotated[str | None, typer.Option("--at", help="Skip moment (ISO).")] = None,
):
    """Skip an item: penalized review, back again soon."""
    with open_scheduler(ctx) as scheduler:
        ok = scheduler.skip_note(item, review_moment=parse_moment(at))
        updated = scheduler.get_schedule(item)

    if not ok:
        typer.secho(f"{item} is not scheduled.", fg="red")
        raise typer.Exit(1)
    typer.echo(f"Skipped. Next review of {item}: {updated.next_review_date:%Y-%m-%d %H:%M}")


@app.command()
def postpone(
    ctx: typer.Context,
    item: Annotated[str, typer.Argument(help="Item id.")],
    days: Annotated[int, typer.Option(help="Days to postpone.")] = 1,
):
    """Push an item's next review back."""
    with open_scheduler(ctx) as scheduler:
        ok = scheduler.postpone_note(item, days)

    if not ok:
        typer.secho(f"Could not postpone {item}.", fg="red")
        raise typer.Exit(1)
    typer.echo(f"Review postponed for {days} day{'s' if days != 1 else ''}.")


@app.command()
def advance(
    ctx: typer.Context,
    item: Annotated[str, typer.Argument(help="Item id.")],
):
    """Pull an item's next review one day earlier (never before today)."""
    with open_scheduler(ctx) as scheduler:
        ok = scheduler.advance_note(item)

    if not ok:
        typer.secho(f"{item} is not scheduled for a future day.", fg="yellow")
        raise typer.Exit(1)
    typer.echo(f"Advanced {item} by one day.")


# ---------------------------------------------------------------------------
# Maintenance
# ---------------------------------------------------------------------------


@app.command()
def remove(
    ctx: typer.Context,
    item: Annotated[str, typer.Argument(help="Item id.")],
):
    """Remove an item from review."""
    with open_scheduler(ctx) as scheduler:
        ok = scheduler.remove_from_review(item)

    if not ok:
        typer.secho(f"{item} is not scheduled.", fg="red")
        raise typer.Exit(1)
    typer.echo(f"Removed {item} from review.")


@app.command()
def clear(
    ctx: typer.Context,
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Bypass confirmation.")
    ] = False,
):
    """Remove every schedule (history is kept)."""
    if not force:
        typer.confirm("Remove all review schedules?", abort=True)
    with open_scheduler(ctx) as scheduler:
        count = scheduler.clear_all_schedules()
    typer.echo(f"Cleared {count} schedule(s).")


@app.command()
def rename(
    ctx: typer.Context,
    old: Annotated[str, typer.Argument(help="Current item id.")],
    new: Annotated[str, typer.Argument(help="New item id.")],
):
    """Move a schedule to a new id (e.g. after renaming the note)."""
    with open_scheduler(ctx) as scheduler:
        ok = scheduler.rename_note(old, new)

    if not ok:
        typer.secho(f"Could not rename {old} -> {new}.", fg="red")
        raise typer.Exit(1)
    typer.echo(f"Renamed {old} -> {new}.")


@app.command()
def order(
    ctx: typer.Context,
    items: Annotated[list[str], typer.Argument(help="Item ids in the desired review order.")],
):
    """Set the custom review order."""
    with open_scheduler(ctx) as scheduler:
        applied = scheduler.update_custom_note_order(items)

    dropped = len(items) - len(applied)
    typer.echo(f"Custom order set ({len(applied)} item(s)).")
    if dropped:
        typer.secho(f"Ignored {dropped} duplicate or unscheduled id(s).", fg="yellow")


@app.command()
def prune(ctx: typer.Context):
    """Drop schedules whose vault files no longer exist."""
    settings = _resolve_with_overrides(ctx)
    if settings.vault_root is None:
        typer.secho("prune needs a vault (--vault or vault_root in config).", fg="red")
        raise typer.Exit(2)

    with open_scheduler(ctx) as scheduler:
        count = scheduler.prune_missing_notes()
    typer.echo(f"Pruned {count} schedule(s).")


@app.command()
def convert(
    ctx: typer.Context,
    target: Annotated[Algorithm, typer.Argument(help="Algorithm to convert to.")],
    force: Annotated[
        bool, typer.Option("--force", "-f", help="Bypass confirmation.")
    ] = False,
):
    """Convert every schedule to one algorithm. [bold red]Lossy[/bold red]: progress is reset."""
    if not force:
        typer.confirm(
            f"Converting to {target.value} resets scheduling progress. Continue?", abort=True
        )
    with open_scheduler(ctx) as scheduler:
        if target is Algorithm.FSRS:
            count = scheduler.convert_all_sm2_to_fsrs()
        else:
            count = scheduler.convert_all_fsrs_to_sm2()
    typer.echo(f"Converted {count} schedule(s) to {target.value}.")


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------


@app.command()
def history(
    ctx: typer.Context,
    item: Annotated[str | None, typer.Argument(help="Only this item.")] = None,
    limit: Annotated[int, typer.Option(help="Maximum entries to show.")] = 20,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Show recent reviews, newest first."""
    with open_scheduler(ctx) as scheduler:
        entries = scheduler.get_item_history(item) if item else scheduler.history[::-1]
    entries = entries[:limit]

    if json_output:
        typer.echo(
            json.dumps(
                [
                    {
                        "id": e.item_id,
                        "timestamp": e.timestamp.isoformat(),
                        "response": e.response,
                        "interval": e.interval,
                        "ease": e.ease,
                        "skipped": e.is_skipped,
                    }
                    for e in entries
                ],
                indent=2,
            )
        )
        return

    if not entries:
        typer.echo("No reviews recorded.")
        return
    for e in entries:
        flag = " (skipped)" if e.is_skipped else ""
        typer.echo(
            f"{e.timestamp:%Y-%m-%d %H:%M}  {e.item_id}  q={e.response}"
            f"  interval={e.interval}  ease={e.ease}{flag}"
        )


@app.command()
def stats(
    ctx: typer.Context,
    struggling: Annotated[
        bool, typer.Option("--struggling", help="Only items that are struggling.")
    ] = False,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON.")] = False,
):
    """Review forecast and per-item metrics."""
    from dataclasses import asdict

    from mneme.application.stats import ScheduleStatsService
    from mneme.infrastructure.clock import SystemClock

    with open_scheduler(ctx) as scheduler:
        service = ScheduleStatsService(scheduler, SystemClock())
        forecast = service.get_forecast()
        items = service.get_struggling_items() if struggling else service.get_enriched_stats()

    if json_output:
        typer.echo(
            json.dumps(
                {"forecast": forecast, "items": [asdict(i) for i in items]},
                indent=2,
                default=str,
            )
        )
        return

    typer.echo("  ".join(f"{k.replace('_', ' ')}: {v}" for k, v in forecast.items()))
    for i in items:
        r = (
            f"  R={i.current_retrievability:.2f}"
            if i.current_retrievability is not None
            else ""
        )
        typer.echo(f"{i.item_id}  [{i.algorithm.value}]  overdue={i.days_overdue}d{r}")


# ---------------------------------------------------------------------------
# Config subgroup
# ---------------------------------------------------------------------------


@config_app.command("show")
def config_show(ctx: typer.Context):
    """Display final resolved configuration."""
    config = _resolve_with_overrides(ctx)
    typer.echo(json.dumps(config.model_dump(mode="json"), indent=2))
