"""Helpers shared by the CLI commands."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

import typer

from mneme.application.config import SchedulerSettings, resolve_settings
from mneme.application.factory import build_scheduler, get_state_repository
from mneme.application.scheduling.scheduler import ReviewScheduler
from mneme.domain.schedule.models import FsrsSchedule, ReviewSchedule, Sm2Schedule

logger = logging.getLogger(__name__)


def _resolve_with_overrides(ctx: typer.Context | None = None, **kwargs: Any) -> SchedulerSettings:
    """Merge global CLI options and per-command overrides into settings."""
    overrides: dict[str, Any] = {}
    if ctx is not None and ctx.obj:
        overrides.update(ctx.obj.get("overrides", {}))
    overrides.update(kwargs)
    return resolve_settings(overrides)


@contextmanager
def open_scheduler(ctx: typer.Context) -> Iterator[ReviewScheduler]:
    """
    Load state, yield a scheduler, and save state only if the command changed it.
    """
    settings = _resolve_with_overrides(ctx)
    repo = get_state_repository(settings)
    scheduler = build_scheduler(settings, state=repo.load())
    before = scheduler.snapshot()

    yield scheduler

    after = scheduler.snapshot()
    if after != before:
        repo.save(after)
        logger.debug(f"State written to {settings.data_path}")


def parse_moment(value: str | None) -> datetime | None:
    """ISO date or datetime; naive values are UTC."""
    if value is None:
        return None
    try:
        moment = datetime.fromisoformat(value)
    except ValueError:
        raise typer.BadParameter(f"Not an ISO date or datetime: {value}") from None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def schedule_row(schedule: ReviewSchedule) -> dict[str, Any]:
    """JSON-friendly summary of a schedule."""
    row: dict[str, Any] = {
        "id": schedule.item_id,
        "algorithm": schedule.algorithm.value,
        "next_review": schedule.next_review_date.isoformat(),
        "last_review": (
            schedule.last_review_date.isoformat()
            if schedule.last_review_date is not None
            else None
        ),
        "reviews": schedule.review_count,
    }
    if isinstance(schedule, Sm2Schedule):
        row.update(
            ease=schedule.ease,
            interval=schedule.interval,
            category=schedule.schedule_category.value,
        )
    elif isinstance(schedule, FsrsSchedule) and schedule.card is not None:
        row.update(
            state=schedule.card.state.name.lower(),
            stability=round(schedule.card.stability, 2),
            difficulty=round(schedule.card.difficulty, 2),
        )
    return row
