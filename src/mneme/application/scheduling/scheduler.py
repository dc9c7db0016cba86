"""
Review scheduler.

Owns the schedule records, the review history and the custom review order,
and dispatches each review to the engine matching the item's algorithm.

Every public operation is total: unknown ids and malformed input return a
sentinel (False, None, 0 or an empty list) instead of raising. Each mutating
operation computes complete replacement records first and stores them last,
so a failure part-way leaves the previous state untouched.

The scheduler performs no I/O. Callers persist ``snapshot()`` after mutating
operations.
"""

import functools
import logging
import random
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime
from typing import Any, TypeVar

from mneme.domain.constants import PRUNE_SAFETY_MINIMUM
from mneme.domain.errors import AlgorithmError, ValidationError
from mneme.domain.ratings import FSRS_TO_QUALITY, FsrsRating, ReviewResponse, normalize_response
from mneme.domain.schedule.models import (
    Algorithm,
    FsrsCard,
    FsrsSchedule,
    HistoryItem,
    ReviewSchedule,
    SchedulerState,
    Sm2Schedule,
)
from mneme.domain.schedule.ports import Clock, ItemExistenceCheck

from ..config import SchedulerSettings
from ..utils.dates import (
    DAY,
    add_days,
    end_of_utc_day,
    ensure_utc,
    start_of_utc_day,
    utc_day_difference,
)
from . import fsrs_engine, sm2_engine
from .history import HistoryLog

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _total(default: Any) -> Callable[[F], F]:
    """Turn errors raised by a public operation into its sentinel result."""

    def decorator(func: F) -> F:
        def sentinel() -> Any:
            return default() if callable(default) else default

        @functools.wraps(func)
        def wrapper(self: "ReviewScheduler", *args: Any, **kwargs: Any) -> Any:
            try:
                return func(self, *args, **kwargs)
            except ValidationError as e:
                logger.debug(f"{func.__name__} rejected: {e}")
                return sentinel()
            except Exception:
                logger.exception(f"{func.__name__} failed; state left unchanged")
                return sentinel()

        return wrapper  # type: ignore[return-value]

    return decorator


def _check_id(item_id: Any) -> str:
    if not isinstance(item_id, str) or not item_id:
        raise ValidationError(f"Invalid item id: {item_id!r}")
    return item_id


class ReviewScheduler:
    def __init__(
        self,
        settings: SchedulerSettings,
        clock: Clock,
        existence_check: ItemExistenceCheck | None = None,
        state: SchedulerState | None = None,
        rng: random.Random | None = None,
    ):
        self._clock = clock
        self._existence_check = existence_check
        self._rng = rng or random.Random()
        self._apply_settings(settings)

        state = state or SchedulerState()
        self._schedules: dict[str, ReviewSchedule] = dict(state.schedules)
        self._history = HistoryLog(state.history, limit=settings.history_limit)
        self._custom_order: list[str] = [i for i in state.custom_order if i in self._schedules]

    def _apply_settings(self, settings: SchedulerSettings) -> None:
        self._settings = settings
        self._sm2_config = settings.sm2_config()
        self._fsrs_config = settings.fsrs_config()

    # --- Read access ---

    @property
    def settings(self) -> SchedulerSettings:
        return self._settings

    @property
    def history(self) -> list[HistoryItem]:
        return self._history.entries()

    @property
    def custom_order(self) -> list[str]:
        return list(self._custom_order)

    @property
    def schedules(self) -> dict[str, ReviewSchedule]:
        return dict(self._schedules)

    @_total(None)
    def get_schedule(self, item_id: str) -> ReviewSchedule | None:
        return self._schedules.get(_check_id(item_id))

    @_total(list)
    def get_item_history(self, item_id: str) -> list[HistoryItem]:
        return self._history.for_item(_check_id(item_id))

    def snapshot(self) -> SchedulerState:
        return SchedulerState(
            schedules=dict(self._schedules),
            history=self._history.entries(),
            custom_order=list(self._custom_order),
        )

    def update_settings(self, settings: SchedulerSettings) -> None:
        """Swap in new settings. Existing schedules are not recomputed."""
        self._apply_settings(settings)
        self._history.limit = settings.history_limit

    def _require(self, item_id: str) -> ReviewSchedule:
        schedule = self._schedules.get(_check_id(item_id))
        if schedule is None:
            raise ValidationError(f"{item_id} is not scheduled")
        return schedule

    def _now(self) -> datetime:
        return ensure_utc(self._clock.now())

    # --- Creation ---

    @_total(False)
    def schedule_note_for_review(self, item_id: str, days_from_now: int = 0) -> bool:
        """
        Create a schedule using the default algorithm.

        Returns False when the item is already scheduled or fails the
        existence check.
        """
        item_id = _check_id(item_id)
        if item_id in self._schedules:
            return False
        if self._existence_check is not None and not self._existence_check.exists(item_id):
            raise ValidationError(f"{item_id} does not exist")

        schedule = self._new_schedule(item_id, days_from_now, self._now())
        self._schedules[item_id] = schedule
        if item_id not in self._custom_order:
            self._custom_order.append(item_id)
        logger.info(
            f"Scheduled {item_id} ({schedule.algorithm.value}) for "
            f"{schedule.next_review_date.isoformat()}"
        )
        return True

    @_total(0)
    def schedule_notes_in_order(self, item_ids: Iterable[str], days_from_now: int = 0) -> int:
        """Schedule several items, appending them to the custom order as given."""
        return sum(
            1 for item_id in item_ids if self.schedule_note_for_review(item_id, days_from_now)
        )

    def _new_schedule(self, item_id: str, days_from_now: int, now: datetime) -> ReviewSchedule:
        if not isinstance(days_from_now, int) or days_from_now < 0:
            raise ValidationError(f"days_from_now must be a non-negative integer: {days_from_now}")

        if self._settings.default_scheduling_algorithm is Algorithm.FSRS:
            # FSRS items are due immediately; days_from_now does not apply.
            return FsrsSchedule(
                item_id=item_id,
                next_review_date=now,
                card=fsrs_engine.new_card(now),
            )

        initial = sm2_engine.compute_initial_schedule(self._sm2_config, days_from_now)
        return Sm2Schedule(
            item_id=item_id,
            next_review_date=add_days(start_of_utc_day(now), initial.interval),
            ease=initial.ease,
            interval=initial.interval,
            repetition_count=initial.repetition_count,
            schedule_category=initial.category,
        )

    # --- Queries ---

    def _is_due(self, schedule: ReviewSchedule, moment: datetime) -> bool:
        return schedule.next_review_date <= end_of_utc_day(moment)

    @_total(list)
    def get_due_notes(
        self, date: datetime | None = None, match_exact_date: bool = False
    ) -> list[ReviewSchedule]:
        """
        Items due on or before the UTC day of ``date`` (default: now).

        With ``match_exact_date`` only items due within that UTC day are returned.
        Sorted by next review date.
        """
        moment = ensure_utc(date) if date is not None else self._now()
        day_start = start_of_utc_day(moment)
        day_end = end_of_utc_day(moment)

        due = [
            s
            for s in self._schedules.values()
            if s.next_review_date <= day_end
            and (not match_exact_date or s.next_review_date >= day_start)
        ]
        return sorted(due, key=lambda s: s.next_review_date)

    @_total(list)
    def get_due_notes_with_custom_order(
        self,
        date: datetime | None = None,
        use_custom_order: bool = True,
        match_exact_date: bool = False,
    ) -> list[ReviewSchedule]:
        """Due items in custom order; items without a position follow in due-date order."""
        due = self.get_due_notes(date, match_exact_date)
        if not use_custom_order or not self._custom_order:
            return due

        by_id = {s.item_id: s for s in due}
        ordered = [by_id[i] for i in self._custom_order if i in by_id]
        placed = {s.item_id for s in ordered}
        return ordered + [s for s in due if s.item_id not in placed]

    @_total(list)
    def get_upcoming_reviews(self, days: int = 7) -> list[ReviewSchedule]:
        """Items coming due after now and within ``days`` days, soonest first."""
        now = self._now()
        horizon = add_days(now, days)
        upcoming = [s for s in self._schedules.values() if now < s.next_review_date <= horizon]
        return sorted(upcoming, key=lambda s: s.next_review_date)

    # --- Reviews ---

    @_total(False)
    def record_review(
        self,
        item_id: str,
        response: ReviewResponse | FsrsRating | int | float | str,
        is_skipped: bool = False,
        review_moment: datetime | None = None,
    ) -> bool:
        """
        Record a review outcome.

        A review of an item that is not yet due is a preview: nothing changes
        and False is returned.
        """
        schedule = self._require(item_id)
        moment = ensure_utc(review_moment) if review_moment is not None else self._now()
        if not self._is_due(schedule, moment):
            logger.debug(f"{item_id} not due until {schedule.next_review_date:%Y-%m-%d}; preview")
            return False

        self._apply_review(schedule, response, is_skipped, moment)
        return True

    @_total(False)
    def skip_note(
        self,
        item_id: str,
        response: ReviewResponse | FsrsRating | int | float | str = (
            ReviewResponse.CORRECT_WITH_DIFFICULTY
        ),
        review_moment: datetime | None = None,
    ) -> bool:
        """Record a penalized review regardless of due date and bring the item back soon."""
        schedule = self._require(item_id)
        moment = ensure_utc(review_moment) if review_moment is not None else self._now()
        self._apply_review(schedule, response, True, moment)
        return True

    def _apply_review(
        self,
        schedule: ReviewSchedule,
        response: Any,
        is_skipped: bool,
        moment: datetime,
    ) -> None:
        normalized = normalize_response(response, schedule.algorithm)

        if isinstance(schedule, FsrsSchedule):
            updated, entry = self._review_fsrs(schedule, normalized.rating, is_skipped, moment)
        else:
            updated, entry = self._review_sm2(schedule, normalized.quality, is_skipped, moment)

        if not is_skipped:
            updated = replace(updated, review_count=schedule.review_count + 1)

        self._schedules[schedule.item_id] = updated
        self._history.append(entry)

    def _review_sm2(
        self,
        schedule: Sm2Schedule,
        quality: ReviewResponse,
        is_skipped: bool,
        moment: datetime,
    ) -> tuple[Sm2Schedule, HistoryItem]:
        day_start = start_of_utc_day(moment)
        days_late = 0
        if schedule.next_review_date < day_start:
            days_late = utc_day_difference(schedule.next_review_date, day_start)

        entry = HistoryItem(
            item_id=schedule.item_id,
            timestamp=moment,
            response=int(sm2_engine.effective_quality(quality, is_skipped=is_skipped)),
            interval=schedule.interval,
            ease=schedule.ease,
            is_skipped=is_skipped,
        )

        reviewed = sm2_engine.review_schedule(
            schedule,
            quality,
            days_late=days_late,
            is_skipped=is_skipped,
            config=self._sm2_config,
            rng=self._rng,
        )
        updated = replace(
            reviewed,
            last_review_date=day_start,
            next_review_date=add_days(day_start, reviewed.interval),
        )
        logger.debug(
            f"SM-2 review of {schedule.item_id}: q={quality} late={days_late} "
            f"skipped={is_skipped} -> interval {updated.interval}, ease {updated.ease}"
        )
        return updated, entry

    def _review_fsrs(
        self,
        schedule: FsrsSchedule,
        rating: FsrsRating,
        is_skipped: bool,
        moment: datetime,
    ) -> tuple[FsrsSchedule, HistoryItem]:
        card = self._usable_card(schedule, moment)

        quality = ReviewResponse.INCORRECT_RESPONSE if is_skipped else FSRS_TO_QUALITY[rating]
        entry = HistoryItem(
            item_id=schedule.item_id,
            timestamp=moment,
            response=int(quality),
            interval=card.scheduled_days,
            ease=round(card.difficulty * 10),
            is_skipped=is_skipped,
        )

        if is_skipped:
            outcome = fsrs_engine.skip(card, moment, self._fsrs_config)
        else:
            outcome = fsrs_engine.review(card, rating, moment, self._fsrs_config)

        updated = replace(
            schedule,
            card=outcome.card,
            last_review_date=moment,
            next_review_date=outcome.due,
        )
        return updated, entry

    def _usable_card(self, schedule: FsrsSchedule, moment: datetime) -> FsrsCard:
        if schedule.card is not None:
            try:
                fsrs_engine.validate_card(schedule.card)
                return schedule.card
            except AlgorithmError as e:
                logger.warning(f"Replacing corrupt FSRS data for {schedule.item_id}: {e}")
        else:
            logger.warning(f"Missing FSRS data for {schedule.item_id}; starting a fresh card")
        return fsrs_engine.new_card(moment)

    # --- Date adjustments ---

    @_total(False)
    def postpone_note(self, item_id: str, days: int = 1) -> bool:
        """Push the next review back by ``days`` days; algorithm state is untouched."""
        schedule = self._require(item_id)
        if not isinstance(days, int) or days <= 0:
            raise ValidationError(f"Postpone days must be a positive integer: {days!r}")

        self._schedules[item_id] = replace(
            schedule, next_review_date=add_days(schedule.next_review_date, days)
        )
        logger.debug(f"Postponed {item_id} by {days} day(s)")
        return True

    @_total(False)
    def advance_note(self, item_id: str) -> bool:
        """
        Pull the next review one day earlier, never before today (UTC).

        Returns False for items already due today or earlier.
        """
        schedule = self._require(item_id)
        today = start_of_utc_day(self._now())
        if start_of_utc_day(schedule.next_review_date) <= today:
            return False

        earlier = schedule.next_review_date - DAY
        if isinstance(schedule, Sm2Schedule):
            earlier = start_of_utc_day(earlier)
        self._schedules[item_id] = replace(schedule, next_review_date=max(today, earlier))
        return True

    # --- Membership and ordering ---

    @_total(False)
    def remove_from_review(self, item_id: str) -> bool:
        self._require(item_id)
        del self._schedules[item_id]
        self._custom_order = [i for i in self._custom_order if i != item_id]
        logger.info(f"Removed {item_id} from review")
        return True

    def clear_all_schedules(self) -> int:
        """Drop every schedule and the custom order. History is kept."""
        count = len(self._schedules)
        self._schedules = {}
        self._custom_order = []
        logger.info(f"Cleared {count} schedules")
        return count

    @_total(0)
    def prune_missing_notes(self) -> int:
        """
        Drop schedules whose items no longer exist.

        If every checked item is missing (and there are at least a handful),
        the vault is more likely unavailable than emptied; nothing is removed.
        """
        if self._existence_check is None:
            return 0

        missing = [i for i in self._schedules if not self._existence_check.exists(i)]
        if missing and len(missing) == len(self._schedules) >= PRUNE_SAFETY_MINIMUM:
            logger.warning(
                f"All {len(missing)} scheduled items are missing; keeping schedules untouched"
            )
            return 0

        for item_id in missing:
            del self._schedules[item_id]
        self._custom_order = [i for i in self._custom_order if i in self._schedules]
        if missing:
            logger.info(f"Pruned {len(missing)} schedules for missing items")
        return len(missing)

    @_total(False)
    def rename_note(self, old_id: str, new_id: str) -> bool:
        """Move a schedule, its history and its custom-order position to a new id."""
        schedule = self._require(old_id)
        new_id = _check_id(new_id)
        if new_id in self._schedules:
            raise ValidationError(f"{new_id} is already scheduled")

        schedules = {k: v for k, v in self._schedules.items() if k != old_id}
        schedules[new_id] = replace(schedule, item_id=new_id)
        if old_id in self._custom_order:
            order = [new_id if i == old_id else i for i in self._custom_order]
        else:
            order = [*self._custom_order, new_id]

        self._schedules = schedules
        self._custom_order = order
        self._history.rename(old_id, new_id)
        logger.info(f"Renamed {old_id} -> {new_id}")
        return True

    @_total(list)
    def update_custom_note_order(self, order: Iterable[str]) -> list[str]:
        """Replace the custom order. Duplicates and unscheduled ids are dropped."""
        self._custom_order = [i for i in dict.fromkeys(order) if i in self._schedules]
        return list(self._custom_order)

    # --- Algorithm conversion ---
    #
    # Conversions are lossy resets: no attempt is made to translate ease into
    # stability or back. Converted items restart as new cards (FSRS) or at the
    # start of the SM-2 schedule. Review counts and last review dates survive.

    @_total(0)
    def convert_all_sm2_to_fsrs(self) -> int:
        now = self._now()
        converted: dict[str, ReviewSchedule] = {}
        for item_id, schedule in self._schedules.items():
            if not isinstance(schedule, Sm2Schedule):
                continue
            anchor = schedule.last_review_date or now
            converted[item_id] = FsrsSchedule(
                item_id=item_id,
                next_review_date=anchor,
                last_review_date=schedule.last_review_date,
                review_count=schedule.review_count,
                card=fsrs_engine.new_card(anchor),
            )

        self._schedules.update(converted)
        if converted:
            logger.warning(f"Converted {len(converted)} SM-2 schedules to FSRS; ease history reset")
        return len(converted)

    @_total(0)
    def convert_all_fsrs_to_sm2(self) -> int:
        today = start_of_utc_day(self._now())
        initial = sm2_engine.compute_initial_schedule(self._sm2_config)
        converted: dict[str, ReviewSchedule] = {}
        for item_id, schedule in self._schedules.items():
            if not isinstance(schedule, FsrsSchedule):
                continue
            last = schedule.last_review_date
            converted[item_id] = Sm2Schedule(
                item_id=item_id,
                next_review_date=add_days(today, initial.interval),
                last_review_date=start_of_utc_day(last) if last is not None else None,
                review_count=schedule.review_count,
                ease=initial.ease,
                interval=initial.interval,
                repetition_count=initial.repetition_count,
                schedule_category=initial.category,
            )

        self._schedules.update(converted)
        if converted:
            logger.warning(f"Converted {len(converted)} FSRS schedules to SM-2; memory state reset")
        return len(converted)
