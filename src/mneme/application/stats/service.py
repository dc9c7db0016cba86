"""
Review stats service. Application layer orchestrator.

Reads schedules and history from the scheduler and enriches them with computed metrics.
"""

import logging
from datetime import datetime

from mneme.domain.constants import (
    DEFAULT_LAPSE_THRESHOLD,
    DEFAULT_MIN_RETRIEVABILITY,
    DEFAULT_STABILITY_THRESHOLD,
    UPCOMING_DAYS,
)
from mneme.domain.schedule.ports import Clock

from ..scheduling.scheduler import ReviewScheduler
from ..utils.dates import DAY, add_days, start_of_utc_day
from .metrics_calculator import MetricsCalculator, ScheduleMetrics

logger = logging.getLogger(__name__)


class ScheduleStatsService:
    """
    Application service for enriched schedule statistics.

    Read-only: never mutates the scheduler.
    """

    def __init__(
        self,
        scheduler: ReviewScheduler,
        clock: Clock,
        calculator: MetricsCalculator | None = None,
    ):
        """
        Args:
            scheduler: Source of schedules and history.
            clock: Reference time for overdue and retrievability figures.
            calculator: Optional custom calculator; built from the scheduler settings if omitted.
        """
        self._scheduler = scheduler
        self._clock = clock
        self._calc = calculator or MetricsCalculator(scheduler.settings.fsrs_config())

    def get_enriched_stats(self, item_ids: list[str] | None = None) -> list[ScheduleMetrics]:
        """
        Enrich the given items (default: every scheduled item) with computed metrics.

        Unknown ids are skipped.
        """
        schedules = self._scheduler.schedules
        ids = item_ids if item_ids is not None else list(schedules)
        now = self._clock.now()

        enriched = []
        for item_id in ids:
            schedule = schedules.get(item_id)
            if schedule is None:
                logger.debug(f"No schedule for {item_id}; skipped")
                continue
            history = self._scheduler.get_item_history(item_id)
            enriched.append(self._calc.enrich(schedule, history, now))
        return enriched

    def get_forecast(self, as_of: datetime | None = None) -> dict[str, int]:
        """
        Count items by when they come due.

        Returns:
            Dict with counts: overdue, today, tomorrow, this_week, later
        """
        today_start = start_of_utc_day(as_of or self._clock.now())
        tomorrow_start = today_start + DAY
        week_end = add_days(today_start, UPCOMING_DAYS)

        forecast = {
            "overdue": 0,
            "today": 0,
            "tomorrow": 0,
            "this_week": 0,
            "later": 0,
        }

        for schedule in self._scheduler.schedules.values():
            due = schedule.next_review_date
            if due < today_start:
                forecast["overdue"] += 1
            elif due < tomorrow_start:
                forecast["today"] += 1
            elif due < tomorrow_start + DAY:
                forecast["tomorrow"] += 1
            elif due < week_end:
                forecast["this_week"] += 1
            else:
                forecast["later"] += 1

        return forecast

    def get_struggling_items(
        self,
        stability_threshold: float = DEFAULT_STABILITY_THRESHOLD,
        lapse_threshold: int = DEFAULT_LAPSE_THRESHOLD,
        min_retrievability: float = DEFAULT_MIN_RETRIEVABILITY,
    ) -> list[ScheduleMetrics]:
        """
        Identify items that are struggling based on configurable thresholds.

        An item is struggling if:
        - FSRS stability < threshold, OR
        - lapses >= lapse threshold, OR
        - retrievability < min_retrievability, OR
        - SM-2 ease has dropped to the floor region (below the configured base ease)
          and it was reviewed at least twice
        """
        base_ease = self._scheduler.settings.base_ease
        struggling = []

        for item in self.get_enriched_stats():
            is_struggling = False

            # Low stability
            if item.stability is not None and item.stability < stability_threshold:
                is_struggling = True

            # Has lapses
            if lapse_threshold > 0 and item.lapses >= lapse_threshold:
                is_struggling = True

            # Low retrievability
            if (
                item.current_retrievability is not None
                and item.current_retrievability < min_retrievability
            ):
                is_struggling = True

            # Ease below its starting value
            if item.ease is not None and item.review_count >= 2 and item.ease < base_ease:
                is_struggling = True

            if is_struggling:
                struggling.append(item)

        return struggling
