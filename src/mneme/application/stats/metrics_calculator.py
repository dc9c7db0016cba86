"""
Metrics calculator for deriving insights from schedules and review history.

This is a pure computation module with no I/O.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from mneme.domain.constants import VOLATILITY_WINDOW
from mneme.domain.errors import AlgorithmError
from mneme.domain.schedule.models import (
    Algorithm,
    FsrsSchedule,
    HistoryItem,
    ReviewSchedule,
    Sm2Schedule,
)

from ..scheduling import fsrs_engine
from ..scheduling.fsrs_engine import FsrsConfig
from ..utils.dates import start_of_utc_day

logger = logging.getLogger(__name__)


@dataclass
class ScheduleMetrics:
    """
    A schedule enriched with computed metrics.
    """

    item_id: str
    algorithm: Algorithm
    next_review_date: datetime
    review_count: int

    # SM-2 (None for FSRS items)
    ease: int | None
    interval: int | None

    # FSRS core (None for SM-2 items)
    stability: float | None
    difficulty: float | None
    lapses: int

    # Computed metrics
    current_retrievability: float | None
    lapse_rate: float | None  # lapses / reps
    volatility: float | None  # Interval variance over recent reviews
    days_overdue: int  # Negative if not yet due


class MetricsCalculator:
    """
    Computes derived metrics for a schedule.

    Stateless and side-effect free.
    """

    def __init__(self, fsrs_config: FsrsConfig | None = None):
        self._fsrs_config = fsrs_config or FsrsConfig()

    def enrich(
        self, schedule: ReviewSchedule, history: list[HistoryItem], now: datetime
    ) -> ScheduleMetrics:
        """
        Enrich a schedule with computed metrics.

        ``history`` holds the item's entries in any order.
        """
        card = schedule.card if isinstance(schedule, FsrsSchedule) else None
        sm2 = schedule if isinstance(schedule, Sm2Schedule) else None

        return ScheduleMetrics(
            item_id=schedule.item_id,
            algorithm=schedule.algorithm,
            next_review_date=schedule.next_review_date,
            review_count=schedule.review_count,
            ease=sm2.ease if sm2 else None,
            interval=sm2.interval if sm2 else None,
            stability=card.stability if card and card.reps else None,
            difficulty=card.difficulty if card and card.reps else None,
            lapses=card.lapses if card else 0,
            current_retrievability=self._compute_retrievability(schedule, now),
            lapse_rate=self._compute_lapse_rate(schedule),
            volatility=self._compute_volatility(history),
            days_overdue=self._compute_days_overdue(schedule, now),
        )

    def _compute_retrievability(self, schedule: ReviewSchedule, now: datetime) -> float | None:
        """
        Current recall probability from the FSRS forgetting curve.
        """
        if not isinstance(schedule, FsrsSchedule) or schedule.card is None:
            return None
        if schedule.card.last_review is None:
            return None
        try:
            return fsrs_engine.retrievability(schedule.card, now, self._fsrs_config)
        except AlgorithmError as e:
            logger.warning(f"No retrievability for {schedule.item_id}: {e}")
            return None

    def _compute_lapse_rate(self, schedule: ReviewSchedule) -> float | None:
        """
        Compute lapse rate as lapses / total reviews.
        """
        if not isinstance(schedule, FsrsSchedule) or schedule.card is None:
            return None
        if schedule.card.reps == 0:
            return None
        return schedule.card.lapses / schedule.card.reps

    def _compute_volatility(self, history: list[HistoryItem]) -> float | None:
        """
        Compute variance in intervals over recent reviews.

        High volatility indicates unstable learning.
        """
        if len(history) < 3:
            return None

        recent = sorted(history, key=lambda h: h.timestamp)[-VOLATILITY_WINDOW:]
        intervals = [h.interval for h in recent if h.interval > 0]

        if len(intervals) < 2:
            return None

        mean = sum(intervals) / len(intervals)
        return sum((i - mean) ** 2 for i in intervals) / len(intervals)

    def _compute_days_overdue(self, schedule: ReviewSchedule, now: datetime) -> int:
        """
        Whole UTC days since the due date (negative if not yet due).
        """
        delta = start_of_utc_day(now) - start_of_utc_day(schedule.next_review_date)
        return delta.days
