"""
Domain models for review schedules.

These are pure data structures with no I/O or external dependencies.
A schedule is one of two variants, selected by its algorithm tag; a record
never carries fields of the algorithm it does not use.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum

from mneme.domain.constants import DEFAULT_BASE_EASE


class Algorithm(str, Enum):
    SM2 = "sm2"
    FSRS = "fsrs"


class ScheduleCategory(str, Enum):
    """
    SM-2 phase marker.

    Attributes:
        INITIAL: following the fixed initial intervals.
        GRADUATED: just completed the initial intervals.
        SPACED: using the full SM-2 formula.
    """

    INITIAL = "initial"
    GRADUATED = "graduated"
    SPACED = "spaced"


class FsrsState(IntEnum):
    NEW = 0
    LEARNING = 1
    REVIEW = 2
    RELEARNING = 3


@dataclass(frozen=True)
class FsrsCard:
    """
    FSRS memory state for an item.

    Attributes:
        stability: Days until recall probability drops to the retention target.
        difficulty: Item difficulty on the 1-10 scale (0 for new cards).
        elapsed_days: Days between the previous review and the latest one.
        scheduled_days: Days between the latest review and the next due date.
        reps: Total FSRS reviews.
        lapses: Times the item was forgotten while in review.
        state: Card state, owned by the FSRS engine.
        step: Current learning/relearning step, None once in review.
        last_review: Instant of the latest review, None for new cards.
    """

    stability: float = 0.0
    difficulty: float = 0.0
    elapsed_days: int = 0
    scheduled_days: int = 0
    reps: int = 0
    lapses: int = 0
    state: FsrsState = FsrsState.NEW
    step: int | None = 0
    last_review: datetime | None = None


@dataclass(frozen=True)
class Sm2Schedule:
    """
    Review schedule driven by the SM-2 engine.

    Dates are UTC midnights. ``ease`` is stored x100 (250 = 2.5).
    """

    item_id: str
    next_review_date: datetime
    last_review_date: datetime | None = None
    review_count: int = 0
    ease: int = DEFAULT_BASE_EASE
    interval: int = 0
    repetition_count: int = 0
    consecutive: int = 0
    schedule_category: ScheduleCategory = ScheduleCategory.SPACED
    algorithm: Algorithm = field(default=Algorithm.SM2, init=False)


@dataclass(frozen=True)
class FsrsSchedule:
    """
    Review schedule driven by the FSRS engine.

    Dates are exact instants. ``card`` is None when the card data went
    missing; the scheduler synthesizes a fresh one on the next review.
    """

    item_id: str
    next_review_date: datetime
    last_review_date: datetime | None = None
    review_count: int = 0
    card: FsrsCard | None = None
    algorithm: Algorithm = field(default=Algorithm.FSRS, init=False)


ReviewSchedule = Sm2Schedule | FsrsSchedule


@dataclass(frozen=True)
class HistoryItem:
    """
    A single entry of the review history.

    Attributes:
        item_id: The reviewed item.
        timestamp: Exact instant of the review.
        response: Normalized quality (0-5).
        interval: Interval in days at the time of the review.
        ease: Ease (x100) at the time of the review; round(difficulty * 10) for FSRS.
        is_skipped: Whether the user skipped instead of answering.
    """

    item_id: str
    timestamp: datetime
    response: int
    interval: int
    ease: int
    is_skipped: bool = False


@dataclass
class SchedulerState:
    """Everything a storage backend persists for the scheduler."""

    schedules: dict[str, ReviewSchedule] = field(default_factory=dict)
    history: list[HistoryItem] = field(default_factory=list)
    custom_order: list[str] = field(default_factory=list)
