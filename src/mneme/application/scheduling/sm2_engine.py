"""
SM-2 scheduling engine.

This module implements the SM-2 algorithm (SuperMemo-2) with four extensions:

- an initial learning phase that walks a fixed list of intervals before the
  formula takes over,
- a lateness penalty: overdue reviews are scored as quality 0,
- a skip penalty: skipped reviews lose one quality point,
- optional load-balancing jitter on long intervals.

Penalized reviews always come back tomorrow. This keeps overdue and skipped
items circulating instead of drifting arbitrarily far into a backlog.

Everything here is a pure function of its arguments. Configuration is passed
explicitly as an ``Sm2Config`` and randomness comes from an injectable
``random.Random``.
"""

import logging
import math
import random
from dataclasses import dataclass, replace

from mneme.domain.constants import (
    DEFAULT_BASE_EASE,
    DEFAULT_INITIAL_INTERVALS,
    DEFAULT_MAXIMUM_INTERVAL,
    FIRST_INTERVAL,
    LOAD_BALANCE_MAX_FUZZ,
    LOAD_BALANCE_RATIO,
    LOAD_BALANCE_THRESHOLD,
    MIN_EASE_FACTOR,
    PASSING_QUALITY,
    PENALTY_INTERVAL,
    SECOND_INTERVAL,
)
from mneme.domain.schedule.models import ScheduleCategory, Sm2Schedule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Sm2Config:
    base_ease: int = DEFAULT_BASE_EASE
    maximum_interval: int = DEFAULT_MAXIMUM_INTERVAL
    load_balance: bool = False
    use_initial_schedule: bool = True
    initial_intervals: tuple[int, ...] = DEFAULT_INITIAL_INTERVALS


@dataclass(frozen=True)
class Sm2Result:
    """Immutable result of a single SM-2 calculation."""

    ease: int  # x100
    interval: int  # days
    repetition_count: int


@dataclass(frozen=True)
class Sm2InitialSchedule:
    ease: int
    interval: int
    repetition_count: int
    category: ScheduleCategory


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values, like ``Math.round``."""
    return math.floor(value + 0.5)


def compute_initial_schedule(config: Sm2Config, days_from_now: int = 0) -> Sm2InitialSchedule:
    """
    Initial SM-2 fields for a newly scheduled item.

    With the initial phase enabled the first interval is the first entry of
    the initial interval list, unless ``days_from_now`` asks for a later start.
    """
    interval = max(0, days_from_now)

    if config.use_initial_schedule:
        if config.initial_intervals and interval == 0:
            interval = config.initial_intervals[0]
        category = ScheduleCategory.INITIAL
    else:
        category = ScheduleCategory.SPACED

    return Sm2InitialSchedule(
        ease=config.base_ease,
        interval=interval,
        repetition_count=0,
        category=category,
    )


def calculate_ease(ease: int, quality: int) -> int:
    """
    Apply the SM-2 ease update to an ease stored x100.

    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), floored at 1.3.
    """
    factor = ease / 100
    factor = factor + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
    factor = max(MIN_EASE_FACTOR, factor)
    return round_half_up(factor * 100)


def effective_quality(quality: int, days_late: int = 0, is_skipped: bool = False) -> int:
    """Quality after skip and lateness penalties. A skip takes precedence over lateness."""
    if is_skipped:
        return max(0, quality - 1)
    if days_late > 0:
        return 0
    return quality


def load_balance_jitter(interval: float, rng: random.Random) -> float:
    """Uniform noise in [-f, +f], f = min(3, floor(interval * 0.05)), for intervals over 7 days."""
    if interval <= LOAD_BALANCE_THRESHOLD:
        return 0.0
    fuzz = min(LOAD_BALANCE_MAX_FUZZ, math.floor(interval * LOAD_BALANCE_RATIO))
    return rng.uniform(-fuzz, fuzz)


def calculate_review(
    ease: int,
    interval: int,
    repetition_count: int,
    quality: int,
    days_late: int = 0,
    is_skipped: bool = False,
    *,
    config: Sm2Config,
    rng: random.Random | None = None,
) -> Sm2Result:
    """
    Calculate the next ease, interval and repetition count.

    For skipped or overdue reviews:
    - ease is updated with the penalized quality
    - interval is forced to 1 day and the repetition count to 1

    For failed reviews (quality < 3):
    - repetition count resets to 0 and the interval to 1 day

    For successful reviews:
    - first repetition: 1 day, second: 6 days, then previous interval * new ease

    Args:
        ease: Current ease (x100).
        interval: Current interval in days.
        repetition_count: Current repetition count (n).
        quality: Quality of recall (0-5).
        days_late: Whole UTC days past the due date (0 if on time or early).
        is_skipped: Whether the user skipped the item.
        config: SM-2 configuration.
        rng: Randomness for load-balancing jitter.

    Returns:
        Sm2Result with the new scheduling parameters.
    """
    if is_skipped or days_late > 0:
        q_eff = effective_quality(quality, days_late, is_skipped)
        return Sm2Result(
            ease=calculate_ease(ease, q_eff),
            interval=PENALTY_INTERVAL,
            repetition_count=1,
        )

    new_ease = calculate_ease(ease, quality)

    if quality < PASSING_QUALITY:
        new_repetitions = 0
        new_interval: float = FIRST_INTERVAL
    else:
        new_repetitions = repetition_count + 1
        if new_repetitions == 1:
            new_interval = FIRST_INTERVAL
        elif new_repetitions == 2:
            new_interval = SECOND_INTERVAL
        else:
            new_interval = round_half_up(interval * new_ease / 100)

    if config.load_balance:
        new_interval += load_balance_jitter(new_interval, rng or random.Random())

    new_interval = max(1, new_interval)
    new_interval = min(new_interval, config.maximum_interval)

    return Sm2Result(
        ease=new_ease,
        interval=round_half_up(new_interval),
        repetition_count=new_repetitions,
    )


def review_schedule(
    schedule: Sm2Schedule,
    quality: int,
    *,
    days_late: int = 0,
    is_skipped: bool = False,
    config: Sm2Config,
    rng: random.Random | None = None,
) -> Sm2Schedule:
    """
    Apply one review to the SM-2 fields of a schedule.

    Handles the schedule category state machine (initial -> graduated -> spaced,
    forward only). Dates and counters owned by the scheduler are left alone.
    """
    if schedule.schedule_category is ScheduleCategory.INITIAL:
        return _review_initial(schedule, quality, is_skipped=is_skipped, config=config, rng=rng)

    result = calculate_review(
        schedule.ease,
        schedule.interval,
        schedule.repetition_count,
        quality,
        days_late,
        is_skipped,
        config=config,
        rng=rng,
    )
    passed = quality >= PASSING_QUALITY and not is_skipped
    return replace(
        schedule,
        ease=result.ease,
        interval=result.interval,
        repetition_count=result.repetition_count,
        consecutive=schedule.consecutive + 1 if passed else 0,
        schedule_category=ScheduleCategory.SPACED,
    )


def _review_initial(
    schedule: Sm2Schedule,
    quality: int,
    *,
    is_skipped: bool,
    config: Sm2Config,
    rng: random.Random | None,
) -> Sm2Schedule:
    # repetition_count counts completed initial steps; initial_intervals[k] is
    # the wait after step k.
    intervals = config.initial_intervals

    if is_skipped:
        return replace(
            schedule,
            ease=calculate_ease(schedule.ease, effective_quality(quality, is_skipped=True)),
            interval=PENALTY_INTERVAL,
            consecutive=0,
        )

    if quality < PASSING_QUALITY:
        return replace(
            schedule,
            ease=calculate_ease(schedule.ease, quality),
            interval=FIRST_INTERVAL,
            repetition_count=0,
            consecutive=0,
        )

    completed = schedule.repetition_count + 1
    if completed < len(intervals):
        return replace(
            schedule,
            ease=calculate_ease(schedule.ease, quality),
            interval=intervals[completed],
            repetition_count=completed,
            consecutive=schedule.consecutive + 1,
        )

    # Initial list exhausted: graduate with one SM-2 step starting from n = 0.
    result = calculate_review(
        schedule.ease,
        schedule.interval,
        0,
        quality,
        config=config,
        rng=rng,
    )
    logger.debug(f"{schedule.item_id} graduated from the initial schedule after {completed} steps")
    return replace(
        schedule,
        ease=result.ease,
        interval=result.interval,
        repetition_count=result.repetition_count,
        consecutive=schedule.consecutive + 1,
        schedule_category=ScheduleCategory.GRADUATED,
    )
