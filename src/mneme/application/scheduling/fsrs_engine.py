"""
FSRS scheduling engine.

Thin adapter around ``fsrs.Scheduler`` (py-fsrs). The memory model itself
(stability, difficulty, learning steps, the forgetting curve) belongs to the
library; this module maps between the persisted ``FsrsCard`` and the library
card, validates card data before use, and derives the bookkeeping fields the
library no longer tracks (elapsed/scheduled days, reps, lapses).
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache

from fsrs import Card, Rating, Scheduler, State

from mneme.domain.constants import (
    DEFAULT_FSRS_MAXIMUM_INTERVAL,
    DEFAULT_FSRS_WEIGHTS,
    DEFAULT_LEARNING_STEPS,
    DEFAULT_RELEARNING_STEPS,
    DEFAULT_REQUEST_RETENTION,
    FSRS6_WEIGHT_COUNT,
    FSRS_MAX_DIFFICULTY,
    FSRS_MIN_DIFFICULTY,
    LEGACY_FSRS_DECAY,
    LEGACY_FSRS_SHORT_TERM_EXPONENT,
)
from mneme.domain.errors import AlgorithmError
from mneme.domain.ratings import FsrsRating
from mneme.domain.schedule.models import FsrsCard, FsrsState

from ..utils.dates import ensure_utc, utc_day_difference

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FsrsConfig:
    request_retention: float = DEFAULT_REQUEST_RETENTION
    maximum_interval: int = DEFAULT_FSRS_MAXIMUM_INTERVAL
    weights: tuple[float, ...] = DEFAULT_FSRS_WEIGHTS
    enable_fuzz: bool = True
    learning_steps: tuple[int, ...] = DEFAULT_LEARNING_STEPS  # minutes
    relearning_steps: tuple[int, ...] = DEFAULT_RELEARNING_STEPS  # minutes
    enable_short_term: bool = True


@dataclass(frozen=True)
class FsrsReviewOutcome:
    card: FsrsCard
    due: datetime


def new_card(created_at: datetime | None = None) -> FsrsCard:
    """
    A fresh card: zero stability and difficulty, state NEW, never reviewed.

    ``created_at`` is accepted for symmetry with the other constructors; a
    new card carries no timestamps of its own.
    """
    return FsrsCard()


def normalize_weights(weights: tuple[float, ...]) -> tuple[float, ...]:
    """
    Bring a weight vector to the 21-value FSRS-6 layout.

    17-value (FSRS-4.5) and 19-value (FSRS-5) vectors are padded with library
    defaults, then the same-day exponent is zeroed and the decay set to 0.5,
    which is the forgetting curve those versions used.
    """
    if len(weights) >= FSRS6_WEIGHT_COUNT:
        return tuple(weights)

    padded = list(weights) + list(_library_defaults()[len(weights) :])
    padded[19] = LEGACY_FSRS_SHORT_TERM_EXPONENT
    padded[20] = LEGACY_FSRS_DECAY
    return tuple(padded)


@lru_cache(maxsize=1)
def _library_defaults() -> tuple[float, ...]:
    return tuple(Scheduler().parameters)


@lru_cache(maxsize=32)
def get_scheduler(config: FsrsConfig) -> Scheduler:
    """One library scheduler per distinct config. Invalid weights fall back to defaults."""
    if config.enable_short_term:
        learning = tuple(timedelta(minutes=m) for m in config.learning_steps)
        relearning = tuple(timedelta(minutes=m) for m in config.relearning_steps)
    else:
        learning = ()
        relearning = ()

    kwargs = dict(
        desired_retention=config.request_retention,
        learning_steps=learning,
        relearning_steps=relearning,
        maximum_interval=config.maximum_interval,
        enable_fuzzing=config.enable_fuzz,
    )
    try:
        return Scheduler(parameters=normalize_weights(config.weights), **kwargs)
    except ValueError as e:
        logger.warning(f"FSRS weights rejected ({e}); using library defaults")
        return Scheduler(**kwargs)


def validate_card(card: FsrsCard) -> None:
    """
    Raise AlgorithmError if the card cannot be fed to the memory model.

    New cards carry no memory state and are always valid.
    """
    if card.state is FsrsState.NEW:
        return
    if card.stability is None or not math.isfinite(card.stability) or card.stability <= 0:
        raise AlgorithmError(f"Invalid stability {card.stability!r} for state {card.state.name}")
    if (
        card.difficulty is None
        or not math.isfinite(card.difficulty)
        or not FSRS_MIN_DIFFICULTY <= card.difficulty <= FSRS_MAX_DIFFICULTY
    ):
        raise AlgorithmError(
            f"Invalid difficulty {card.difficulty!r} for state {card.state.name}"
        )
    if card.last_review is None:
        raise AlgorithmError(f"Card in state {card.state.name} has no last review")


def _to_library(card: FsrsCard, now: datetime) -> Card:
    if card.state is FsrsState.NEW:
        return Card(card_id=0, state=State.Learning, step=0, due=now)

    step = card.step
    if card.state is FsrsState.REVIEW:
        step = None
    elif step is None:
        step = 0

    return Card(
        card_id=0,
        state=State(int(card.state)),
        step=step,
        stability=card.stability,
        difficulty=card.difficulty,
        due=now,
        last_review=ensure_utc(card.last_review),
    )


def review(
    card: FsrsCard,
    rating: FsrsRating,
    now: datetime,
    config: FsrsConfig,
) -> FsrsReviewOutcome:
    """
    Rate a card at ``now`` and return the updated card with its due instant.

    Raises:
        AlgorithmError: if the card data is missing or corrupt.
    """
    validate_card(card)
    now = ensure_utc(now)

    scheduler = get_scheduler(config)
    updated, _log = scheduler.review_card(_to_library(card, now), Rating(int(rating)), now)

    due = ensure_utc(updated.due)
    elapsed = utc_day_difference(card.last_review, now) if card.last_review else 0
    lapsed = card.state is FsrsState.REVIEW and rating is FsrsRating.AGAIN

    result = FsrsCard(
        stability=updated.stability,
        difficulty=updated.difficulty,
        elapsed_days=elapsed,
        scheduled_days=max(0, (due - now).days),
        reps=card.reps + 1,
        lapses=card.lapses + 1 if lapsed else card.lapses,
        state=FsrsState(int(updated.state)),
        step=updated.step,
        last_review=now,
    )
    logger.debug(
        f"FSRS {card.state.name} -> {result.state.name} rated {rating.name}: "
        f"S={result.stability:.2f} D={result.difficulty:.2f} due {due.isoformat()}"
    )
    return FsrsReviewOutcome(card=result, due=due)


def skip(card: FsrsCard, now: datetime, config: FsrsConfig) -> FsrsReviewOutcome:
    """A skip is always rated Again."""
    return review(card, FsrsRating.AGAIN, now, config)


def retrievability(card: FsrsCard, now: datetime, config: FsrsConfig) -> float:
    """Probability of recall at ``now``. New cards report 1.0."""
    if card.state is FsrsState.NEW or card.last_review is None:
        return 1.0
    validate_card(card)
    now = ensure_utc(now)
    return get_scheduler(config).get_card_retrievability(_to_library(card, now), now)
