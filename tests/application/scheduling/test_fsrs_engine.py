import logging
import math
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from mneme.application.scheduling import fsrs_engine
from mneme.application.scheduling.fsrs_engine import (
    FsrsConfig,
    get_scheduler,
    new_card,
    normalize_weights,
    retrievability,
    review,
    skip,
    validate_card,
)
from mneme.domain.constants import DEFAULT_FSRS_WEIGHTS
from mneme.domain.errors import AlgorithmError
from mneme.domain.ratings import FsrsRating
from mneme.domain.schedule.models import FsrsCard, FsrsState

NOW = datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def config():
    return FsrsConfig(enable_fuzz=False)


@pytest.fixture
def review_card(config):
    """A card that graduated straight to review with an Easy first rating."""
    return review(new_card(), FsrsRating.EASY, NOW, config)


# --- New cards ---


def test_new_card_is_blank():
    card = new_card(NOW)
    assert card.state is FsrsState.NEW
    assert card.stability == 0.0
    assert card.difficulty == 0.0
    assert card.reps == 0
    assert card.last_review is None


def test_new_card_rated_again_enters_learning(config):
    outcome = review(new_card(), FsrsRating.AGAIN, NOW, config)

    assert outcome.card.state is FsrsState.LEARNING
    assert outcome.card.step == 0
    assert outcome.due == NOW + timedelta(minutes=1)
    assert outcome.card.reps == 1
    assert outcome.card.lapses == 0
    assert outcome.card.elapsed_days == 0
    assert outcome.card.scheduled_days == 0
    assert outcome.card.last_review == NOW


def test_new_card_rated_good_moves_to_next_step(config):
    outcome = review(new_card(), FsrsRating.GOOD, NOW, config)

    assert outcome.card.state is FsrsState.LEARNING
    assert outcome.card.step == 1
    assert outcome.due == NOW + timedelta(minutes=10)


def test_new_card_rated_easy_graduates(review_card):
    assert review_card.card.state is FsrsState.REVIEW
    assert review_card.card.step is None
    assert review_card.card.scheduled_days >= 1
    assert review_card.due >= NOW + timedelta(days=1)
    assert 1.0 <= review_card.card.difficulty <= 10.0
    assert review_card.card.stability > 0


def test_short_term_disabled_skips_learning_steps():
    config = FsrsConfig(enable_fuzz=False, enable_short_term=False)
    outcome = review(new_card(), FsrsRating.GOOD, NOW, config)

    assert outcome.card.state is FsrsState.REVIEW
    assert outcome.due >= NOW + timedelta(days=1)


# --- Reviews ---


def test_forgotten_review_card_relearns(review_card, config):
    later = review_card.due
    outcome = review(review_card.card, FsrsRating.AGAIN, later, config)

    assert outcome.card.state is FsrsState.RELEARNING
    assert outcome.card.lapses == 1
    assert outcome.card.reps == 2
    assert outcome.due == later + timedelta(minutes=10)
    assert outcome.card.elapsed_days == review_card.card.scheduled_days


def test_learning_again_is_not_a_lapse(config):
    learning = review(new_card(), FsrsRating.AGAIN, NOW, config).card
    outcome = review(learning, FsrsRating.AGAIN, NOW + timedelta(minutes=1), config)
    assert outcome.card.lapses == 0


def test_successful_review_grows_stability(review_card, config):
    outcome = review(review_card.card, FsrsRating.GOOD, review_card.due, config)
    assert outcome.card.state is FsrsState.REVIEW
    assert outcome.card.stability > review_card.card.stability
    assert outcome.due > review_card.due


def test_skip_is_rated_again(review_card, config):
    skipped = skip(review_card.card, review_card.due, config)
    again = review(review_card.card, FsrsRating.AGAIN, review_card.due, config)
    assert skipped == again


def test_review_rejects_corrupt_card(config):
    corrupt = FsrsCard(stability=-1.0, difficulty=5.0, state=FsrsState.REVIEW, last_review=NOW)
    with pytest.raises(AlgorithmError):
        review(corrupt, FsrsRating.GOOD, NOW, config)


def test_review_accepts_naive_datetimes(config):
    outcome = review(new_card(), FsrsRating.AGAIN, NOW.replace(tzinfo=None), config)
    assert outcome.due.tzinfo is not None
    assert outcome.card.last_review == NOW


# --- Validation ---


def test_validate_card_accepts_new_cards():
    validate_card(FsrsCard())


@pytest.mark.parametrize(
    "changes",
    [
        {"stability": 0.0},
        {"stability": math.nan},
        {"difficulty": 0.5},
        {"difficulty": 11.0},
        {"difficulty": math.inf},
        {"last_review": None},
    ],
)
def test_validate_card_rejects_bad_memory_state(changes):
    card = FsrsCard(stability=3.0, difficulty=5.0, state=FsrsState.REVIEW, last_review=NOW)
    with pytest.raises(AlgorithmError):
        validate_card(replace(card, **changes))


# --- Retrievability ---


def test_retrievability_of_new_card_is_one(config):
    assert retrievability(new_card(), NOW, config) == 1.0


def test_retrievability_decays_over_time(review_card, config):
    soon = retrievability(review_card.card, NOW + timedelta(days=1), config)
    later = retrievability(review_card.card, NOW + timedelta(days=60), config)
    assert 0.0 < later < soon <= 1.0


# --- Weights ---


def test_normalize_weights_pads_legacy_vectors():
    padded = normalize_weights(DEFAULT_FSRS_WEIGHTS)

    assert len(padded) == 21
    assert padded[:17] == DEFAULT_FSRS_WEIGHTS
    assert padded[19] == 0.0
    assert padded[20] == 0.5


def test_normalize_weights_keeps_full_vectors():
    weights = tuple(float(i) for i in range(21))
    assert normalize_weights(weights) == weights


def test_get_scheduler_is_cached(config):
    assert get_scheduler(config) is get_scheduler(config)
    assert len(get_scheduler(config).parameters) == 21


def test_rejected_weights_fall_back_to_defaults(caplog):
    fallback = object()

    def fake_scheduler(parameters=None, **kwargs):
        if parameters is not None:
            raise ValueError("parameters out of bounds")
        return fallback

    config = FsrsConfig(weights=(-1.0,) * 21, enable_fuzz=False)
    get_scheduler.cache_clear()
    try:
        with (
            patch.object(fsrs_engine, "Scheduler", side_effect=fake_scheduler),
            caplog.at_level(logging.WARNING),
        ):
            assert get_scheduler(config) is fallback
    finally:
        get_scheduler.cache_clear()

    assert "using library defaults" in caplog.text
