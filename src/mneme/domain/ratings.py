"""
Rating scales and the single conversion table between them.

Two scales meet in this engine:

- ``ReviewResponse``: the SM-2 quality scale, 0 (blackout) to 5 (perfect recall).
- ``FsrsRating``: the FSRS button scale, Again (1) to Easy (4).

External graders may also hand in a continuous score between 0.0 and 1.0.
Every call site goes through ``normalize_response`` so that all of them share
identical semantics.
"""

import math
from dataclasses import dataclass
from enum import IntEnum

from mneme.domain.errors import ValidationError
from mneme.domain.schedule.models import Algorithm


class ReviewResponse(IntEnum):
    """SM-2 quality rating (0-5)."""

    COMPLETE_BLACKOUT = 0  # No recognition at all
    INCORRECT_RESPONSE = 1  # Wrong, but familiar once the answer was seen
    INCORRECT_BUT_FAMILIAR = 2  # Wrong, but very familiar once seen
    CORRECT_WITH_DIFFICULTY = 3  # Correct with significant effort
    CORRECT_WITH_HESITATION = 4  # Correct after some hesitation
    PERFECT_RECALL = 5  # Correct with no hesitation


class FsrsRating(IntEnum):
    """FSRS button rating (1-4)."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4


# Legacy response names kept by older callers, mapped to their SM-2 equivalents.
LEGACY_RESPONSE_NAMES: dict[str, ReviewResponse] = {
    "hard": ReviewResponse.INCORRECT_RESPONSE,
    "fair": ReviewResponse.CORRECT_WITH_DIFFICULTY,
    "good": ReviewResponse.CORRECT_WITH_HESITATION,
    "perfect": ReviewResponse.PERFECT_RECALL,
}

QUALITY_TO_FSRS: dict[ReviewResponse, FsrsRating] = {
    ReviewResponse.COMPLETE_BLACKOUT: FsrsRating.AGAIN,
    ReviewResponse.INCORRECT_RESPONSE: FsrsRating.AGAIN,
    ReviewResponse.INCORRECT_BUT_FAMILIAR: FsrsRating.HARD,
    ReviewResponse.CORRECT_WITH_DIFFICULTY: FsrsRating.HARD,
    ReviewResponse.CORRECT_WITH_HESITATION: FsrsRating.GOOD,
    ReviewResponse.PERFECT_RECALL: FsrsRating.EASY,
}

FSRS_TO_QUALITY: dict[FsrsRating, ReviewResponse] = {
    FsrsRating.AGAIN: ReviewResponse.INCORRECT_RESPONSE,
    FsrsRating.HARD: ReviewResponse.INCORRECT_BUT_FAMILIAR,
    FsrsRating.GOOD: ReviewResponse.CORRECT_WITH_DIFFICULTY,
    FsrsRating.EASY: ReviewResponse.CORRECT_WITH_HESITATION,
}

# Score thresholds, checked top to bottom; the first one reached wins.
SM2_SCORE_THRESHOLDS: tuple[tuple[float, ReviewResponse], ...] = (
    (0.95, ReviewResponse.PERFECT_RECALL),
    (0.80, ReviewResponse.CORRECT_WITH_HESITATION),
    (0.60, ReviewResponse.CORRECT_WITH_DIFFICULTY),
    (0.40, ReviewResponse.INCORRECT_BUT_FAMILIAR),
)

FSRS_SCORE_THRESHOLDS: tuple[tuple[float, FsrsRating], ...] = (
    (0.90, FsrsRating.EASY),
    (0.70, FsrsRating.GOOD),
    (0.50, FsrsRating.HARD),
)


@dataclass(frozen=True)
class NormalizedResponse:
    """A response expressed on both scales."""

    quality: ReviewResponse
    rating: FsrsRating


def score_to_quality(score: float) -> ReviewResponse:
    """Map a 0.0-1.0 score onto the SM-2 quality scale."""
    for threshold, quality in SM2_SCORE_THRESHOLDS:
        if score >= threshold:
            return quality
    if score > 0:
        return ReviewResponse.INCORRECT_RESPONSE
    return ReviewResponse.COMPLETE_BLACKOUT


def score_to_rating(score: float) -> FsrsRating:
    """Map a 0.0-1.0 score onto the FSRS rating scale."""
    for threshold, rating in FSRS_SCORE_THRESHOLDS:
        if score >= threshold:
            return rating
    return FsrsRating.AGAIN


def _from_quality(quality: ReviewResponse) -> NormalizedResponse:
    return NormalizedResponse(quality=quality, rating=QUALITY_TO_FSRS[quality])


def _from_rating(rating: FsrsRating) -> NormalizedResponse:
    return NormalizedResponse(quality=FSRS_TO_QUALITY[rating], rating=rating)


def _from_int(value: int, algorithm: Algorithm) -> NormalizedResponse:
    if algorithm is Algorithm.FSRS:
        clamped = min(max(value, FsrsRating.AGAIN), FsrsRating.EASY)
        return _from_rating(FsrsRating(clamped))
    clamped = min(max(value, ReviewResponse.COMPLETE_BLACKOUT), ReviewResponse.PERFECT_RECALL)
    return _from_quality(ReviewResponse(clamped))


def _from_name(name: str, algorithm: Algorithm) -> NormalizedResponse:
    key = name.strip().lower().replace("-", "_").replace(" ", "_")
    if not key:
        raise ValidationError("Empty response")

    if key.lstrip("-").isdigit():
        return _from_int(int(key), algorithm)

    fsrs_names = {r.name.lower(): r for r in FsrsRating}
    sm2_names = {r.name.lower(): r for r in ReviewResponse}

    # "hard" and "good" exist on both scales; the item's own scale decides.
    if algorithm is Algorithm.FSRS and key in fsrs_names:
        return _from_rating(fsrs_names[key])
    if key in sm2_names:
        return _from_quality(sm2_names[key])
    if key in LEGACY_RESPONSE_NAMES:
        return _from_quality(LEGACY_RESPONSE_NAMES[key])
    if key in fsrs_names:
        return _from_rating(fsrs_names[key])

    try:
        return normalize_response(float(key), algorithm)
    except ValueError:
        raise ValidationError(f"Unknown response {name!r}") from None


def normalize_response(
    response: "ReviewResponse | FsrsRating | int | float | str",
    algorithm: Algorithm,
) -> NormalizedResponse:
    """
    Convert any accepted response form into both scales.

    Rules, in order:
        - ``FsrsRating`` and ``ReviewResponse`` members keep their meaning.
        - A ``float`` is a 0.0-1.0 score, mapped through the score tables.
        - A plain ``int`` is read in the item's native scale (1-4 for FSRS,
          0-5 for SM-2) and clamped to it.
        - A ``str`` is a member name, a legacy alias, or a number.

    Raises:
        ValidationError: for booleans, NaN, empty or unknown names, and other types.
    """
    if isinstance(response, bool):
        raise ValidationError("Boolean is not a review response")
    if isinstance(response, FsrsRating):
        return _from_rating(response)
    if isinstance(response, ReviewResponse):
        return _from_quality(response)
    if isinstance(response, float):
        if math.isnan(response):
            raise ValidationError("Score must be a number")
        score = min(max(response, 0.0), 1.0)
        return NormalizedResponse(quality=score_to_quality(score), rating=score_to_rating(score))
    if isinstance(response, int):
        return _from_int(response, algorithm)
    if isinstance(response, str):
        return _from_name(response, algorithm)
    raise ValidationError(f"Unsupported response type: {type(response).__name__}")
