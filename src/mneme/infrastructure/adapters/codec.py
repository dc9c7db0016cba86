"""
Persisted layout <-> domain.

The on-disk document keeps the camelCase keys and epoch-millisecond
timestamps of the plugin data file, so existing data files load unchanged:

    {"version": ..., "schedules": {id: {...}}, "history": [...], "customNoteOrder": [...]}

Decoding is forgiving. Records that fail validation are dropped with a
warning instead of failing the whole load, and legacy records are migrated.
"""

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from mneme.application.utils.dates import from_epoch_millis, to_epoch_millis
from mneme.consts import VERSION
from mneme.domain.constants import HISTORY_LIMIT
from mneme.domain.schedule.models import (
    Algorithm,
    FsrsCard,
    FsrsSchedule,
    FsrsState,
    HistoryItem,
    ReviewSchedule,
    ScheduleCategory,
    SchedulerState,
    Sm2Schedule,
)

logger = logging.getLogger(__name__)


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class PersistedFsrsCard(BaseModel):
    # fsrsData keeps snake_case keys
    model_config = ConfigDict(extra="ignore")

    stability: float = 0.0
    difficulty: float = 0.0
    elapsed_days: int = 0
    scheduled_days: int = 0
    reps: int = 0
    lapses: int = 0
    state: FsrsState = FsrsState.NEW
    step: int | None = None
    last_review: float | None = None


class PersistedSchedule(_CamelModel):
    path: str
    last_review_date: float | None
    next_review_date: float
    ease: float
    interval: int = 0
    consecutive: int = 0
    review_count: int = 0
    repetition_count: int | None = None
    schedule_category: ScheduleCategory | None = None
    scheduling_algorithm: Algorithm | None = None
    fsrs_data: PersistedFsrsCard | None = None


class PersistedHistoryItem(_CamelModel):
    path: str
    timestamp: float
    response: int
    interval: int = 0
    ease: int = 0
    is_skipped: bool = False


class PersistedState(_CamelModel):
    version: str = ""
    schedules: dict[str, Any] = Field(default_factory=dict)
    history: list[Any] = Field(default_factory=list)
    custom_note_order: list[Any] = Field(default_factory=list)


def estimate_repetition_count(interval: int) -> int:
    """Legacy records carry no repetition count; estimate one from the interval."""
    if interval <= 1:
        return 0
    if interval <= 6:
        return 1
    return 2


# --- Decoding ---


def _decode_card(data: PersistedFsrsCard) -> FsrsCard:
    step = data.step
    if step is None and data.state in (FsrsState.NEW, FsrsState.LEARNING, FsrsState.RELEARNING):
        step = 0
    return FsrsCard(
        stability=data.stability,
        difficulty=data.difficulty,
        elapsed_days=data.elapsed_days,
        scheduled_days=data.scheduled_days,
        reps=data.reps,
        lapses=data.lapses,
        state=data.state,
        step=step,
        last_review=(
            from_epoch_millis(data.last_review) if data.last_review is not None else None
        ),
    )


def decode_schedule(item_id: str, raw: Any) -> ReviewSchedule:
    """
    Decode one schedule record.

    Raises:
        pydantic.ValidationError: if required fields are missing or malformed.
    """
    record = PersistedSchedule.model_validate(raw)
    next_review = from_epoch_millis(record.next_review_date)
    last_review = (
        from_epoch_millis(record.last_review_date) if record.last_review_date is not None else None
    )

    if record.scheduling_algorithm is Algorithm.FSRS:
        return FsrsSchedule(
            item_id=item_id,
            next_review_date=next_review,
            last_review_date=last_review,
            review_count=record.review_count,
            card=_decode_card(record.fsrs_data) if record.fsrs_data else None,
        )

    # Missing algorithm: written before FSRS support, so SM-2.
    repetition_count = record.repetition_count
    if repetition_count is None:
        repetition_count = estimate_repetition_count(record.interval)
    return Sm2Schedule(
        item_id=item_id,
        next_review_date=next_review,
        last_review_date=last_review,
        review_count=record.review_count,
        ease=round(record.ease),
        interval=record.interval,
        repetition_count=repetition_count,
        consecutive=record.consecutive,
        schedule_category=record.schedule_category or ScheduleCategory.SPACED,
    )


def decode_history_item(raw: Any) -> HistoryItem:
    record = PersistedHistoryItem.model_validate(raw)
    return HistoryItem(
        item_id=record.path,
        timestamp=from_epoch_millis(record.timestamp),
        response=record.response,
        interval=record.interval,
        ease=record.ease,
        is_skipped=record.is_skipped,
    )


def decode_state(document: Any, history_limit: int = HISTORY_LIMIT) -> SchedulerState:
    """
    Decode a whole document, dropping whatever fails the integrity check.
    """
    try:
        persisted = PersistedState.model_validate(document)
    except PydanticValidationError as e:
        logger.error(f"Unreadable scheduler data, starting empty: {e.error_count()} errors")
        return SchedulerState()

    schedules: dict[str, ReviewSchedule] = {}
    for item_id, raw in persisted.schedules.items():
        try:
            schedules[item_id] = decode_schedule(item_id, raw)
        except PydanticValidationError as e:
            logger.warning(f"Dropping invalid schedule for {item_id}: {e.error_count()} errors")

    history: list[HistoryItem] = []
    dropped = 0
    for raw in persisted.history:
        try:
            history.append(decode_history_item(raw))
        except PydanticValidationError:
            dropped += 1
    if dropped:
        logger.warning(f"Dropped {dropped} invalid history entries")

    ids = (i for i in persisted.custom_note_order if isinstance(i, str))
    order = [i for i in dict.fromkeys(ids) if i in schedules]

    return SchedulerState(
        schedules=schedules,
        history=history[-history_limit:],
        custom_order=order,
    )


# --- Encoding ---


def _encode_card(card: FsrsCard) -> dict[str, Any]:
    return {
        "stability": card.stability,
        "difficulty": card.difficulty,
        "elapsed_days": card.elapsed_days,
        "scheduled_days": card.scheduled_days,
        "reps": card.reps,
        "lapses": card.lapses,
        "state": int(card.state),
        "step": card.step,
        "last_review": (
            to_epoch_millis(card.last_review) if card.last_review is not None else None
        ),
    }


def encode_schedule(schedule: ReviewSchedule) -> dict[str, Any]:
    record: dict[str, Any] = {
        "path": schedule.item_id,
        "lastReviewDate": (
            to_epoch_millis(schedule.last_review_date)
            if schedule.last_review_date is not None
            else None
        ),
        "nextReviewDate": to_epoch_millis(schedule.next_review_date),
        "reviewCount": schedule.review_count,
        "schedulingAlgorithm": schedule.algorithm.value,
    }

    if isinstance(schedule, Sm2Schedule):
        record.update(
            ease=schedule.ease,
            interval=schedule.interval,
            consecutive=schedule.consecutive,
            repetitionCount=schedule.repetition_count,
            scheduleCategory=schedule.schedule_category.value,
            fsrsData=None,
        )
        return record

    # ease/interval mirror the card for readers that only know SM-2 fields
    card = schedule.card
    record.update(
        ease=round(card.difficulty * 10) if card else 0,
        interval=card.scheduled_days if card else 0,
        consecutive=0,
        repetitionCount=0,
        scheduleCategory=None,
        fsrsData=_encode_card(card) if card else None,
    )
    return record


def encode_history_item(item: HistoryItem) -> dict[str, Any]:
    return {
        "path": item.item_id,
        "timestamp": to_epoch_millis(item.timestamp),
        "response": item.response,
        "interval": item.interval,
        "ease": item.ease,
        "isSkipped": item.is_skipped,
    }


def encode_state(state: SchedulerState) -> dict[str, Any]:
    return {
        "version": VERSION,
        "schedules": {item_id: encode_schedule(s) for item_id, s in state.schedules.items()},
        "history": [encode_history_item(h) for h in state.history],
        "customNoteOrder": list(state.custom_order),
    }
