# Domain Schedule Package
from .models import (
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
from .ports import Clock, ItemExistenceCheck, StateRepository

__all__ = [
    "Algorithm",
    "ScheduleCategory",
    "FsrsState",
    "FsrsCard",
    "Sm2Schedule",
    "FsrsSchedule",
    "ReviewSchedule",
    "HistoryItem",
    "SchedulerState",
    "Clock",
    "ItemExistenceCheck",
    "StateRepository",
]
