"""
Ports (interfaces) consumed by the scheduling core.

These define the contract that infrastructure adapters must implement.
The scheduler depends on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from .models import SchedulerState


class Clock(ABC):
    """
    Source of the current time.

    Implementations:
        - SystemClock: wall-clock UTC time.
        - FixedClock: a settable instant for simulated dates and tests.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Return the current instant as a timezone-aware UTC datetime."""
        pass


class ItemExistenceCheck(ABC):
    """
    Validates an item id before a schedule is created for it.

    No content is read; only existence matters.
    """

    @abstractmethod
    def exists(self, item_id: str) -> bool:
        pass


class StateRepository(ABC):
    """
    Port for loading and saving scheduler state.

    The core never calls this itself; callers persist after a mutating
    operation returns.
    """

    @abstractmethod
    def load(self) -> SchedulerState:
        """Load the persisted state, or an empty state if none exists."""
        pass

    @abstractmethod
    def save(self, state: SchedulerState) -> None:
        """Persist the given state."""
        pass
