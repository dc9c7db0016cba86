"""
Clock adapters.
"""

from datetime import datetime, timedelta, timezone

from mneme.application.utils.dates import ensure_utc
from mneme.domain.schedule.ports import Clock


class SystemClock(Clock):
    """Wall-clock UTC time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """
    A clock that only moves when told to.

    Used for simulated review dates (``mneme review --at``) and in tests.
    """

    def __init__(self, moment: datetime):
        self._moment = ensure_utc(moment)

    def now(self) -> datetime:
        return self._moment

    def set(self, moment: datetime) -> None:
        self._moment = ensure_utc(moment)

    def advance(self, days: float = 0, **kwargs: float) -> datetime:
        """Move forward by ``days`` plus any other ``timedelta`` keyword."""
        self._moment = self._moment + timedelta(days=days, **kwargs)
        return self._moment
