"""
UTC-day date helpers.

Every day-boundary computation in the scheduling path goes through this
module. Nothing here reads the local time zone: naive datetimes are taken
to already be UTC.
"""

from datetime import datetime, timedelta, timezone

DAY = timedelta(days=1)


def ensure_utc(moment: datetime) -> datetime:
    """Return ``moment`` as an aware UTC datetime (naive values are assumed UTC)."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def start_of_utc_day(moment: datetime) -> datetime:
    """00:00:00.000000 UTC of the day containing ``moment``."""
    return ensure_utc(moment).replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_utc_day(moment: datetime) -> datetime:
    """23:59:59.999999 UTC of the day containing ``moment``."""
    return start_of_utc_day(moment) + DAY - timedelta(microseconds=1)


def add_days(moment: datetime, days: int | float) -> datetime:
    return ensure_utc(moment) + timedelta(days=days)


def utc_day_difference(first: datetime, second: datetime) -> int:
    """Absolute number of UTC calendar days between two instants."""
    delta = start_of_utc_day(second) - start_of_utc_day(first)
    return abs(delta.days)


def to_epoch_millis(moment: datetime) -> int:
    return int(round(ensure_utc(moment).timestamp() * 1000))


def from_epoch_millis(millis: int | float) -> datetime:
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
