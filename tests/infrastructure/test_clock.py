from datetime import datetime, timedelta, timezone

from mneme.infrastructure.clock import FixedClock, SystemClock


def test_system_clock_is_utc():
    assert SystemClock().now().tzinfo == timezone.utc


def test_fixed_clock():
    clock = FixedClock(datetime(2024, 3, 10, 9, 30))
    assert clock.now() == datetime(2024, 3, 10, 9, 30, tzinfo=timezone.utc)

    assert clock.advance(days=1, hours=2) == datetime(2024, 3, 11, 11, 30, tzinfo=timezone.utc)

    clock.set(datetime(2025, 1, 1, tzinfo=timezone(timedelta(hours=1))))
    assert clock.now() == datetime(2024, 12, 31, 23, 0, tzinfo=timezone.utc)
