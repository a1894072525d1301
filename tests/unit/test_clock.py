"""
Unit tests for the injectable clocks.
"""

from datetime import UTC, date, datetime, timedelta, timezone

from pharmacy_kernel.domain.clock import DeterministicClock, SystemClock


def test_deterministic_clock_is_stable():
    clock = DeterministicClock()
    assert clock.now() == clock.now() == datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def test_advance_and_tick():
    clock = DeterministicClock()
    clock.advance(30)
    assert clock.now() == datetime(2024, 1, 1, 12, 0, 30, tzinfo=UTC)
    assert clock.tick() == datetime(2024, 1, 1, 12, 0, 31, tzinfo=UTC)


def test_advance_days_moves_today():
    clock = DeterministicClock()
    clock.advance_days(31)
    assert clock.today() == date(2024, 2, 1)


def test_today_in_local_zone():
    clock = DeterministicClock(datetime(2024, 1, 1, 22, 0, tzinfo=UTC))
    plus_three = timezone(timedelta(hours=3))
    assert clock.today() == date(2024, 1, 1)
    assert clock.today(plus_three) == date(2024, 1, 2)


def test_system_clock_is_aware():
    assert SystemClock().now().tzinfo is not None
