from datetime import datetime, time, timedelta, timezone

import pytest

from fantasy_survivor.lock import LOCK_ZONE, is_locked, lock_time_for_week, next_lock_time


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    ("air_date", "expected"),
    [
        # Thursday air date locks the Wednesday before (EST).
        (utc(2026, 3, 6, 1, 0), utc(2026, 3, 5, 1, 0)),
        # Wednesday 20:00 EST airing locks at the same instant.
        (utc(2026, 3, 5, 1, 0), utc(2026, 3, 5, 1, 0)),
        # Thursday in UTC but still Wednesday 21:00 in New York.
        (utc(2026, 3, 5, 2, 0), utc(2026, 3, 5, 1, 0)),
        # After spring-forward the lock is 00:00 UTC.
        (utc(2026, 3, 12, 0, 0), utc(2026, 3, 12, 0, 0)),
        # Saturday before fall-back locks on EDT Wednesday.
        (utc(2026, 10, 31, 16, 0), utc(2026, 10, 29, 0, 0)),
        # Thursday after fall-back locks on EST Wednesday.
        (utc(2026, 11, 5, 18, 0), utc(2026, 11, 5, 1, 0)),
    ],
)
def test_lock_time_for_week(air_date: datetime, expected: datetime) -> None:
    assert lock_time_for_week(air_date) == expected


def test_lock_time_for_week_accepts_naive_utc() -> None:
    assert lock_time_for_week(datetime(2026, 3, 6, 1, 0)) == utc(2026, 3, 5, 1, 0)


def test_lock_time_for_week_is_wednesday_evening_within_the_week() -> None:
    start = utc(2026, 2, 23, 5, 0)
    for hour in range(24 * 21):
        air_date = start + timedelta(hours=hour)
        local = air_date.astimezone(LOCK_ZONE)
        if local.weekday() == 2 and local.time() < time(20, 0):
            # Wednesday afternoon airings resolve to that evening's lock.
            continue
        lock_at = lock_time_for_week(air_date)
        local_lock = lock_at.astimezone(LOCK_ZONE)
        assert local_lock.weekday() == 2
        assert local_lock.time() == time(20, 0)
        assert lock_at <= air_date
        assert air_date - lock_at < timedelta(days=7)


def test_next_lock_time_before_and_at_boundary() -> None:
    just_before = utc(2026, 3, 5, 0, 59, 59)
    assert next_lock_time(just_before) == utc(2026, 3, 5, 1, 0)
    # Reaching the lock instant rolls to next week (EDT by then).
    assert next_lock_time(utc(2026, 3, 5, 1, 0)) == utc(2026, 3, 12, 0, 0)


def test_next_lock_time_from_other_days() -> None:
    assert next_lock_time(utc(2026, 3, 2, 15, 0)) == utc(2026, 3, 5, 1, 0)
    assert next_lock_time(utc(2026, 3, 6, 12, 0)) == utc(2026, 3, 12, 0, 0)
    assert next_lock_time(utc(2026, 10, 30, 12, 0)) == utc(2026, 11, 5, 1, 0)


def test_next_lock_time_defaults_to_now() -> None:
    now = datetime.now(timezone.utc)
    lock_at = next_lock_time()
    assert now < lock_at <= now + timedelta(days=7, hours=1)


def test_is_locked_at_exact_instant() -> None:
    lock_at = utc(2026, 3, 5, 1, 0)
    assert is_locked(lock_at, lock_at)
    assert not is_locked(lock_at, lock_at - timedelta(microseconds=1))
    assert is_locked(lock_at, lock_at + timedelta(days=1))


def test_is_locked_mixes_naive_and_aware() -> None:
    assert is_locked(datetime(2026, 3, 5, 1, 0), utc(2026, 3, 5, 1, 0))
