from __future__ import annotations

from datetime import datetime, timezone

import pytest

from publish.schedule import ScheduleError, compute_next_send, normalize_weekday

# 2024-05-07 is a Tuesday
TUESDAY_10 = datetime(2024, 5, 7, 10, 0, tzinfo=timezone.utc)


def test_monday_slot_from_tuesday_morning():
    assert compute_next_send([1], ["09:00"], "UTC", now=TUESDAY_10) == datetime(2024, 5, 13, 9, 0, tzinfo=timezone.utc)


def test_unsubscribed_reader_is_never_rescheduled():
    assert compute_next_send([1, 2, 3], ["09:00"], "UTC", eligible=False, now=TUESDAY_10) is None


def test_sunday_zero_normalizes_to_seven():
    assert normalize_weekday(0) == 7
    assert compute_next_send([0], ["08:00"], "UTC", now=TUESDAY_10) == datetime(2024, 5, 12, 8, 0, tzinfo=timezone.utc)


def test_earliest_time_on_the_same_day_wins():
    result = compute_next_send([2], ["18:30", "09:00", "12:15"], "UTC", now=TUESDAY_10)

    assert result == datetime(2024, 5, 7, 12, 15, tzinfo=timezone.utc)


def test_slot_equal_to_now_is_eligible():
    assert compute_next_send([2], ["10:00"], "UTC", now=TUESDAY_10) == TUESDAY_10


def test_window_reaches_the_same_weekday_next_week():
    assert compute_next_send([2], ["09:00"], "UTC", now=TUESDAY_10) == datetime(2024, 5, 14, 9, 0, tzinfo=timezone.utc)


def test_local_time_is_converted_to_utc():
    # London is on BST (+01:00) in May
    assert compute_next_send([2], ["12:00"], "", now=TUESDAY_10) == datetime(2024, 5, 7, 11, 0, tzinfo=timezone.utc)


def test_empty_availability_yields_none():
    assert compute_next_send([], ["09:00"], "UTC", now=TUESDAY_10) is None
    assert compute_next_send([1], [], "UTC", now=TUESDAY_10) is None


def test_unknown_timezone_raises():
    with pytest.raises(ScheduleError):
        compute_next_send([1], ["09:00"], "Mars/Olympus", now=TUESDAY_10)


def test_malformed_time_raises():
    with pytest.raises(ScheduleError):
        compute_next_send([1], ["nine"], "UTC", now=TUESDAY_10)
