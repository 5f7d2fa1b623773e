"""Tests for slot generation."""

from datetime import time

from app.scheduling.slots import generate_time_slots


def test_generates_back_to_back_slots():
    """Test a range divided evenly into slots."""
    slots = generate_time_slots(time(9, 0), time(12, 0), 30)

    assert slots == [
        time(9, 0),
        time(9, 30),
        time(10, 0),
        time(10, 30),
        time(11, 0),
        time(11, 30),
    ]


def test_last_slot_must_fit_before_range_end():
    """Test a trailing partial slot is dropped."""
    slots = generate_time_slots(time(9, 0), time(10, 0), 45)

    assert slots == [time(9, 0)]


def test_slot_ending_exactly_at_range_end_is_kept():
    slots = generate_time_slots(time(15, 0), time(17, 0), 60)

    assert slots == [time(15, 0), time(16, 0)]


def test_range_shorter_than_interval_has_no_slots():
    assert generate_time_slots(time(9, 0), time(9, 20), 30) == []


def test_empty_or_inverted_range_has_no_slots():
    assert generate_time_slots(time(9, 0), time(9, 0), 30) == []
    assert generate_time_slots(time(12, 0), time(9, 0), 30) == []


def test_non_positive_interval_has_no_slots():
    assert generate_time_slots(time(9, 0), time(12, 0), 0) == []
    assert generate_time_slots(time(9, 0), time(12, 0), -15) == []


def test_slots_keep_minute_offsets():
    """Test ranges that do not start on the hour."""
    slots = generate_time_slots(time(8, 15), time(9, 45), 30)

    assert slots == [time(8, 15), time(8, 45), time(9, 15)]
