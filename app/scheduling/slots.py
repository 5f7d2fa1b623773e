"""Discrete slot generation."""

from datetime import time


def _to_minutes(value: time) -> int:
    return value.hour * 60 + value.minute


def generate_time_slots(start: time, end: time, interval_minutes: int) -> list[time]:
    """
    Generate the start times of fixed-length slots inside a time-of-day range.

    Every returned ``t`` satisfies ``start <= t`` and ``t + interval <= end``,
    stepping by ``interval_minutes`` from ``start``.

    Args:
        start: Range start (inclusive)
        end: Range end (exclusive for slot ends)
        interval_minutes: Slot length and step

    Returns:
        Ordered slot start times; empty if the interval is not positive or the
        range is empty
    """
    if interval_minutes <= 0 or start >= end:
        return []

    current = _to_minutes(start)
    stop = _to_minutes(end)

    slots = []
    while current + interval_minutes <= stop:
        slots.append(time(current // 60, current % 60))
        current += interval_minutes

    return slots
