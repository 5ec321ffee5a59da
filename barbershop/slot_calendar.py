# barbershop/slot_calendar.py
"""
Weekly operating hours and the slot labels they produce.

Slots are one hour long and hour aligned. Days are keyed by Python's
``date.weekday()``: 0=Mon ... 6=Sun.
"""

from datetime import date, datetime, time, timedelta
from typing import Iterator, List, Tuple

# (first_hour, last_hour) bands, both ends inclusive
OPERATING_HOURS = {
    0: [(11, 18), (19, 23)],  # Mon
    1: [(11, 18), (19, 23)],  # Tue
    2: [(11, 18), (19, 23)],  # Wed
    3: [(11, 18), (19, 23)],  # Thu
    4: [(13, 23)],            # Fri
    5: [(10, 22)],            # Sat
    6: [(12, 20)],            # Sun
}


def slot_label(hour: int) -> str:
    return f"{hour:02d}:00"


def time_slots_for_weekday(weekday: int) -> List[str]:
    if weekday not in OPERATING_HOURS:
        raise ValueError(f"weekday must be between 0 and 6, got {weekday}")

    labels = []
    for first, last in OPERATING_HOURS[weekday]:
        for hour in range(first, last + 1):
            labels.append(slot_label(hour))
    return labels


def time_slots_for(day: date) -> List[str]:
    """Ordered slot labels the shop operates on ``day``."""
    return time_slots_for_weekday(day.weekday())


def parse_label(label: str) -> time:
    hours, minutes = label.split(":")
    return time(int(hours), int(minutes))


def slot_timestamp(day: date, label: str) -> datetime:
    return datetime.combine(day, parse_label(label))


def iter_dates(start: date, end: date) -> Iterator[date]:
    """Every date from start to end, both inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def expand_range(start: date, end: date, now: datetime) -> Iterator[Tuple[date, str, datetime]]:
    """
    Yield (date, label, timestamp) for every operating hour in the range,
    skipping those that already started before ``now``.
    """
    for day in iter_dates(start, end):
        for label in time_slots_for(day):
            scheduled = slot_timestamp(day, label)
            if scheduled <= now:
                continue
            yield day, label, scheduled
