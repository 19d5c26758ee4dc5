"""
Date and time-of-day primitives shared by the reservation and meeting rules.

Two inclusivity rules live here and nowhere else:
  - reservations cover whole calendar days, inclusive on both ends
  - meetings cover a half-open [start, end) slice of a single day
"""

from datetime import date, datetime, time, timedelta
from typing import Union


def date_ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Inclusive-inclusive overlap: 06-01..06-03 and 06-03..06-05 share June 3."""
    return a_start <= b_end and b_start <= a_end


def time_ranges_overlap(a_start: time, a_end: time, b_start: time, b_end: time) -> bool:
    """Half-open overlap: 18:00-19:00 and 19:00-20:00 only touch."""
    return a_start < b_end and b_start < a_end


def is_valid_range(start, end, strict: bool) -> bool:
    if start is None or end is None:
        return False
    return end > start if strict else end >= start


def next_day(day: date) -> date:
    return day + timedelta(days=1)


def at_time(day: date, t: time) -> datetime:
    return datetime.combine(day, t)


def as_instant(value: Union[date, datetime]) -> datetime:
    # datetime is a date subclass, check it first
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)
