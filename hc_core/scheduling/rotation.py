# hc_core/scheduling/rotation.py
"""
Multi-week rotation arithmetic.

A template with N weeks repeats every N whole 7-day spans counted from its
anchor date. Weekdays use 0=Sunday..6=Saturday.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Iterator


def sunday_weekday(day: date) -> int:
    # date.weekday() is Monday=0
    return (day.weekday() + 1) % 7


def week_index_for(anchor_date: date, day: date, week_count: int) -> int:
    """
    Index (0..week_count-1) of the template week that applies to `day`.

    Floor division keeps dates before the anchor rotating backwards
    consistently: the 7 days just before the anchor are week_count-1.
    """
    if week_count < 1:
        raise ValueError("week_count must be >= 1")
    return ((day - anchor_date).days // 7) % week_count


def iter_dates(start: date, end: date) -> Iterator[date]:
    d = start
    while d <= end:
        yield d
        d += timedelta(days=1)
