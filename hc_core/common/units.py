# hc_core/common/units.py
"""
Time-to-unit conversion shared by template planning, check-out and visit review.

A unit is the billing/consumption quantum (HC_UNIT_MINUTES, 15 by default).
Partial units round up: 61 minutes at 15-minute granularity is 5 units.
"""
from __future__ import annotations

import math
from datetime import date, datetime, time
from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings


def unit_minutes() -> int:
    return int(getattr(settings, "HC_UNIT_MINUTES", 15))


def units_for_minutes(minutes: float) -> int:
    if minutes <= 0:
        return 0
    return int(math.ceil(minutes / unit_minutes()))


def units_between(start: datetime, end: datetime) -> int:
    return units_for_minutes(minutes_between(start, end))


def minutes_between(start: datetime, end: datetime) -> float:
    return max((end - start).total_seconds() / 60.0, 0.0)


def hours_between(start: datetime, end: datetime) -> Decimal:
    hours = Decimal(str(minutes_between(start, end))) / Decimal("60")
    return hours.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def units_for_slot(start_time: time, end_time: time) -> int:
    """Units for a same-day time-of-day slot (template events)."""
    anchor = date(2000, 1, 3)
    start = datetime.combine(anchor, start_time)
    end = datetime.combine(anchor, end_time)
    if end <= start:
        return 0
    return units_between(start, end)
