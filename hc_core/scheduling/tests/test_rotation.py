# hc_core/scheduling/tests/test_rotation.py
from datetime import date

import pytest

from hc_core.scheduling.rotation import iter_dates, sunday_weekday, week_index_for

SUNDAY = date(2024, 1, 7)


def test_sunday_weekday_numbering():
    assert sunday_weekday(date(2024, 1, 7)) == 0
    assert sunday_weekday(date(2024, 1, 8)) == 1
    assert sunday_weekday(date(2024, 1, 13)) == 6


@pytest.mark.parametrize(
    "day, expected",
    [
        (date(2024, 1, 7), 0),
        (date(2024, 1, 13), 0),
        (date(2024, 1, 14), 1),
        (date(2024, 1, 20), 1),
        (date(2024, 1, 21), 0),
        (date(2024, 1, 28), 1),
    ],
)
def test_two_week_rotation_alternates(day, expected):
    assert week_index_for(SUNDAY, day, 2) == expected


def test_dates_before_anchor_rotate_backwards():
    # the 7 days right before the anchor are the last week of the cycle
    assert week_index_for(SUNDAY, date(2024, 1, 6), 3) == 2
    assert week_index_for(SUNDAY, date(2023, 12, 31), 3) == 2
    assert week_index_for(SUNDAY, date(2023, 12, 24), 3) == 1


def test_midweek_anchor_counts_whole_weeks_from_the_anchor():
    wednesday = date(2024, 1, 10)
    # Sunday four days later is still inside the first 7-day span
    assert week_index_for(wednesday, date(2024, 1, 14), 2) == 0
    assert week_index_for(wednesday, date(2024, 1, 16), 2) == 0
    assert week_index_for(wednesday, date(2024, 1, 17), 2) == 1
    # the Monday before the anchor falls in the previous span
    assert week_index_for(wednesday, date(2024, 1, 8), 2) == 1


def test_single_week_is_always_zero():
    assert all(week_index_for(SUNDAY, d, 1) == 0 for d in iter_dates(date(2023, 12, 1), date(2024, 2, 1)))


def test_week_count_must_be_positive():
    with pytest.raises(ValueError):
        week_index_for(SUNDAY, SUNDAY, 0)


def test_iter_dates_is_inclusive():
    days = list(iter_dates(date(2024, 1, 30), date(2024, 2, 2)))
    assert days == [date(2024, 1, 30), date(2024, 1, 31), date(2024, 2, 1), date(2024, 2, 2)]
    assert list(iter_dates(date(2024, 2, 2), date(2024, 2, 1))) == []
