from datetime import date

import pytest

from statdesk.errors import ValidationError
from statdesk.features.analytics.buckets import generate_buckets, resolve_granularity, zero_fill


@pytest.mark.parametrize(
    ("start", "end", "expected"),
    [
        (date(2024, 1, 1), date(2024, 3, 31), "day"),
        (date(2024, 1, 1), date(2024, 12, 31), "week"),
        (date(2023, 1, 1), date(2024, 12, 31), "month"),
    ],
)
def test_auto_granularity_follows_range_length(start, end, expected):
    assert resolve_granularity("auto", start, end) == expected
    assert resolve_granularity(None, start, end) == expected


def test_unknown_granularity_rejected():
    with pytest.raises(ValidationError):
        resolve_granularity("hour", date(2024, 1, 1), date(2024, 1, 2))


def test_daily_buckets_are_inclusive():
    assert generate_buckets(date(2024, 1, 1), date(2024, 1, 3), "day") == [
        "2024-01-01",
        "2024-01-02",
        "2024-01-03",
    ]


def test_weekly_buckets_start_on_monday_and_use_iso_weeks():
    # 2024-01-03 is a Wednesday of ISO week 1
    assert generate_buckets(date(2024, 1, 3), date(2024, 1, 15), "week") == [
        "2024-W01",
        "2024-W02",
        "2024-W03",
    ]


def test_monthly_buckets_cross_year_boundary():
    assert generate_buckets(date(2023, 11, 15), date(2024, 2, 1), "month") == [
        "2023-11",
        "2023-12",
        "2024-01",
        "2024-02",
    ]


def test_empty_when_end_before_start():
    assert generate_buckets(date(2024, 2, 1), date(2024, 1, 1), "day") == []


def test_zero_fill_keeps_label_order():
    assert zero_fill(["a", "b", "c"], {"c": 2, "a": 1}) == [1, 0, 2]
