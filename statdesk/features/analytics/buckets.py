"""
Time bucket generation for the timeseries and totals charts.

The database groups rows by ``date_trunc(granularity, created_at)``; the
labels for those rows and the zero-filled label list both come from
bucket_label(), so they always line up.
"""

from datetime import date, timedelta

from statdesk.errors import ValidationError
from statdesk.features.analytics.domain import AUTO_GRANULARITY, GRANULARITIES

DAY_THRESHOLD_DAYS = 90
WEEK_THRESHOLD_DAYS = 365


def resolve_granularity(granularity: str | None, start: date, end: date) -> str:
    """
    Resolve ``auto`` (or None) from the range length, validate the rest.

    <=90 days -> day, <=365 days -> week, longer -> month.
    """
    if granularity is None or granularity == AUTO_GRANULARITY:
        days = (end - start).days
        if days <= DAY_THRESHOLD_DAYS:
            return "day"
        if days <= WEEK_THRESHOLD_DAYS:
            return "week"
        return "month"

    if granularity not in GRANULARITIES:
        raise ValidationError(
            f"Unknown granularity {granularity!r}", error_code="invalid_granularity"
        )
    return granularity


def bucket_start(day: date, granularity: str) -> date:
    """First day of the bucket containing ``day`` (weeks start on Monday)."""
    if granularity == "day":
        return day
    if granularity == "week":
        return day - timedelta(days=day.weekday())
    if granularity == "month":
        return day.replace(day=1)
    raise ValueError(f"Unknown granularity: {granularity}")


def bucket_label(day: date, granularity: str) -> str:
    if granularity == "day":
        return day.isoformat()
    if granularity == "week":
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if granularity == "month":
        return f"{day.year:04d}-{day.month:02d}"
    raise ValueError(f"Unknown granularity: {granularity}")


def _next_bucket(current: date, granularity: str) -> date:
    if granularity == "day":
        return current + timedelta(days=1)
    if granularity == "week":
        return current + timedelta(weeks=1)
    if current.month == 12:
        return current.replace(year=current.year + 1, month=1)
    return current.replace(month=current.month + 1)


def generate_buckets(start: date, end: date, granularity: str) -> list[str]:
    """
    Labels for every bucket overlapping [start, end], in order.

    The first bucket is aligned to its start (Monday / first of month), so a
    range starting mid-week still yields that week.
    """
    if end < start:
        return []

    labels: list[str] = []
    current = bucket_start(start, granularity)
    while current <= end:
        labels.append(bucket_label(current, granularity))
        current = _next_bucket(current, granularity)
    return labels


def zero_fill(labels: list[str], counts: dict[str, int]) -> list[int]:
    return [counts.get(label, 0) for label in labels]
