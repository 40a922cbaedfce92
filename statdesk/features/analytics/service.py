"""
Aggregation engine behind the analytics endpoints.

Four query shapes share one pipeline: validate the request, compile the
filter once, run the count queries, and shape the result (zero-filling
time buckets where the chart needs a continuous axis).
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from datetime import date
from typing import Any

from .buckets import bucket_label, generate_buckets, resolve_granularity, zero_fill
from .domain import (
    DEFAULT_MARKER_COLOR,
    NO_FILTER,
    AggregateResult,
    ChartMarker,
    CompareResult,
    CountItem,
    Dataset,
    DateRange,
    FilterSpec,
    Period,
    SavedPeriodSet,
    TimeseriesResult,
    TotalsResult,
)
from .filters import compile_filter
from .repository import (
    AnalyticsRepository,
    ChartMarkerRepository,
    SavedPeriodRepository,
    bucket_key,
)
from statdesk.errors import NotFoundError, ValidationError
from statdesk.infrastructure.observability.logging import get_logger
from statdesk.models.domain import require_section

logger = get_logger(__name__)


def _require_range(start_date: date | None, end_date: date | None) -> DateRange:
    if start_date is None or end_date is None:
        raise ValidationError("start_date and end_date are required", error_code="missing_range")
    return _checked_range(start_date, end_date)


def _checked_range(start_date: date | None, end_date: date | None) -> DateRange:
    if start_date is not None and end_date is not None and end_date < start_date:
        raise ValidationError("end_date must not be before start_date", error_code="invalid_range")
    return DateRange(start=start_date, end=end_date)


def _clean_values(values: Sequence[str] | None) -> list[str]:
    if not values:
        return []
    return list(dict.fromkeys(v.strip() for v in values if v and v.strip()))


def _parse_date(value: Any, field_name: str) -> date:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValidationError(f"Period {field_name} must be an ISO date", error_code="invalid_period")


def parse_periods(raw: str | Sequence[Mapping] | None) -> list[Period]:
    """
    Strictly validate comparison periods.

    Unlike filters, periods are required structure: anything malformed is a
    ValidationError rather than being ignored.
    """
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as e:
            raise ValidationError(
                "Periods must be a JSON array", error_code="invalid_period"
            ) from e

    if not raw or not isinstance(raw, list):
        raise ValidationError(
            "At least one period is required (JSON array)", error_code="invalid_period"
        )

    periods: list[Period] = []
    for item in raw:
        if not isinstance(item, Mapping) or not all(k in item for k in ("start", "end", "label")):
            raise ValidationError(
                "Each period must have start, end, and label properties",
                error_code="invalid_period",
            )
        start = _parse_date(item["start"], "start")
        end = _parse_date(item["end"], "end")
        if end < start:
            raise ValidationError(
                f"Period {item['label']!r} ends before it starts", error_code="invalid_period"
            )
        periods.append(Period(start=start, end=end, label=str(item["label"])))
    return periods


class AnalyticsService:
    """aggregate / timeseries / totals / compare."""

    async def aggregate(
        self,
        section: str,
        filters: FilterSpec = NO_FILTER,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> AggregateResult:
        section = require_section(section)
        date_range = _checked_range(start_date, end_date)
        fragment = compile_filter(filters)

        rows = await AnalyticsRepository.count_values(section, fragment, date_range)
        total = await AnalyticsRepository.count_entries(fragment, date_range)

        items = [CountItem(label=row["label"], count=int(row["count"])) for row in rows]
        # Order again in Python so ties are stable regardless of the database collation
        items.sort(key=lambda item: (-item.count, item.label))

        logger.debug(
            "Aggregate computed",
            section=section,
            item_count=len(items),
            total=total,
            filtered=not fragment.is_unrestricted(),
        )

        return AggregateResult(
            section=section,
            items=items,
            total=total,
            start_date=start_date,
            end_date=end_date,
        )

    async def timeseries(
        self,
        section: str,
        values: Sequence[str],
        filters: FilterSpec = NO_FILTER,
        start_date: date | None = None,
        end_date: date | None = None,
        granularity: str | None = "auto",
    ) -> TimeseriesResult:
        section = require_section(section)
        wanted = _clean_values(values)
        if not wanted:
            raise ValidationError("At least one value is required", error_code="missing_values")
        date_range = _require_range(start_date, end_date)
        granularity = resolve_granularity(granularity, date_range.start, date_range.end)
        fragment = compile_filter(filters)

        labels = generate_buckets(date_range.start, date_range.end, granularity)
        rows = await AnalyticsRepository.count_values_by_bucket(
            section, wanted, fragment, date_range, granularity
        )

        per_value: dict[str, dict[str, int]] = {value: {} for value in wanted}
        for row in rows:
            label = bucket_label(bucket_key(row["bucket"]), granularity)
            counts = per_value.setdefault(row["value"], {})
            counts[label] = counts.get(label, 0) + int(row["count"])

        datasets = [Dataset(label=value, data=zero_fill(labels, per_value[value])) for value in wanted]

        return TimeseriesResult(
            granularity=granularity,
            labels=labels,
            datasets=datasets,
            start_date=date_range.start,
            end_date=date_range.end,
        )

    async def totals(
        self,
        filters: FilterSpec = NO_FILTER,
        start_date: date | None = None,
        end_date: date | None = None,
        granularity: str | None = "auto",
    ) -> TotalsResult:
        date_range = _require_range(start_date, end_date)
        granularity = resolve_granularity(granularity, date_range.start, date_range.end)
        fragment = compile_filter(filters)

        labels = generate_buckets(date_range.start, date_range.end, granularity)
        rows = await AnalyticsRepository.count_entries_by_bucket(fragment, date_range, granularity)
        counts: dict[str, int] = {}
        for row in rows:
            label = bucket_label(bucket_key(row["bucket"]), granularity)
            counts[label] = counts.get(label, 0) + int(row["count"])

        total = await AnalyticsRepository.count_entries(fragment, date_range)

        return TotalsResult(
            granularity=granularity,
            labels=labels,
            data=zero_fill(labels, counts),
            total=total,
            start_date=date_range.start,
            end_date=date_range.end,
        )

    async def compare(
        self,
        periods: str | Sequence[Mapping] | Sequence[Period],
        section: str,
        values: Sequence[str] | None = None,
        filters: FilterSpec = NO_FILTER,
    ) -> CompareResult:
        section = require_section(section)
        if periods and all(isinstance(p, Period) for p in periods):
            parsed = list(periods)
        else:
            parsed = parse_periods(periods)
        wanted = _clean_values(values)
        fragment = compile_filter(filters)

        counts_per_period: list[dict[str, int]] = []
        totals: list[int] = []
        for period in parsed:
            period_range = DateRange(start=period.start, end=period.end)
            counts_per_period.append(
                await AnalyticsRepository.count_values_in_period(
                    section, wanted or None, fragment, period_range
                )
            )
            totals.append(await AnalyticsRepository.count_entries(fragment, period_range))

        if not wanted:
            wanted = sorted({value for counts in counts_per_period for value in counts})

        datasets = [
            Dataset(label=value, data=[counts.get(value, 0) for counts in counts_per_period])
            for value in wanted
        ]

        logger.debug(
            "Comparison computed", section=section, period_count=len(parsed), value_count=len(wanted)
        )

        return CompareResult(
            section=section,
            periods=[period.label for period in parsed],
            datasets=datasets,
            totals=totals,
        )


class SavedPeriodService:
    """Named period sets used to pre-fill the comparison view."""

    async def list_period_sets(self) -> list[SavedPeriodSet]:
        return await SavedPeriodRepository.list_all()

    async def create_period_set(
        self, name: str, periods: Sequence[Mapping], is_active: bool = False
    ) -> SavedPeriodSet:
        name = (name or "").strip()
        if not name or not periods:
            raise ValidationError("Name and periods are required", error_code="invalid_period_set")
        parse_periods(list(periods))
        return await SavedPeriodRepository.create(name, list(periods), is_active)

    async def update_period_set(self, period_set_id: int, fields: dict[str, Any]) -> SavedPeriodSet:
        changes = {key: value for key, value in fields.items() if value is not None}
        if not changes:
            raise ValidationError("No changes given", error_code="empty_update")
        if "name" in changes:
            changes["name"] = changes["name"].strip()
        if "periods" in changes:
            parse_periods(list(changes["periods"]))

        updated = await SavedPeriodRepository.update(period_set_id, changes)
        if not updated:
            raise NotFoundError("Period set not found", error_code="period_set_not_found")
        return updated

    async def delete_period_set(self, period_set_id: int) -> None:
        if not await SavedPeriodRepository.delete(period_set_id):
            raise NotFoundError("Period set not found", error_code="period_set_not_found")


def _check_marker_range(start_date: date, end_date: date | None) -> None:
    if end_date is not None and end_date < start_date:
        raise ValidationError(
            "Marker end_date must not be before start_date", error_code="invalid_range"
        )


class ChartMarkerService:
    """
    Named date ranges drawn over the time charts.

    A marker without end_date marks a single day.
    """

    async def list_markers(self) -> list[ChartMarker]:
        return await ChartMarkerRepository.list_all()

    async def create_marker(
        self,
        name: str,
        start_date: date,
        end_date: date | None = None,
        color: str | None = None,
        is_active: bool = True,
    ) -> ChartMarker:
        name = (name or "").strip()
        if not name or start_date is None:
            raise ValidationError("Name and start_date are required", error_code="invalid_marker")
        _check_marker_range(start_date, end_date)

        return await ChartMarkerRepository.create(
            name, start_date, end_date, color or DEFAULT_MARKER_COLOR, is_active
        )

    async def update_marker(self, marker_id: int, fields: dict[str, Any]) -> ChartMarker:
        """Partial update. An explicit end_date of None clears the end date."""
        changes = {
            key: value
            for key, value in fields.items()
            if value is not None or key == "end_date"
        }
        if not changes:
            raise ValidationError("No changes given", error_code="empty_update")
        if "name" in changes:
            changes["name"] = changes["name"].strip()
            if not changes["name"]:
                raise ValidationError("Name must not be empty", error_code="invalid_marker")

        if "start_date" in changes or "end_date" in changes:
            current = await ChartMarkerRepository.get(marker_id)
            if current is None:
                raise NotFoundError("Marker not found", error_code="marker_not_found")
            _check_marker_range(
                changes.get("start_date", current.start_date),
                changes.get("end_date", current.end_date),
            )

        updated = await ChartMarkerRepository.update(marker_id, changes)
        if not updated:
            raise NotFoundError("Marker not found", error_code="marker_not_found")
        logger.info("Chart marker updated", marker_id=marker_id, fields=sorted(changes))
        return updated

    async def delete_marker(self, marker_id: int) -> None:
        if not await ChartMarkerRepository.delete(marker_id):
            raise NotFoundError("Marker not found", error_code="marker_not_found")


analytics_service = AnalyticsService()
saved_period_service = SavedPeriodService()
chart_marker_service = ChartMarkerService()
