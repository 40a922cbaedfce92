"""
Raw SQL for the analytics feature.

Every query joins the compiled FilterFragment into its WHERE clause and
appends the fragment's params after the query's own params, in the same
order the placeholders appear.
"""

from datetime import date
from typing import Any

from psycopg.types.json import Jsonb

from statdesk.db.helpers import execute_query, fetch_all, fetch_one, fetch_val
from statdesk.features.analytics.domain import (
    GRANULARITIES,
    ChartMarker,
    DateRange,
    SavedPeriodSet,
)
from statdesk.features.analytics.filters import FilterFragment
from statdesk.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def _date_conditions(date_range: DateRange, entry_alias: str = "e") -> tuple[list[str], list[Any]]:
    conditions: list[str] = []
    params: list[Any] = []
    if date_range.start is not None:
        conditions.append(f"{entry_alias}.created_at::date >= %s")
        params.append(date_range.start)
    if date_range.end is not None:
        conditions.append(f"{entry_alias}.created_at::date <= %s")
        params.append(date_range.end)
    return conditions, params


def _bucket_expr(granularity: str) -> str:
    # Inlined rather than bound so SELECT and GROUP BY see the same expression
    if granularity not in GRANULARITIES:
        raise ValueError(f"Unknown granularity: {granularity}")
    return f"date_trunc('{granularity}', e.created_at)::date"


class AnalyticsRepository:
    """Count queries over stats_entries / stats_entry_values."""

    @classmethod
    async def count_values(
        cls, section: str, fragment: FilterFragment, date_range: DateRange
    ) -> list[dict[str, Any]]:
        """Distinct entry count per value_text within a section."""
        date_sql, date_params = _date_conditions(date_range)
        where = ["sev.section = %s", *date_sql, fragment.where_sql()]

        query = f"""
            SELECT sev.value_text AS label, COUNT(DISTINCT sev.entry_id) AS count
            FROM stats_entry_values sev
            JOIN stats_entries e ON e.id = sev.entry_id
            WHERE {" AND ".join(where)}
            GROUP BY sev.value_text
            ORDER BY count DESC, label ASC
        """

        return await fetch_all(query, (section, *date_params, *fragment.params))

    @classmethod
    async def count_entries(cls, fragment: FilterFragment, date_range: DateRange) -> int:
        """Number of entries matching the filter in the range."""
        date_sql, date_params = _date_conditions(date_range)
        where = [*date_sql, fragment.where_sql()]

        query = f"""
            SELECT COUNT(*) AS total
            FROM stats_entries e
            WHERE {" AND ".join(where)}
        """

        total = await fetch_val(query, (*date_params, *fragment.params))
        return int(total or 0)

    @classmethod
    async def count_values_by_bucket(
        cls,
        section: str,
        values: list[str],
        fragment: FilterFragment,
        date_range: DateRange,
        granularity: str,
    ) -> list[dict[str, Any]]:
        """
        Distinct entry count per (value, bucket start).

        Counting is grouped per value, so each value's series is the same as
        if it had been queried on its own.
        """
        date_sql, date_params = _date_conditions(date_range)
        bucket = _bucket_expr(granularity)
        where = ["sev.section = %s", "sev.value_text = ANY(%s)", *date_sql, fragment.where_sql()]

        query = f"""
            SELECT sev.value_text AS value, {bucket} AS bucket,
                   COUNT(DISTINCT sev.entry_id) AS count
            FROM stats_entry_values sev
            JOIN stats_entries e ON e.id = sev.entry_id
            WHERE {" AND ".join(where)}
            GROUP BY 1, 2
            ORDER BY 2
        """

        return await fetch_all(query, (section, list(values), *date_params, *fragment.params))

    @classmethod
    async def count_entries_by_bucket(
        cls, fragment: FilterFragment, date_range: DateRange, granularity: str
    ) -> list[dict[str, Any]]:
        date_sql, date_params = _date_conditions(date_range)
        bucket = _bucket_expr(granularity)
        where = [*date_sql, fragment.where_sql()]

        query = f"""
            SELECT {bucket} AS bucket, COUNT(*) AS count
            FROM stats_entries e
            WHERE {" AND ".join(where)}
            GROUP BY 1
            ORDER BY 1
        """

        return await fetch_all(query, (*date_params, *fragment.params))

    @classmethod
    async def count_values_in_period(
        cls,
        section: str,
        values: list[str] | None,
        fragment: FilterFragment,
        date_range: DateRange,
    ) -> dict[str, int]:
        """value_text -> distinct entry count for one comparison period."""
        date_sql, date_params = _date_conditions(date_range)
        where = ["sev.section = %s", *date_sql]
        params: list[Any] = [section, *date_params]
        if values:
            where.append("sev.value_text = ANY(%s)")
            params.append(list(values))
        where.append(fragment.where_sql())
        params.extend(fragment.params)

        query = f"""
            SELECT sev.value_text AS value, COUNT(DISTINCT sev.entry_id) AS count
            FROM stats_entry_values sev
            JOIN stats_entries e ON e.id = sev.entry_id
            WHERE {" AND ".join(where)}
            GROUP BY sev.value_text
        """

        rows = await fetch_all(query, params)
        return {row["value"]: int(row["count"]) for row in rows}


class SavedPeriodRepository:
    """CRUD for named comparison period sets."""

    SELECT_COLUMNS = "id, name, periods, is_active, created_at"

    @classmethod
    def _row_to_period_set(cls, row: dict | None) -> SavedPeriodSet | None:
        if not row:
            return None

        return SavedPeriodSet(
            id=row["id"],
            name=row["name"],
            periods=row["periods"] or [],
            is_active=bool(row["is_active"]),
            created_at=row.get("created_at"),
        )

    @classmethod
    async def list_all(cls) -> list[SavedPeriodSet]:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM saved_periods
            ORDER BY is_active DESC, created_at DESC
        """
        rows = await fetch_all(query)
        return [cls._row_to_period_set(row) for row in rows]

    @classmethod
    async def create(cls, name: str, periods: list[dict], is_active: bool) -> SavedPeriodSet:
        query = f"""
            INSERT INTO saved_periods (name, periods, is_active)
            VALUES (%s, %s, %s)
            RETURNING {cls.SELECT_COLUMNS}
        """
        row = await fetch_one(query, (name, Jsonb(periods), is_active))
        logger.info("Saved period set created", period_set_id=row["id"], name=name)
        return cls._row_to_period_set(row)

    @classmethod
    async def update(cls, period_set_id: int, fields: dict[str, Any]) -> SavedPeriodSet | None:
        assignments: list[str] = []
        params: list[Any] = []
        for column in ("name", "periods", "is_active"):
            if column in fields:
                assignments.append(f"{column} = %s")
                value = fields[column]
                params.append(Jsonb(value) if column == "periods" else value)

        query = f"""
            UPDATE saved_periods
            SET {", ".join(assignments)}
            WHERE id = %s
            RETURNING {cls.SELECT_COLUMNS}
        """
        row = await fetch_one(query, (*params, period_set_id))
        return cls._row_to_period_set(row)

    @classmethod
    async def delete(cls, period_set_id: int) -> bool:
        deleted = await execute_query("DELETE FROM saved_periods WHERE id = %s", (period_set_id,))
        return deleted > 0


class ChartMarkerRepository:
    """CRUD for chart_markers."""

    SELECT_COLUMNS = "id, name, start_date, end_date, color, is_active, created_at"
    UPDATABLE_COLUMNS = ("name", "start_date", "end_date", "color", "is_active")

    @classmethod
    def _row_to_marker(cls, row: dict | None) -> ChartMarker | None:
        if not row:
            return None

        return ChartMarker(
            id=row["id"],
            name=row["name"],
            start_date=row["start_date"],
            end_date=row.get("end_date"),
            color=row["color"],
            is_active=bool(row["is_active"]),
            created_at=row.get("created_at"),
        )

    @classmethod
    async def list_all(cls) -> list[ChartMarker]:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            FROM chart_markers
            ORDER BY start_date DESC, id DESC
        """
        rows = await fetch_all(query)
        return [cls._row_to_marker(row) for row in rows]

    @classmethod
    async def get(cls, marker_id: int) -> ChartMarker | None:
        query = f"SELECT {cls.SELECT_COLUMNS} FROM chart_markers WHERE id = %s"
        return cls._row_to_marker(await fetch_one(query, (marker_id,)))

    @classmethod
    async def create(
        cls,
        name: str,
        start_date: date,
        end_date: date | None,
        color: str,
        is_active: bool,
    ) -> ChartMarker:
        query = f"""
            INSERT INTO chart_markers (name, start_date, end_date, color, is_active)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING {cls.SELECT_COLUMNS}
        """
        row = await fetch_one(query, (name, start_date, end_date, color, is_active))
        logger.info("Chart marker created", marker_id=row["id"], name=name)
        return cls._row_to_marker(row)

    @classmethod
    async def update(cls, marker_id: int, fields: dict[str, Any]) -> ChartMarker | None:
        assignments: list[str] = []
        params: list[Any] = []
        for column in cls.UPDATABLE_COLUMNS:
            if column in fields:
                assignments.append(f"{column} = %s")
                params.append(fields[column])

        query = f"""
            UPDATE chart_markers
            SET {", ".join(assignments)}
            WHERE id = %s
            RETURNING {cls.SELECT_COLUMNS}
        """
        row = await fetch_one(query, (*params, marker_id))
        return cls._row_to_marker(row)

    @classmethod
    async def delete(cls, marker_id: int) -> bool:
        deleted = await execute_query("DELETE FROM chart_markers WHERE id = %s", (marker_id,))
        return deleted > 0


def bucket_key(value: date) -> date:
    """Normalize a bucket value returned by the driver to a date."""
    return value.date() if hasattr(value, "date") and callable(value.date) else value
