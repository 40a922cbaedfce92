"""
Raw SQL for stats_entries and stats_entry_values.
"""

from datetime import date, datetime
from typing import Any

import psycopg

from statdesk.db.helpers import execute_query, fetch_all, fetch_one, fetch_val
from statdesk.features.entries.domain import Entry
from statdesk.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

Connection = psycopg.AsyncConnection | None


def _range_conditions(start: date | None, end: date | None) -> tuple[list[str], list[Any]]:
    conditions: list[str] = []
    params: list[Any] = []
    if start is not None:
        conditions.append("created_at::date >= %s")
        params.append(start)
    if end is not None:
        conditions.append("created_at::date <= %s")
        params.append(end)
    return conditions, params


class EntryRepository:
    ENTRY_COLUMNS = "id, user_id, created_at, remark"

    @classmethod
    def _row_to_entry(cls, row: dict | None) -> Entry | None:
        if not row:
            return None
        return Entry(
            id=row["id"],
            user_id=row["user_id"],
            created_at=row["created_at"],
            remark=row.get("remark"),
        )

    @classmethod
    async def insert_entry(
        cls,
        user_id: int,
        created_at: datetime | None,
        remark: str | None,
        *,
        connection: Connection = None,
    ) -> Entry:
        query = f"""
            INSERT INTO stats_entries (user_id, created_at, remark)
            VALUES (%s, COALESCE(%s, NOW()), %s)
            RETURNING {cls.ENTRY_COLUMNS}
        """
        row = await fetch_one(query, (user_id, created_at, remark), connection=connection)
        return cls._row_to_entry(row)

    @classmethod
    async def update_entry(
        cls,
        entry_id: int,
        user_id: int | None,
        created_at: datetime | None,
        remark: str | None,
        *,
        connection: Connection = None,
    ) -> Entry | None:
        """Overwrite the entry row; None for user_id / created_at keeps the stored value."""
        query = f"""
            UPDATE stats_entries
            SET user_id = COALESCE(%s, user_id),
                created_at = COALESCE(%s, created_at),
                remark = %s
            WHERE id = %s
            RETURNING {cls.ENTRY_COLUMNS}
        """
        row = await fetch_one(
            query, (user_id, created_at, remark, entry_id), connection=connection
        )
        return cls._row_to_entry(row)

    @classmethod
    async def insert_values(
        cls, entry_id: int, pairs: list[tuple[str, str]], *, connection: Connection = None
    ) -> int:
        if not pairs:
            return 0
        sections = [section for section, _ in pairs]
        values = [value for _, value in pairs]
        query = """
            INSERT INTO stats_entry_values (entry_id, section, value_text)
            SELECT %s, v.section, v.value_text
            FROM unnest(%s::text[], %s::text[]) AS v(section, value_text)
        """
        return await execute_query(query, (entry_id, sections, values), connection=connection)

    @classmethod
    async def delete_values(cls, entry_id: int, *, connection: Connection = None) -> int:
        return await execute_query(
            "DELETE FROM stats_entry_values WHERE entry_id = %s", (entry_id,), connection=connection
        )

    @classmethod
    async def delete_entry(cls, entry_id: int, *, connection: Connection = None) -> int:
        # Values go with it through ON DELETE CASCADE
        return await execute_query(
            "DELETE FROM stats_entries WHERE id = %s", (entry_id,), connection=connection
        )

    @classmethod
    async def get_entry(cls, entry_id: int, *, connection: Connection = None) -> Entry | None:
        query = f"SELECT {cls.ENTRY_COLUMNS} FROM stats_entries WHERE id = %s"
        return cls._row_to_entry(await fetch_one(query, (entry_id,), connection=connection))

    @classmethod
    async def get_values(
        cls, entry_ids: list[int], *, connection: Connection = None
    ) -> list[dict[str, Any]]:
        if not entry_ids:
            return []
        query = """
            SELECT entry_id, section, value_text
            FROM stats_entry_values
            WHERE entry_id = ANY(%s)
            ORDER BY entry_id, id
        """
        return await fetch_all(query, (list(entry_ids),), connection=connection)

    @classmethod
    async def list_entries(
        cls, start: date | None, end: date | None, limit: int, offset: int
    ) -> list[Entry]:
        conditions, params = _range_conditions(start, end)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        query = f"""
            SELECT {cls.ENTRY_COLUMNS}
            FROM stats_entries
            {where}
            ORDER BY created_at DESC, id DESC
            LIMIT %s OFFSET %s
        """
        rows = await fetch_all(query, (*params, limit, offset))
        return [cls._row_to_entry(row) for row in rows]

    @classmethod
    async def count_entries(cls, start: date | None, end: date | None) -> int:
        conditions, params = _range_conditions(start, end)
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        return await fetch_val(f"SELECT COUNT(*) FROM stats_entries {where}", params) or 0
