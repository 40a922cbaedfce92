"""
Persistence layer for the option taxonomy.

All write helpers take the connection of the caller's transaction so a
whole draft operation (or a publish) commits or rolls back as one unit.
"""

from typing import Any

import psycopg
from psycopg.types.json import Jsonb

from statdesk.db.helpers import execute_query, fetch_all, fetch_one, fetch_val
from statdesk.features.taxonomy.domain import OptionDefinition, OptionDraft, PublishState
from statdesk.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

Connection = psycopg.AsyncConnection | None


def _keywords_param(keywords: list[str] | None) -> Jsonb | None:
    return Jsonb(list(keywords)) if keywords else None


class TaxonomyRepository:
    """Raw SQL for option_definitions, option_definitions_draft and publish_state."""

    OPTION_COLUMNS = "id, section, label, sort_order, is_active, keywords, created_at"
    DRAFT_COLUMNS = (
        "id, original_id, section, label, sort_order, is_active, keywords, action, created_at"
    )

    @classmethod
    def _row_to_option(cls, row: dict | None) -> OptionDefinition | None:
        if not row:
            return None

        return OptionDefinition(
            id=row["id"],
            section=row["section"],
            label=row["label"],
            sort_order=row["sort_order"],
            is_active=bool(row["is_active"]),
            keywords=list(row.get("keywords") or []),
            created_at=row.get("created_at"),
        )

    @classmethod
    def _row_to_draft(cls, row: dict | None) -> OptionDraft | None:
        if not row:
            return None

        return OptionDraft(
            id=row["id"],
            original_id=row.get("original_id"),
            section=row["section"],
            label=row["label"],
            sort_order=row["sort_order"],
            is_active=bool(row["is_active"]),
            keywords=list(row.get("keywords") or []),
            action=row["action"],
            created_at=row.get("created_at"),
        )

    # -----------------------------------------------------------------
    # Published options
    # -----------------------------------------------------------------

    @classmethod
    async def list_published(
        cls,
        section: str | None = None,
        active_only: bool = False,
        *,
        connection: Connection = None,
    ) -> list[OptionDefinition]:
        conditions: list[str] = []
        params: list[Any] = []
        if section:
            conditions.append("section = %s")
            params.append(section)
        if active_only:
            conditions.append("is_active = TRUE")

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        query = f"""
            SELECT {cls.OPTION_COLUMNS}
            FROM option_definitions
            {where}
            ORDER BY section, sort_order, label
        """
        rows = await fetch_all(query, params, connection=connection)
        return [cls._row_to_option(row) for row in rows]

    @classmethod
    async def get_published(
        cls, option_id: int, *, connection: Connection = None, lock: bool = False
    ) -> OptionDefinition | None:
        query = f"SELECT {cls.OPTION_COLUMNS} FROM option_definitions WHERE id = %s"
        if lock:
            query += " FOR UPDATE"
        row = await fetch_one(query, (option_id,), connection=connection)
        return cls._row_to_option(row)

    @classmethod
    async def published_label_exists(
        cls,
        section: str,
        label: str,
        *,
        exclude_id: int | None = None,
        connection: Connection = None,
    ) -> bool:
        query = "SELECT 1 FROM option_definitions WHERE section = %s AND label = %s"
        params: list[Any] = [section, label]
        if exclude_id is not None:
            query += " AND id <> %s"
            params.append(exclude_id)
        return await fetch_one(query, params, connection=connection) is not None

    @classmethod
    async def insert_option(
        cls,
        section: str,
        label: str,
        sort_order: int,
        is_active: bool,
        keywords: list[str],
        *,
        connection: Connection = None,
    ) -> int:
        query = """
            INSERT INTO option_definitions (section, label, sort_order, is_active, keywords)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING id
        """
        return await fetch_val(
            query,
            (section, label, sort_order, is_active, _keywords_param(keywords)),
            connection=connection,
        )

    @classmethod
    async def update_option(
        cls,
        option_id: int,
        label: str,
        sort_order: int,
        is_active: bool,
        keywords: list[str],
        *,
        connection: Connection = None,
    ) -> int:
        query = """
            UPDATE option_definitions
            SET label = %s, sort_order = %s, is_active = %s, keywords = %s
            WHERE id = %s
        """
        return await execute_query(
            query,
            (label, sort_order, is_active, _keywords_param(keywords), option_id),
            connection=connection,
        )

    @classmethod
    async def soft_delete_option(cls, option_id: int, *, connection: Connection = None) -> int:
        return await execute_query(
            "UPDATE option_definitions SET is_active = FALSE WHERE id = %s",
            (option_id,),
            connection=connection,
        )

    # -----------------------------------------------------------------
    # Drafts
    # -----------------------------------------------------------------

    @classmethod
    async def list_drafts(
        cls, section: str | None = None, *, connection: Connection = None
    ) -> list[OptionDraft]:
        query = f"SELECT {cls.DRAFT_COLUMNS} FROM option_definitions_draft"
        params: list[Any] = []
        if section:
            query += " WHERE section = %s"
            params.append(section)
        query += " ORDER BY id"
        rows = await fetch_all(query, params, connection=connection)
        return [cls._row_to_draft(row) for row in rows]

    @classmethod
    async def get_draft(cls, draft_id: int, *, connection: Connection = None) -> OptionDraft | None:
        query = f"SELECT {cls.DRAFT_COLUMNS} FROM option_definitions_draft WHERE id = %s"
        return cls._row_to_draft(await fetch_one(query, (draft_id,), connection=connection))

    @classmethod
    async def get_draft_for_option(
        cls, original_id: int, *, connection: Connection = None
    ) -> OptionDraft | None:
        query = f"SELECT {cls.DRAFT_COLUMNS} FROM option_definitions_draft WHERE original_id = %s"
        return cls._row_to_draft(await fetch_one(query, (original_id,), connection=connection))

    @classmethod
    async def create_draft_label_exists(
        cls,
        section: str,
        label: str,
        *,
        exclude_draft_id: int | None = None,
        connection: Connection = None,
    ) -> bool:
        query = """
            SELECT 1 FROM option_definitions_draft
            WHERE action = 'create' AND section = %s AND label = %s
        """
        params: list[Any] = [section, label]
        if exclude_draft_id is not None:
            query += " AND id <> %s"
            params.append(exclude_draft_id)
        return await fetch_one(query, params, connection=connection) is not None

    @classmethod
    async def insert_draft(
        cls,
        original_id: int | None,
        section: str,
        label: str,
        sort_order: int,
        is_active: bool,
        keywords: list[str],
        action: str,
        *,
        connection: Connection = None,
    ) -> OptionDraft:
        query = f"""
            INSERT INTO option_definitions_draft
                (original_id, section, label, sort_order, is_active, keywords, action)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING {cls.DRAFT_COLUMNS}
        """
        row = await fetch_one(
            query,
            (
                original_id,
                section,
                label,
                sort_order,
                is_active,
                _keywords_param(keywords),
                action,
            ),
            connection=connection,
        )
        logger.debug(
            "Option draft written", draft_id=row["id"], original_id=original_id, action=action
        )
        return cls._row_to_draft(row)

    @classmethod
    async def update_draft(
        cls, draft_id: int, fields: dict[str, Any], *, connection: Connection = None
    ) -> OptionDraft | None:
        assignments: list[str] = []
        params: list[Any] = []
        for column in ("label", "sort_order", "is_active", "keywords", "action"):
            if column in fields:
                assignments.append(f"{column} = %s")
                value = fields[column]
                params.append(_keywords_param(value) if column == "keywords" else value)

        if not assignments:
            return await cls.get_draft(draft_id, connection=connection)

        query = f"""
            UPDATE option_definitions_draft
            SET {", ".join(assignments)}
            WHERE id = %s
            RETURNING {cls.DRAFT_COLUMNS}
        """
        row = await fetch_one(query, (*params, draft_id), connection=connection)
        return cls._row_to_draft(row)

    @classmethod
    async def delete_draft(cls, draft_id: int, *, connection: Connection = None) -> int:
        return await execute_query(
            "DELETE FROM option_definitions_draft WHERE id = %s", (draft_id,), connection=connection
        )

    @classmethod
    async def clear_drafts(cls, *, connection: Connection = None) -> int:
        return await execute_query("DELETE FROM option_definitions_draft", connection=connection)

    # -----------------------------------------------------------------
    # Publish state (singleton row id = 1)
    # -----------------------------------------------------------------

    @classmethod
    async def get_publish_state(
        cls, *, connection: Connection = None, lock: bool = False
    ) -> PublishState:
        query = """
            SELECT has_pending_changes, last_published_at, last_published_by
            FROM publish_state
            WHERE id = 1
        """
        if lock:
            query += " FOR UPDATE"
        row = await fetch_one(query, connection=connection)
        if not row:
            return PublishState()
        return PublishState(
            has_pending_changes=bool(row["has_pending_changes"]),
            last_published_at=row.get("last_published_at"),
            last_published_by=row.get("last_published_by"),
        )

    @classmethod
    async def sync_pending_flag(cls, *, connection: Connection = None) -> None:
        """Recompute has_pending_changes from the draft table."""
        await execute_query(
            """
            UPDATE publish_state
            SET has_pending_changes = EXISTS (SELECT 1 FROM option_definitions_draft)
            WHERE id = 1
            """,
            connection=connection,
        )

    @classmethod
    async def mark_published(cls, user: str | None, *, connection: Connection = None) -> None:
        await execute_query(
            """
            UPDATE publish_state
            SET has_pending_changes = FALSE,
                last_published_at = NOW(),
                last_published_by = %s
            WHERE id = 1
            """,
            (user,),
            connection=connection,
        )
