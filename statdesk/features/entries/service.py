"""
Entry store: write and read logged contacts.

Values are always written as a complete set. An update deletes the old
values and inserts the new ones inside the same transaction.
"""

from collections.abc import Mapping
from datetime import date, datetime

from .domain import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    Entry,
    EntryPage,
    group_values,
    normalize_entry_values,
)
from .repository import EntryRepository
from statdesk.db.pool import db_pool
from statdesk.errors import NotFoundError, ValidationError
from statdesk.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


def _clean_remark(remark: str | None) -> str | None:
    if remark is None:
        return None
    remark = remark.strip()
    return remark or None


class EntryService:
    def __init__(self, repository: type[EntryRepository] = EntryRepository):
        self.repository = repository

    async def create_entry(
        self,
        user_id: int,
        values: Mapping | None,
        remark: str | None = None,
        created_at: datetime | None = None,
    ) -> Entry:
        if not user_id or user_id <= 0:
            raise ValidationError("User ID required", error_code="invalid_user")
        pairs = normalize_entry_values(values)

        async with db_pool.transaction() as conn:
            entry = await self.repository.insert_entry(
                user_id, created_at, _clean_remark(remark), connection=conn
            )
            await self.repository.insert_values(entry.id, pairs, connection=conn)

        entry.values = group_values(pairs)
        logger.info("Entry created", entry_id=entry.id, user_id=user_id, values=len(pairs))
        return entry

    async def update_entry(
        self,
        entry_id: int,
        values: Mapping | None,
        user_id: int | None = None,
        remark: str | None = None,
        created_at: datetime | None = None,
    ) -> Entry:
        """Replace an entry's values wholesale."""
        pairs = normalize_entry_values(values)

        async with db_pool.transaction() as conn:
            entry = await self.repository.update_entry(
                entry_id, user_id, created_at, _clean_remark(remark), connection=conn
            )
            if entry is None:
                raise NotFoundError(f"Entry {entry_id} not found", error_code="not_found")
            await self.repository.delete_values(entry_id, connection=conn)
            await self.repository.insert_values(entry_id, pairs, connection=conn)

        entry.values = group_values(pairs)
        logger.info("Entry updated", entry_id=entry_id, values=len(pairs))
        return entry

    async def delete_entry(self, entry_id: int) -> None:
        deleted = await self.repository.delete_entry(entry_id)
        if not deleted:
            raise NotFoundError(f"Entry {entry_id} not found", error_code="not_found")
        logger.info("Entry deleted", entry_id=entry_id)

    async def get_entry(self, entry_id: int) -> Entry:
        entry = await self.repository.get_entry(entry_id)
        if entry is None:
            raise NotFoundError(f"Entry {entry_id} not found", error_code="not_found")
        await self._attach_values([entry])
        return entry

    async def list_entries(
        self,
        start_date: date | None = None,
        end_date: date | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> EntryPage:
        """Newest first. limit is clamped to 1..100 and offset to >= 0."""
        if start_date and end_date and end_date < start_date:
            raise ValidationError(
                "end_date must not be before start_date", error_code="invalid_range"
            )
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(offset, 0)

        entries = await self.repository.list_entries(start_date, end_date, limit, offset)
        total = await self.repository.count_entries(start_date, end_date)
        await self._attach_values(entries)
        return EntryPage(items=entries, total=total, limit=limit, offset=offset)

    async def _attach_values(self, entries: list[Entry]) -> None:
        if not entries:
            return
        by_id = {entry.id: entry for entry in entries}
        for row in await self.repository.get_values(list(by_id)):
            entry = by_id.get(row["entry_id"])
            if entry is not None:
                entry.values.setdefault(row["section"], []).append(row["value_text"])


entry_service = EntryService()
