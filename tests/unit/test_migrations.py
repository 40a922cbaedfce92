from contextlib import asynccontextmanager
from unittest.mock import AsyncMock

import pytest

from statdesk.db import migrations
from statdesk.db.migrations import MIGRATIONS, apply_migrations, pending_migrations


def test_versions_are_unique_and_ordered():
    versions = [m.version for m in MIGRATIONS]
    assert versions == sorted(set(versions))


def test_pending_migrations_skips_applied():
    pending = pending_migrations({1})

    assert [m.version for m in pending] == [m.version for m in MIGRATIONS if m.version != 1]
    assert pending_migrations({m.version for m in MIGRATIONS}) == []


def test_publish_state_singleton_is_seeded():
    statements = " ".join(s for m in MIGRATIONS for s in m.statements)

    assert "CHECK (id = 1)" in statements
    assert "INSERT INTO publish_state" in statements


class _Pool:
    def __init__(self):
        self.transactions = 0

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        yield "conn"


@pytest.mark.asyncio
async def test_apply_migrations_runs_each_pending_in_own_transaction(monkeypatch):
    pool = _Pool()
    execute = AsyncMock(return_value=0)
    monkeypatch.setattr(migrations, "db_pool", pool)
    monkeypatch.setattr(migrations, "execute_query", execute)
    monkeypatch.setattr(migrations, "fetch_all", AsyncMock(return_value=[{"version": 1}]))

    applied = await apply_migrations()

    expected = [m.version for m in MIGRATIONS if m.version != 1]
    assert applied == expected
    assert pool.transactions == len(expected)
    recorded = [
        call.args[1][0]
        for call in execute.await_args_list
        if call.args[0].startswith("INSERT INTO schema_migrations")
    ]
    assert recorded == expected


@pytest.mark.asyncio
async def test_apply_migrations_noop_when_current(monkeypatch):
    pool = _Pool()
    monkeypatch.setattr(migrations, "db_pool", pool)
    monkeypatch.setattr(migrations, "execute_query", AsyncMock(return_value=0))
    monkeypatch.setattr(
        migrations,
        "fetch_all",
        AsyncMock(return_value=[{"version": m.version} for m in MIGRATIONS]),
    )

    assert await apply_migrations() == []
    assert pool.transactions == 0


def test_chart_markers_reject_reversed_ranges_in_schema():
    statements = " ".join(s for m in MIGRATIONS for s in m.statements)

    assert "CREATE TABLE IF NOT EXISTS chart_markers" in statements
    assert "CHECK (end_date IS NULL OR end_date >= start_date)" in statements
