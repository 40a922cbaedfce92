from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from statdesk.errors import NotFoundError, ValidationError
from statdesk.features.entries.domain import Entry, normalize_entry_values
from statdesk.features.entries.service import EntryService

REPO = "statdesk.features.entries.service.EntryRepository"


def test_normalize_dedupes_and_trims():
    pairs = normalize_entry_values(
        {
            "person": ["Mann", " Mann", "", None, "unter 55"],
            "kontaktart": "Besuch",
            "thema": None,
        }
    )

    assert pairs == [("person", "Mann"), ("person", "unter 55"), ("kontaktart", "Besuch")]


def test_normalize_rejects_unknown_section():
    with pytest.raises(ValidationError):
        normalize_entry_values({"wetter": ["Regen"]})
    with pytest.raises(ValidationError):
        normalize_entry_values(["Besuch"])


@pytest.mark.asyncio
async def test_create_entry_writes_values_in_one_transaction(monkeypatch, fake_pool):
    created_at = datetime(2024, 1, 5, 10, 30)
    insert_entry = AsyncMock(return_value=Entry(id=11, user_id=3, created_at=created_at))
    insert_values = AsyncMock(return_value=2)
    monkeypatch.setattr(f"{REPO}.insert_entry", insert_entry)
    monkeypatch.setattr(f"{REPO}.insert_values", insert_values)

    entry = await EntryService().create_entry(
        3, {"kontaktart": ["Telefon"], "thema": ["Recht", "Recht"]}, remark="  "
    )

    assert fake_pool.transactions == 1
    assert entry.values == {"kontaktart": ["Telefon"], "thema": ["Recht"]}
    insert_entry.assert_awaited_once_with(3, None, None, connection=fake_pool.conn)
    insert_values.assert_awaited_once_with(
        11, [("kontaktart", "Telefon"), ("thema", "Recht")], connection=fake_pool.conn
    )


@pytest.mark.asyncio
async def test_create_entry_validates_before_writing(monkeypatch, fake_pool):
    insert_entry = AsyncMock()
    monkeypatch.setattr(f"{REPO}.insert_entry", insert_entry)

    with pytest.raises(ValidationError):
        await EntryService().create_entry(3, {"wetter": ["Regen"]})
    with pytest.raises(ValidationError):
        await EntryService().create_entry(0, {})

    insert_entry.assert_not_awaited()
    assert fake_pool.transactions == 0


@pytest.mark.asyncio
async def test_update_entry_replaces_values(monkeypatch, fake_pool):
    entry = Entry(id=4, user_id=3, created_at=datetime(2024, 1, 5))
    monkeypatch.setattr(f"{REPO}.update_entry", AsyncMock(return_value=entry))
    delete_values = AsyncMock(return_value=3)
    insert_values = AsyncMock(return_value=1)
    monkeypatch.setattr(f"{REPO}.delete_values", delete_values)
    monkeypatch.setattr(f"{REPO}.insert_values", insert_values)

    updated = await EntryService().update_entry(4, {"tageszeit": ["Vormittag"]})

    assert updated.values == {"tageszeit": ["Vormittag"]}
    delete_values.assert_awaited_once_with(4, connection=fake_pool.conn)
    insert_values.assert_awaited_once_with(
        4, [("tageszeit", "Vormittag")], connection=fake_pool.conn
    )


@pytest.mark.asyncio
async def test_update_missing_entry_raises(monkeypatch, fake_pool):
    monkeypatch.setattr(f"{REPO}.update_entry", AsyncMock(return_value=None))
    delete_values = AsyncMock()
    monkeypatch.setattr(f"{REPO}.delete_values", delete_values)

    with pytest.raises(NotFoundError):
        await EntryService().update_entry(99, {})

    delete_values.assert_not_awaited()


@pytest.mark.asyncio
async def test_delete_missing_entry_raises(monkeypatch):
    monkeypatch.setattr(f"{REPO}.delete_entry", AsyncMock(return_value=0))

    with pytest.raises(NotFoundError):
        await EntryService().delete_entry(99)


@pytest.mark.asyncio
async def test_list_entries_clamps_paging_and_attaches_values(monkeypatch):
    entries = [
        Entry(id=2, user_id=1, created_at=datetime(2024, 1, 2)),
        Entry(id=1, user_id=1, created_at=datetime(2024, 1, 1)),
    ]
    list_entries = AsyncMock(return_value=entries)
    monkeypatch.setattr(f"{REPO}.list_entries", list_entries)
    monkeypatch.setattr(f"{REPO}.count_entries", AsyncMock(return_value=2))
    monkeypatch.setattr(
        f"{REPO}.get_values",
        AsyncMock(
            return_value=[
                {"entry_id": 1, "section": "person", "value_text": "Frau"},
                {"entry_id": 2, "section": "thema", "value_text": "Bildung"},
                {"entry_id": 2, "section": "thema", "value_text": "Arbeit"},
            ]
        ),
    )

    page = await EntryService().list_entries(limit=500, offset=-3)

    assert (page.limit, page.offset, page.total) == (100, 0, 2)
    list_entries.assert_awaited_once_with(None, None, 100, 0)
    assert page.items[0].values == {"thema": ["Bildung", "Arbeit"]}
    assert page.items[1].values == {"person": ["Frau"]}
