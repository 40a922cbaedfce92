from datetime import date
from unittest.mock import AsyncMock

import pytest

from statdesk.errors import NotFoundError, ValidationError
from statdesk.features.analytics.domain import DEFAULT_MARKER_COLOR, ChartMarker
from statdesk.features.analytics.service import ChartMarkerService

REPO = "statdesk.features.analytics.service.ChartMarkerRepository"


def _marker(**overrides):
    data = {
        "id": 3,
        "name": "Sommerferien",
        "start_date": date(2024, 7, 1),
        "end_date": date(2024, 8, 15),
        "color": DEFAULT_MARKER_COLOR,
        "is_active": True,
    }
    data.update(overrides)
    return ChartMarker(**data)


@pytest.mark.asyncio
async def test_create_marker_defaults_color_and_trims_name(monkeypatch):
    create = AsyncMock(return_value=_marker())
    monkeypatch.setattr(f"{REPO}.create", create)

    await ChartMarkerService().create_marker("  Sommerferien ", date(2024, 7, 1))

    create.assert_awaited_once_with(
        "Sommerferien", date(2024, 7, 1), None, DEFAULT_MARKER_COLOR, True
    )


@pytest.mark.asyncio
async def test_create_marker_rejects_reversed_range(monkeypatch):
    create = AsyncMock()
    monkeypatch.setattr(f"{REPO}.create", create)

    with pytest.raises(ValidationError):
        await ChartMarkerService().create_marker("Kampagne", date(2024, 3, 1), date(2024, 2, 1))
    with pytest.raises(ValidationError):
        await ChartMarkerService().create_marker("   ", date(2024, 3, 1))

    create.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_checks_range_against_stored_dates(monkeypatch):
    monkeypatch.setattr(f"{REPO}.get", AsyncMock(return_value=_marker()))
    update = AsyncMock()
    monkeypatch.setattr(f"{REPO}.update", update)

    with pytest.raises(ValidationError):
        await ChartMarkerService().update_marker(3, {"end_date": date(2024, 6, 30)})

    update.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_can_clear_end_date(monkeypatch):
    monkeypatch.setattr(f"{REPO}.get", AsyncMock(return_value=_marker()))
    update = AsyncMock(return_value=_marker(end_date=None))
    monkeypatch.setattr(f"{REPO}.update", update)

    marker = await ChartMarkerService().update_marker(3, {"end_date": None, "color": None})

    update.assert_awaited_once_with(3, {"end_date": None})
    assert marker.end_date is None


@pytest.mark.asyncio
async def test_update_without_dates_skips_lookup(monkeypatch):
    get = AsyncMock()
    monkeypatch.setattr(f"{REPO}.get", get)
    monkeypatch.setattr(f"{REPO}.update", AsyncMock(return_value=_marker(is_active=False)))

    marker = await ChartMarkerService().update_marker(3, {"is_active": False})

    assert marker.is_active is False
    get.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_and_delete_missing_marker(monkeypatch):
    monkeypatch.setattr(f"{REPO}.get", AsyncMock(return_value=None))
    monkeypatch.setattr(f"{REPO}.update", AsyncMock(return_value=None))
    monkeypatch.setattr(f"{REPO}.delete", AsyncMock(return_value=False))
    service = ChartMarkerService()

    with pytest.raises(NotFoundError):
        await service.update_marker(9, {"start_date": date(2024, 1, 1)})
    with pytest.raises(NotFoundError):
        await service.update_marker(9, {"name": "Ostern"})
    with pytest.raises(NotFoundError):
        await service.delete_marker(9)


@pytest.mark.asyncio
async def test_update_requires_changes():
    with pytest.raises(ValidationError):
        await ChartMarkerService().update_marker(3, {})
