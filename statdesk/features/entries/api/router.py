"""
Entry routes used by the capture form and the entry list.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, status

from statdesk.auth.verify import admin_dependency, auth_dependency
from statdesk.db.helpers import DatabaseError
from statdesk.errors import StatDeskError, ValidationError
from statdesk.features.entries.domain import DEFAULT_PAGE_SIZE, Entry
from statdesk.features.entries.service import entry_service
from statdesk.infrastructure.observability.logging import get_logger
from statdesk.models.api.entry_models import EntryListResponse, EntryRequest, EntryResponse
from statdesk.utils.http_errors import raise_http_error, raise_internal_error

logger = get_logger(__name__)

router = APIRouter(prefix="/entries", tags=["entries"])


def _claims_user_id(claims: dict) -> int:
    try:
        return int(claims.get("sub"))
    except (TypeError, ValueError):
        raise ValidationError("Token carries no numeric user id", error_code="invalid_user")


def _entry_response(entry: Entry) -> EntryResponse:
    return EntryResponse(
        id=entry.id,
        user_id=entry.user_id,
        created_at=entry.created_at,
        remark=entry.remark,
        values=entry.values,
    )


@router.post("", response_model=EntryResponse, status_code=status.HTTP_201_CREATED)
async def create_entry(request: EntryRequest, claims: dict = Depends(auth_dependency)):
    try:
        user_id = request.user_id or _claims_user_id(claims)
        entry = await entry_service.create_entry(
            user_id, request.values, request.remark, request.created_at
        )
    except StatDeskError as e:
        raise_http_error(e, "create_entry")
    except DatabaseError as e:
        raise_internal_error(e, "create_entry", "Failed to create entry")
    return _entry_response(entry)


@router.get("", response_model=EntryListResponse)
async def list_entries(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    limit: int = Query(default=DEFAULT_PAGE_SIZE),
    offset: int = Query(default=0),
    claims: dict = Depends(auth_dependency),
):
    try:
        page = await entry_service.list_entries(start_date, end_date, limit, offset)
    except StatDeskError as e:
        raise_http_error(e, "list_entries")
    except DatabaseError as e:
        raise_internal_error(e, "list_entries", "Failed to list entries")
    return EntryListResponse(
        items=[_entry_response(entry) for entry in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
        start_date=start_date,
        end_date=end_date,
    )


@router.get("/{entry_id}", response_model=EntryResponse)
async def get_entry(entry_id: int, claims: dict = Depends(auth_dependency)):
    try:
        entry = await entry_service.get_entry(entry_id)
    except StatDeskError as e:
        raise_http_error(e, "get_entry", entry_id=entry_id)
    except DatabaseError as e:
        raise_internal_error(e, "get_entry", "Failed to load entry", entry_id=entry_id)
    return _entry_response(entry)


@router.put("/{entry_id}", response_model=EntryResponse)
async def update_entry(
    entry_id: int, request: EntryRequest, claims: dict = Depends(auth_dependency)
):
    try:
        entry = await entry_service.update_entry(
            entry_id, request.values, request.user_id, request.remark, request.created_at
        )
    except StatDeskError as e:
        raise_http_error(e, "update_entry", entry_id=entry_id)
    except DatabaseError as e:
        raise_internal_error(e, "update_entry", "Failed to update entry", entry_id=entry_id)
    return _entry_response(entry)


@router.delete("/{entry_id}")
async def delete_entry(entry_id: int, claims: dict = Depends(admin_dependency)):
    try:
        await entry_service.delete_entry(entry_id)
    except StatDeskError as e:
        raise_http_error(e, "delete_entry", entry_id=entry_id)
    except DatabaseError as e:
        raise_internal_error(e, "delete_entry", "Failed to delete entry", entry_id=entry_id)
    return {"success": True}
