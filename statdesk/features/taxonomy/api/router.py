"""
Taxonomy editor routes.

Reads of published options are open to any signed-in user (entry forms and
filter panels need them); every draft operation requires the admin role.
"""

from fastapi import APIRouter, Depends, Query, status

from statdesk.auth.verify import admin_dependency, auth_dependency
from statdesk.db.helpers import DatabaseError
from statdesk.errors import StatDeskError
from statdesk.features.taxonomy.domain import (
    MergedOption,
    OptionChanges,
    OptionDefinition,
    format_option_id,
    parse_option_id,
)
from statdesk.features.taxonomy.service import taxonomy_service
from statdesk.infrastructure.observability.logging import get_logger
from statdesk.models.api.taxonomy_request import (
    CreateOptionRequest,
    ReorderRequest,
    UpdateKeywordsRequest,
    UpdateOptionRequest,
)
from statdesk.models.api.taxonomy_response import (
    DeleteOptionResponse,
    DiscardResponse,
    MergedViewResponse,
    OptionResponse,
    PublishResponse,
    PublishStateResponse,
    ReorderResponse,
    ResetResponse,
)
from statdesk.utils.http_errors import raise_http_error, raise_internal_error

logger = get_logger(__name__)

router = APIRouter(prefix="/options", tags=["options"])


def _merged_response(option: MergedOption) -> OptionResponse:
    return OptionResponse(
        id=format_option_id(option.id),
        section=option.section,
        label=option.label,
        sort_order=option.sort_order,
        is_active=option.is_active,
        keywords=option.keywords,
        created_at=option.created_at,
        draft_action=option.draft_action,
        draft_id=option.draft_id,
    )


def _published_response(option: OptionDefinition) -> OptionResponse:
    return OptionResponse(
        id=option.id,
        section=option.section,
        label=option.label,
        sort_order=option.sort_order,
        is_active=option.is_active,
        keywords=option.keywords,
        created_at=option.created_at,
    )


@router.get("", response_model=list[OptionResponse])
async def list_options(
    section: str | None = Query(default=None),
    active_only: bool = Query(default=True),
    claims: dict = Depends(auth_dependency),
):
    """Published options, optionally for one section."""
    try:
        options = await taxonomy_service.list_options(section, active_only)
    except StatDeskError as e:
        raise_http_error(e, "list_options", section=section)
    except DatabaseError as e:
        raise_internal_error(e, "list_options", "Failed to list options", section=section)
    return [_published_response(o) for o in options]


@router.get("/filters", response_model=dict[str, list[str]])
async def get_filter_catalogue(claims: dict = Depends(auth_dependency)):
    """Active option labels per section for filter panels."""
    try:
        return await taxonomy_service.filter_catalogue()
    except DatabaseError as e:
        raise_internal_error(e, "filter_catalogue", "Failed to load filter options")


@router.get("/draft", response_model=MergedViewResponse)
async def get_draft_view(
    section: str | None = Query(default=None),
    claims: dict = Depends(admin_dependency),
):
    """Published options overlaid with pending drafts, plus publish state."""
    try:
        view = await taxonomy_service.get_merged_view(section)
    except StatDeskError as e:
        raise_http_error(e, "get_merged_view", section=section)
    except DatabaseError as e:
        raise_internal_error(e, "get_merged_view", "Failed to load draft view", section=section)

    state = view.publish_state
    return MergedViewResponse(
        options=[_merged_response(o) for o in view.options],
        publish_state=PublishStateResponse(
            has_pending_changes=state.has_pending_changes,
            last_published_at=state.last_published_at,
            last_published_by=state.last_published_by,
        ),
    )


@router.post("", response_model=OptionResponse, status_code=status.HTTP_201_CREATED)
async def create_option(request: CreateOptionRequest, claims: dict = Depends(admin_dependency)):
    try:
        option = await taxonomy_service.create_option(
            request.section, request.label, request.sort_order, request.keywords
        )
    except StatDeskError as e:
        raise_http_error(e, "create_option", section=request.section)
    return _merged_response(option)


@router.put("/{option_id}", response_model=OptionResponse)
async def update_option(
    option_id: str, request: UpdateOptionRequest, claims: dict = Depends(admin_dependency)
):
    try:
        option = await taxonomy_service.update_option(
            parse_option_id(option_id),
            OptionChanges(
                label=request.label,
                sort_order=request.sort_order,
                is_active=request.is_active,
                keywords=request.keywords,
            ),
        )
    except StatDeskError as e:
        raise_http_error(e, "update_option", option_id=option_id)
    return _merged_response(option)


@router.put("/{option_id}/keywords", response_model=OptionResponse)
async def update_keywords(
    option_id: str, request: UpdateKeywordsRequest, claims: dict = Depends(admin_dependency)
):
    try:
        option = await taxonomy_service.update_keywords(
            parse_option_id(option_id), request.keywords
        )
    except StatDeskError as e:
        raise_http_error(e, "update_keywords", option_id=option_id)
    return _merged_response(option)


@router.delete("/{option_id}", response_model=DeleteOptionResponse)
async def delete_option(option_id: str, claims: dict = Depends(admin_dependency)):
    try:
        option = await taxonomy_service.delete_option(parse_option_id(option_id))
    except StatDeskError as e:
        raise_http_error(e, "delete_option", option_id=option_id)
    return DeleteOptionResponse(option=_merged_response(option) if option else None)


@router.post("/reorder", response_model=ReorderResponse)
async def reorder_options(request: ReorderRequest, claims: dict = Depends(admin_dependency)):
    try:
        items = [(parse_option_id(item.id), item.sort_order) for item in request.items]
        changed = await taxonomy_service.reorder_options(request.section, items)
    except StatDeskError as e:
        raise_http_error(e, "reorder_options", section=request.section)
    return ReorderResponse(changed=changed)


@router.post("/publish", response_model=PublishResponse)
async def publish(claims: dict = Depends(admin_dependency)):
    """Apply all pending drafts atomically."""
    user_id = claims.get("sub")
    try:
        result = await taxonomy_service.publish(str(user_id) if user_id is not None else None)
    except StatDeskError as e:
        raise_http_error(e, "publish", user_id=user_id)
    return PublishResponse(created=result.created, updated=result.updated, deleted=result.deleted)


@router.post("/discard", response_model=DiscardResponse)
async def discard(claims: dict = Depends(admin_dependency)):
    try:
        removed = await taxonomy_service.discard()
    except StatDeskError as e:
        raise_http_error(e, "discard")
    return DiscardResponse(removed=removed)


@router.post("/reset", response_model=ResetResponse)
async def reset_to_defaults(claims: dict = Depends(admin_dependency)):
    """Replace pending drafts with the diff against the default taxonomy."""
    try:
        result = await taxonomy_service.reset_to_defaults()
    except StatDeskError as e:
        raise_http_error(e, "reset_to_defaults")
    return ResetResponse(
        to_create=result.to_create, to_update=result.to_update, to_delete=result.to_delete
    )
