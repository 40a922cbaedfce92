"""
Analytics routes.

Query parameters are parsed here (filters JSON, comma separated values)
and handed to the aggregation engine as typed values.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, status

from statdesk.auth.verify import admin_dependency, auth_dependency
from statdesk.db.helpers import DatabaseError
from statdesk.errors import StatDeskError
from statdesk.features.analytics.filters import parse_filter_spec
from statdesk.features.analytics.service import (
    analytics_service,
    chart_marker_service,
    saved_period_service,
)
from statdesk.infrastructure.observability.logging import get_logger
from statdesk.models.api.analytics_request import (
    CreateMarkerRequest,
    CreatePeriodSetRequest,
    UpdateMarkerRequest,
    UpdatePeriodSetRequest,
)
from statdesk.models.api.analytics_response import (
    AggregateResponse,
    ChartMarkerResponse,
    CompareResponse,
    CountItemResponse,
    DatasetResponse,
    SavedPeriodSetResponse,
    TimeseriesResponse,
    TotalsResponse,
)
from statdesk.utils.http_errors import raise_http_error, raise_internal_error

logger = get_logger(__name__)

router = APIRouter(prefix="/analytics", tags=["analytics"])

FILTERS_DESCRIPTION = (
    'JSON filter: flat {"person": ["Mann"]}, {"intersection": {...}} '
    'or {"hierarchy": [{"group": "g1", "filters": {...}}]}'
)


def _split_values(values: str | None) -> list[str]:
    if not values:
        return []
    return [value.strip() for value in values.split(",") if value.strip()]


@router.get("/aggregate", response_model=AggregateResponse)
async def get_aggregate(
    section: str = Query(..., description="Section to count values for"),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    filters: str | None = Query(default=None, description=FILTERS_DESCRIPTION),
    claims: dict = Depends(auth_dependency),
):
    """Count entries per value within a section."""
    try:
        result = await analytics_service.aggregate(
            section, parse_filter_spec(filters), start_date, end_date
        )
    except StatDeskError as e:
        raise_http_error(e, "aggregate", section=section)
    except DatabaseError as e:
        raise_internal_error(e, "aggregate", "Failed to compute aggregate", section=section)

    return AggregateResponse(
        section=result.section,
        items=[CountItemResponse(label=item.label, count=item.count) for item in result.items],
        total=result.total,
        start_date=result.start_date,
        end_date=result.end_date,
    )


@router.get("/timeseries", response_model=TimeseriesResponse)
async def get_timeseries(
    section: str = Query(...),
    values: str | None = Query(default=None, description="Comma separated values"),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    granularity: str = Query(default="auto", description="day, week, month or auto"),
    filters: str | None = Query(default=None, description=FILTERS_DESCRIPTION),
    claims: dict = Depends(auth_dependency),
):
    """Bucketed counts per value for line charts."""
    try:
        result = await analytics_service.timeseries(
            section,
            _split_values(values),
            parse_filter_spec(filters),
            start_date,
            end_date,
            granularity,
        )
    except StatDeskError as e:
        raise_http_error(e, "timeseries", section=section)
    except DatabaseError as e:
        raise_internal_error(e, "timeseries", "Failed to compute timeseries", section=section)

    return TimeseriesResponse(
        granularity=result.granularity,
        labels=result.labels,
        datasets=[DatasetResponse(label=d.label, data=d.data) for d in result.datasets],
        start_date=result.start_date,
        end_date=result.end_date,
    )


@router.get("/totals", response_model=TotalsResponse)
async def get_totals(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    granularity: str = Query(default="auto"),
    filters: str | None = Query(default=None, description=FILTERS_DESCRIPTION),
    claims: dict = Depends(auth_dependency),
):
    """Bucketed counts over all matching entries (default dashboard view)."""
    try:
        result = await analytics_service.totals(
            parse_filter_spec(filters), start_date, end_date, granularity
        )
    except StatDeskError as e:
        raise_http_error(e, "totals")
    except DatabaseError as e:
        raise_internal_error(e, "totals", "Failed to compute totals")

    return TotalsResponse(
        granularity=result.granularity,
        labels=result.labels,
        data=result.data,
        total=result.total,
        start_date=result.start_date,
        end_date=result.end_date,
    )


@router.get("/compare", response_model=CompareResponse)
async def get_compare(
    periods: str = Query(..., description='JSON array of {"start", "end", "label"}'),
    section: str = Query(...),
    values: str | None = Query(default=None, description="Comma separated values"),
    filters: str | None = Query(default=None, description=FILTERS_DESCRIPTION),
    claims: dict = Depends(auth_dependency),
):
    """Counts per value across caller-defined periods."""
    try:
        result = await analytics_service.compare(
            periods, section, _split_values(values), parse_filter_spec(filters)
        )
    except StatDeskError as e:
        raise_http_error(e, "compare", section=section)
    except DatabaseError as e:
        raise_internal_error(e, "compare", "Failed to compare periods", section=section)

    return CompareResponse(
        section=result.section,
        periods=result.periods,
        datasets=[DatasetResponse(label=d.label, data=d.data) for d in result.datasets],
        totals=result.totals,
    )


# =================================================================
# Saved comparison periods
# =================================================================


def _period_set_response(period_set) -> SavedPeriodSetResponse:
    return SavedPeriodSetResponse(
        id=period_set.id,
        name=period_set.name,
        periods=period_set.periods,
        is_active=period_set.is_active,
        created_at=period_set.created_at,
    )


@router.get("/periods", response_model=list[SavedPeriodSetResponse])
async def list_period_sets(claims: dict = Depends(auth_dependency)):
    try:
        period_sets = await saved_period_service.list_period_sets()
    except DatabaseError as e:
        raise_internal_error(e, "list_period_sets", "Failed to list period sets")
    return [_period_set_response(p) for p in period_sets]


@router.post(
    "/periods", response_model=SavedPeriodSetResponse, status_code=status.HTTP_201_CREATED
)
async def create_period_set(
    request: CreatePeriodSetRequest, claims: dict = Depends(admin_dependency)
):
    try:
        period_set = await saved_period_service.create_period_set(
            request.name,
            [p.model_dump(mode="json") for p in request.periods],
            request.is_active,
        )
    except StatDeskError as e:
        raise_http_error(e, "create_period_set")
    except DatabaseError as e:
        raise_internal_error(e, "create_period_set", "Failed to save period set")
    return _period_set_response(period_set)


@router.put("/periods/{period_set_id}", response_model=SavedPeriodSetResponse)
async def update_period_set(
    period_set_id: int, request: UpdatePeriodSetRequest, claims: dict = Depends(admin_dependency)
):
    fields = request.model_dump(mode="json", exclude_unset=True)
    try:
        period_set = await saved_period_service.update_period_set(period_set_id, fields)
    except StatDeskError as e:
        raise_http_error(e, "update_period_set", period_set_id=period_set_id)
    except DatabaseError as e:
        raise_internal_error(
            e, "update_period_set", "Failed to update period set", period_set_id=period_set_id
        )
    return _period_set_response(period_set)


@router.delete("/periods/{period_set_id}")
async def delete_period_set(period_set_id: int, claims: dict = Depends(admin_dependency)):
    try:
        await saved_period_service.delete_period_set(period_set_id)
    except StatDeskError as e:
        raise_http_error(e, "delete_period_set", period_set_id=period_set_id)
    except DatabaseError as e:
        raise_internal_error(
            e, "delete_period_set", "Failed to delete period set", period_set_id=period_set_id
        )
    return {"success": True}


# =================================================================
# Chart markers
# =================================================================


def _marker_response(marker) -> ChartMarkerResponse:
    return ChartMarkerResponse(
        id=marker.id,
        name=marker.name,
        start_date=marker.start_date,
        end_date=marker.end_date,
        color=marker.color,
        is_active=marker.is_active,
        created_at=marker.created_at,
    )


@router.get("/markers", response_model=list[ChartMarkerResponse])
async def list_markers(claims: dict = Depends(auth_dependency)):
    """All markers, newest start date first. Inactive ones are included for the editor."""
    try:
        markers = await chart_marker_service.list_markers()
    except DatabaseError as e:
        raise_internal_error(e, "list_markers", "Failed to list markers")
    return [_marker_response(m) for m in markers]


@router.post(
    "/markers", response_model=ChartMarkerResponse, status_code=status.HTTP_201_CREATED
)
async def create_marker(request: CreateMarkerRequest, claims: dict = Depends(admin_dependency)):
    try:
        marker = await chart_marker_service.create_marker(
            request.name, request.start_date, request.end_date, request.color, request.is_active
        )
    except StatDeskError as e:
        raise_http_error(e, "create_marker")
    except DatabaseError as e:
        raise_internal_error(e, "create_marker", "Failed to save marker")
    return _marker_response(marker)


@router.put("/markers/{marker_id}", response_model=ChartMarkerResponse)
async def update_marker(
    marker_id: int, request: UpdateMarkerRequest, claims: dict = Depends(admin_dependency)
):
    fields = request.model_dump(exclude_unset=True)
    try:
        marker = await chart_marker_service.update_marker(marker_id, fields)
    except StatDeskError as e:
        raise_http_error(e, "update_marker", marker_id=marker_id)
    except DatabaseError as e:
        raise_internal_error(e, "update_marker", "Failed to update marker", marker_id=marker_id)
    return _marker_response(marker)


@router.delete("/markers/{marker_id}")
async def delete_marker(marker_id: int, claims: dict = Depends(admin_dependency)):
    try:
        await chart_marker_service.delete_marker(marker_id)
    except StatDeskError as e:
        raise_http_error(e, "delete_marker", marker_id=marker_id)
    except DatabaseError as e:
        raise_internal_error(e, "delete_marker", "Failed to delete marker", marker_id=marker_id)
    return {"success": True}
