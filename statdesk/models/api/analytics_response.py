# statdesk/models/api/analytics_response.py
"""
Analytics API response models.
Used by routes for output formatting.
"""

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, Field


class CountItemResponse(BaseModel):
    label: str = Field(..., description="Option label (value_text)")
    count: int = Field(..., description="Distinct entries carrying this value")


class DatasetResponse(BaseModel):
    label: str = Field(..., description="Series label (the value)")
    data: list[int] = Field(..., description="One count per bucket or period")


class AggregateResponse(BaseModel):
    """Per-value counts for a single section."""

    section: str
    items: list[CountItemResponse]
    total: int = Field(..., description="Distinct entries matching filter and range")
    start_date: date | None = None
    end_date: date | None = None


class TimeseriesResponse(BaseModel):
    """Zero-filled bucket counts per requested value."""

    granularity: str
    labels: list[str]
    datasets: list[DatasetResponse]
    start_date: date
    end_date: date


class TotalsResponse(BaseModel):
    """Zero-filled bucket counts over all matching entries."""

    granularity: str
    labels: list[str]
    data: list[int]
    total: int
    start_date: date
    end_date: date


class CompareResponse(BaseModel):
    section: str
    periods: list[str] = Field(..., description="Period labels in request order")
    datasets: list[DatasetResponse]
    totals: list[int] = Field(..., description="Matching entries per period")


class PeriodModel(BaseModel):
    start: date
    end: date
    label: str


class SavedPeriodSetResponse(BaseModel):
    id: int
    name: str
    periods: list[dict[str, Any]]
    is_active: bool
    created_at: datetime | None = None


class ChartMarkerResponse(BaseModel):
    id: int
    name: str
    start_date: date
    end_date: date | None = None
    color: str
    is_active: bool
    created_at: datetime | None = None
