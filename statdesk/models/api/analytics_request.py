# statdesk/models/api/analytics_request.py
"""
Analytics API request models.
Query-string endpoints take their parameters directly; these cover the
JSON bodies.
"""

from datetime import date

from pydantic import BaseModel, Field

from statdesk.models.api.analytics_response import PeriodModel

COLOR_PATTERN = r"^#[0-9a-fA-F]{6}$"


class CreatePeriodSetRequest(BaseModel):
    """Request for saving a named set of comparison periods."""

    name: str = Field(..., min_length=1, max_length=200, description="Display name")
    periods: list[PeriodModel] = Field(..., min_length=1, description="Periods to compare")
    is_active: bool = Field(default=False, description="Show in the comparison view")


class UpdatePeriodSetRequest(BaseModel):
    """Partial update of a saved period set."""

    name: str | None = Field(None, min_length=1, max_length=200)
    periods: list[PeriodModel] | None = Field(None, min_length=1)
    is_active: bool | None = None


class CreateMarkerRequest(BaseModel):
    """Request for adding a chart marker."""

    name: str = Field(..., min_length=1, max_length=200, description="Label shown on the chart")
    start_date: date
    end_date: date | None = Field(None, description="Omit for a single-day marker")
    color: str | None = Field(None, pattern=COLOR_PATTERN, description="Hex colour, e.g. #f59e0b")
    is_active: bool = Field(default=True, description="Draw the marker on charts")


class UpdateMarkerRequest(BaseModel):
    """Partial update of a chart marker. Sending end_date: null clears it."""

    name: str | None = Field(None, min_length=1, max_length=200)
    start_date: date | None = None
    end_date: date | None = None
    color: str | None = Field(None, pattern=COLOR_PATTERN)
    is_active: bool | None = None
