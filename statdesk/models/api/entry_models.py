"""
Entry API request and response models.
"""

from datetime import date, datetime

from pydantic import BaseModel, Field


class EntryRequest(BaseModel):
    """Create or replace an entry. Values map a section to its selected labels."""

    values: dict[str, list[str]] = Field(
        default_factory=dict,
        description='e.g. {"kontaktart": ["Besuch"], "person": ["Mann", "unter 55"]}',
    )
    remark: str | None = Field(None, max_length=2000)
    user_id: int | None = Field(None, gt=0, description="Defaults to the signed-in user")
    created_at: datetime | None = Field(None, description="Defaults to now on create")


class EntryResponse(BaseModel):
    id: int
    user_id: int
    created_at: datetime
    remark: str | None = None
    values: dict[str, list[str]]


class EntryListResponse(BaseModel):
    items: list[EntryResponse]
    total: int
    limit: int
    offset: int
    start_date: date | None = None
    end_date: date | None = None
