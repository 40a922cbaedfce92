"""
Taxonomy editor response models.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class OptionResponse(BaseModel):
    """An option as the editor sees it (published values overlaid with its draft)."""

    id: int | str = Field(..., description="Published id or new_<draft id>")
    section: str
    label: str
    sort_order: int
    is_active: bool
    keywords: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    draft_action: str | None = Field(None, description="create, update or delete when pending")
    draft_id: int | None = None


class PublishStateResponse(BaseModel):
    has_pending_changes: bool
    last_published_at: datetime | None = None
    last_published_by: str | None = None


class MergedViewResponse(BaseModel):
    options: list[OptionResponse]
    publish_state: PublishStateResponse


class PublishResponse(BaseModel):
    success: bool = True
    created: int
    updated: int
    deleted: int


class DiscardResponse(BaseModel):
    success: bool = True
    removed: int


class ReorderResponse(BaseModel):
    success: bool = True
    changed: int


class ResetResponse(BaseModel):
    success: bool = True
    to_create: int
    to_update: int
    to_delete: int


class DeleteOptionResponse(BaseModel):
    success: bool = True
    option: OptionResponse | None = Field(
        None, description="The delete-drafted option; null when a draft-only option was removed"
    )
