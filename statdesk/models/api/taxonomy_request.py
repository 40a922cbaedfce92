"""
Taxonomy editor request models.
Option ids are accepted in wire form: an integer for published options,
"new_<n>" for options that only exist as drafts.
"""

from pydantic import BaseModel, Field


class CreateOptionRequest(BaseModel):
    """Request for drafting a new option."""

    section: str = Field(..., description="Section the option belongs to")
    label: str = Field(..., min_length=1, max_length=200)
    sort_order: int = Field(default=0, description="Position within the section")
    keywords: list[str] | None = Field(default=None, description="Search keywords (thema only)")


class UpdateOptionRequest(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    label: str | None = Field(None, min_length=1, max_length=200)
    sort_order: int | None = None
    is_active: bool | None = None
    keywords: list[str] | None = None


class UpdateKeywordsRequest(BaseModel):
    keywords: list[str] = Field(..., description="Replaces the current keyword list")


class ReorderItemRequest(BaseModel):
    id: int | str = Field(..., description="Published id or new_<draft id>")
    sort_order: int


class ReorderRequest(BaseModel):
    section: str
    items: list[ReorderItemRequest]
