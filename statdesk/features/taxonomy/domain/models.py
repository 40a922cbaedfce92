"""
Domain models for the option taxonomy and its draft/publish workflow.

Published options live in option_definitions; pending edits live in
option_definitions_draft, at most one row per published option. A new,
never published option exists only as a ``create`` draft and is addressed
by a DraftId until it is published.
"""

from dataclasses import dataclass, field
from datetime import datetime

from statdesk.errors import ValidationError

DRAFT_ID_PREFIX = "new_"

ACTION_CREATE = "create"
ACTION_UPDATE = "update"
ACTION_DELETE = "delete"
DRAFT_ACTIONS: tuple[str, ...] = (ACTION_CREATE, ACTION_UPDATE, ACTION_DELETE)


@dataclass(frozen=True, slots=True)
class PublishedId:
    """Id of a row in option_definitions."""

    value: int


@dataclass(frozen=True, slots=True)
class DraftId:
    """Id of a create-draft row that has never been published."""

    value: int


OptionId = PublishedId | DraftId


def parse_option_id(raw: str | int | None) -> OptionId:
    """
    Parse the wire form of an option id.

    ``12`` / ``"12"`` -> PublishedId(12), ``"new_7"`` -> DraftId(7).
    """
    if isinstance(raw, bool) or raw is None:
        raise ValidationError("Invalid option id", error_code="invalid_id")

    if isinstance(raw, int):
        value, factory = raw, PublishedId
    else:
        text = str(raw).strip()
        factory = PublishedId
        if text.startswith(DRAFT_ID_PREFIX):
            text = text[len(DRAFT_ID_PREFIX) :]
            factory = DraftId
        if not text.isdigit():
            raise ValidationError(f"Invalid option id {raw!r}", error_code="invalid_id")
        value = int(text)

    if value <= 0:
        raise ValidationError(f"Invalid option id {raw!r}", error_code="invalid_id")
    return factory(value)


def format_option_id(option_id: OptionId) -> int | str:
    if isinstance(option_id, DraftId):
        return f"{DRAFT_ID_PREFIX}{option_id.value}"
    return option_id.value


@dataclass(slots=True)
class OptionDefinition:
    """Represents an option_definitions row."""

    id: int
    section: str
    label: str
    sort_order: int
    is_active: bool
    keywords: list[str] = field(default_factory=list)
    created_at: datetime | None = None


@dataclass(slots=True)
class OptionDraft:
    """Represents an option_definitions_draft row."""

    id: int
    original_id: int | None
    section: str
    label: str
    sort_order: int
    is_active: bool
    keywords: list[str]
    action: str
    created_at: datetime | None = None


@dataclass(slots=True)
class PublishState:
    has_pending_changes: bool = False
    last_published_at: datetime | None = None
    last_published_by: str | None = None


@dataclass(slots=True)
class OptionChanges:
    """Fields an editor wants to change; None means "leave as is"."""

    label: str | None = None
    sort_order: int | None = None
    is_active: bool | None = None
    keywords: list[str] | None = None

    def is_empty(self) -> bool:
        return (
            self.label is None
            and self.sort_order is None
            and self.is_active is None
            and self.keywords is None
        )


@dataclass(slots=True)
class MergedOption:
    """An option as the editor sees it: published values overlaid with its draft."""

    id: OptionId
    section: str
    label: str
    sort_order: int
    is_active: bool
    keywords: list[str]
    created_at: datetime | None
    draft_action: str | None = None
    draft_id: int | None = None


@dataclass(slots=True)
class MergedView:
    options: list[MergedOption]
    publish_state: PublishState


@dataclass(slots=True)
class PublishResult:
    created: int = 0
    updated: int = 0
    deleted: int = 0


@dataclass(slots=True)
class ResetResult:
    to_create: int = 0
    to_update: int = 0
    to_delete: int = 0


@dataclass(frozen=True, slots=True)
class DefaultOption:
    section: str
    label: str
    sort_order: int = 0
    keywords: tuple[str, ...] = ()


def clean_keywords(keywords) -> list[str]:
    """Trim keywords and drop empty ones. Anything that is not a list becomes []."""
    if not isinstance(keywords, (list, tuple)):
        return []
    return [str(k).strip() for k in keywords if k is not None and str(k).strip()]


def merged_from_draft(draft: OptionDraft) -> MergedOption:
    """A create-draft as it appears in the editor."""
    return MergedOption(
        id=DraftId(draft.id),
        section=draft.section,
        label=draft.label,
        sort_order=draft.sort_order,
        is_active=draft.is_active,
        keywords=list(draft.keywords),
        created_at=draft.created_at,
        draft_action=ACTION_CREATE,
        draft_id=draft.id,
    )


def merge_options(
    published: list[OptionDefinition], drafts: list[OptionDraft]
) -> list[MergedOption]:
    """
    Overlay drafts on published options.

    Update drafts replace the visible field values; delete drafts keep the
    published values and only tag the option; create drafts are appended
    with a DraftId. The result is ordered by (section, sort_order, label).
    """
    drafts_by_original = {d.original_id: d for d in drafts if d.original_id is not None}
    merged: list[MergedOption] = []

    for option in published:
        item = MergedOption(
            id=PublishedId(option.id),
            section=option.section,
            label=option.label,
            sort_order=option.sort_order,
            is_active=option.is_active,
            keywords=list(option.keywords),
            created_at=option.created_at,
        )
        draft = drafts_by_original.get(option.id)
        if draft is not None:
            item.draft_action = draft.action
            item.draft_id = draft.id
            if draft.action == ACTION_UPDATE:
                item.label = draft.label
                item.sort_order = draft.sort_order
                item.is_active = draft.is_active
                item.keywords = list(draft.keywords)
        merged.append(item)

    merged.extend(merged_from_draft(d) for d in drafts if d.original_id is None)
    merged.sort(key=lambda o: (o.section, o.sort_order, o.label))
    return merged
