"""
Domain models for logged helpdesk contacts.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime

from statdesk.errors import ValidationError
from statdesk.models.domain import is_valid_section

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50


@dataclass(slots=True)
class Entry:
    """One logged contact with its selected values per section."""

    id: int
    user_id: int
    created_at: datetime
    remark: str | None = None
    values: dict[str, list[str]] = field(default_factory=dict)


@dataclass(slots=True)
class EntryPage:
    items: list[Entry]
    total: int
    limit: int
    offset: int


def normalize_entry_values(raw: Mapping | None) -> list[tuple[str, str]]:
    """
    Flatten ``{section: [values]}`` into ordered (section, value) pairs.

    Scalars are treated as one-element lists, values are trimmed, empty
    values dropped and repeated pairs kept once (first occurrence wins).
    A section outside the closed set is rejected.
    """
    if raw is None:
        return []
    if not isinstance(raw, Mapping):
        raise ValidationError("Entry values must be an object", error_code="invalid_values")

    pairs: dict[tuple[str, str], None] = {}
    for section, values in raw.items():
        if not is_valid_section(section):
            raise ValidationError(
                f"Unknown section {section!r} in entry values", error_code="invalid_section"
            )
        if values is None:
            continue
        if not isinstance(values, (list, tuple)):
            values = [values]
        for value in values:
            if value is None:
                continue
            text = str(value).strip()
            if text:
                pairs.setdefault((section, text), None)
    return list(pairs)


def group_values(pairs: list[tuple[str, str]]) -> dict[str, list[str]]:
    grouped: dict[str, list[str]] = {}
    for section, value in pairs:
        grouped.setdefault(section, []).append(value)
    return grouped
