"""
Domain subpackage for the entries feature.
"""

from .models import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    Entry,
    EntryPage,
    group_values,
    normalize_entry_values,
)

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "Entry",
    "EntryPage",
    "group_values",
    "normalize_entry_values",
]
