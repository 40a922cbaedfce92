"""
Domain subpackage for the taxonomy feature.
"""

from .models import (
    ACTION_CREATE,
    ACTION_DELETE,
    ACTION_UPDATE,
    DRAFT_ACTIONS,
    DRAFT_ID_PREFIX,
    DefaultOption,
    DraftId,
    MergedOption,
    MergedView,
    OptionChanges,
    OptionDefinition,
    OptionDraft,
    OptionId,
    PublishedId,
    PublishResult,
    PublishState,
    ResetResult,
    clean_keywords,
    format_option_id,
    merge_options,
    merged_from_draft,
    parse_option_id,
)

__all__ = [
    "ACTION_CREATE",
    "ACTION_DELETE",
    "ACTION_UPDATE",
    "DRAFT_ACTIONS",
    "DRAFT_ID_PREFIX",
    "DefaultOption",
    "DraftId",
    "MergedOption",
    "MergedView",
    "OptionChanges",
    "OptionDefinition",
    "OptionDraft",
    "OptionId",
    "PublishedId",
    "PublishResult",
    "PublishState",
    "ResetResult",
    "clean_keywords",
    "format_option_id",
    "merge_options",
    "merged_from_draft",
    "parse_option_id",
]
