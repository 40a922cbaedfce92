"""
Domain subpackage for the analytics feature.
"""

from .models import (
    AUTO_GRANULARITY,
    DEFAULT_MARKER_COLOR,
    GRANULARITIES,
    NO_FILTER,
    AggregateResult,
    ChartMarker,
    CompareResult,
    CountItem,
    Dataset,
    DateRange,
    FilterGroup,
    FilterSpec,
    FlatFilter,
    HierarchyFilter,
    IntersectionFilter,
    Period,
    SavedPeriodSet,
    TimeseriesResult,
    TotalsResult,
)

__all__ = [
    "AUTO_GRANULARITY",
    "DEFAULT_MARKER_COLOR",
    "GRANULARITIES",
    "NO_FILTER",
    "AggregateResult",
    "ChartMarker",
    "CompareResult",
    "CountItem",
    "Dataset",
    "DateRange",
    "FilterGroup",
    "FilterSpec",
    "FlatFilter",
    "HierarchyFilter",
    "IntersectionFilter",
    "Period",
    "SavedPeriodSet",
    "TimeseriesResult",
    "TotalsResult",
]
