"""
Domain models for the analytics feature.

Filter specifications are a closed set of variants decided once when the
request is parsed. The compiler dispatches on the variant type and never
looks at the raw request again.
"""

from dataclasses import dataclass, field
from datetime import date

SectionValues = dict[str, tuple[str, ...]]

GRANULARITIES: tuple[str, ...] = ("day", "week", "month")
AUTO_GRANULARITY = "auto"


@dataclass(frozen=True, slots=True)
class FlatFilter:
    """OR within a section's values, AND across sections."""

    sections: SectionValues = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not any(self.sections.values())


@dataclass(frozen=True, slots=True)
class IntersectionFilter:
    """Every listed value must be present on the entry."""

    sections: SectionValues = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not any(self.sections.values())


@dataclass(frozen=True, slots=True)
class FilterGroup:
    name: str
    sections: SectionValues = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not any(self.sections.values())


@dataclass(frozen=True, slots=True)
class HierarchyFilter:
    """OR within a group (even across sections), AND across groups."""

    groups: tuple[FilterGroup, ...] = ()

    def is_empty(self) -> bool:
        return all(group.is_empty() for group in self.groups)


FilterSpec = FlatFilter | IntersectionFilter | HierarchyFilter

NO_FILTER = FlatFilter()


@dataclass(frozen=True, slots=True)
class DateRange:
    start: date | None = None
    end: date | None = None

    def is_bounded(self) -> bool:
        return self.start is not None and self.end is not None


@dataclass(frozen=True, slots=True)
class Period:
    """Caller-defined comparison period."""

    start: date
    end: date
    label: str


@dataclass(slots=True)
class CountItem:
    label: str
    count: int


@dataclass(slots=True)
class Dataset:
    label: str
    data: list[int]


@dataclass(slots=True)
class AggregateResult:
    section: str
    items: list[CountItem]
    total: int
    start_date: date | None = None
    end_date: date | None = None


@dataclass(slots=True)
class TimeseriesResult:
    granularity: str
    labels: list[str]
    datasets: list[Dataset]
    start_date: date
    end_date: date


@dataclass(slots=True)
class TotalsResult:
    granularity: str
    labels: list[str]
    data: list[int]
    total: int
    start_date: date
    end_date: date


@dataclass(slots=True)
class CompareResult:
    section: str
    periods: list[str]
    datasets: list[Dataset]
    totals: list[int]


@dataclass(slots=True)
class SavedPeriodSet:
    """Represents a saved_periods row."""

    id: int
    name: str
    periods: list[dict]
    is_active: bool
    created_at: object | None = None


DEFAULT_MARKER_COLOR = "#f59e0b"


@dataclass(slots=True)
class ChartMarker:
    """A named date range highlighted on time charts (holidays, campaigns)."""

    id: int
    name: str
    start_date: date
    end_date: date | None
    color: str
    is_active: bool
    created_at: object | None = None
