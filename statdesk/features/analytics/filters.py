"""
Filter parsing and compilation.

parse_filter_spec() turns the caller's raw filter object into one of the
FilterSpec variants. It is lenient: anything malformed decays to "no
restriction" (or drops the malformed part) and logs a warning.

compile_filter() is a pure function from a FilterSpec to SQL predicates
over ``stats_entries``. Every condition is an EXISTS subquery with its own
alias, so qualifying entries are never multiplied by matching value rows
and no alias or parameter leaks between conditions.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from statdesk.features.analytics.domain import (
    NO_FILTER,
    FilterGroup,
    FilterSpec,
    FlatFilter,
    HierarchyFilter,
    IntersectionFilter,
)
from statdesk.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

VALUES_TABLE = "stats_entry_values"


@dataclass(frozen=True, slots=True)
class FilterFragment:
    """Compiled filter: AND-joined predicates plus their bound parameters in order."""

    clauses: tuple[str, ...] = ()
    params: tuple[Any, ...] = ()

    def is_unrestricted(self) -> bool:
        return not self.clauses

    def where_sql(self) -> str:
        if not self.clauses:
            return "TRUE"
        return " AND ".join(self.clauses)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_filter_spec(raw: str | Mapping | None) -> FilterSpec:
    """
    Decide the filter variant once, at the request boundary.

    Args:
        raw: JSON text, an already decoded mapping, or None

    Returns:
        HierarchyFilter if a ``hierarchy`` key is present, IntersectionFilter
        if an ``intersection`` key is present, otherwise FlatFilter.
    """
    if raw is None:
        return NO_FILTER

    if isinstance(raw, (str, bytes)):
        if not raw.strip():
            return NO_FILTER
        try:
            raw = json.loads(raw)
        except ValueError as e:
            logger.warning("Ignoring malformed filter JSON", error=str(e))
            return NO_FILTER

    if not isinstance(raw, Mapping):
        logger.warning("Ignoring filter that is not an object", filter_type=type(raw).__name__)
        return NO_FILTER

    if "hierarchy" in raw:
        return _parse_hierarchy(raw["hierarchy"])

    if "intersection" in raw:
        intersection = raw["intersection"]
        if not isinstance(intersection, Mapping):
            logger.warning("Ignoring intersection filter that is not an object")
            return NO_FILTER
        return IntersectionFilter(sections=_normalize_sections(intersection))

    return FlatFilter(sections=_normalize_sections(raw))


def _parse_hierarchy(levels: Any) -> FilterSpec:
    if not isinstance(levels, list):
        logger.warning("Ignoring hierarchy filter that is not a list")
        return NO_FILTER

    groups: list[FilterGroup] = []
    for index, level in enumerate(levels):
        if not isinstance(level, Mapping) or not isinstance(level.get("filters"), Mapping):
            logger.warning("Skipping malformed hierarchy group", index=index)
            continue
        name = level.get("group") or level.get("group_name") or f"group_{index}"
        groups.append(FilterGroup(name=str(name), sections=_normalize_sections(level["filters"])))

    return HierarchyFilter(groups=tuple(groups))


def _normalize_sections(mapping: Mapping) -> dict[str, tuple[str, ...]]:
    sections: dict[str, tuple[str, ...]] = {}
    for section, values in mapping.items():
        if isinstance(values, bool):
            logger.warning("Skipping filter section with boolean value", section=str(section))
            continue
        if isinstance(values, (str, int, float)):
            values = [values]
        if not isinstance(values, (list, tuple)):
            logger.warning("Skipping filter section with non-list values", section=str(section))
            continue

        cleaned = [
            str(value).strip()
            for value in values
            if isinstance(value, (str, int, float))
            and not isinstance(value, bool)
            and str(value).strip()
        ]
        if cleaned:
            sections[str(section)] = tuple(dict.fromkeys(cleaned))
    return sections


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------


def compile_filter(spec: FilterSpec, entry_alias: str = "e") -> FilterFragment:
    """
    Compile a filter into EXISTS predicates against ``<entry_alias>.id``.

    Aliases are numbered from zero on every call.
    """
    if not entry_alias.isidentifier():
        raise ValueError(f"Invalid entry alias: {entry_alias!r}")

    if isinstance(spec, HierarchyFilter):
        return _compile_hierarchy(spec, entry_alias)
    if isinstance(spec, IntersectionFilter):
        return _compile_intersection(spec, entry_alias)
    if isinstance(spec, FlatFilter):
        return _compile_flat(spec, entry_alias)

    raise TypeError(f"Unsupported filter specification: {type(spec).__name__}")


def _exists(alias: str, entry_alias: str, condition: str) -> str:
    return (
        f"EXISTS (SELECT 1 FROM {VALUES_TABLE} {alias} "
        f"WHERE {alias}.entry_id = {entry_alias}.id AND {condition})"
    )


def _compile_flat(spec: FlatFilter, entry_alias: str) -> FilterFragment:
    clauses: list[str] = []
    params: list[Any] = []

    for section, values in spec.sections.items():
        if not values:
            continue
        alias = f"f{len(clauses)}"
        clauses.append(
            _exists(alias, entry_alias, f"{alias}.section = %s AND {alias}.value_text = ANY(%s)")
        )
        params.extend([section, list(values)])

    return FilterFragment(clauses=tuple(clauses), params=tuple(params))


def _compile_intersection(spec: IntersectionFilter, entry_alias: str) -> FilterFragment:
    clauses: list[str] = []
    params: list[Any] = []

    for section, values in spec.sections.items():
        for value in values:
            alias = f"i{len(clauses)}"
            clauses.append(
                _exists(alias, entry_alias, f"{alias}.section = %s AND {alias}.value_text = %s")
            )
            params.extend([section, value])

    return FilterFragment(clauses=tuple(clauses), params=tuple(params))


def _compile_hierarchy(spec: HierarchyFilter, entry_alias: str) -> FilterFragment:
    clauses: list[str] = []
    params: list[Any] = []

    for group in spec.groups:
        alias = f"g{len(clauses)}"
        conditions: list[str] = []
        group_params: list[Any] = []

        for section, values in group.sections.items():
            if not values:
                continue
            conditions.append(f"({alias}.section = %s AND {alias}.value_text = ANY(%s))")
            group_params.extend([section, list(values)])

        if not conditions:
            continue

        clauses.append(_exists(alias, entry_alias, "(" + " OR ".join(conditions) + ")"))
        params.extend(group_params)

    return FilterFragment(clauses=tuple(clauses), params=tuple(params))
