"""
Aggregation behaviour over a small in-memory desk log.

The compiled filter fragments are evaluated by FakeAnalyticsRepository, so
these tests cover parse, compile and aggregation together.
"""

from datetime import date

import pytest

from statdesk.features.analytics.domain import (
    NO_FILTER,
    DateRange,
    FilterGroup,
    FlatFilter,
    HierarchyFilter,
    IntersectionFilter,
    Period,
)
from statdesk.features.analytics.filters import compile_filter, parse_filter_spec
from statdesk.features.analytics.service import AnalyticsService

JAN_1 = date(2024, 1, 1)
FEB_29 = date(2024, 2, 29)


@pytest.fixture
def desk(analytics_repo):
    analytics_repo.add_entry(
        date(2024, 1, 1), person=["Frau", "über 80"], thema="Bildung", kontaktart="Telefon"
    )
    analytics_repo.add_entry(
        date(2024, 1, 1), person="Frau", thema=["Bildung", "Arbeit"], kontaktart="Besuch"
    )
    analytics_repo.add_entry(date(2024, 1, 3), person="Mann", thema="Arbeit", kontaktart="Telefon")
    analytics_repo.add_entry(
        date(2024, 1, 10), person="über 80", thema="Recht", kontaktart="Telefon"
    )
    analytics_repo.add_entry(date(2024, 2, 5), person="Frau", thema="Bildung", kontaktart="Besuch")
    analytics_repo.add_entry(date(2024, 2, 20), kontaktart="Besuch")
    return analytics_repo


def _ids(repo, spec):
    return {entry_id for entry_id, _, _ in repo._matching(compile_filter(spec), DateRange())}


@pytest.mark.asyncio
async def test_empty_filters_match_no_filter(desk):
    service = AnalyticsService()
    baseline = await service.aggregate("thema", start_date=JAN_1, end_date=FEB_29)
    baseline_totals = await service.totals(start_date=JAN_1, end_date=FEB_29, granularity="week")

    for spec in (
        NO_FILTER,
        FlatFilter(sections={"person": ()}),
        IntersectionFilter(),
        HierarchyFilter(groups=(FilterGroup(name="leer"),)),
        parse_filter_spec("{}"),
        parse_filter_spec("{kaputt"),
    ):
        assert await service.aggregate("thema", spec, JAN_1, FEB_29) == baseline
        assert await service.totals(spec, JAN_1, FEB_29, "week") == baseline_totals

    assert baseline.total == 6


@pytest.mark.asyncio
async def test_flat_filter_equals_single_group_hierarchy(desk):
    service = AnalyticsService()
    values = {"person": ("Mann", "über 80")}
    flat = FlatFilter(sections=values)
    hierarchy = HierarchyFilter(groups=(FilterGroup(name="Person", sections=values),))

    assert await service.aggregate("thema", flat) == await service.aggregate("thema", hierarchy)
    assert _ids(desk, flat) == _ids(desk, hierarchy) == {1, 3, 4}


@pytest.mark.asyncio
async def test_intersection_selects_subset_of_flat(desk):
    service = AnalyticsService()
    values = {"person": ("Frau", "über 80")}

    flat = await service.aggregate("thema", FlatFilter(sections=values))
    intersection = await service.aggregate("thema", IntersectionFilter(sections=values))

    assert (flat.total, intersection.total) == (4, 1)
    assert _ids(desk, IntersectionFilter(sections=values)) <= _ids(desk, FlatFilter(sections=values))


@pytest.mark.asyncio
async def test_total_never_grows_as_sections_are_added(desk):
    service = AnalyticsService()
    steps = [("person", ("Frau",)), ("kontaktart", ("Besuch",)), ("thema", ("Bildung",))]

    totals = [(await service.aggregate("thema")).total]
    for count in range(1, len(steps) + 1):
        spec = FlatFilter(sections=dict(steps[:count]))
        totals.append((await service.aggregate("thema", spec)).total)

    assert totals == [6, 3, 2, 2]
    assert totals == sorted(totals, reverse=True)


@pytest.mark.asyncio
async def test_entry_with_several_matching_values_counts_once(desk):
    service = AnalyticsService()

    result = await service.aggregate("thema", FlatFilter(sections={"thema": ("Bildung", "Arbeit")}))
    across_sections = await service.aggregate(
        "thema",
        HierarchyFilter(
            groups=(
                FilterGroup(name="g", sections={"person": ("Frau",), "kontaktart": ("Besuch",)}),
            )
        ),
    )

    assert result.total == 4
    assert sum(item.count for item in result.items) == 5
    assert across_sections.total == 4


@pytest.mark.parametrize(
    "spec",
    [NO_FILTER, FlatFilter(sections={"person": ("Frau",)})],
)
@pytest.mark.asyncio
async def test_timeseries_buckets_sum_to_aggregate_counts(desk, spec):
    service = AnalyticsService()
    values = ["Bildung", "Arbeit", "Recht"]

    series = await service.timeseries("thema", values, spec, JAN_1, FEB_29, "week")
    aggregate = await service.aggregate("thema", spec, JAN_1, FEB_29)
    counts = {item.label: item.count for item in aggregate.items}

    assert len(series.labels) == 9
    for dataset in series.datasets:
        assert len(dataset.data) == len(series.labels)
        assert sum(dataset.data) == counts.get(dataset.label, 0)


@pytest.mark.asyncio
async def test_compare_applies_filter_to_values_and_totals(desk):
    periods = [
        Period(date(2024, 1, 1), date(2024, 1, 31), "Januar"),
        Period(date(2024, 2, 1), date(2024, 2, 29), "Februar"),
    ]

    result = await AnalyticsService().compare(
        periods, "thema", filters=FlatFilter(sections={"person": ("Frau",)})
    )

    assert [(d.label, d.data) for d in result.datasets] == [("Arbeit", [1, 0]), ("Bildung", [2, 1])]
    assert result.totals == [2, 1]


@pytest.mark.asyncio
async def test_bildung_and_arbeit_quarter(analytics_repo):
    bildung_days = (
        date(2024, 1, 2),
        date(2024, 1, 20),
        date(2024, 2, 3),
        date(2024, 3, 1),
        date(2024, 3, 31),
    )
    for day in bildung_days:
        analytics_repo.add_entry(day, thema="Bildung")
    for day in (date(2024, 1, 1), date(2024, 2, 14), date(2024, 3, 15)):
        analytics_repo.add_entry(day, thema="Arbeit")
    analytics_repo.add_entry(date(2024, 4, 1), thema="Bildung")

    result = await AnalyticsService().aggregate(
        "thema", start_date=date(2024, 1, 1), end_date=date(2024, 3, 31)
    )

    assert [(i.label, i.count) for i in result.items] == [("Bildung", 5), ("Arbeit", 3)]
    assert result.total == 8


@pytest.mark.asyncio
async def test_totals_fill_empty_day(analytics_repo):
    analytics_repo.add_entry(date(2024, 1, 1), kontaktart="Telefon")
    analytics_repo.add_entry(date(2024, 1, 3), kontaktart="Besuch")

    result = await AnalyticsService().totals(
        start_date=date(2024, 1, 1), end_date=date(2024, 1, 3), granularity="day"
    )

    assert result.labels == ["2024-01-01", "2024-01-02", "2024-01-03"]
    assert result.data == [1, 0, 1]
    assert result.total == 2
