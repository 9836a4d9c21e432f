"""Tests for aggregate source selection."""
from geosearch.domain import AggregateRow, Bounds, SearchFilters
from geosearch.services.queries import SearchPredicate
from geosearch.services.sources import (
    LiveGroupBySource,
    PrecomputedSource,
    SyntheticSource,
    default_sources,
    select_buckets,
)
from geosearch.services.synthetic import Region

from conftest import CDMX_BOUNDS, StubExecutor, make_points


BOUNDS = Bounds(**CDMX_BOUNDS)
UNFILTERED = SearchPredicate(bounds=BOUNDS)
FILTERED = SearchPredicate(bounds=BOUNDS, filters=SearchFilters(listing_type="rent"))


def aggregate_row(key="110_-283", count=7):
    return AggregateRow(
        precision=4, bucket_key=key, count=count,
        lat_sum=19.42 * count, lng_sum=-99.16 * count,
        min_lat=19.41, max_lat=19.43, min_lng=-99.17, max_lng=-99.15,
    )


class TestSourceSelection:
    """Tests for the precomputed → synthetic → live order."""

    def test_precomputed_preferred_when_unfiltered(self):
        executor = StubExecutor(aggregates=[aggregate_row()], points=make_points(3))
        batch = select_buckets(default_sources(executor), BOUNDS, 10, 4, UNFILTERED)
        assert batch.source == "precomputed"
        assert batch.total == 7
        assert "fetch_points" not in executor.calls

    def test_filters_force_live(self):
        executor = StubExecutor(aggregates=[aggregate_row()], estimate=10**6, points=make_points(3))
        batch = select_buckets(default_sources(executor), BOUNDS, 5, 3, FILTERED)
        assert batch.source == "live"
        assert batch.total == 3
        assert "fetch_precomputed_buckets" not in executor.calls
        assert "estimate_total" not in executor.calls

    def test_drill_restriction_forces_live(self):
        executor = StubExecutor(aggregates=[aggregate_row()], points=make_points(2))
        predicate = SearchPredicate(bounds=BOUNDS, bucket=(4, "110_-283"))
        assert select_buckets(default_sources(executor), BOUNDS, 10, 4, predicate).source == "live"

    def test_synthetic_for_large_unaggregated_set(self):
        country = Bounds(north=30.0, south=15.0, east=-88.0, west=-115.0)
        executor = StubExecutor(aggregates=None, estimate=2_000_000)
        batch = select_buckets(default_sources(executor), country, 5, 3, SearchPredicate(bounds=country))
        assert batch.source == "synthetic"
        assert batch.capped
        assert "fetch_points" not in executor.calls

    def test_small_estimate_goes_live(self):
        executor = StubExecutor(aggregates=None, estimate=50, points=make_points(4))
        batch = select_buckets(default_sources(executor), BOUNDS, 5, 3, UNFILTERED)
        assert batch.source == "live"

    def test_synthetic_skipped_above_its_zoom(self):
        executor = StubExecutor(aggregates=None, estimate=2_000_000, points=make_points(4))
        batch = select_buckets(default_sources(executor), BOUNDS, 12, 5, UNFILTERED)
        assert batch.source == "live"


class TestLiveGroupBy:
    """Tests for the capped live source."""

    def test_cap_detected(self):
        executor = StubExecutor(points=make_points(8))
        batch = LiveGroupBySource(executor, cap=5).fetch_buckets(BOUNDS, 10, 4, UNFILTERED)
        assert batch.capped
        assert batch.scanned == 5
        assert batch.total == 5

    def test_under_cap(self):
        executor = StubExecutor(points=make_points(5))
        batch = LiveGroupBySource(executor, cap=5).fetch_buckets(BOUNDS, 10, 4, UNFILTERED)
        assert not batch.capped
        assert batch.total == 5


def test_precomputed_absent_returns_none():
    executor = StubExecutor(aggregates=None)
    assert PrecomputedSource(executor).fetch_buckets(BOUNDS, 10, 4, UNFILTERED) is None


def test_precomputed_without_visible_rows_falls_through_to_live():
    executor = StubExecutor(aggregates=[], points=make_points(3))
    assert PrecomputedSource(executor).fetch_buckets(BOUNDS, 10, 4, UNFILTERED) is None

    batch = select_buckets(default_sources(executor), BOUNDS, 10, 4, UNFILTERED)
    assert batch.source == "live"
    assert batch.total == 3


def test_synthetic_outside_region_returns_none():
    executor = StubExecutor(estimate=2_000_000)
    source = SyntheticSource(executor, threshold=100, region=Region(0.0, 1.0, 0.0, 1.0))
    assert source.fetch_buckets(BOUNDS, 5, 3, UNFILTERED) is None
