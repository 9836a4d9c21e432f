"""Tests for point aggregation into buckets."""
import pytest

from geosearch.domain import AggregateRow, PointRow
from geosearch.services.bucketing import compute_bucket_key
from geosearch.services.clustering import aggregate_points, bucket_from_aggregate, sort_buckets


def point(id, lat, lng, price=1_000_000.0, bucket_key=None):
    return PointRow(id=id, lat=lat, lng=lng, price=price, bucket_key=bucket_key)


# =====================================================
# UNIT TESTS: Live Aggregation
# =====================================================

class TestAggregatePoints:
    """Tests for grouping raw points."""

    def test_centroid_and_member_bounds(self):
        """Centroid is the member mean; bounds cover members only."""
        points = [
            point(1, 19.4200, -99.1600),
            point(2, 19.4210, -99.1610),
            point(3, 19.4220, -99.1620),
        ]
        (bucket,) = aggregate_points(points, precision=4)

        assert bucket.count == 3
        assert bucket.lat == pytest.approx(19.4210)
        assert bucket.lng == pytest.approx(-99.1610)
        assert bucket.member_bounds.min_lat == 19.4200
        assert bucket.member_bounds.max_lat == 19.4220
        assert bucket.member_bounds.min_lng == -99.1620
        assert bucket.member_bounds.max_lng == -99.1600
        assert bucket.id == f"4:{compute_bucket_key(19.42, -99.16, 4)}"
        assert bucket.source == "live"

    def test_single_member_has_zero_span(self):
        (bucket,) = aggregate_points([point(1, 19.43, -99.13)], precision=6)
        assert bucket.member_bounds.lat_span == 0
        assert bucket.member_bounds.lng_span == 0

    def test_zero_price_is_counted(self):
        points = [point(1, 19.42, -99.16, price=0.0), point(2, 19.42, -99.16, price=200.0)]
        (bucket,) = aggregate_points(points, precision=4)
        assert bucket.min_price == 0.0
        assert bucket.max_price == 200.0
        assert bucket.avg_price == 100.0

    def test_missing_price_is_ignored(self):
        points = [point(1, 19.42, -99.16, price=None), point(2, 19.42, -99.16, price=300.0)]
        (bucket,) = aggregate_points(points, precision=4)
        assert bucket.count == 2
        assert bucket.min_price == 300.0
        assert bucket.avg_price == 300.0

    def test_all_prices_missing(self):
        (bucket,) = aggregate_points([point(1, 19.42, -99.16, price=None)], precision=4)
        assert bucket.min_price is None
        assert bucket.max_price is None
        assert bucket.avg_price is None

    def test_sorted_by_count_then_id(self):
        points = [
            point(1, 19.42, -99.16),
            point(2, 25.67, -100.31),
            point(3, 25.67, -100.31),
            point(4, 20.67, -103.35),
        ]
        buckets = aggregate_points(points, precision=3)
        assert [b.count for b in buckets] == [2, 1, 1]
        assert buckets[1].id < buckets[2].id

    def test_stored_bucket_key_is_used(self):
        """A precomputed key wins over recomputing from coordinates."""
        (bucket,) = aggregate_points([point(1, 19.42, -99.16, bucket_key="7_7")], precision=4)
        assert bucket.id == "4:7_7"

    def test_empty_input(self):
        assert aggregate_points([], precision=4) == []

    def test_counts_sum_to_input(self):
        points = [point(i, 19.3 + i * 0.003, -99.2 + i * 0.004) for i in range(200)]
        buckets = aggregate_points(points, precision=5)
        assert sum(b.count for b in buckets) == 200


# =====================================================
# UNIT TESTS: Precomputed Rows
# =====================================================

class TestBucketFromAggregate:
    """Tests for converting precomputed aggregate rows."""

    def test_conversion(self):
        row = AggregateRow(
            precision=4, bucket_key="110_-282", count=4,
            lat_sum=77.6, lng_sum=-396.8,
            min_lat=19.3, max_lat=19.5, min_lng=-99.3, max_lng=-99.1,
            min_price=100.0, max_price=700.0, price_sum=1200.0, price_count=3,
        )
        bucket = bucket_from_aggregate(row)
        assert bucket.id == "4:110_-282"
        assert bucket.lat == pytest.approx(19.4)
        assert bucket.lng == pytest.approx(-99.2)
        assert bucket.avg_price == 400.0
        assert bucket.source == "precomputed"

    def test_empty_row_is_skipped(self):
        row = AggregateRow(
            precision=4, bucket_key="1_1", count=0, lat_sum=0, lng_sum=0,
            min_lat=0, max_lat=0, min_lng=0, max_lng=0,
        )
        assert bucket_from_aggregate(row) is None


def test_sort_buckets_is_stable():
    buckets = aggregate_points([point(1, 19.42, -99.16), point(2, 25.67, -100.31)], precision=3)
    assert sort_buckets(buckets) == sort_buckets(list(reversed(buckets)))
