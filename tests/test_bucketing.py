"""Tests for zoom resolution and grid bucket keys."""
import pytest

from geosearch.errors import ValidationError
from geosearch.services.bucketing import (
    MAX_ZOOM,
    MIN_ZOOM,
    MODE_CLUSTERS,
    MODE_PROPERTIES,
    bucket_cell_bounds,
    bucket_id,
    compute_bucket_key,
    compute_bucket_keys,
    mode_for_zoom,
    parse_bucket_id,
    precision_for_zoom,
    resolve_zoom,
)


# =====================================================
# UNIT TESTS: Zoom Resolution
# =====================================================

class TestZoomResolution:
    """Tests for zoom → (mode, precision)."""

    def test_precision_is_monotonic(self):
        """Zooming in never coarsens the grid."""
        precisions = [precision_for_zoom(z) for z in range(MIN_ZOOM, MAX_ZOOM + 1)]
        assert precisions == sorted(precisions)

    @pytest.mark.parametrize("zoom,expected", [
        (0, 3), (8, 3), (9, 4), (11, 4), (12, 5), (13, 5), (14, 6), (22, 6),
    ])
    def test_precision_steps(self, zoom, expected):
        assert precision_for_zoom(zoom) == expected

    def test_properties_threshold(self):
        assert mode_for_zoom(13) == MODE_CLUSTERS
        assert mode_for_zoom(14) == MODE_PROPERTIES
        assert mode_for_zoom(22) == MODE_PROPERTIES

    def test_resolve_is_deterministic(self):
        """Same zoom, same answer, every time."""
        for zoom in range(MIN_ZOOM, MAX_ZOOM + 1):
            assert resolve_zoom(zoom) == resolve_zoom(zoom)

    def test_resolve_returns_mode_and_precision(self):
        assert resolve_zoom(10) == (MODE_CLUSTERS, 4)
        assert resolve_zoom(16) == (MODE_PROPERTIES, 6)


# =====================================================
# UNIT TESTS: Bucket Keys
# =====================================================

class TestBucketKeys:
    """Tests for grid bucket key computation."""

    def test_known_key(self):
        assert compute_bucket_key(19.4326, -99.1332, 5) == "442_-2256"

    def test_negative_coordinates_use_floor(self):
        """Cells just below zero do not collapse into cell 0."""
        assert compute_bucket_key(-0.001, -0.001, 3) == "-1_-1"
        assert compute_bucket_key(0.001, 0.001, 3) == "0_0"

    def test_nearby_points_share_bucket(self):
        assert compute_bucket_key(19.4201, -99.1601, 4) == compute_bucket_key(19.4205, -99.1607, 4)

    def test_finer_precision_splits_cells(self):
        a = (19.4201, -99.1601)
        b = (19.4330, -99.1330)
        assert compute_bucket_key(*a, 3) == compute_bucket_key(*b, 3)
        assert compute_bucket_key(*a, 6) != compute_bucket_key(*b, 6)

    def test_keys_for_every_precision(self):
        keys = compute_bucket_keys(19.4326, -99.1332)
        assert set(keys) == {3, 4, 5, 6}
        assert keys[5] == "442_-2256"

    def test_cell_bounds_contain_point(self):
        lat, lng = 19.4326, -99.1332
        for precision in (3, 4, 5, 6):
            north, south, east, west = bucket_cell_bounds(
                precision, compute_bucket_key(lat, lng, precision)
            )
            assert south <= lat < north
            assert west <= lng < east


# =====================================================
# UNIT TESTS: Bucket Ids
# =====================================================

class TestBucketIds:
    """Tests for public bucket id parsing."""

    def test_round_trip(self):
        public_id = bucket_id(5, "442_-2256")
        assert public_id == "5:442_-2256"
        assert parse_bucket_id(public_id) == (5, "442_-2256")

    @pytest.mark.parametrize("value", ["", "garbage", "5:442", "5-442_-2256", ":1_2", "5:a_b"])
    def test_malformed_ids_rejected(self, value):
        with pytest.raises(ValidationError) as exc_info:
            parse_bucket_id(value)
        assert exc_info.value.field == "drill_bucket_id"

    def test_unsupported_precision_rejected(self):
        with pytest.raises(ValidationError):
            parse_bucket_id("9:1_2")

    def test_non_string_rejected(self):
        with pytest.raises(ValidationError):
            parse_bucket_id(42)
