"""Zoom → mode/precision resolution and grid bucket keys."""
import math
import re

from geosearch.config import settings
from geosearch.errors import ValidationError
from geosearch.models import SUPPORTED_PRECISIONS


MODE_CLUSTERS = "clusters"
MODE_PROPERTIES = "properties"

MIN_ZOOM = 0
MAX_ZOOM = 22

# (lat_degrees, lng_degrees) per cell, matching geohash cell dimensions
CELL_SIZES = {
    3: (1.40625, 1.40625),
    4: (0.17578125, 0.3515625),
    5: (0.0439453125, 0.0439453125),
    6: (0.0054931640625, 0.010986328125),
}

_BUCKET_ID_RE = re.compile(r"^(?P<precision>\d+):(?P<lat>-?\d+)_(?P<lng>-?\d+)$")


def precision_for_zoom(zoom: int) -> int:
    """
    Map a zoom level to a bucket precision.

    Coarse cells at low zoom, finer cells as the map zooms in. The steps come
    from settings and are applied in ascending zoom order.
    """
    for max_zoom, precision in sorted(settings.PRECISION_BREAKPOINTS):
        if zoom <= max_zoom:
            return precision
    return settings.MAX_PRECISION


def mode_for_zoom(zoom: int) -> str:
    """Individual pins at or above the threshold, clusters below it."""
    if zoom >= settings.PROPERTIES_ZOOM_THRESHOLD:
        return MODE_PROPERTIES
    return MODE_CLUSTERS


def resolve_zoom(zoom: int) -> tuple[str, int]:
    """
    Resolve (mode, precision) for a zoom level.

    Precision is returned for both modes; callers ignore it for pins.
    """
    return mode_for_zoom(zoom), precision_for_zoom(zoom)


def compute_bucket_key(lat: float, lng: float, precision: int) -> str:
    """
    Compute the grid bucket key of a coordinate at a precision.

    Uses floor division so every point belongs to exactly one cell, including
    negative coordinates.

    Examples:
        (19.4326, -99.1332, 5) → "442_-2256"
    """
    lat_size, lng_size = CELL_SIZES[precision]
    lat_index = math.floor(lat / lat_size)
    lng_index = math.floor(lng / lng_size)
    return f"{lat_index}_{lng_index}"


def compute_bucket_keys(lat: float, lng: float) -> dict[int, str]:
    """Bucket keys for every supported precision."""
    return {p: compute_bucket_key(lat, lng, p) for p in SUPPORTED_PRECISIONS}


def bucket_id(precision: int, bucket_key: str) -> str:
    return f"{precision}:{bucket_key}"


def parse_bucket_id(value: str, field: str = "drill_bucket_id") -> tuple[int, str]:
    """Split a public bucket id into (precision, bucket_key)."""
    if not isinstance(value, str):
        raise ValidationError(field, "must be a string")
    match = _BUCKET_ID_RE.match(value.strip())
    if not match:
        raise ValidationError(field, "expected '<precision>:<lat_index>_<lng_index>'")
    precision = int(match.group("precision"))
    if precision not in CELL_SIZES:
        raise ValidationError(field, f"unsupported precision {precision}")
    return precision, f"{int(match.group('lat'))}_{int(match.group('lng'))}"


def bucket_cell_bounds(precision: int, bucket_key: str) -> tuple[float, float, float, float]:
    """Return (north, south, east, west) of a grid cell."""
    lat_size, lng_size = CELL_SIZES[precision]
    lat_index, lng_index = (int(part) for part in bucket_key.split("_"))
    south = lat_index * lat_size
    west = lng_index * lng_size
    return south + lat_size, south, west + lng_size, west
