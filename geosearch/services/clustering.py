"""Group raw map points into geo-buckets."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from geosearch.domain import AggregateRow, Bucket, MemberBounds, PointRow
from geosearch.services.bucketing import bucket_id, compute_bucket_key


@dataclass
class _Accumulator:
    count: int = 0
    lat_sum: float = 0.0
    lng_sum: float = 0.0
    min_lat: float = float("inf")
    max_lat: float = float("-inf")
    min_lng: float = float("inf")
    max_lng: float = float("-inf")
    prices: list = field(default_factory=list)

    def add(self, point: PointRow) -> None:
        self.count += 1
        self.lat_sum += point.lat
        self.lng_sum += point.lng
        self.min_lat = min(self.min_lat, point.lat)
        self.max_lat = max(self.max_lat, point.lat)
        self.min_lng = min(self.min_lng, point.lng)
        self.max_lng = max(self.max_lng, point.lng)
        # None marks a missing price; zero is a real price
        if point.price is not None:
            self.prices.append(point.price)


def aggregate_points(
    points: Iterable[PointRow],
    precision: int,
    source: str = "live",
) -> list[Bucket]:
    """
    Group points by bucket key and compute per-bucket statistics.

    Points without a precomputed key are keyed from their coordinates. The
    centroid is the mean member position and member bounds cover the actual
    members, not the viewport.

    Returns:
        Buckets sorted by count descending, then by id.
    """
    groups: dict[str, _Accumulator] = {}
    for point in points:
        key = point.bucket_key or compute_bucket_key(point.lat, point.lng, precision)
        groups.setdefault(key, _Accumulator()).add(point)

    buckets = [_to_bucket(precision, key, acc, source) for key, acc in groups.items()]
    return sort_buckets(buckets)


def bucket_from_aggregate(row: AggregateRow) -> Optional[Bucket]:
    """Convert a precomputed aggregate row into a bucket; empty rows yield None."""
    if row.count <= 0:
        return None
    avg_price = None
    if row.price_count and row.price_sum is not None:
        avg_price = row.price_sum / row.price_count
    return Bucket(
        id=bucket_id(row.precision, row.bucket_key),
        precision=row.precision,
        count=row.count,
        lat=row.lat_sum / row.count,
        lng=row.lng_sum / row.count,
        member_bounds=MemberBounds(row.min_lat, row.max_lat, row.min_lng, row.max_lng),
        min_price=row.min_price,
        max_price=row.max_price,
        avg_price=avg_price,
        source="precomputed",
    )


def sort_buckets(buckets: Iterable[Bucket]) -> list[Bucket]:
    """Largest clusters first; id breaks ties so the order is stable."""
    return sorted(buckets, key=lambda b: (-b.count, b.id))


def _to_bucket(precision: int, key: str, acc: _Accumulator, source: str) -> Bucket:
    prices = acc.prices
    return Bucket(
        id=bucket_id(precision, key),
        precision=precision,
        count=acc.count,
        lat=acc.lat_sum / acc.count,
        lng=acc.lng_sum / acc.count,
        member_bounds=MemberBounds(acc.min_lat, acc.max_lat, acc.min_lng, acc.max_lng),
        min_price=min(prices) if prices else None,
        max_price=max(prices) if prices else None,
        avg_price=sum(prices) / len(prices) if prices else None,
        source=source,
    )
