"""Placeholder grid clusters for when no real aggregate is available."""

from __future__ import annotations

from dataclasses import dataclass

from geosearch.config import settings
from geosearch.domain import Bounds, Bucket, MemberBounds


@dataclass(frozen=True)
class Region:
    """Geographic plausibility box for the deployment."""

    south: float
    north: float
    west: float
    east: float

    def contains(self, lat: float, lng: float) -> bool:
        return self.south <= lat <= self.north and self.west <= lng <= self.east

    @classmethod
    def from_settings(cls) -> "Region":
        return cls(
            south=settings.REGION_SOUTH,
            north=settings.REGION_NORTH,
            west=settings.REGION_WEST,
            east=settings.REGION_EAST,
        )


def grid_size_for_zoom(zoom: int) -> int:
    if zoom <= 5:
        return 3
    if zoom <= 7:
        return 4
    return 5


def generate_synthetic_buckets(
    bounds: Bounds,
    zoom: int,
    total: int,
    region: Region = None,
) -> list[Bucket]:
    """
    Spread an approximate total over an N×N grid covering the viewport.

    Each cell receives total // N², the remainder going one apiece to the
    first cells in row order. Cells centred outside the deployment region are
    dropped, so the emitted counts may sum to less than ``total``. Nothing is
    emitted above SYNTHETIC_MAX_ZOOM or for a non-positive total.
    """
    if zoom > settings.SYNTHETIC_MAX_ZOOM or total <= 0:
        return []
    region = region or Region.from_settings()

    n = grid_size_for_zoom(zoom)
    lat_step = (bounds.north - bounds.south) / n
    lng_step = (bounds.east - bounds.west) / n
    base, remainder = divmod(total, n * n)

    buckets = []
    for i in range(n):
        for j in range(n):
            count = base + (1 if i * n + j < remainder else 0)
            south = bounds.south + lat_step * i
            west = bounds.west + lng_step * j
            lat = south + lat_step / 2
            lng = west + lng_step / 2
            if count <= 0 or not region.contains(lat, lng):
                continue
            buckets.append(Bucket(
                id=f"synthetic-{i}-{j}",
                precision=None,
                count=count,
                lat=lat,
                lng=lng,
                member_bounds=MemberBounds(south, south + lat_step, west, west + lng_step),
                source="synthetic",
            ))
    return buckets
