"""Plain value types shared by the search services.

These are detached from the ORM so query results can cross thread and
session boundaries safely.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Bounds:
    north: float
    south: float
    east: float
    west: float

    def contains(self, lat: float, lng: float) -> bool:
        return self.south <= lat <= self.north and self.west <= lng <= self.east

    def rounded(self, digits: int = 5) -> tuple[float, float, float, float]:
        return (
            round(self.north, digits),
            round(self.south, digits),
            round(self.east, digits),
            round(self.west, digits),
        )


@dataclass(frozen=True)
class SearchFilters:
    listing_type: Optional[str] = None
    property_type: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    min_bedrooms: Optional[int] = None
    max_bedrooms: Optional[int] = None
    min_bathrooms: Optional[int] = None
    max_bathrooms: Optional[int] = None
    min_area: Optional[float] = None
    max_area: Optional[float] = None

    def as_dict(self) -> Dict[str, Any]:
        """Only the filters that are set, in stable key order."""
        return {k: v for k, v in sorted(asdict(self).items()) if v is not None}

    def is_empty(self) -> bool:
        return not self.as_dict()


@dataclass(frozen=True)
class Cursor:
    """Keyset position: the (created_at, id) of a row."""

    created_at: datetime
    id: int

    def to_dict(self) -> Dict[str, Any]:
        return {"created_at": self.created_at.isoformat(), "id": self.id}


@dataclass(frozen=True)
class MemberBounds:
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    @property
    def lat_span(self) -> float:
        return self.max_lat - self.min_lat

    @property
    def lng_span(self) -> float:
        return self.max_lng - self.min_lng


@dataclass(frozen=True)
class Bucket:
    id: str
    precision: Optional[int]
    count: int
    lat: float
    lng: float
    member_bounds: Optional[MemberBounds]
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    avg_price: Optional[float] = None
    source: str = "live"


@dataclass(frozen=True)
class PointRow:
    """Raw map point tagged with its bucket key at the requested precision."""

    id: int
    lat: float
    lng: float
    price: Optional[float]
    bucket_key: Optional[str] = None
    listing_type: Optional[str] = None


@dataclass(frozen=True)
class ListingRow:
    id: int
    title: str
    lat: float
    lng: float
    price: Optional[float]
    currency: str
    listing_type: str
    property_type: str
    bedrooms: Optional[int]
    bathrooms: Optional[int]
    area_m2: Optional[float]
    neighborhood: Optional[str]
    city: Optional[str]
    state: Optional[str]
    created_at: datetime

    @property
    def cursor(self) -> Cursor:
        return Cursor(created_at=self.created_at, id=self.id)


@dataclass(frozen=True)
class AggregateRow:
    """Precomputed bucket aggregate as read from the listings store."""

    precision: int
    bucket_key: str
    count: int
    lat_sum: float
    lng_sum: float
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    price_sum: Optional[float] = None
    price_count: int = 0


@dataclass
class BucketBatch:
    """Map-side result of an aggregate source."""

    buckets: list
    source: str
    capped: bool = False
    scanned: int = 0
    precision: Optional[int] = None

    @property
    def total(self) -> int:
        return sum(b.count for b in self.buckets)
