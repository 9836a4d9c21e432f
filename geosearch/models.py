"""SQLAlchemy models for listings and precomputed geo-bucket aggregates.

Bucket keys for every supported precision are stored on the listing row so
that drill-down and live clustering group on exactly the same key.
"""
from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, Float, Numeric, DateTime, Index, UniqueConstraint
)

from geosearch.database import Base


SUPPORTED_PRECISIONS = (3, 4, 5, 6)


def get_current_time():
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


class Property(Base):
    """Geotagged listing owned by the listings store."""

    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    lat = Column(Float, nullable=False)
    lng = Column(Float, nullable=False)
    price = Column(Numeric(14, 2, asdecimal=False), nullable=True)
    currency = Column(String(3), nullable=False, default="MXN")
    listing_type = Column(String(16), nullable=False)   # sale | rent
    property_type = Column(String(32), nullable=False)  # house | apartment | land | office ...
    bedrooms = Column(Integer, nullable=True)
    bathrooms = Column(Integer, nullable=True)
    area_m2 = Column(Float, nullable=True)
    neighborhood = Column(String(255), nullable=True)
    city = Column(String(255), nullable=True)
    state = Column(String(255), nullable=True)
    status = Column(String(16), nullable=False, default="active")
    created_at = Column(DateTime(timezone=True), nullable=False, default=get_current_time)

    # Grid bucket keys, one per precision
    bucket_p3 = Column(String(32), nullable=False)
    bucket_p4 = Column(String(32), nullable=False)
    bucket_p5 = Column(String(32), nullable=False)
    bucket_p6 = Column(String(32), nullable=False)

    __table_args__ = (
        Index("ix_properties_status_lat_lng", "status", "lat", "lng"),
        Index("ix_properties_status_created_id", "status", "created_at", "id"),
        Index("ix_properties_bucket_p3", "bucket_p3"),
        Index("ix_properties_bucket_p4", "bucket_p4"),
        Index("ix_properties_bucket_p5", "bucket_p5"),
        Index("ix_properties_bucket_p6", "bucket_p6"),
    )

    def __repr__(self):
        return f"<Property {self.id}: {self.title}>"


def bucket_column(precision: int):
    """Return the Property column holding bucket keys for a precision."""
    if precision not in SUPPORTED_PRECISIONS:
        raise ValueError(f"Unsupported precision: {precision}")
    return getattr(Property, f"bucket_p{precision}")


class GeoBucketAggregate(Base):
    """Precomputed aggregate of active listings for one grid cell."""

    __tablename__ = "geo_bucket_aggregates"

    id = Column(Integer, primary_key=True, index=True)
    precision = Column(Integer, nullable=False)
    bucket_key = Column(String(32), nullable=False)
    count = Column(Integer, nullable=False, default=0)
    lat_sum = Column(Float, nullable=False, default=0.0)
    lng_sum = Column(Float, nullable=False, default=0.0)
    min_lat = Column(Float, nullable=False)
    max_lat = Column(Float, nullable=False)
    min_lng = Column(Float, nullable=False)
    max_lng = Column(Float, nullable=False)
    min_price = Column(Float, nullable=True)
    max_price = Column(Float, nullable=True)
    price_sum = Column(Float, nullable=True)
    price_count = Column(Integer, nullable=False, default=0)
    refreshed_at = Column(DateTime(timezone=True), default=get_current_time)

    __table_args__ = (
        UniqueConstraint("precision", "bucket_key", name="uq_geo_bucket_aggregates_key"),
        Index("ix_geo_bucket_aggregates_precision", "precision"),
    )

    def __repr__(self):
        return f"<GeoBucketAggregate p{self.precision} {self.bucket_key}: {self.count}>"


class ListingCountSnapshot(Base):
    """Cheap precomputed row count per listing status."""

    __tablename__ = "listing_count_snapshots"

    status = Column(String(16), primary_key=True)
    count = Column(Integer, nullable=False, default=0)
    refreshed_at = Column(DateTime(timezone=True), default=get_current_time)
