"""Listings store write helpers: new listings and aggregate refresh."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from geosearch.models import (
    SUPPORTED_PRECISIONS,
    GeoBucketAggregate,
    ListingCountSnapshot,
    Property,
    bucket_column,
    get_current_time,
)
from geosearch.services.bucketing import compute_bucket_keys


logger = logging.getLogger(__name__)


def create_property(
    db: Session,
    title: str,
    lat: float,
    lng: float,
    price: Optional[float],
    listing_type: str,
    property_type: str,
    bedrooms: Optional[int] = None,
    bathrooms: Optional[int] = None,
    area_m2: Optional[float] = None,
    neighborhood: Optional[str] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
    status: str = "active",
    currency: str = "MXN",
    created_at: Optional[datetime] = None,
    commit: bool = True,
) -> Property:
    """
    Create a listing and stamp its bucket key at every precision.

    Keys are computed once here so live clustering and drill-down group on
    exactly the same cell.
    """
    keys = compute_bucket_keys(lat, lng)
    property_obj = Property(
        title=title,
        lat=lat,
        lng=lng,
        price=price,
        currency=currency,
        listing_type=listing_type,
        property_type=property_type,
        bedrooms=bedrooms,
        bathrooms=bathrooms,
        area_m2=area_m2,
        neighborhood=neighborhood,
        city=city,
        state=state,
        status=status,
        created_at=created_at or get_current_time(),
        **{f"bucket_p{p}": key for p, key in keys.items()},
    )
    db.add(property_obj)

    if commit:
        db.commit()
        db.refresh(property_obj)

    return property_obj


def rebuild_bucket_aggregates(db: Session, status: str = "active") -> dict:
    """
    Recompute precomputed bucket aggregates and the row-count snapshot.

    Normally run by an external scheduler; exposed for seeding and tests.

    Returns:
        Number of aggregate rows written per precision, plus the snapshot count.
    """
    refreshed_at = get_current_time()
    db.query(GeoBucketAggregate).delete(synchronize_session=False)

    written = {}
    for precision in SUPPORTED_PRECISIONS:
        column = bucket_column(precision)
        rows = (
            db.query(
                column,
                func.count(Property.id),
                func.sum(Property.lat),
                func.sum(Property.lng),
                func.min(Property.lat),
                func.max(Property.lat),
                func.min(Property.lng),
                func.max(Property.lng),
                func.min(Property.price),
                func.max(Property.price),
                func.sum(Property.price),
                func.count(Property.price),
            )
            .filter(Property.status == status)
            .group_by(column)
            .all()
        )
        for row in rows:
            db.add(GeoBucketAggregate(
                precision=precision,
                bucket_key=row[0],
                count=row[1],
                lat_sum=row[2],
                lng_sum=row[3],
                min_lat=row[4],
                max_lat=row[5],
                min_lng=row[6],
                max_lng=row[7],
                min_price=row[8],
                max_price=row[9],
                price_sum=row[10],
                price_count=row[11],
                refreshed_at=refreshed_at,
            ))
        written[precision] = len(rows)

    total = db.query(func.count(Property.id)).filter(Property.status == status).scalar() or 0
    snapshot = db.get(ListingCountSnapshot, status)
    if snapshot is None:
        snapshot = ListingCountSnapshot(status=status)
        db.add(snapshot)
    snapshot.count = total
    snapshot.refreshed_at = refreshed_at

    db.commit()
    logger.info("Bucket aggregates rebuilt", extra={"aggregates": written, "listings": total})
    return {"aggregates": written, "listings": total}


def set_count_snapshot(db: Session, count: int, status: str = "active") -> ListingCountSnapshot:
    """Overwrite the cheap row-count estimate for a status."""
    snapshot = db.get(ListingCountSnapshot, status)
    if snapshot is None:
        snapshot = ListingCountSnapshot(status=status)
        db.add(snapshot)
    snapshot.count = count
    snapshot.refreshed_at = get_current_time()
    db.commit()
    return snapshot
