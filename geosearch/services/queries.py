"""Dataset query layer: one filtered predicate, two concurrent reads.

Every query against the listings store is built from a ``SearchPredicate``
through ``apply_predicate`` so that the map payload, the list payload and the
count are always drawn from the same filtered set.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, Sequence, TypeVar, Union

from sqlalchemy import and_, func, or_

from geosearch.config import settings
from geosearch.domain import (
    AggregateRow, Bounds, Cursor, ListingRow, PointRow, SearchFilters
)
from geosearch.errors import GeoSearchError, UpstreamQueryError, UpstreamTimeoutError
from geosearch.models import GeoBucketAggregate, ListingCountSnapshot, Property, bucket_column
from geosearch.services.pagination import (
    DIRECTION_NEXT, KeysetPage, OffsetPage, build_keyset_page, scans_descending
)
from geosearch.services.validation import PageSpec


logger = logging.getLogger(__name__)

T = TypeVar("T")

ACTIVE_STATUS = "active"


@dataclass(frozen=True)
class SearchPredicate:
    """The complete filter applied to every query of one request."""

    bounds: Optional[Bounds] = None
    filters: SearchFilters = field(default_factory=SearchFilters)
    bucket: Optional[tuple[int, str]] = None
    status: str = ACTIVE_STATUS

    @property
    def is_unfiltered(self) -> bool:
        """True when only status and viewport restrict the set."""
        return self.filters.is_empty() and self.bucket is None


@dataclass(frozen=True)
class ListResult:
    page: Union[KeysetPage, OffsetPage]
    total: int


class QueryExecutor(Protocol):
    """Read interface to the listings store."""

    def fetch_points(
        self, predicate: SearchPredicate, precision: Optional[int], limit: int
    ) -> list[PointRow]: ...

    def fetch_page(
        self, predicate: SearchPredicate, limit: int, offset: int
    ) -> tuple[list[ListingRow], int]: ...

    def fetch_keyset_page(
        self, predicate: SearchPredicate, cursor: Optional[Cursor], direction: str, limit: int
    ) -> tuple[list[ListingRow], int]: ...

    def fetch_precomputed_buckets(
        self, bounds: Bounds, precision: int
    ) -> Optional[list[AggregateRow]]: ...

    def estimate_total(self, status: str = ACTIVE_STATUS) -> Optional[int]: ...


# ============== SQL ==============

def apply_predicate(query, predicate: SearchPredicate):
    """Apply status, viewport, bucket and filter restrictions to a Property query."""
    query = query.filter(Property.status == predicate.status)

    if predicate.bucket is not None:
        precision, bucket_key = predicate.bucket
        query = query.filter(bucket_column(precision) == bucket_key)
    elif predicate.bounds is not None:
        b = predicate.bounds
        query = query.filter(
            Property.lat >= b.south,
            Property.lat <= b.north,
            Property.lng >= b.west,
            Property.lng <= b.east,
        )

    f = predicate.filters
    if f.listing_type is not None:
        query = query.filter(Property.listing_type == f.listing_type)
    if f.property_type is not None:
        query = query.filter(Property.property_type == f.property_type)
    if f.min_price is not None:
        query = query.filter(Property.price >= f.min_price)
    if f.max_price is not None:
        query = query.filter(Property.price <= f.max_price)
    if f.min_bedrooms is not None:
        query = query.filter(Property.bedrooms >= f.min_bedrooms)
    if f.max_bedrooms is not None:
        query = query.filter(Property.bedrooms <= f.max_bedrooms)
    if f.min_bathrooms is not None:
        query = query.filter(Property.bathrooms >= f.min_bathrooms)
    if f.max_bathrooms is not None:
        query = query.filter(Property.bathrooms <= f.max_bathrooms)
    if f.min_area is not None:
        query = query.filter(Property.area_m2 >= f.min_area)
    if f.max_area is not None:
        query = query.filter(Property.area_m2 <= f.max_area)
    return query


def apply_keyset(query, cursor: Optional[Cursor], direction: str):
    """Restrict to rows after the cursor in scan order and order the scan."""
    descending = scans_descending(direction)
    if cursor is not None:
        if descending:
            query = query.filter(or_(
                Property.created_at < cursor.created_at,
                and_(Property.created_at == cursor.created_at, Property.id < cursor.id),
            ))
        else:
            query = query.filter(or_(
                Property.created_at > cursor.created_at,
                and_(Property.created_at == cursor.created_at, Property.id > cursor.id),
            ))
    if descending:
        return query.order_by(Property.created_at.desc(), Property.id.desc())
    return query.order_by(Property.created_at.asc(), Property.id.asc())


def to_listing_row(prop: Property) -> ListingRow:
    return ListingRow(
        id=prop.id,
        title=prop.title,
        lat=prop.lat,
        lng=prop.lng,
        price=prop.price,
        currency=prop.currency,
        listing_type=prop.listing_type,
        property_type=prop.property_type,
        bedrooms=prop.bedrooms,
        bathrooms=prop.bathrooms,
        area_m2=prop.area_m2,
        neighborhood=prop.neighborhood,
        city=prop.city,
        state=prop.state,
        created_at=prop.created_at,
    )


class SqlAlchemyQueryExecutor:
    """QueryExecutor over a SQLAlchemy session factory.

    Each call opens its own session so calls can run on separate threads.
    """

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def fetch_points(self, predicate, precision, limit):
        columns = [Property.id, Property.lat, Property.lng, Property.price, Property.listing_type]
        if precision is not None:
            columns.append(bucket_column(precision))
        with self.session_factory() as db:
            query = apply_predicate(db.query(*columns), predicate)
            rows = query.order_by(Property.id).limit(limit).all()
        return [
            PointRow(
                id=row[0],
                lat=row[1],
                lng=row[2],
                price=row[3],
                listing_type=row[4],
                bucket_key=row[5] if precision is not None else None,
            )
            for row in rows
        ]

    def fetch_page(self, predicate, limit, offset):
        with self.session_factory() as db:
            total = self._count(db, predicate)
            props = (
                apply_predicate(db.query(Property), predicate)
                .order_by(Property.created_at.desc(), Property.id.desc())
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [to_listing_row(p) for p in props], total

    def fetch_keyset_page(self, predicate, cursor, direction, limit):
        with self.session_factory() as db:
            total = self._count(db, predicate)
            query = apply_keyset(apply_predicate(db.query(Property), predicate), cursor, direction)
            props = query.limit(limit + 1).all()
            return [to_listing_row(p) for p in props], total

    def fetch_precomputed_buckets(self, bounds, precision):
        with self.session_factory() as db:
            available = db.query(
                db.query(GeoBucketAggregate)
                .filter(GeoBucketAggregate.precision == precision)
                .exists()
            ).scalar()
            if not available:
                return None

            # A cell is visible when its member bounds overlap the viewport
            rows = (
                db.query(GeoBucketAggregate)
                .filter(
                    GeoBucketAggregate.precision == precision,
                    GeoBucketAggregate.count > 0,
                    GeoBucketAggregate.min_lat <= bounds.north,
                    GeoBucketAggregate.max_lat >= bounds.south,
                    GeoBucketAggregate.min_lng <= bounds.east,
                    GeoBucketAggregate.max_lng >= bounds.west,
                )
                .order_by(GeoBucketAggregate.bucket_key)
                .all()
            )
            return [
                AggregateRow(
                    precision=row.precision,
                    bucket_key=row.bucket_key,
                    count=row.count,
                    lat_sum=row.lat_sum,
                    lng_sum=row.lng_sum,
                    min_lat=row.min_lat,
                    max_lat=row.max_lat,
                    min_lng=row.min_lng,
                    max_lng=row.max_lng,
                    min_price=row.min_price,
                    max_price=row.max_price,
                    price_sum=row.price_sum,
                    price_count=row.price_count,
                )
                for row in rows
            ]

    def estimate_total(self, status=ACTIVE_STATUS):
        with self.session_factory() as db:
            snapshot = db.get(ListingCountSnapshot, status)
            return snapshot.count if snapshot is not None else None

    @staticmethod
    def _count(db, predicate: SearchPredicate) -> int:
        return apply_predicate(db.query(func.count(Property.id)), predicate).scalar() or 0


# ============== Concurrency ==============

class DatasetQueryLayer:
    """Runs the map-side and list-side reads concurrently under one timeout."""

    def __init__(self, executor: QueryExecutor, timeout: float = None):
        self.executor = executor
        self.timeout = settings.UPSTREAM_TIMEOUT_SECONDS if timeout is None else timeout

    async def fetch(
        self,
        predicate: SearchPredicate,
        map_call: Callable[[QueryExecutor], T],
        paging: PageSpec,
    ) -> tuple[T, ListResult]:
        """
        Run the map call and the list query for the same predicate.

        Results are only returned once both have completed; any failure fails
        the whole fetch.
        """
        map_result, list_result = await self._gather(
            lambda: map_call(self.executor),
            lambda: self.read_list(predicate, paging),
        )
        return map_result, list_result

    async def fetch_list(self, predicate: SearchPredicate, paging: PageSpec) -> ListResult:
        (list_result,) = await self._gather(lambda: self.read_list(predicate, paging))
        return list_result

    async def run(self, call: Callable[[QueryExecutor], T]) -> T:
        """Run one blocking call under the same timeout and error mapping."""
        (result,) = await self._gather(lambda: call(self.executor))
        return result

    def read_list(self, predicate: SearchPredicate, paging: PageSpec) -> ListResult:
        """Blocking list read: count plus one page, keyset unless a page number was given."""
        if paging.is_offset:
            rows, total = self.executor.fetch_page(predicate, paging.limit, paging.offset)
            page = OffsetPage(items=rows, page=paging.page, limit=paging.limit, total=total)
            return ListResult(page=page, total=total)

        direction = paging.direction or DIRECTION_NEXT
        rows, total = self.executor.fetch_keyset_page(
            predicate, paging.cursor, direction, paging.limit
        )
        return ListResult(page=build_keyset_page(rows, paging.limit, direction), total=total)

    async def _gather(self, *calls: Callable[[], object]) -> Sequence[object]:
        tasks = [asyncio.ensure_future(asyncio.to_thread(call)) for call in calls]
        try:
            return await asyncio.wait_for(asyncio.gather(*tasks), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error("Listings store timed out", extra={"timeout_s": self.timeout})
            raise UpstreamTimeoutError(f"listings store exceeded {self.timeout}s") from None
        except GeoSearchError:
            raise
        except Exception as exc:
            logger.error("Listings store call failed", exc_info=True)
            raise UpstreamQueryError(str(exc)) from exc
        finally:
            # Advisory: a worker thread finishes its current statement regardless
            for task in tasks:
                if not task.done():
                    task.cancel()
