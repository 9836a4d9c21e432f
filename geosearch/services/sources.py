"""Aggregate sources for the cluster map.

Three interchangeable strategies produce buckets for a viewport: precomputed
aggregates, a live group-by over raw points, and synthetic grid placeholders.
``select_buckets`` picks one by availability.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from geosearch.config import settings
from geosearch.domain import Bounds, BucketBatch
from geosearch.services.clustering import aggregate_points, bucket_from_aggregate, sort_buckets
from geosearch.services.queries import QueryExecutor, SearchPredicate
from geosearch.services.synthetic import Region, generate_synthetic_buckets


logger = logging.getLogger(__name__)

SOURCE_PRECOMPUTED = "precomputed"
SOURCE_LIVE = "live"
SOURCE_SYNTHETIC = "synthetic"


class AggregateSource(Protocol):
    name: str

    def fetch_buckets(
        self, bounds: Bounds, zoom: int, precision: int, predicate: SearchPredicate
    ) -> Optional[BucketBatch]:
        """Return buckets, or None when this source cannot serve the request."""


class PrecomputedSource:
    """Reads refreshed per-cell aggregates; only valid for unfiltered searches."""

    name = SOURCE_PRECOMPUTED

    def __init__(self, executor: QueryExecutor):
        self.executor = executor

    def fetch_buckets(self, bounds, zoom, precision, predicate):
        if not predicate.is_unfiltered:
            return None
        rows = self.executor.fetch_precomputed_buckets(bounds, precision)
        if not rows:
            return None
        buckets = [b for b in (bucket_from_aggregate(row) for row in rows) if b is not None]
        if not buckets:
            return None
        return BucketBatch(
            buckets=sort_buckets(buckets),
            source=self.name,
            scanned=len(rows),
            precision=precision,
        )


class LiveGroupBySource:
    """Groups raw points in process, capped at MAX_RAW_POINTS."""

    name = SOURCE_LIVE

    def __init__(self, executor: QueryExecutor, cap: int = None):
        self.executor = executor
        self.cap = settings.MAX_RAW_POINTS if cap is None else cap

    def fetch_buckets(self, bounds, zoom, precision, predicate):
        # One extra row tells us whether the cap cut the set short
        points = self.executor.fetch_points(predicate, precision, self.cap + 1)
        capped = len(points) > self.cap
        points = points[:self.cap]
        return BucketBatch(
            buckets=aggregate_points(points, precision, source=self.name),
            source=self.name,
            capped=capped,
            scanned=len(points),
            precision=precision,
        )


class SyntheticSource:
    """Grid placeholders sized from a cheap row-count estimate."""

    name = SOURCE_SYNTHETIC

    def __init__(self, executor: QueryExecutor, threshold: int = None, region: Region = None):
        self.executor = executor
        self.threshold = settings.MAX_RAW_POINTS if threshold is None else threshold
        self.region = region

    def fetch_buckets(self, bounds, zoom, precision, predicate):
        if not predicate.is_unfiltered or zoom > settings.SYNTHETIC_MAX_ZOOM:
            return None
        estimate = self.executor.estimate_total(predicate.status)
        # Only worth it when a raw scan would blow through the cap
        if estimate is None or estimate <= self.threshold:
            return None
        buckets = generate_synthetic_buckets(bounds, zoom, estimate, self.region)
        if not buckets:
            return None
        return BucketBatch(
            buckets=sort_buckets(buckets),
            source=self.name,
            capped=True,
            scanned=0,
            precision=precision,
        )


def default_sources(executor: QueryExecutor) -> list[AggregateSource]:
    """Sources in order of preference; the live source always answers."""
    return [
        PrecomputedSource(executor),
        SyntheticSource(executor),
        LiveGroupBySource(executor),
    ]


def select_buckets(
    sources: list[AggregateSource],
    bounds: Bounds,
    zoom: int,
    precision: int,
    predicate: SearchPredicate,
) -> BucketBatch:
    """Ask each source in turn and return the first batch produced."""
    for source in sources:
        batch = source.fetch_buckets(bounds, zoom, precision, predicate)
        if batch is not None:
            logger.debug(
                "Aggregate source selected",
                extra={"source": batch.source, "precision": precision, "buckets": len(batch.buckets)},
            )
            return batch
    raise LookupError("no aggregate source produced buckets")
