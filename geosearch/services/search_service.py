"""
Search orchestration.

One request resolves its mode from zoom, builds a single predicate, runs the
map side and the list side concurrently against it and reconciles the total.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Optional, Union

from geosearch.config import settings
from geosearch.services.bucketing import MODE_CLUSTERS, MODE_PROPERTIES, resolve_zoom
from geosearch.services.cache import TTLCache, build_map_cache_key
from geosearch.services.consistency import reconcile_clusters, reconcile_points
from geosearch.services.navigation import DrillDownNavigator, DrillTarget
from geosearch.services.pagination import KeysetPage, OffsetPage
from geosearch.services.queries import DatasetQueryLayer, ListResult, QueryExecutor, SearchPredicate
from geosearch.services.sources import (
    SOURCE_LIVE,
    AggregateSource,
    LiveGroupBySource,
    default_sources,
    select_buckets,
)
from geosearch.services.validation import DrillTargetRequest, ListRequest, SearchRequest


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchResult:
    mode: str
    map_data: list
    page: Union[KeysetPage, OffsetPage]
    total: int
    meta: dict = field(default_factory=dict)

    @property
    def list_items(self) -> list:
        return self.page.items


@dataclass(frozen=True)
class _MapSide:
    data: list
    source: str
    capped: bool
    cached: bool
    batch: object = None


class SearchService:
    """Map + list search over one filtered predicate."""

    def __init__(
        self,
        executor: QueryExecutor,
        cache: Optional[TTLCache] = None,
        navigator: Optional[DrillDownNavigator] = None,
        timeout: float = None,
        sources: Optional[list[AggregateSource]] = None,
    ):
        self.executor = executor
        self.queries = DatasetQueryLayer(executor, timeout)
        self.cache = cache
        self.navigator = navigator or DrillDownNavigator()
        self.sources = sources if sources is not None else default_sources(executor)

    # ============== Search ==============

    async def search(self, request: SearchRequest) -> SearchResult:
        """
        Run a full viewport search.

        A drill bucket restricts the set to one cell (viewport ignored) and
        always answers in properties mode.
        """
        started = time.perf_counter()

        if request.drill_bucket is not None:
            mode = MODE_PROPERTIES
            precision = request.drill_bucket[0]
        else:
            mode, precision = resolve_zoom(request.zoom)

        predicate = SearchPredicate(
            bounds=request.bounds,
            filters=request.filters,
            bucket=request.drill_bucket,
        )
        cache_key = build_map_cache_key(
            request.bounds, request.zoom, mode, precision, request.filters, request.drill_bucket
        )

        if mode == MODE_CLUSTERS:
            def map_call(_executor):
                return self._cached(cache_key, lambda: self._cluster_side(request, precision, predicate))
        else:
            def map_call(executor):
                return self._cached(cache_key, lambda: self._point_side(executor, predicate))

        map_side, listed = await self.queries.fetch(predicate, map_call, request.paging)

        if mode == MODE_CLUSTERS and not map_side.data and listed.total > 0 and map_side.source != SOURCE_LIVE:
            # Stale aggregates cannot carry the count; regroup the live rows
            logger.info(
                "Empty %s batch for a non-empty list, regrouping live",
                map_side.source,
                extra={"list_total": listed.total, "precision": precision},
            )
            map_side = await self.queries.run(
                lambda executor: self._live_cluster_side(executor, request, precision, predicate)
            )
            if self.cache is not None:
                self.cache.set(cache_key, map_side)

        if mode == MODE_CLUSTERS:
            reconciliation = reconcile_clusters(map_side.batch, listed.total)
            map_data = reconciliation.buckets
            total = reconciliation.total
            map_total = reconciliation.map_total
            reconciled = reconciliation.reconciled
        else:
            map_data = map_side.data
            total = reconcile_points(listed.total)
            map_total = len(map_data)
            reconciled = False

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        meta = {
            "duration_ms": duration_ms,
            "precision": precision,
            "source": map_side.source,
            "truncated": map_side.capped,
            "reconciled": reconciled,
            "map_total": map_total,
            "cached": map_side.cached,
        }
        self._log_search(mode, total, meta)

        return SearchResult(mode=mode, map_data=map_data, page=listed.page, total=total, meta=meta)

    async def list_page(self, request: ListRequest) -> ListResult:
        predicate = SearchPredicate(bounds=request.bounds, filters=request.filters)
        return await self.queries.fetch_list(predicate, request.paging)

    def drill_target(self, request: DrillTargetRequest) -> DrillTarget:
        return self.navigator.target_for(
            request.lat, request.lng, request.zoom, request.member_bounds
        )

    # ============== Map side ==============

    def _cluster_side(self, request: SearchRequest, precision: int, predicate: SearchPredicate) -> _MapSide:
        batch = select_buckets(self.sources, request.bounds, request.zoom, precision, predicate)
        return _MapSide(
            data=batch.buckets, source=batch.source, capped=batch.capped, cached=False, batch=batch
        )

    @staticmethod
    def _live_cluster_side(
        executor: QueryExecutor, request: SearchRequest, precision: int, predicate: SearchPredicate
    ) -> _MapSide:
        batch = LiveGroupBySource(executor).fetch_buckets(request.bounds, request.zoom, precision, predicate)
        return _MapSide(
            data=batch.buckets, source=batch.source, capped=batch.capped, cached=False, batch=batch
        )

    def _point_side(self, executor: QueryExecutor, predicate: SearchPredicate) -> _MapSide:
        cap = settings.MAX_MAP_POINTS
        points = executor.fetch_points(predicate, None, cap + 1)
        return _MapSide(data=points[:cap], source=SOURCE_LIVE, capped=len(points) > cap, cached=False)

    def _cached(self, key: str, compute) -> _MapSide:
        if self.cache is None:
            return compute()
        hit = self.cache.get(key)
        if hit is not None:
            return _MapSide(
                data=hit.data, source=hit.source, capped=hit.capped, cached=True, batch=hit.batch
            )
        value = compute()
        self.cache.set(key, value)
        return value

    @staticmethod
    def _log_search(mode: str, total: int, meta: dict) -> None:
        fields = {"mode": mode, "total": total, **meta}
        logger.info("Search completed", extra=fields)
        if meta["duration_ms"] > settings.SLOW_SEARCH_THRESHOLD_MS:
            logger.warning("Slow search: %sms", meta["duration_ms"], extra=fields)
