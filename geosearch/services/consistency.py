"""Single source of truth for the displayed total.

Policy: the count from the filtered list query is authoritative. In cluster
mode bucket counts are rescaled so that they always sum to that count; the
raw map-side sum is reported alongside as ``map_total``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional

from geosearch.domain import Bucket, BucketBatch
from geosearch.errors import ConsistencyWarning
from geosearch.services.clustering import sort_buckets


logger = logging.getLogger(__name__)

TOTAL_POLICY = "list_count"


@dataclass(frozen=True)
class Reconciliation:
    total: int
    buckets: list
    map_total: int
    reconciled: bool
    warning: Optional[ConsistencyWarning] = None


def reconcile_clusters(batch: BucketBatch, list_count: int) -> Reconciliation:
    """
    Make the cluster payload agree with the authoritative list count.

    When the bucket sum already matches, buckets pass through untouched.
    Otherwise counts are rescaled with the largest-remainder method and a
    ConsistencyWarning is logged.
    """
    map_total = batch.total
    if map_total == list_count:
        return Reconciliation(
            total=list_count, buckets=list(batch.buckets), map_total=map_total, reconciled=False
        )

    warning = ConsistencyWarning(
        map_total=map_total, list_total=list_count, capped=batch.capped, source=batch.source
    )
    _log_divergence(warning)

    if not batch.buckets:
        # Nothing to scale; the payload stays self-consistent at zero
        return Reconciliation(
            total=0, buckets=[], map_total=map_total, reconciled=True, warning=warning
        )

    buckets = rescale_counts(batch.buckets, list_count)
    return Reconciliation(
        total=list_count, buckets=buckets, map_total=map_total, reconciled=True, warning=warning
    )


def reconcile_points(list_count: int) -> int:
    """Properties mode: the list count is the total, the pins are a capped sample."""
    return list_count


def rescale_counts(buckets: list[Bucket], target: int) -> list[Bucket]:
    """
    Rescale bucket counts to sum exactly to ``target``.

    Largest-remainder apportionment: each bucket gets the floor of its share,
    leftover units go to the largest fractional parts (ties by position).
    Buckets that end at zero are dropped.
    """
    current = sum(b.count for b in buckets)
    if target <= 0 or current <= 0:
        return []

    shares = [b.count * target / current for b in buckets]
    floors = [int(share) for share in shares]
    leftover = target - sum(floors)
    order = sorted(range(len(buckets)), key=lambda i: (-(shares[i] - floors[i]), i))
    for i in order[:leftover]:
        floors[i] += 1

    rescaled = [
        replace(bucket, count=count)
        for bucket, count in zip(buckets, floors)
        if count > 0
    ]
    return sort_buckets(rescaled)


def _log_divergence(warning: ConsistencyWarning) -> None:
    fields = {"consistency": warning.as_log_fields(), "policy": TOTAL_POLICY}
    if warning.is_drift:
        logger.warning("Cluster total drift: %s", warning, extra=fields)
    else:
        logger.info("Cluster total corrected: %s", warning, extra=fields)
