"""Per-caller request quota.

Backed by the ``limits`` package: ``memory://`` storage for a single process,
a redis URI when several workers must share counters.
"""

import logging
import math
import time
from dataclasses import dataclass
from typing import Mapping, Optional, Protocol

from limits import parse
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter

from geosearch.config import settings


logger = logging.getLogger(__name__)

# Checked in order; the first non-empty header wins
CALLER_HEADERS = ("x-forwarded-for", "cf-connecting-ip", "x-real-ip")
UNKNOWN_CALLER = "unknown"


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: float

    @property
    def retry_after(self) -> int:
        return max(1, math.ceil(self.reset_at - time.time()))

    def headers(self) -> dict:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimiter(Protocol):
    def check(self, caller_id: str) -> RateLimitDecision: ...


class LimitsRateLimiter:
    """Moving-window limiter keyed by caller id."""

    def __init__(self, rate: str = None, storage_uri: str = None, namespace: str = "search"):
        self.rate = parse(rate or settings.RATE_LIMIT)
        self.storage_uri = storage_uri or settings.RATE_LIMIT_STORAGE_URI
        self.storage = storage_from_string(self.storage_uri)
        self.strategy = MovingWindowRateLimiter(self.storage)
        self.namespace = namespace
        logger.info(
            "Rate limiter initialized",
            extra={"rate": str(self.rate), "storage": self.storage_uri.split("://")[0]},
        )

    def check(self, caller_id: str) -> RateLimitDecision:
        allowed = self.strategy.hit(self.rate, self.namespace, caller_id)
        stats = self.strategy.get_window_stats(self.rate, self.namespace, caller_id)
        if not allowed:
            logger.warning("Rate limit exceeded", extra={"caller": caller_id})
        return RateLimitDecision(
            allowed=allowed,
            limit=self.rate.amount,
            remaining=max(stats.remaining, 0),
            reset_at=stats.reset_time,
        )


def caller_id_from_headers(headers: Mapping[str, str], client_host: Optional[str] = None) -> str:
    """Best-effort caller address from proxy headers, then the socket peer."""
    for name in CALLER_HEADERS:
        value = headers.get(name)
        if value:
            # x-forwarded-for is a chain; the client is the first hop
            caller = value.split(",")[0].strip()
            if caller:
                return caller
    return client_host or UNKNOWN_CALLER
