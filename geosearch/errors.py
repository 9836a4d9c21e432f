"""Error taxonomy for the search core."""

from typing import Optional


class GeoSearchError(Exception):
    """Base exception for geosearch."""

    status_code = 500
    retryable = False
    public_message = "Internal server error"

    def to_payload(self) -> dict:
        return {"error": self.public_message}


class ValidationError(GeoSearchError):
    """Malformed bounds, zoom, filters or pagination."""

    status_code = 400

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message

    def to_payload(self) -> dict:
        return {"error": f"Invalid {self.field}: {self.message}", "field": self.field}


class RateLimitError(GeoSearchError):
    """Caller exceeded its request quota."""

    status_code = 429
    retryable = True
    public_message = "Too many requests, try again later"

    def __init__(self, retry_after: int, reset_at: Optional[float] = None):
        super().__init__(f"rate limited, retry after {retry_after}s")
        self.retry_after = retry_after
        self.reset_at = reset_at

    def to_payload(self) -> dict:
        return {"error": self.public_message, "retry_after": self.retry_after}


class UpstreamError(GeoSearchError):
    """Listings store failure."""


class UpstreamTimeoutError(UpstreamError):
    """Listings store did not answer within the timeout."""

    status_code = 504
    retryable = True
    public_message = "Search backend timed out, please retry"


class UpstreamQueryError(UpstreamError):
    """Listings store rejected or failed a query."""

    status_code = 500
    public_message = "Search backend failed"


class ConsistencyWarning(Warning):
    """Map-side bucket sum diverged from the authoritative list count."""

    def __init__(self, map_total: int, list_total: int, capped: bool, source: str):
        super().__init__(
            f"bucket sum {map_total} != list count {list_total} "
            f"(source={source}, capped={capped})"
        )
        self.map_total = map_total
        self.list_total = list_total
        self.capped = capped
        self.source = source

    @property
    def is_drift(self) -> bool:
        """True when divergence cannot be explained by a cap or an approximate source."""
        return not self.capped and self.source == "live"

    def as_log_fields(self) -> dict:
        return {
            "map_total": self.map_total,
            "list_total": self.list_total,
            "capped": self.capped,
            "source": self.source,
            "drift": self.is_drift,
        }
