"""Request validation and sanitization.

Every request is parsed in full before any query runs. The first violation
raises ``ValidationError`` naming the offending field; nothing is applied
partially. Numeric filters above their absolute ceiling are clamped rather
than rejected, pagination is clamped into its allowed window.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Optional

import pydantic
from pydantic import BaseModel, ConfigDict, Field, field_validator

from geosearch.config import settings
from geosearch.domain import Bounds, Cursor, MemberBounds, SearchFilters
from geosearch.errors import ValidationError
from geosearch.services.bucketing import MAX_ZOOM, MIN_ZOOM, parse_bucket_id


# ============== Wire models ==============

class _BoundsIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    north: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    south: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    east: float = Field(..., ge=-180, le=180, allow_inf_nan=False)
    west: float = Field(..., ge=-180, le=180, allow_inf_nan=False)


class _FiltersIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    listing_type: Optional[Literal["sale", "rent"]] = None
    property_type: Optional[str] = Field(None, max_length=32)
    min_price: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    max_price: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    min_bedrooms: Optional[int] = Field(None, ge=0)
    max_bedrooms: Optional[int] = Field(None, ge=0)
    min_bathrooms: Optional[int] = Field(None, ge=0)
    max_bathrooms: Optional[int] = Field(None, ge=0)
    min_area: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    max_area: Optional[float] = Field(None, ge=0, allow_inf_nan=False)

    @field_validator("listing_type", "property_type", mode="before")
    @classmethod
    def _blank_is_unset(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            return value or None
        return value


class _CursorIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    created_at: datetime
    id: int = Field(..., ge=1)


class _PagingIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    filters: Optional[_FiltersIn] = None
    page: Optional[int] = None
    limit: Optional[int] = None
    cursor: Optional[_CursorIn] = None
    direction: Literal["next", "prev"] = "next"


class _SearchIn(_PagingIn):
    bounds: _BoundsIn
    zoom: int = Field(..., ge=MIN_ZOOM, le=MAX_ZOOM)
    drill_bucket_id: Optional[str] = None


class _ListIn(_PagingIn):
    bounds: _BoundsIn


class _MemberBoundsIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float


class _ClusterIn(BaseModel):
    model_config = ConfigDict(extra="ignore")

    lat: float = Field(..., ge=-90, le=90, allow_inf_nan=False)
    lng: float = Field(..., ge=-180, le=180, allow_inf_nan=False)
    count: int = Field(1, ge=0)
    member_bounds: Optional[_MemberBoundsIn] = None


class _DrillTargetIn(BaseModel):
    cluster: _ClusterIn
    zoom: int = Field(..., ge=MIN_ZOOM, le=MAX_ZOOM)


# ============== Validated requests ==============

@dataclass(frozen=True)
class PageSpec:
    """Either a keyset position or a legacy page number."""

    limit: int
    page: Optional[int] = None
    cursor: Optional[Cursor] = None
    direction: str = "next"

    @property
    def is_offset(self) -> bool:
        return self.page is not None

    @property
    def offset(self) -> int:
        return ((self.page or 1) - 1) * self.limit


@dataclass(frozen=True)
class SearchRequest:
    bounds: Bounds
    zoom: int
    filters: SearchFilters
    paging: PageSpec
    drill_bucket: Optional[tuple[int, str]] = None


@dataclass(frozen=True)
class ListRequest:
    bounds: Bounds
    filters: SearchFilters
    paging: PageSpec


@dataclass(frozen=True)
class DrillTargetRequest:
    lat: float
    lng: float
    count: int
    member_bounds: Optional[MemberBounds]
    zoom: int


# ============== Public API ==============

def validate_search_request(payload: Any) -> SearchRequest:
    """Validate a full map+list search request."""
    parsed = _parse(_SearchIn, payload)
    bounds = _check_bounds(parsed.bounds)
    drill_bucket = None
    if parsed.drill_bucket_id is not None:
        drill_bucket = parse_bucket_id(parsed.drill_bucket_id)
    return SearchRequest(
        bounds=bounds,
        zoom=parsed.zoom,
        filters=_sanitize_filters(parsed.filters),
        paging=_page_spec(parsed),
        drill_bucket=drill_bucket,
    )


def validate_list_request(payload: Any) -> ListRequest:
    """Validate a list-only paging request."""
    parsed = _parse(_ListIn, payload)
    return ListRequest(
        bounds=_check_bounds(parsed.bounds),
        filters=_sanitize_filters(parsed.filters),
        paging=_page_spec(parsed),
    )


def validate_drill_target_request(payload: Any) -> DrillTargetRequest:
    """Validate a cluster-click payload. Member bounds are passed through as-is."""
    parsed = _parse(_DrillTargetIn, payload)
    member_bounds = None
    if parsed.cluster.member_bounds is not None:
        mb = parsed.cluster.member_bounds
        member_bounds = MemberBounds(mb.min_lat, mb.max_lat, mb.min_lng, mb.max_lng)
    return DrillTargetRequest(
        lat=parsed.cluster.lat,
        lng=parsed.cluster.lng,
        count=parsed.cluster.count,
        member_bounds=member_bounds,
        zoom=parsed.zoom,
    )


def clamp(value, low, high):
    return max(low, min(value, high))


# ============== Helpers ==============

def _parse(model: type[BaseModel], payload: Any):
    if not isinstance(payload, dict):
        raise ValidationError("body", "must be a JSON object")
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as exc:
        error = exc.errors()[0]
        field = ".".join(str(part) for part in error["loc"]) or "body"
        raise ValidationError(field, error["msg"]) from None


def _check_bounds(raw: _BoundsIn) -> Bounds:
    if raw.north <= raw.south:
        raise ValidationError("bounds.north", "must be greater than bounds.south")
    if raw.east <= raw.west:
        raise ValidationError("bounds.east", "must be greater than bounds.west")
    return Bounds(north=raw.north, south=raw.south, east=raw.east, west=raw.west)


def _sanitize_filters(raw: Optional[_FiltersIn]) -> SearchFilters:
    if raw is None:
        return SearchFilters()

    price_cap = settings.MAX_PRICE_CEILING
    rooms_cap = settings.MAX_ROOMS_CEILING
    area_cap = settings.MAX_AREA_CEILING

    def capped(value, ceiling):
        return None if value is None else min(value, ceiling)

    filters = SearchFilters(
        listing_type=raw.listing_type,
        property_type=raw.property_type,
        min_price=capped(raw.min_price, price_cap),
        max_price=capped(raw.max_price, price_cap),
        min_bedrooms=capped(raw.min_bedrooms, rooms_cap),
        max_bedrooms=capped(raw.max_bedrooms, rooms_cap),
        min_bathrooms=capped(raw.min_bathrooms, rooms_cap),
        max_bathrooms=capped(raw.max_bathrooms, rooms_cap),
        min_area=capped(raw.min_area, area_cap),
        max_area=capped(raw.max_area, area_cap),
    )

    for name in ("price", "bedrooms", "bathrooms", "area"):
        low = getattr(filters, f"min_{name}")
        high = getattr(filters, f"max_{name}")
        if low is not None and high is not None and low > high:
            raise ValidationError(f"filters.min_{name}", f"must not exceed max_{name}")
    return filters


def _page_spec(parsed: _PagingIn) -> PageSpec:
    limit = settings.DEFAULT_LIMIT if parsed.limit is None else parsed.limit
    limit = clamp(limit, 1, settings.MAX_LIMIT)

    cursor = None
    if parsed.cursor is not None:
        cursor = Cursor(created_at=parsed.cursor.created_at, id=parsed.cursor.id)

    # Legacy offset paging only when a page number is given without a cursor
    page = None
    if parsed.page is not None and cursor is None:
        page = clamp(parsed.page, 1, settings.MAX_PAGE)

    return PageSpec(limit=limit, page=page, cursor=cursor, direction=parsed.direction)
