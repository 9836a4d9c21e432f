"""Pydantic schemas for search responses.

Request bodies are parsed by ``geosearch.services.validation`` so that every
violation is reported as a single field-named error.
"""
from datetime import datetime
from typing import Any, Optional, Union
from pydantic import BaseModel, Field, ConfigDict


# ============== Map Schemas ==============

class MemberBoundsResponse(BaseModel):
    """Bounding box of a bucket's actual members."""
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    model_config = ConfigDict(from_attributes=True)


class BucketResponse(BaseModel):
    """Schema for one cluster on the map."""
    id: str
    precision: Optional[int] = None
    count: int
    lat: float
    lng: float
    member_bounds: Optional[MemberBoundsResponse] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    avg_price: Optional[float] = None
    source: str

    model_config = ConfigDict(from_attributes=True)


class PointResponse(BaseModel):
    """Schema for one property pin."""
    id: int
    lat: float
    lng: float
    price: Optional[float] = None
    listing_type: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ============== List Schemas ==============

class ListItemResponse(BaseModel):
    """Schema for a property in the result list."""
    id: int
    title: str
    lat: float
    lng: float
    price: Optional[float] = None
    currency: str
    listing_type: str
    property_type: str
    bedrooms: Optional[int] = None
    bathrooms: Optional[int] = None
    area_m2: Optional[float] = None
    neighborhood: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SearchMeta(BaseModel):
    duration_ms: float
    precision: Optional[int] = None
    source: str
    truncated: bool = False
    reconciled: bool = False
    map_total: int
    cached: bool = False


# ============== Envelopes ==============

class SearchResponse(BaseModel):
    """Map + list search result."""
    mode: str
    map_data: list[Union[BucketResponse, PointResponse]] = Field(..., alias="mapData")
    list_items: list[ListItemResponse] = Field(..., alias="listItems")
    total: int
    pagination: dict[str, Any]
    meta: SearchMeta

    model_config = ConfigDict(populate_by_name=True)


class ListResponse(BaseModel):
    """List-only page."""
    list_items: list[ListItemResponse] = Field(..., alias="listItems")
    total: int
    pagination: dict[str, Any]

    model_config = ConfigDict(populate_by_name=True)


class DrillTargetResponse(BaseModel):
    """Where the map camera should go after a cluster click."""
    lat: float
    lng: float
    zoom: int
    strategy: str

    model_config = ConfigDict(from_attributes=True)
