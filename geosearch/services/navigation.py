"""Camera target for a clicked cluster.

The navigator only computes where the map should go; the client performs the
transition.
"""

from __future__ import annotations

import enum
import logging
import math
from dataclasses import dataclass
from typing import Optional

from geosearch.config import settings
from geosearch.domain import MemberBounds


logger = logging.getLogger(__name__)

METERS_PER_DEGREE_LAT = 111_320.0
# Web Mercator latitude limit
MAX_MERCATOR_LAT = 85.0511287798


class NavigatorState(enum.Enum):
    IDLE = "idle"
    COMPUTING = "computing"


@dataclass(frozen=True)
class DrillTarget:
    lat: float
    lng: float
    zoom: int
    strategy: str  # fly_to | fit_bounds


class DrillDownNavigator:
    """Turns a cluster click into a target center and zoom."""

    def __init__(
        self,
        max_zoom: int = None,
        zoom_increment: int = None,
        degenerate_span: float = None,
        min_span_meters: float = None,
        viewport_px: tuple[int, int] = None,
        padding_px: int = None,
        tile_size: int = None,
    ):
        self.max_zoom = settings.MAX_DRILL_ZOOM if max_zoom is None else max_zoom
        self.zoom_increment = (
            settings.DRILL_ZOOM_INCREMENT if zoom_increment is None else zoom_increment
        )
        self.degenerate_span = (
            settings.DRILL_DEGENERATE_SPAN_DEG if degenerate_span is None else degenerate_span
        )
        self.min_span_meters = (
            settings.DRILL_MIN_SPAN_METERS if min_span_meters is None else min_span_meters
        )
        self.viewport_px = viewport_px or (
            settings.DRILL_VIEWPORT_WIDTH_PX, settings.DRILL_VIEWPORT_HEIGHT_PX
        )
        self.padding_px = settings.DRILL_PADDING_PX if padding_px is None else padding_px
        self.tile_size = settings.DRILL_TILE_SIZE_PX if tile_size is None else tile_size
        self.state = NavigatorState.IDLE

    def target_for(
        self,
        lat: float,
        lng: float,
        current_zoom: int,
        member_bounds: Optional[MemberBounds] = None,
    ) -> DrillTarget:
        """
        Compute the next viewport for a clicked cluster.

        Degenerate or unusable member bounds fly to the centroid; otherwise
        the (minimum-span expanded) bounds are fitted and the zoom is forced
        to advance at least one level.
        """
        self.state = NavigatorState.COMPUTING
        try:
            if not self._usable(member_bounds):
                return self._fly_to(lat, lng, current_zoom)
            return self._fit(member_bounds, current_zoom)
        finally:
            self.state = NavigatorState.IDLE

    # ----- branches -----

    def _fly_to(self, lat: float, lng: float, current_zoom: int) -> DrillTarget:
        zoom = max(min(current_zoom + self.zoom_increment, self.max_zoom), current_zoom)
        return DrillTarget(lat=lat, lng=lng, zoom=zoom, strategy="fly_to")

    def _fit(self, bounds: MemberBounds, current_zoom: int) -> DrillTarget:
        expanded = self.expand_to_min_span(bounds)
        center_lat = (expanded.min_lat + expanded.max_lat) / 2.0
        center_lng = (expanded.min_lng + expanded.max_lng) / 2.0
        fitted = self.fit_zoom(expanded)
        zoom = max(min(max(fitted, current_zoom + 1), self.max_zoom), current_zoom)
        logger.debug(
            "Drill fit: fitted=%s current=%s target=%s", fitted, current_zoom, zoom
        )
        return DrillTarget(lat=center_lat, lng=center_lng, zoom=zoom, strategy="fit_bounds")

    # ----- geometry -----

    def _usable(self, bounds: Optional[MemberBounds]) -> bool:
        if bounds is None:
            return False
        values = (bounds.min_lat, bounds.max_lat, bounds.min_lng, bounds.max_lng)
        if not all(math.isfinite(v) for v in values):
            return False
        if bounds.lat_span < 0 or bounds.lng_span < 0:
            return False
        return bounds.lat_span >= self.degenerate_span or bounds.lng_span >= self.degenerate_span

    def expand_to_min_span(self, bounds: MemberBounds) -> MemberBounds:
        """Grow each axis symmetrically to at least the minimum span in metres."""
        center_lat = (bounds.min_lat + bounds.max_lat) / 2.0
        center_lng = (bounds.min_lng + bounds.max_lng) / 2.0

        min_lat_span = self.min_span_meters / METERS_PER_DEGREE_LAT
        cos_lat = max(math.cos(math.radians(center_lat)), 1e-6)
        min_lng_span = self.min_span_meters / (METERS_PER_DEGREE_LAT * cos_lat)

        half_lat = max(bounds.lat_span, min_lat_span) / 2.0
        half_lng = max(bounds.lng_span, min_lng_span) / 2.0
        return MemberBounds(
            min_lat=max(center_lat - half_lat, -MAX_MERCATOR_LAT),
            max_lat=min(center_lat + half_lat, MAX_MERCATOR_LAT),
            min_lng=center_lng - half_lng,
            max_lng=center_lng + half_lng,
        )

    def fit_zoom(self, bounds: MemberBounds) -> int:
        """Largest integer zoom at which the bounds fit inside the padded viewport."""
        width, height = self.viewport_px
        usable_w = max(width - 2 * self.padding_px, 1)
        usable_h = max(height - 2 * self.padding_px, 1)

        lng_fraction = bounds.lng_span / 360.0
        lat_fraction = (_mercator_y(bounds.max_lat) - _mercator_y(bounds.min_lat)) / (2 * math.pi)

        zooms = []
        if lng_fraction > 0:
            zooms.append(math.log2(usable_w / (self.tile_size * lng_fraction)))
        if lat_fraction > 0:
            zooms.append(math.log2(usable_h / (self.tile_size * lat_fraction)))
        if not zooms:
            return self.max_zoom
        return math.floor(min(zooms))


def _mercator_y(lat: float) -> float:
    lat = max(min(lat, MAX_MERCATOR_LAT), -MAX_MERCATOR_LAT)
    return math.log(math.tan(math.pi / 4 + math.radians(lat) / 2))
