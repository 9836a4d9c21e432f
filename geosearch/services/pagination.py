"""Keyset (cursor) pagination over ``created_at DESC, id DESC``.

The executor fetches ``limit + 1`` rows in scan order for the requested
direction; this module turns that window into a page. Offset paging is kept
only for older clients.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from geosearch.domain import Cursor, ListingRow


DIRECTION_NEXT = "next"
DIRECTION_PREV = "prev"


@dataclass(frozen=True)
class KeysetPage:
    items: list
    has_more: bool
    next_cursor: Optional[Cursor]
    prev_cursor: Optional[Cursor]
    direction: str

    def metadata(self) -> dict:
        return {
            "mode": "cursor",
            "direction": self.direction,
            "has_more": self.has_more,
            "next_cursor": self.next_cursor.to_dict() if self.next_cursor else None,
            "prev_cursor": self.prev_cursor.to_dict() if self.prev_cursor else None,
        }


@dataclass(frozen=True)
class OffsetPage:
    """Legacy page-number pagination."""

    items: list
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def metadata(self) -> dict:
        return {
            "mode": "offset",
            "page": self.page,
            "limit": self.limit,
            "total_pages": self.total_pages,
            "has_more": self.page < self.total_pages,
        }


def scans_descending(direction: str) -> bool:
    """``next`` walks towards older rows, ``prev`` walks back towards newer ones."""
    return direction != DIRECTION_PREV


def build_keyset_page(
    rows: Sequence[ListingRow],
    limit: int,
    direction: str = DIRECTION_NEXT,
) -> KeysetPage:
    """
    Build a page from up to ``limit + 1`` rows fetched in scan order.

    For ``prev`` the rows arrive ascending and are reversed so every page is
    presented newest first.
    """
    has_more = len(rows) > limit
    window = list(rows[:limit])
    if direction == DIRECTION_PREV:
        window.reverse()

    if not window:
        return KeysetPage(
            items=[], has_more=False, next_cursor=None, prev_cursor=None, direction=direction
        )
    return KeysetPage(
        items=window,
        has_more=has_more,
        next_cursor=window[-1].cursor,
        prev_cursor=window[0].cursor,
        direction=direction,
    )
