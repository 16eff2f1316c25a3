# Result store interface.
# poifinder/storage/base.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Protocol

from ..core.tasks import RegionSummary
from ..providers.base import PoiRecord


@dataclass
class SearchSnapshot:
    """
    The aggregate of one bulk search, stored per (keyword, search_date).
    POIs are unique by provider id within a snapshot; re-saving the same
    (keyword, search_date) replaces the counts and skips POIs already stored.
    """
    keyword: str
    search_date: date
    timestamp: str
    total_count: int
    region_breakdown: List[RegionSummary] = field(default_factory=list)
    pois: List[PoiRecord] = field(default_factory=list)


class ResultStore(Protocol):
    async def save(self, snapshot: SearchSnapshot) -> str:
        """Upserts the snapshot and returns a handle naming where it went."""
        ...

    async def load(self, keyword: str, day: Optional[date] = None) -> Optional[SearchSnapshot]:
        """Returns the snapshot for `day`, or the newest one when `day` is None."""
        ...

    async def list_keywords(self) -> List[str]:
        ...

    async def list_dates(self, keyword: str) -> List[date]:
        """Newest first."""
        ...
