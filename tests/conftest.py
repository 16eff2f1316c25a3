from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest

from poifinder.core.config import Settings
from poifinder.core.errors import ExhaustedRetries
from poifinder.providers.base import PageResult, SearchQuery


def poi_payload(poi_id: str, name: str = "coffee shop", **fields: Any) -> Dict[str, Any]:
    payload = {
        "id": poi_id,
        "name": name,
        "type": "餐饮服务;咖啡厅;咖啡厅",
        "typecode": "050500",
        "address": "1 Main St",
        "location": "116.397128,39.916527",
        "pname": "北京市",
        "cityname": "北京市",
        "pcode": "110000",
        "adcode": "110101",
    }
    payload.update(fields)
    return payload


def page_of(count: int, prefix: str, **fields: Any) -> PageResult:
    return PageResult.from_payload(
        {
            "status": "1",
            "info": "OK",
            "infocode": "10000",
            "count": str(count),
            "pois": [poi_payload(f"{prefix}-{i}", **fields) for i in range(count)],
        }
    )


PageEntry = Union[int, Exception, Callable[[SearchQuery], PageResult]]


class FakeProvider:
    """
    Serves pages from a {(region, page_num): entry} table. An entry is a POI
    count, an exception to raise, or a callable. Unlisted pages are empty.
    """

    provider_name = "fake"

    def __init__(self, pages: Optional[Dict[Tuple[str, int], PageEntry]] = None, latency: float = 0.0):
        self.pages = pages or {}
        self.latency = latency
        self.calls: List[SearchQuery] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def search_page(self, query: SearchQuery) -> PageResult:
        self.calls.append(query)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            entry = self.pages.get((query.region, query.page_num), 0)
            if isinstance(entry, Exception):
                raise entry
            if callable(entry):
                return entry(query)
            return page_of(entry, f"{query.region}-p{query.page_num}")
        finally:
            self.in_flight -= 1

    def pages_requested(self, region: str) -> List[int]:
        return sorted(q.page_num for q in self.calls if q.region == region)


def exhausted() -> ExhaustedRetries:
    return ExhaustedRetries(3, RuntimeError("boom"))


class MemoryStore:
    def __init__(self, fail: Optional[Exception] = None):
        self.saved: list = []
        self.fail = fail

    async def save(self, snapshot) -> str:
        if self.fail is not None:
            raise self.fail
        self.saved.append(snapshot)
        return f"memory:{snapshot.keyword}:{snapshot.search_date.isoformat()}"

    async def load(self, keyword, day=None):
        for s in reversed(self.saved):
            if s.keyword == keyword and (day is None or s.search_date == day):
                return s
        return None

    async def list_keywords(self):
        return sorted({s.keyword for s in self.saved})

    async def list_dates(self, keyword):
        return sorted({s.search_date for s in self.saved if s.keyword == keyword}, reverse=True)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        amap_key="test-key",
        max_concurrency=2,
        max_page_concurrency=2,
        delay_min_ms=0,
        delay_max_ms=0,
        page_size=25,
        retry_count=3,
        retry_delay_ms=0,
        api_key="secret",
    )
