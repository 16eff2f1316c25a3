from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from ..providers.base import DelayWindow, PageResult, PoiRecord, RetryPolicy, SearchProvider, SearchQuery
from .concurrency import concurrent_map
from .errors import ProviderError, RegionPartialFailure

logger = logging.getLogger(__name__)


@dataclass
class RegionResult:
    region: str
    pois: List[PoiRecord] = field(default_factory=list)
    # set when a page failure was absorbed
    error: Optional[Exception] = None

    @property
    def total(self) -> int:
        return len(self.pois)

    @property
    def truncated(self) -> bool:
        return isinstance(self.error, RegionPartialFailure)


def filter_by_keyword(pois: List[PoiRecord], keyword: str) -> List[PoiRecord]:
    """Keep POIs whose name contains `keyword`, case-insensitively."""
    needle = (keyword or "").strip().lower()
    if not needle:
        return pois
    return [p for p in pois if needle in (p.name or "").lower()]


class RegionSearcher:
    """
    Pages through one region until the provider runs out of results.

    Page 1 is fetched on its own; when it is full, later pages are fetched
    in windows of `max_page_concurrency` and each window is inspected in
    page order before the next is dispatched. Page failures of any kind never leave
    this class: a failing page 1 gives an empty region, a failing later
    page truncates the region at the last good page.
    """

    def __init__(
        self,
        provider: SearchProvider,
        *,
        page_size: int = 25,
        retry: RetryPolicy = RetryPolicy(),
        max_pages: int = 100,
        keyword_filter: bool = False,
    ):
        self.provider = provider
        self.page_size = page_size
        self.retry = retry
        self.max_pages = max_pages
        self.keyword_filter = keyword_filter

    def _query(self, keyword: str, region: str, page_num: int, delay: DelayWindow) -> SearchQuery:
        return SearchQuery(
            keyword=keyword,
            region=region,
            page_num=page_num,
            page_size=self.page_size,
            delay=delay,
            retry=self.retry,
        )

    def _keep(self, page: PageResult, keyword: str) -> List[PoiRecord]:
        if self.keyword_filter:
            kept = filter_by_keyword(page.pois, keyword)
            if len(kept) < len(page.pois):
                logger.debug("dropped %s POIs not matching %r", len(page.pois) - len(kept), keyword)
            return kept
        return page.pois

    async def search_region(
        self,
        keyword: str,
        region: str,
        max_page_concurrency: int = 2,
        delay: DelayWindow = DelayWindow(),
    ) -> RegionResult:
        result = RegionResult(region=region)

        try:
            first = await self.provider.search_page(self._query(keyword, region, 1, delay))
        except Exception as e:
            logger.warning(
                "%s: page 1 failed, region skipped: %s", region, e, exc_info=not isinstance(e, ProviderError)
            )
            result.error = e
            return result

        result.pois.extend(self._keep(first, keyword))
        if len(first.pois) < self.page_size:
            return result

        async def fetch(page_num: int, _index: int) -> Union[PageResult, Exception]:
            try:
                return await self.provider.search_page(self._query(keyword, region, page_num, delay))
            except Exception as e:
                return e

        next_page = 2
        while next_page <= self.max_pages:
            window = list(range(next_page, min(next_page + max_page_concurrency, self.max_pages + 1)))
            pages = await concurrent_map(window, fetch, max_page_concurrency)
            next_page = window[-1] + 1

            for page_num, page in zip(window, pages):
                if isinstance(page, Exception):
                    # keep only what precedes the first failed page
                    logger.warning(
                        "%s: page %s failed, keeping %s POIs: %s",
                        region,
                        page_num,
                        result.total,
                        page,
                        exc_info=not isinstance(page, ProviderError),
                    )
                    result.error = RegionPartialFailure(region, page_num, page)
                    return result
                result.pois.extend(self._keep(page, keyword))
                if len(page.pois) < self.page_size:
                    return result

        logger.info("%s: stopped at the %s page ceiling", region, self.max_pages)
        return result
