from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Set

from ..providers.base import DelayWindow, PageResult, RetryPolicy, SearchProvider, SearchQuery
from ..storage.base import ResultStore, SearchSnapshot
from .concurrency import concurrent_map
from .config import Settings
from .errors import JobFailure
from .region_search import RegionResult, RegionSearcher
from .tasks import RegionSummary, TaskRegistry, progress_percentage

logger = logging.getLogger(__name__)

UNKNOWN_PROVINCE = "unknown"


@dataclass(frozen=True)
class ProgressEvent:
    task_id: Optional[str]
    keyword: str
    region: str
    count: int
    completed: int
    total: int


@dataclass
class BulkSearchResult:
    keyword: str
    total_results: int
    region_results: List[RegionResult]
    handle: str
    task_id: Optional[str] = None
    province_breakdown: List[RegionSummary] = field(default_factory=list)


def progress_bar(current: int, total: int, region: str = "", width: int = 20) -> str:
    percentage = progress_percentage(current, total)
    filled = (2 * width * current + total) // (2 * total) if total else width
    bar = "#" * filled + "-" * (width - filled)
    suffix = f" {region}" if region else ""
    return f"{bar} {percentage:>3}%{suffix}"


def province_breakdown(results: List[RegionResult]) -> List[RegionSummary]:
    """Counts POIs per their own province name, largest first."""
    counts: Dict[str, int] = {}
    for r in results:
        for poi in r.pois:
            name = poi.province_name or UNKNOWN_PROVINCE
            counts[name] = counts.get(name, 0) + 1
    ordered = sorted(counts.items(), key=lambda kv: kv[1], reverse=True)
    return [RegionSummary(region=name, count=count) for name, count in ordered]


class BulkSearchOrchestrator:
    def __init__(
        self,
        provider: SearchProvider,
        store: ResultStore,
        registry: TaskRegistry,
        settings: Settings,
    ):
        self.provider = provider
        self.store = store
        self.registry = registry
        self.settings = settings
        self.searcher = RegionSearcher(
            provider,
            page_size=settings.page_size,
            retry=RetryPolicy(count=settings.retry_count, base_delay_ms=settings.retry_delay_ms),
            max_pages=settings.max_pages,
            keyword_filter=settings.filter_by_keyword,
        )
        self._running: Set[asyncio.Task] = set()

    async def search_page(self, keyword: str, region: str, page_num: int = 1) -> PageResult:
        return await self.provider.search_page(
            SearchQuery(
                keyword=keyword,
                region=region,
                page_num=page_num,
                page_size=self.settings.page_size,
                retry=self.searcher.retry,
            )
        )

    async def bulk_search(
        self,
        keyword: str,
        regions: List[str],
        *,
        max_concurrency: Optional[int] = None,
        delay_min_ms: Optional[int] = None,
        delay_max_ms: Optional[int] = None,
        task_id: Optional[str] = None,
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
    ) -> BulkSearchResult:
        """
        Searches every region and saves the aggregate.

        Region failures are absorbed by the region searcher, so the only
        errors that escape are the store's.
        """
        width = max_concurrency or self.settings.max_concurrency
        delay = DelayWindow(
            min_ms=self.settings.delay_min_ms if delay_min_ms is None else delay_min_ms,
            max_ms=self.settings.delay_max_ms if delay_max_ms is None else delay_max_ms,
        )
        logger.info(
            "bulk search %r over %s regions (task=%s, concurrency=%s, delay=%s-%sms)",
            keyword,
            len(regions),
            task_id or "direct",
            width,
            delay.min_ms,
            delay.max_ms,
        )

        started = time.monotonic()
        completed = 0

        async def run_region(region: str, _index: int) -> RegionResult:
            nonlocal completed
            result = await self.searcher.search_region(
                keyword, region, self.settings.max_page_concurrency, delay
            )
            completed += 1
            logger.info(
                "[%.1fs] %s (%s POIs)",
                time.monotonic() - started,
                progress_bar(completed, len(regions), region),
                result.total,
            )
            if task_id:
                self.registry.update_progress(task_id, completed, RegionSummary(region, result.total))
            if on_progress is not None:
                on_progress(ProgressEvent(task_id, keyword, region, result.total, completed, len(regions)))
            return result

        region_results = await concurrent_map(regions, run_region, width)

        all_pois = [poi for r in region_results for poi in r.pois]
        breakdown = province_breakdown(region_results)
        now = datetime.now()
        handle = await self.store.save(
            SearchSnapshot(
                keyword=keyword,
                search_date=now.date(),
                timestamp=now.isoformat(),
                total_count=len(all_pois),
                region_breakdown=breakdown,
                pois=all_pois,
            )
        )

        logger.info(
            "bulk search %r done in %.1fs: %s POIs saved to %s",
            keyword,
            time.monotonic() - started,
            len(all_pois),
            handle,
        )
        return BulkSearchResult(
            keyword=keyword,
            total_results=len(all_pois),
            region_results=region_results,
            handle=handle,
            task_id=task_id,
            province_breakdown=breakdown,
        )

    def submit(
        self,
        keyword: str,
        regions: List[str],
        *,
        max_concurrency: Optional[int] = None,
        delay_min_ms: Optional[int] = None,
        delay_max_ms: Optional[int] = None,
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
    ) -> str:
        """Registers and starts a task, then runs the bulk search in the background."""
        task_id = self.registry.create(keyword, regions)
        self.registry.start(task_id)

        async def run() -> None:
            try:
                result = await self.bulk_search(
                    keyword,
                    regions,
                    max_concurrency=max_concurrency,
                    delay_min_ms=delay_min_ms,
                    delay_max_ms=delay_max_ms,
                    task_id=task_id,
                    on_progress=on_progress,
                )
            except Exception as e:
                logger.exception("%s", JobFailure(task_id, e))
                self.registry.fail(task_id, str(e) or type(e).__name__)
                return
            self.registry.complete(task_id, result.handle)

        task = asyncio.get_running_loop().create_task(run())
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        return task_id

    async def wait_idle(self) -> None:
        """Waits for every submitted task to reach a terminal state."""
        while self._running:
            await asyncio.gather(*list(self._running))
