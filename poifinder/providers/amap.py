# poifinder/providers/amap.py
from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from ..core.errors import ExhaustedRetries, HttpError, RateLimited, TransportError
from .base import PageResult, SearchQuery

logger = logging.getLogger(__name__)

# Payload `info` value AMap uses to signal per-key QPS congestion on an HTTP 200.
RATE_LIMIT_INFO = "CUQPS_HAS_EXCEEDED_THE_LIMIT"

# Width of the random window added on top of the retry base delay.
RETRY_JITTER_MS = 500


@dataclass(frozen=True)
class AmapConfig:
    api_key: str
    base_url: str = "https://restapi.amap.com/v5/place/text"
    timeout_s: float = 20.0
    # restrict results to the requested region
    city_limit: bool = True
    rate_limit_info: str = RATE_LIMIT_INFO


class AmapProvider:
    """
    AMap (Gaode) place text search, web service API v5:
      - GET https://restapi.amap.com/v5/place/text

    Auth is the `key` query parameter. Congestion is reported inside the
    JSON body (`info`), not through the HTTP status, so every successful
    response is checked for the sentinel before it is returned.
    """

    provider_name = "amap"

    def __init__(
        self,
        cfg: AmapConfig,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if not cfg.api_key:
            raise ValueError("AmapConfig.api_key is required")
        self.cfg = cfg
        self._client = client
        self._owns_client = client is None
        self._sleep = sleep

    async def __aenter__(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.cfg.timeout_s)
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("AmapProvider must be used with 'async with' or provide a client.")
        return self._client

    async def _sleep_ms(self, low_ms: float, high_ms: float) -> None:
        await self._sleep(random.uniform(low_ms, high_ms) / 1000.0)

    def _params(self, query: SearchQuery) -> Dict[str, str]:
        return {
            "key": query.key or self.cfg.api_key,
            "keywords": query.keyword,
            "region": query.region,
            "page_size": str(query.page_size),
            "page_num": str(query.page_num),
            "city_limit": "true" if self.cfg.city_limit else "false",
        }

    async def _fetch(self, params: Dict[str, str]) -> Dict[str, Any]:
        try:
            resp = await self.client.get(self.cfg.base_url, params=params)
        except httpx.HTTPError as e:
            # network failures and undecodable bodies alike
            raise TransportError(f"{type(e).__name__}: {e}") from e
        if resp.status_code < 200 or resp.status_code >= 300:
            raise HttpError(f"HTTP status {resp.status_code}", status_code=resp.status_code)
        try:
            data = resp.json()
        except ValueError as e:
            raise HttpError("response body is not JSON", status_code=resp.status_code) from e
        if not isinstance(data, dict):
            raise HttpError("expected JSON object response", status_code=resp.status_code)
        return data

    async def search_page(self, query: SearchQuery) -> PageResult:
        """
        Executes one page request for `query`.

        Sleeps a random pacing delay first when the query carries a delay
        window, then makes up to `query.retry.count` attempts. Transport
        failures, non-2xx statuses and the soft rate-limit sentinel are all
        retried after `uniform(base_delay, base_delay + 500)` ms.
        Raises ExhaustedRetries wrapping the last cause once the budget is spent.
        """
        if query.delay.enabled:
            await self._sleep_ms(query.delay.min_ms, query.delay.max_ms)

        params = self._params(query)
        attempts = query.retry.count
        last_err: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                data = await self._fetch(params)
                if data.get("info") == self.cfg.rate_limit_info:
                    raise RateLimited(str(data.get("info")), payload=data)
            except (TransportError, HttpError, RateLimited) as e:
                last_err = e
                if attempt >= attempts:
                    break
                logger.warning(
                    "%s page %s attempt %s/%s failed (%s); retrying",
                    query.region,
                    query.page_num,
                    attempt,
                    attempts,
                    e,
                )
                await self._sleep_ms(query.retry.base_delay_ms, query.retry.base_delay_ms + RETRY_JITTER_MS)
                continue

            page = PageResult.from_payload(data)
            if page.status and page.status != "1":
                logger.warning(
                    "%s page %s returned status=%s info=%s infocode=%s",
                    query.region,
                    query.page_num,
                    page.status,
                    page.info,
                    page.infocode,
                )
            return page

        raise ExhaustedRetries(attempts, last_err) from last_err
