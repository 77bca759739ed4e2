"""
Multi-source news search.

One primary keyword search per configured keyword plus one optional listing
page, all in flight at once. Results are merged, deduplicated by canonical URL
(first occurrence wins) and sorted newest first.

A primary failure aborts the whole aggregation; the listing source only ever
degrades to an empty list.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Sequence

import httpx

from app.core.errors import ConfigurationError, UpstreamUnavailableError
from app.core.logging import get_logger
from app.models.fx_news import SearchResultItem
from services.base_fetch_service import BaseFetchService
from services.news_listing_service import NewsListingSource
from services.news_normalization import EPOCH, canonicalize_url, parse_pub_date
from services.text_normalization import strip_html

logger = get_logger().bind(module="news_search_service")


class NewsSearchProvider(ABC):
    """Keyword in, dated article stubs out."""

    @abstractmethod
    def ensure_configured(self) -> None:
        """Raise ConfigurationError when credentials are missing. Must not touch the network."""

    @abstractmethod
    async def search(self, keyword: str) -> List[SearchResultItem]:
        """Return hits for `keyword`; raise UpstreamUnavailableError on failure."""


class NaverNewsSearchProvider(BaseFetchService, NewsSearchProvider):
    """Naver Open API news search (`/v1/search/news.json`)."""

    def __init__(
        self,
        *,
        client_id: Optional[str],
        client_secret: Optional[str],
        endpoint: str = "https://openapi.naver.com/v1/search/news.json",
        display: int = 50,
        sort: str = "date",
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 10.0,
        max_retries: int = 0,
    ) -> None:
        super().__init__(client=client, timeout_s=timeout_s, max_retries=max_retries)
        self.client_id = (client_id or "").strip()
        self.client_secret = (client_secret or "").strip()
        self.endpoint = endpoint
        self.display = display
        self.sort = sort

    def ensure_configured(self) -> None:
        if not self.client_id or not self.client_secret:
            raise ConfigurationError("Naver API credentials not configured")

    async def search(self, keyword: str) -> List[SearchResultItem]:
        self.ensure_configured()
        params = {"query": keyword, "display": str(self.display), "start": "1", "sort": self.sort}
        t0 = time.perf_counter()
        try:
            response = await self.fetch(
                self.endpoint,
                params=params,
                headers={
                    "X-Naver-Client-Id": self.client_id,
                    "X-Naver-Client-Secret": self.client_secret,
                },
            )
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.error("news_search_keyword_failed", keyword=keyword, status_code=status)
            raise UpstreamUnavailableError(
                f"Naver API error: {status}", source="naver_news", status_code=status
            ) from exc
        except httpx.HTTPError as exc:
            logger.error("news_search_keyword_failed", keyword=keyword, error=str(exc))
            raise UpstreamUnavailableError(
                f"Naver API unreachable: {exc}", source="naver_news"
            ) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamUnavailableError("Naver API returned invalid JSON", source="naver_news") from exc

        raw_items = payload.get("items") if isinstance(payload, dict) else None
        if not isinstance(raw_items, list):
            raise UpstreamUnavailableError("Naver API response has no items list", source="naver_news")

        items = [item for item in (_item_from_naver(raw) for raw in raw_items) if item is not None]
        logger.info(
            "news_search_keyword_done",
            keyword=keyword,
            items=len(items),
            total=payload.get("total"),
            duration_ms=int((time.perf_counter() - t0) * 1000),
        )
        return items


def _item_from_naver(raw: Any) -> Optional[SearchResultItem]:
    if not isinstance(raw, dict):
        return None
    link = str(raw.get("link") or "").strip()
    original = str(raw.get("originallink") or "").strip()
    canonical = canonicalize_url(link or original)
    if not canonical:
        return None
    published_at = parse_pub_date(raw.get("pubDate"))
    if published_at is None:
        logger.debug("news_search_unparseable_pub_date", url=canonical, value=raw.get("pubDate"))
        published_at = EPOCH
    return SearchResultItem(
        title=strip_html(raw.get("title")),
        original_url=original or link,
        canonical_url=canonical,
        snippet=strip_html(raw.get("description")),
        published_at=published_at,
        origin="search",
    )


def merge_search_results(batches: Iterable[Sequence[SearchResultItem]]) -> List[SearchResultItem]:
    """
    Concatenate, keep the first item per canonical URL, sort newest first.

    `sorted` is stable, so equal timestamps keep their first-seen order.
    """
    seen: Dict[str, SearchResultItem] = {}
    for batch in batches:
        for item in batch:
            if item.canonical_url not in seen:
                seen[item.canonical_url] = item
    return sorted(seen.values(), key=lambda item: item.published_at, reverse=True)


class NewsSearchAggregator:
    """Runs every keyword search plus the listing source concurrently and merges the results."""

    def __init__(
        self,
        provider: NewsSearchProvider,
        keywords: Sequence[str],
        *,
        listing_source: Optional[NewsListingSource] = None,
    ) -> None:
        if not keywords:
            raise ValueError("At least one search keyword is required")
        self.provider = provider
        self.keywords = tuple(keywords)
        self.listing_source = listing_source

    async def _fetch_listing(self) -> List[SearchResultItem]:
        if self.listing_source is None:
            return []
        try:
            return await self.listing_source.fetch_items()
        except Exception as exc:
            logger.warning("news_listing_degraded", error=str(exc))
            return []

    async def search(self) -> List[SearchResultItem]:
        # Credentials first: nothing goes out if they are missing.
        self.provider.ensure_configured()

        t0 = time.perf_counter()
        primary = [self.provider.search(keyword) for keyword in self.keywords]
        outcomes = await asyncio.gather(*primary, self._fetch_listing(), return_exceptions=True)

        primary_outcomes, listing_items = outcomes[:-1], outcomes[-1]
        for keyword, outcome in zip(self.keywords, primary_outcomes):
            if isinstance(outcome, BaseException):
                logger.error("news_search_aborted", keyword=keyword, error=str(outcome))
                raise outcome

        # _fetch_listing never raises; anything else here is a bug worth surfacing.
        if isinstance(listing_items, BaseException):
            raise listing_items

        merged = merge_search_results([*primary_outcomes, listing_items])
        logger.info(
            "news_search_done",
            keywords=list(self.keywords),
            total=sum(len(batch) for batch in primary_outcomes) + len(listing_items),
            listing_items=len(listing_items),
            unique=len(merged),
            duration_ms=int((time.perf_counter() - t0) * 1000),
        )
        return merged
