"""
Secondary news source: a finance portal's main-news listing page.

The listing carries no machine-readable publish time, so every item is stamped
with the fetch time. That pushes listing items to the top of the recency sort;
it is a known limitation, not something to paper over with guessed dates.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from app.core.errors import UpstreamUnavailableError
from app.core.logging import get_logger
from app.models.fx_news import SearchResultItem
from app.models.fx_sources import ListingSourceConfig
from services.base_fetch_service import BaseFetchService
from services.news_normalization import canonicalize_url
from services.text_normalization import collapse_whitespace, strip_html

logger = get_logger().bind(module="news_listing_service")


def parse_listing_html(
    html: str,
    config: ListingSourceConfig,
    *,
    fetched_at: Optional[datetime] = None,
) -> List[SearchResultItem]:
    stamp = fetched_at or datetime.now(timezone.utc)
    soup = BeautifulSoup(html, "html.parser")
    items: List[SearchResultItem] = []
    for node in soup.select(config.item_selector):
        link = node.select_one(config.title_selector)
        if link is None:
            continue
        href = link.get("href")
        title = strip_html(link.get_text(" ", strip=True))
        if not isinstance(href, str) or not href.strip() or not title:
            continue
        url = urljoin(config.base_url, href.strip())
        snippet_node = node.select_one(config.snippet_selector)
        snippet = collapse_whitespace(snippet_node.get_text(" ", strip=True)) if snippet_node else ""
        items.append(
            SearchResultItem(
                title=title,
                original_url=url,
                canonical_url=canonicalize_url(url),
                snippet=snippet,
                published_at=stamp,
                origin="listing",
            )
        )
    return items


class NewsListingSource(BaseFetchService):
    """Scrapes the configured listing page into SearchResultItems."""

    def __init__(
        self,
        config: ListingSourceConfig,
        *,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 10.0,
    ) -> None:
        super().__init__(client=client, timeout_s=timeout_s)
        self.config = config

    async def fetch_items(self) -> List[SearchResultItem]:
        """Raises UpstreamUnavailableError; the aggregator decides to absorb it."""
        try:
            response = await self.fetch(
                self.config.url,
                headers={"Accept-Language": "ko-KR,ko;q=0.9"},
            )
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(
                f"Listing source '{self.config.key}' unavailable: {exc}",
                source=self.config.key,
            ) from exc

        items = parse_listing_html(response.text, self.config)
        logger.info("news_listing_fetched", source_key=self.config.key, items=len(items))
        return items
