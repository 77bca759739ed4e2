from __future__ import annotations

import time
from typing import List, Optional, Protocol, Sequence

from app.core.concurrency import gather_in_batches
from app.core.logging import get_logger
from app.models.fx_news import ArticleContent, EnrichedArticle, SearchResultItem

logger = get_logger().bind(module="news_enrichment_service")


class ContentFetcher(Protocol):
    async def fetch_content(self, url: str) -> Optional[ArticleContent]: ...


class NewsEnrichmentService:
    """
    Attaches full article text to search results.

    At most `batch_size` fetches run at once. Output has the same length and
    order as the input; a failed fetch just leaves `enriched=False`.
    """

    def __init__(self, fetcher: ContentFetcher, *, batch_size: int = 5) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.fetcher = fetcher
        self.batch_size = batch_size

    async def _enrich_one(self, item: SearchResultItem) -> EnrichedArticle:
        try:
            content = await self.fetcher.fetch_content(item.canonical_url)
        except Exception as exc:
            # The fetcher contract is "never raises"; treat a breach as a miss.
            logger.warning("news_enrichment_fetch_raised", url=item.canonical_url, error=str(exc))
            content = None
        return EnrichedArticle.from_search_result(item, content)

    async def enrich(self, items: Sequence[SearchResultItem]) -> List[EnrichedArticle]:
        if not items:
            return []
        t0 = time.perf_counter()
        enriched = await gather_in_batches(items, self._enrich_one, batch_size=self.batch_size)
        logger.info(
            "news_enrichment_done",
            total=len(enriched),
            enriched=sum(1 for article in enriched if article.enriched),
            batch_size=self.batch_size,
            duration_ms=int((time.perf_counter() - t0) * 1000),
        )
        return enriched
