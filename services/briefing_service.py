"""
Pipeline facade used by the HTTP routes and the digest worker.

    search (+ listing) ──┐
                         ├─> enrich ─> synthesize ─> AnalysisReport
    reference snapshot ──┘

The analysis and the exchange-rate board are served through ResultCache.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import httpx

from app.config import Settings, require_openai, settings
from app.core.logging import get_logger
from app.models.fx_analysis import AnalysisReport
from app.models.fx_news import EnrichedArticle
from app.models.fx_rates import ExchangeRateBoard
from app.models.fx_sources import FxSourcesConfig, get_fx_sources
from services.analysis_service import AnalysisService
from services.article_content_service import ArticleContentService
from services.exchange_rate_service import ExchangeRateService
from services.news_enrichment_service import NewsEnrichmentService
from services.news_listing_service import NewsListingSource
from services.news_search_service import NaverNewsSearchProvider, NewsSearchAggregator
from services.result_cache import ANALYSIS_TAG, EXCHANGE_RATE_TAG, CacheLookup, ResultCache

logger = get_logger().bind(module="briefing_service")


def _ms(t0: float) -> int:
    return int((time.perf_counter() - t0) * 1000)


@dataclass(frozen=True)
class NewsCollection:
    news: List[EnrichedArticle]
    keywords: List[str]
    timing: Dict[str, int] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.news)

    @property
    def enriched_count(self) -> int:
        return sum(1 for article in self.news if article.enriched)


class BriefingService:
    def __init__(
        self,
        *,
        aggregator: NewsSearchAggregator,
        enrichment: NewsEnrichmentService,
        exchange_rates: ExchangeRateService,
        analysis: AnalysisService,
        cache: Optional[ResultCache] = None,
        analysis_ttl_s: float = 600,
        exchange_rate_ttl_s: float = 60,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.aggregator = aggregator
        self.enrichment = enrichment
        self.exchange_rates = exchange_rates
        self.analysis = analysis
        self.cache = cache or ResultCache()
        self._http_client = http_client
        self.cache.register(ANALYSIS_TAG, self.run_analysis, analysis_ttl_s)
        self.cache.register(EXCHANGE_RATE_TAG, self.exchange_rates.fetch_board, exchange_rate_ttl_s)

    async def run_analysis(self) -> AnalysisReport:
        """Full pipeline, uncached. Any fatal error aborts the run."""
        # No key, no report: fail before any search or fetch goes out.
        require_openai(self.analysis.cfg)

        t_total = time.perf_counter()
        logger.info("briefing_run_started")

        t0 = time.perf_counter()
        items, snapshot = await asyncio.gather(
            self.aggregator.search(),
            self.exchange_rates.fetch_snapshot(),
        )
        logger.info(
            "briefing_step_done",
            step="search",
            items=len(items),
            snapshot_available=not snapshot.is_unavailable,
            duration_ms=_ms(t0),
        )

        t0 = time.perf_counter()
        articles = await self.enrichment.enrich(items)
        logger.info(
            "briefing_step_done",
            step="enrich",
            enriched=sum(1 for a in articles if a.enriched),
            total=len(articles),
            duration_ms=_ms(t0),
        )

        t0 = time.perf_counter()
        report = await self.analysis.synthesize(articles, snapshot)
        logger.info("briefing_step_done", step="synthesize", duration_ms=_ms(t0))

        logger.info("briefing_run_done", duration_ms=_ms(t_total))
        return report

    async def collect_news(self) -> NewsCollection:
        t_total = time.perf_counter()
        t0 = time.perf_counter()
        items = await self.aggregator.search()
        search_ms = _ms(t0)

        t0 = time.perf_counter()
        articles = await self.enrichment.enrich(items)
        enrich_ms = _ms(t0)

        return NewsCollection(
            news=articles,
            keywords=list(self.aggregator.keywords),
            timing={"search_ms": search_ms, "enrich_ms": enrich_ms, "total_ms": _ms(t_total)},
        )

    async def get_analysis(self, refresh: bool = False) -> CacheLookup:
        if refresh:
            return await self.cache.get_force_fresh(ANALYSIS_TAG)
        return await self.cache.get(ANALYSIS_TAG)

    async def get_exchange_rates(self, refresh: bool = False) -> CacheLookup:
        if refresh:
            return await self.cache.get_force_fresh(EXCHANGE_RATE_TAG)
        return await self.cache.get(EXCHANGE_RATE_TAG)

    def invalidate(self, tag: Optional[str] = None) -> List[str]:
        return self.cache.invalidate(tag)

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()


def build_briefing_service(
    cfg: Optional[Settings] = None,
    *,
    sources: Optional[FxSourcesConfig] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    cache: Optional[ResultCache] = None,
) -> BriefingService:
    """Wire every collaborator around one shared HTTP client."""
    cfg = cfg or settings
    sources = sources or get_fx_sources(cfg.FX_SOURCES_CONFIG)
    client = http_client or httpx.AsyncClient(follow_redirects=True)
    timeout_s = cfg.HTTP_TIMEOUT_S

    provider = NaverNewsSearchProvider(
        client_id=cfg.NAVER_CLIENT_ID,
        client_secret=cfg.NAVER_CLIENT_SECRET,
        endpoint=sources.search_endpoint,
        display=sources.search_display,
        sort=sources.search_sort,
        client=client,
        timeout_s=timeout_s,
    )
    listing = (
        NewsListingSource(sources.listing, client=client, timeout_s=timeout_s)
        if cfg.LISTING_SOURCE_ENABLED
        else None
    )
    aggregator = NewsSearchAggregator(provider, sources.keywords, listing_source=listing)

    content = ArticleContentService(
        supported_hosts=sources.supported_hosts,
        max_chars=cfg.ARTICLE_MAX_CHARS,
        client=client,
        timeout_s=timeout_s,
    )
    exchange_rates = ExchangeRateService(
        url=sources.market_index_url,
        currencies=sources.currencies,
        primary=sources.primary_currency,
        secondary=sources.secondary_currencies,
        client=client,
        timeout_s=timeout_s,
    )

    logger.info(
        "briefing_service_built",
        keywords=list(sources.keywords),
        listing_enabled=listing is not None,
        batch_size=cfg.ENRICHMENT_BATCH_SIZE,
        model=cfg.OPENAI_MODEL,
    )
    return BriefingService(
        aggregator=aggregator,
        enrichment=NewsEnrichmentService(content, batch_size=cfg.ENRICHMENT_BATCH_SIZE),
        exchange_rates=exchange_rates,
        analysis=AnalysisService(cfg=cfg),
        cache=cache,
        analysis_ttl_s=cfg.ANALYSIS_CACHE_TTL_S,
        exchange_rate_ttl_s=cfg.EXCHANGE_RATE_CACHE_TTL_S,
        # Only close what we opened.
        http_client=client if http_client is None else None,
    )
