from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import List

import httpx
import pytest
import pytest_asyncio

from app.core.errors import ConfigurationError, UpstreamUnavailableError
from app.models.fx_news import SearchResultItem
from app.models.fx_rates import ReferenceSnapshot
from app.models.fx_sources import FxSourcesConfig
from services.analysis_service import AnalysisService
from services.article_content_service import ArticleContentService
from services.briefing_service import BriefingService, build_briefing_service
from services.exchange_rate_service import ExchangeRateService
from services.news_enrichment_service import NewsEnrichmentService
from services.news_search_service import NewsSearchAggregator, NewsSearchProvider
from services.result_cache import ANALYSIS_TAG, EXCHANGE_RATE_TAG, ResultCache

MARKET_URL = "https://finance.naver.com/marketindex/"
MARKET_HTML = """
<ul id="exchangeList">
  <li><a href="/marketindex/exchangeDetail.naver?marketindexCd=FX_USDKRW" class="head usd">
    <div class="head_info point_up"><span class="value">1,450.50</span><span class="change">2.50</span></div>
  </a></li>
</ul>
"""

ENRICHABLE = [
    "https://n.news.naver.com/mnews/article/001/1",
    "https://n.news.naver.com/mnews/article/001/2",
    "https://n.news.naver.com/mnews/article/001/3",
]
UNSUPPORTED = [
    "https://www.hankyung.com/article/4",
    "https://www.mk.co.kr/news/5",
]


def _article_html(n: str) -> str:
    return (
        f'<div class="media_end_head_top_logo"><img alt="언론사{n}"></div>'
        f'<article id="dic_area">기사 본문 {n}</article>'
    )


def _handler(request: httpx.Request) -> httpx.Response:
    url = str(request.url)
    if url == MARKET_URL:
        return httpx.Response(200, text=MARKET_HTML)
    if url in ENRICHABLE:
        return httpx.Response(200, text=_article_html(url[-1]))
    return httpx.Response(404)


class StaticProvider(NewsSearchProvider):
    def __init__(self, items: List[SearchResultItem], *, fail: bool = False):
        self.items = items
        self.fail = fail
        self.calls: List[str] = []

    def ensure_configured(self) -> None:
        return None

    async def search(self, keyword: str) -> List[SearchResultItem]:
        self.calls.append(keyword)
        if self.fail:
            raise UpstreamUnavailableError("Naver API error: 500", status_code=500)
        return self.items


class DummyGenerator:
    def __init__(self, payload):
        self.payload = payload
        self.prompts: List[str] = []

    async def generate_json(self, system_prompt, user_prompt, response_model, action_type="generic"):
        self.prompts.append(user_prompt)
        return response_model.model_validate(self.payload), {"model": "dummy"}


class TickingClock:
    def __init__(self):
        self.now = datetime(2025, 1, 6, 10, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def _items(make_item) -> List[SearchResultItem]:
    urls = [ENRICHABLE[0], UNSUPPORTED[0], ENRICHABLE[1], UNSUPPORTED[1], ENRICHABLE[2]]
    return [make_item(url, minutes_ago=i) for i, url in enumerate(urls)]


@pytest_asyncio.fixture
async def http_client():
    async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as client:
        yield client


def _build(make_settings, http_client, provider, generator, *, cache=None, **overrides) -> BriefingService:
    cfg = make_settings(**overrides)
    sources = FxSourcesConfig()
    return BriefingService(
        aggregator=NewsSearchAggregator(provider, ["환율"]),
        enrichment=NewsEnrichmentService(
            ArticleContentService(supported_hosts=sources.supported_hosts, client=http_client),
            batch_size=5,
        ),
        exchange_rates=ExchangeRateService(url=MARKET_URL, currencies=sources.currencies, client=http_client),
        analysis=AnalysisService(cfg=cfg, generator=generator, clock=TickingClock()),
        cache=cache,
    )


@pytest.mark.asyncio
async def test_run_analysis_scenario(make_settings, make_item, generated_payload, http_client):
    generator = DummyGenerator(generated_payload)
    service = _build(make_settings, http_client, StaticProvider(_items(make_item)), generator)

    collection = await service.collect_news()
    report = await service.run_analysis()

    assert collection.total == 5
    assert collection.enriched_count == 3
    assert [a.enriched for a in collection.news] == [True, False, True, False, True]

    prompt = generator.prompts[0]
    assert "기사 본문 1" in prompt and "기사 본문 2" in prompt and "기사 본문 3" in prompt
    assert "[News 4]" not in prompt
    assert "USD/KRW 1,450.50" in prompt

    assert len(report.sources) == 3
    assert {s.url for s in report.sources} == set(ENRICHABLE)
    assert report.sources[0].source_name == "언론사1"
    assert report.enriched_count == 3
    assert report.reference_snapshot.primary_rate == 1450.50


@pytest.mark.asyncio
async def test_get_analysis_is_cached_until_invalidated(make_settings, make_item, generated_payload, http_client):
    generator = DummyGenerator(generated_payload)
    service = _build(make_settings, http_client, StaticProvider(_items(make_item)), generator, cache=ResultCache())

    first = await service.get_analysis()
    second = await service.get_analysis()
    assert second.cached is True
    assert second.value.generated_at == first.value.generated_at
    assert len(generator.prompts) == 1

    assert service.invalidate(ANALYSIS_TAG) == [ANALYSIS_TAG]
    third = await service.get_analysis()
    assert third.cached is False
    assert third.value.generated_at > first.value.generated_at

    refreshed = await service.get_analysis(refresh=True)
    assert refreshed.cached is False
    assert len(generator.prompts) == 3


@pytest.mark.asyncio
async def test_get_exchange_rates_goes_through_cache(make_settings, make_item, generated_payload, http_client):
    service = _build(make_settings, http_client, StaticProvider([]), DummyGenerator(generated_payload))

    first = await service.get_exchange_rates()
    second = await service.get_exchange_rates()

    assert first.cached is False and second.cached is True
    assert first.value.get("USD").rate == 1450.50
    assert sorted(service.invalidate()) == sorted([ANALYSIS_TAG, EXCHANGE_RATE_TAG])


@pytest.mark.asyncio
async def test_primary_search_failure_aborts_run(make_settings, make_item, generated_payload, http_client):
    generator = DummyGenerator(generated_payload)
    service = _build(make_settings, http_client, StaticProvider([], fail=True), generator)

    with pytest.raises(UpstreamUnavailableError):
        await service.get_analysis()
    assert generator.prompts == []


@pytest.mark.asyncio
async def test_build_briefing_service_wires_config(make_settings):
    service = build_briefing_service(make_settings(LISTING_SOURCE_ENABLED=False), sources=FxSourcesConfig())
    try:
        assert service.aggregator.listing_source is None
        assert service.aggregator.keywords == FxSourcesConfig().keywords
        assert service.enrichment.batch_size == 5
        assert set(service.cache.tags) == {ANALYSIS_TAG, EXCHANGE_RATE_TAG}
    finally:
        await service.aclose()


@pytest.mark.asyncio
async def test_run_analysis_without_openai_key_makes_no_requests(make_settings, make_item, generated_payload):
    requests: List[httpx.Request] = []

    def counting_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return _handler(request)

    provider = StaticProvider(_items(make_item))
    generator = DummyGenerator(generated_payload)
    async with httpx.AsyncClient(transport=httpx.MockTransport(counting_handler)) as client:
        service = _build(make_settings, client, provider, generator, OPENAI_API_KEY=None)

        with pytest.raises(ConfigurationError):
            await service.get_analysis()

    assert requests == []
    assert provider.calls == []
    assert generator.prompts == []


class GatedAggregator:
    """Search that cannot finish until the snapshot fetch has started."""

    keywords = ("환율",)

    def __init__(self, search_started: asyncio.Event, snapshot_started: asyncio.Event):
        self.search_started = search_started
        self.snapshot_started = snapshot_started

    async def search(self) -> List[SearchResultItem]:
        self.search_started.set()
        await self.snapshot_started.wait()
        return []


class GatedExchangeRates:
    """Snapshot that cannot finish until the search has started."""

    def __init__(self, search_started: asyncio.Event, snapshot_started: asyncio.Event):
        self.search_started = search_started
        self.snapshot_started = snapshot_started

    async def fetch_board(self):
        raise AssertionError("board is not part of the analysis run")

    async def fetch_snapshot(self) -> ReferenceSnapshot:
        self.snapshot_started.set()
        await self.search_started.wait()
        return ReferenceSnapshot.unavailable("gated")


class EmptyEnrichment:
    async def enrich(self, items):
        return []


@pytest.mark.asyncio
async def test_snapshot_runs_concurrently_with_search(make_settings, generated_payload):
    search_started, snapshot_started = asyncio.Event(), asyncio.Event()
    service = BriefingService(
        aggregator=GatedAggregator(search_started, snapshot_started),
        enrichment=EmptyEnrichment(),
        exchange_rates=GatedExchangeRates(search_started, snapshot_started),
        analysis=AnalysisService(cfg=make_settings(), generator=DummyGenerator(generated_payload), clock=TickingClock()),
    )

    # Sequential execution would leave each side waiting on the other forever.
    report = await asyncio.wait_for(service.run_analysis(), timeout=2)

    assert report.reference_snapshot.unavailable_reason == "gated"
    assert report.sources == []
