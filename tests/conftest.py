from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

import pytest

from app.config import Settings
from app.models.fx_news import ArticleContent, SearchResultItem

BASE_TIME = datetime(2025, 1, 6, 9, 0, tzinfo=timezone.utc)

GENERATED_PAYLOAD: Dict[str, Any] = {
    "title": "달러 강세에 원/달러 환율 1,450원 돌파",
    "summary": "미국 금리 인하 속도 조절 전망에 달러가 강세를 보였다.",
    "detailedAnalysis": "연준의 매파적 발언과 수출 둔화가 겹치며 원화 약세가 이어졌다.",
    "keyPoints": ["포인트 1", "포인트 2", "포인트 3", "포인트 4", "포인트 5"],
    "marketFactors": [
        {"factor": "미국 금리 정책", "impact": "Negative", "description": "원화 약세 요인"},
        {"factor": "수출 실적", "impact": "neutral", "description": "혼조"},
    ],
    "sentiment": {
        "overall": "NEGATIVE",
        "score": -0.35,
        "description": "불안 심리가 우세하다.",
        "breakdown": {"positive": 20, "negative": 55, "neutral": 25},
    },
    "outlook": {
        "direction": "Up",
        "shortTerm": "1,440~1,470원 범위 예상",
        "midTerm": "변동성 확대",
        "riskFactors": ["연준 발언", "지정학 리스크"],
    },
    "investmentTip": "분할 환전을 고려하라.",
    "sources": [{"title": "model invented", "sourceName": "nowhere", "url": "https://fake.example"}],
}


@pytest.fixture
def generated_payload() -> Dict[str, Any]:
    return copy.deepcopy(GENERATED_PAYLOAD)


@pytest.fixture
def make_settings() -> Callable[..., Settings]:
    def _make(**overrides: Any) -> Settings:
        values: Dict[str, Any] = {
            "APP_ENV": "test",
            "NAVER_CLIENT_ID": "naver-id",
            "NAVER_CLIENT_SECRET": "naver-secret",
            "OPENAI_API_KEY": "sk-test",
            "CRON_SECRET": None,
            "EMAIL_TO": None,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def make_item() -> Callable[..., SearchResultItem]:
    def _make(
        url: str,
        *,
        title: Optional[str] = None,
        minutes_ago: int = 0,
        origin: str = "search",
    ) -> SearchResultItem:
        return SearchResultItem(
            title=title or f"title for {url}",
            original_url=url,
            canonical_url=url,
            snippet="snippet",
            published_at=BASE_TIME - timedelta(minutes=minutes_ago),
            origin=origin,
        )

    return _make


class FakeContentFetcher:
    """Returns canned content per URL and records every call."""

    def __init__(self, contents: Optional[Dict[str, Optional[ArticleContent]]] = None):
        self.contents = contents or {}
        self.calls: List[str] = []

    async def fetch_content(self, url: str) -> Optional[ArticleContent]:
        self.calls.append(url)
        return self.contents.get(url)


@pytest.fixture
def fake_fetcher_cls():
    return FakeContentFetcher
