from __future__ import annotations

from pathlib import Path

import pytest

from app.models.fx_sources import (
    DEFAULT_KEYWORDS,
    FX_SOURCES_YML,
    FxSourcesConfig,
    clear_fx_sources_cache,
    get_fx_sources,
    load_fx_sources_config,
    parse_fx_sources,
)


@pytest.fixture(autouse=True)
def _fresh_cache():
    clear_fx_sources_cache()
    yield
    clear_fx_sources_cache()


def test_repo_config_loads():
    cfg = get_fx_sources(str(FX_SOURCES_YML))

    assert cfg.keywords == DEFAULT_KEYWORDS
    assert cfg.supported_hosts == ("news.naver.com",)
    assert cfg.primary_currency == "USD"
    assert cfg.secondary_currencies == ("JPY", "EUR", "CNY")
    assert cfg.currencies["gbp"].code == "GBP"
    assert cfg.listing.item_selector == ".mainNewsList li"


def test_missing_file_falls_back_to_defaults(tmp_path: Path):
    missing = tmp_path / "nope.yml"

    assert load_fx_sources_config(missing) == {}
    assert get_fx_sources(str(missing)) == FxSourcesConfig()


@pytest.mark.parametrize("content", ["search: [unclosed", "- just\n- a list\n"])
def test_broken_file_falls_back_to_defaults(tmp_path: Path, content: str):
    path = tmp_path / "fx.yml"
    path.write_text(content, encoding="utf-8")

    assert load_fx_sources_config(path) == {}


def test_parse_partial_overrides_and_clamps():
    cfg = parse_fx_sources(
        {
            "search": {"display": 500, "keywords": ["  엔화 ", ""]},
            "articles": {"supported_hosts": ["News.Naver.com", "m.sports.naver.com"]},
            "listing": "not-a-mapping",
            "market_index": {
                "primary": "jpy",
                "currencies": {"JPY": {"name": "엔", "code": "jpy"}, "bad": {"name": "no code"}},
            },
        }
    )

    assert cfg.search_display == 100
    assert cfg.keywords == ("엔화",)
    assert cfg.supported_hosts == ("news.naver.com", "m.sports.naver.com")
    assert cfg.listing == FxSourcesConfig().listing
    assert cfg.primary_currency == "JPY"
    assert list(cfg.currencies) == ["jpy"]
    assert cfg.currencies["jpy"].code == "JPY"


def test_parse_invalid_display_uses_default():
    assert parse_fx_sources({"search": {"display": "many"}}).search_display == 50


def test_cache_is_cleared(tmp_path: Path):
    path = tmp_path / "fx.yml"
    path.write_text("search:\n  keywords: [달러]\n", encoding="utf-8")
    assert get_fx_sources(str(path)).keywords == ("달러",)

    path.write_text("search:\n  keywords: [엔화]\n", encoding="utf-8")
    assert get_fx_sources(str(path)).keywords == ("달러",)

    clear_fx_sources_cache()
    assert get_fx_sources(str(path)).keywords == ("엔화",)
