"""
FX briefing source registry loader.

Parses configs/fx_briefing.yml into a typed FxSourcesConfig. Missing or broken
files are logged and replaced by the built-in defaults so the API keeps serving.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml

from app.core.logging import get_logger

logger = get_logger().bind(module="fx_sources")

THIS_FILE = Path(__file__).resolve()
APP_DIR = THIS_FILE.parent.parent
REPO_ROOT = APP_DIR.parent
FX_SOURCES_YML = REPO_ROOT / "configs" / "fx_briefing.yml"

DEFAULT_KEYWORDS: Tuple[str, ...] = ("환율", "달러", "원화", "금리", "한국은행")

DEFAULT_CURRENCIES: Dict[str, Tuple[str, str]] = {
    "usd": ("미국 달러", "USD"),
    "jpy": ("일본 엔 (100엔)", "JPY"),
    "eur": ("유럽연합 유로", "EUR"),
    "cny": ("중국 위안", "CNY"),
}


@dataclass(frozen=True)
class CurrencyInfo:
    name: str
    code: str


@dataclass(frozen=True)
class ListingSourceConfig:
    """Secondary listing page scraped alongside the keyword search."""

    key: str = "naver_finance_mainnews"
    url: str = "https://finance.naver.com/news/mainnews.naver"
    base_url: str = "https://finance.naver.com"
    item_selector: str = ".mainNewsList li"
    title_selector: str = ".articleSubject a"
    snippet_selector: str = ".articleSummary"


@dataclass(frozen=True)
class FxSourcesConfig:
    search_endpoint: str = "https://openapi.naver.com/v1/search/news.json"
    search_display: int = 50
    search_sort: str = "date"
    keywords: Tuple[str, ...] = DEFAULT_KEYWORDS
    supported_hosts: Tuple[str, ...] = ("news.naver.com",)
    listing: ListingSourceConfig = field(default_factory=ListingSourceConfig)
    market_index_url: str = "https://finance.naver.com/marketindex/"
    primary_currency: str = "USD"
    secondary_currencies: Tuple[str, ...] = ("JPY", "EUR", "CNY")
    currencies: Mapping[str, CurrencyInfo] = field(
        default_factory=lambda: {
            key: CurrencyInfo(name=name, code=code)
            for key, (name, code) in DEFAULT_CURRENCIES.items()
        }
    )


def load_fx_sources_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load the raw YAML config.

    Returns an empty dict if the file is missing or invalid.
    """
    cfg_path = Path(path) if path else FX_SOURCES_YML
    try:
        text = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.error("fx_sources_config_not_found", path=str(cfg_path))
        return {}
    except OSError as exc:
        logger.error("fx_sources_config_read_error", path=str(cfg_path), error=str(exc))
        return {}

    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        logger.error("fx_sources_config_parse_error", path=str(cfg_path), error=str(exc))
        return {}

    if not isinstance(data, dict):
        logger.error(
            "fx_sources_config_invalid_root",
            path=str(cfg_path),
            root_type=type(data).__name__,
        )
        return {}

    return data


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        logger.warning("fx_sources_invalid_section", section=name, actual_type=type(value).__name__)
        return {}
    return value


def _str_tuple(value: Any, default: Tuple[str, ...]) -> Tuple[str, ...]:
    if not isinstance(value, list):
        return default
    cleaned = tuple(str(v).strip() for v in value if str(v).strip())
    return cleaned or default


def _parse_currencies(value: Any) -> Dict[str, CurrencyInfo]:
    result: Dict[str, CurrencyInfo] = {}
    if not isinstance(value, dict):
        return result
    for key, raw in value.items():
        if not isinstance(raw, dict) or not raw.get("code"):
            logger.warning("fx_sources_invalid_currency", key=key, raw=raw)
            continue
        code = str(raw["code"]).strip().upper()
        result[str(key).strip().lower()] = CurrencyInfo(name=str(raw.get("name") or code).strip(), code=code)
    return result


def parse_fx_sources(raw: Dict[str, Any]) -> FxSourcesConfig:
    defaults = FxSourcesConfig()
    search = _section(raw, "search")
    articles = _section(raw, "articles")
    listing = _section(raw, "listing")
    market = _section(raw, "market_index")

    try:
        display = int(search.get("display", defaults.search_display))
    except (TypeError, ValueError):
        logger.warning("fx_sources_invalid_display", value=search.get("display"))
        display = defaults.search_display

    listing_defaults = defaults.listing
    listing_cfg = ListingSourceConfig(
        key=str(listing.get("key") or listing_defaults.key),
        url=str(listing.get("url") or listing_defaults.url),
        base_url=str(listing.get("base_url") or listing_defaults.base_url),
        item_selector=str(listing.get("item_selector") or listing_defaults.item_selector),
        title_selector=str(listing.get("title_selector") or listing_defaults.title_selector),
        snippet_selector=str(listing.get("snippet_selector") or listing_defaults.snippet_selector),
    )

    currencies = _parse_currencies(market.get("currencies")) or dict(defaults.currencies)

    return FxSourcesConfig(
        search_endpoint=str(search.get("endpoint") or defaults.search_endpoint),
        search_display=max(1, min(display, 100)),
        search_sort=str(search.get("sort") or defaults.search_sort),
        keywords=_str_tuple(search.get("keywords"), defaults.keywords),
        supported_hosts=tuple(h.lower() for h in _str_tuple(articles.get("supported_hosts"), defaults.supported_hosts)),
        listing=listing_cfg,
        market_index_url=str(market.get("url") or defaults.market_index_url),
        primary_currency=str(market.get("primary") or defaults.primary_currency).upper(),
        secondary_currencies=tuple(
            c.upper() for c in _str_tuple(market.get("secondary"), defaults.secondary_currencies)
        ),
        currencies=currencies,
    )


@lru_cache(maxsize=8)
def _load_from_path(path_str: str) -> FxSourcesConfig:
    return parse_fx_sources(load_fx_sources_config(Path(path_str)))


def get_fx_sources(path: Optional[str] = None) -> FxSourcesConfig:
    return _load_from_path(str(path or FX_SOURCES_YML))


def clear_fx_sources_cache() -> None:
    _load_from_path.cache_clear()
