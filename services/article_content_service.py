"""
Full-text extraction for single news article pages.

Only pages on the supported article hosts are fetched. Every failure mode
(unsupported host, HTTP error, timeout, empty body) comes back as None; nothing
is raised to the caller.
"""

from __future__ import annotations

import time
from typing import Optional, Sequence
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from app.core.logging import get_logger
from app.models.fx_news import ArticleContent
from services.base_fetch_service import BaseFetchService
from services.text_normalization import collapse_whitespace, truncate

logger = get_logger().bind(module="article_content_service")

# Ordered by preference; first non-empty match wins.
CONTENT_SELECTORS: Sequence[str] = (
    "#dic_area",
    "#articeBody",
    "#newsct_article",
    ".newsct_article",
    "article#dic_area",
)

SOURCE_SELECTORS: Sequence[tuple[str, str]] = (
    (".media_end_head_top_logo img", "alt"),
    (".press_logo img", "alt"),
    ('meta[property="og:article:author"]', "content"),
)

JOURNALIST_SELECTORS: Sequence[str] = (
    ".media_end_head_journalist_name",
    ".byline_s",
    ".journalist_name",
)

_ARTICLE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "ko-KR,ko;q=0.9,en-US;q=0.8,en;q=0.7",
}


def is_supported_article_url(url: str, supported_hosts: Sequence[str]) -> bool:
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return False
    if not host:
        return False
    return any(host == allowed or host.endswith(f".{allowed}") for allowed in supported_hosts)


def _first_text(soup: BeautifulSoup, selectors: Sequence[str]) -> str:
    for selector in selectors:
        node = soup.select_one(selector)
        if node is None:
            continue
        text = node.get_text(" ", strip=True)
        if text:
            return text
    return ""


def _first_attr(soup: BeautifulSoup, selectors: Sequence[tuple[str, str]]) -> str:
    for selector, attr in selectors:
        node = soup.select_one(selector)
        if node is None:
            continue
        value = node.get(attr)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def parse_article_html(html: str, *, max_chars: int = 3000) -> Optional[ArticleContent]:
    """Extract body, source name, byline and og:image; None when no body is found."""
    soup = BeautifulSoup(html, "html.parser")
    body = collapse_whitespace(_first_text(soup, CONTENT_SELECTORS))
    if not body:
        return None
    return ArticleContent(
        full_text=truncate(body, max_chars),
        source_name=_first_attr(soup, SOURCE_SELECTORS),
        thumbnail_url=_first_attr(soup, (('meta[property="og:image"]', "content"),)),
        journalist=_first_text(soup, JOURNALIST_SELECTORS),
    )


class ArticleContentService(BaseFetchService):
    """Fetches and parses one article page at a time."""

    def __init__(
        self,
        *,
        supported_hosts: Sequence[str] = ("news.naver.com",),
        max_chars: int = 3000,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 10.0,
    ) -> None:
        super().__init__(client=client, timeout_s=timeout_s)
        self.supported_hosts = tuple(h.lower() for h in supported_hosts)
        self.max_chars = max_chars

    async def fetch_content(self, url: str) -> Optional[ArticleContent]:
        if not is_supported_article_url(url, self.supported_hosts):
            logger.debug("article_fetch_skipped_unsupported_host", url=url)
            return None

        t0 = time.perf_counter()
        try:
            response = await self.fetch(url, headers=_ARTICLE_HEADERS)
        except httpx.TimeoutException:
            logger.warning("article_fetch_timeout", url=url, timeout_s=self.timeout_s)
            return None
        except httpx.HTTPStatusError as exc:
            logger.warning("article_fetch_http_error", url=url, status_code=exc.response.status_code)
            return None
        except httpx.HTTPError as exc:
            logger.warning("article_fetch_failed", url=url, error=str(exc))
            return None

        try:
            content = parse_article_html(response.text, max_chars=self.max_chars)
        except Exception as exc:
            logger.warning("article_parse_failed", url=url, error=str(exc))
            return None

        duration_ms = int((time.perf_counter() - t0) * 1000)
        if content is None:
            logger.info("article_fetch_empty_body", url=url, duration_ms=duration_ms)
            return None

        logger.info(
            "article_fetch_done",
            url=url,
            chars=len(content.full_text),
            source_name=content.source_name or None,
            duration_ms=duration_ms,
        )
        return content
