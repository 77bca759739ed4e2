"""
KRW exchange rates scraped from the Naver Finance market index page.

`fetch_board()` returns the whole listing and raises on failure (the
/api/exchange-rate route wants to know). `fetch_snapshot()` reduces the board
to the reference values used by the analysis prompt and never raises.
"""

from __future__ import annotations

import re
import time
from datetime import datetime, timezone
from typing import List, Mapping, Optional, Sequence

import httpx
from bs4 import BeautifulSoup

from app.core.errors import UpstreamUnavailableError
from app.core.logging import get_logger
from app.models.fx_rates import ExchangeRate, ExchangeRateBoard, ReferenceSnapshot, Trend
from app.models.fx_sources import CurrencyInfo
from services.base_fetch_service import BaseFetchService

logger = get_logger().bind(module="exchange_rate_service")

CHART_URL_TEMPLATE = "https://ssl.pstatic.net/imgfinance/chart/marketindex/FX_{code}KRW.png"

_FX_HREF = re.compile(r"FX_(\w+?)KRW")


def _parse_number(text: str) -> float:
    cleaned = (text or "").strip().replace(",", "")
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def _trend_from_classes(classes: Sequence[str]) -> Trend:
    if "point_up" in classes:
        return "up"
    if "point_dn" in classes:
        return "down"
    return "stable"


def parse_market_index_html(
    html: str,
    currencies: Mapping[str, CurrencyInfo],
    *,
    updated_at: Optional[datetime] = None,
) -> ExchangeRateBoard:
    soup = BeautifulSoup(html, "html.parser")
    rates: List[ExchangeRate] = []

    for node in soup.select("#exchangeList li"):
        head = node.select_one("a.head")
        href = head.get("href") if head is not None else None
        match = _FX_HREF.search(href) if isinstance(href, str) else None
        if match is None:
            continue
        key = match.group(1).lower()
        info = currencies.get(key)
        if info is None:
            logger.debug("exchange_rate_unknown_currency", currency_key=key)
            continue

        value_node = node.select_one(".value")
        change_node = node.select_one(".change")
        rate = _parse_number(value_node.get_text() if value_node else "")
        # The page prints magnitudes; direction lives in the head_info class.
        magnitude = abs(_parse_number(change_node.get_text() if change_node else ""))

        info_node = node.select_one(".head_info")
        classes = (info_node.get("class") or []) if info_node is not None else []
        trend = _trend_from_classes(classes)
        change = -magnitude if trend == "down" else magnitude

        previous = rate - change
        change_percent = (change / previous) * 100 if rate > 0 and previous else 0.0

        time_node = node.select_one(".time")
        rates.append(
            ExchangeRate(
                currency=info.name,
                currency_code=info.code,
                rate=rate,
                change=change,
                change_percent=change_percent,
                trend=trend,
                chart_url=CHART_URL_TEMPLATE.format(code=key.upper()),
                time=time_node.get_text(strip=True) if time_node else "",
            )
        )

    return ExchangeRateBoard(rates=rates, updated_at=updated_at or datetime.now(timezone.utc))


def snapshot_from_board(
    board: ExchangeRateBoard,
    *,
    primary: str = "USD",
    secondary: Sequence[str] = ("JPY", "EUR", "CNY"),
) -> ReferenceSnapshot:
    main = board.get(primary)
    secondary_rates = {}
    for code in secondary:
        row = board.get(code)
        if row is not None:
            secondary_rates[row.currency_code] = row.rate

    if main is None and not secondary_rates:
        return ReferenceSnapshot(
            primary_code=primary.upper(),
            observed_at=board.updated_at,
            unavailable_reason="reference currencies missing from market index",
        )

    return ReferenceSnapshot(
        primary_code=primary.upper(),
        primary_rate=main.rate if main else 0.0,
        primary_delta=main.change if main else 0.0,
        primary_trend=main.trend if main else "stable",
        secondary_rates=secondary_rates,
        observed_at=board.updated_at,
    )


class ExchangeRateService(BaseFetchService):
    def __init__(
        self,
        *,
        url: str,
        currencies: Mapping[str, CurrencyInfo],
        primary: str = "USD",
        secondary: Sequence[str] = ("JPY", "EUR", "CNY"),
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 10.0,
    ) -> None:
        super().__init__(client=client, timeout_s=timeout_s)
        self.url = url
        self.currencies = dict(currencies)
        self.primary = primary.upper()
        self.secondary = tuple(code.upper() for code in secondary)

    async def fetch_board(self) -> ExchangeRateBoard:
        t0 = time.perf_counter()
        try:
            response = await self.fetch(self.url, headers={"Accept-Language": "ko-KR,ko;q=0.9"})
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise UpstreamUnavailableError(
                f"Market index unavailable: {status}", source="naver_finance", status_code=status
            ) from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailableError(
                f"Market index unreachable: {exc}", source="naver_finance"
            ) from exc

        board = parse_market_index_html(response.text, self.currencies)
        logger.info(
            "exchange_rate_board_fetched",
            rates=len(board.rates),
            duration_ms=int((time.perf_counter() - t0) * 1000),
        )
        return board

    async def fetch_snapshot(self) -> ReferenceSnapshot:
        try:
            board = await self.fetch_board()
        except Exception as exc:
            logger.warning("exchange_rate_snapshot_unavailable", error=str(exc))
            return ReferenceSnapshot.unavailable(str(exc) or type(exc).__name__, primary_code=self.primary)
        return snapshot_from_board(board, primary=self.primary, secondary=self.secondary)
