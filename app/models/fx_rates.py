from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional

from pydantic import Field

from app.models.fx_news import CamelModel

Trend = Literal["up", "down", "stable"]


class ExchangeRate(CamelModel):
    """One row of the market index listing, quoted against KRW."""

    currency: str
    currency_code: str
    rate: float
    change: float
    change_percent: float
    trend: Trend
    chart_url: str = ""
    time: str = ""


class ExchangeRateBoard(CamelModel):
    """Response payload for /api/exchange-rate."""

    rates: List[ExchangeRate] = Field(default_factory=list)
    updated_at: datetime

    def get(self, currency_code: str) -> Optional[ExchangeRate]:
        code = currency_code.strip().upper()
        for rate in self.rates:
            if rate.currency_code == code:
                return rate
        return None


class ReferenceSnapshot(CamelModel):
    """
    Point-in-time reference values used to ground the analysis prompt.

    All-zero with no secondary rates means "unavailable"; that is a valid value,
    not an error.
    """

    primary_code: str = "USD"
    primary_rate: float = 0.0
    primary_delta: float = 0.0
    primary_trend: Trend = "stable"
    secondary_rates: Dict[str, float] = Field(default_factory=dict)
    observed_at: datetime
    unavailable_reason: Optional[str] = None

    @property
    def is_unavailable(self) -> bool:
        return self.primary_rate == 0 and not self.secondary_rates

    @classmethod
    def unavailable(cls, reason: str, *, primary_code: str = "USD") -> "ReferenceSnapshot":
        return cls(
            primary_code=primary_code,
            observed_at=datetime.now(timezone.utc),
            unavailable_reason=reason,
        )
