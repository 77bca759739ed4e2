from __future__ import annotations

import math
from datetime import datetime
from typing import Any, List, Literal

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from app.models.fx_news import CamelModel
from app.models.fx_rates import ReferenceSnapshot

Polarity = Literal["positive", "negative", "neutral"]
Direction = Literal["up", "down", "stable", "uncertain"]


def _lower_label(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower()
    return value


class MarketFactor(CamelModel):
    factor: str
    impact: Polarity
    description: str

    @field_validator("impact", mode="before")
    @classmethod
    def _normalize_impact(cls, value: Any) -> Any:
        return _lower_label(value)


class SentimentBreakdown(CamelModel):
    """Share of positive/negative/neutral coverage in percent. Expected, not enforced, to sum to ~100."""

    positive: float = 0.0
    negative: float = 0.0
    neutral: float = 0.0

    @property
    def total(self) -> float:
        return self.positive + self.negative + self.neutral


class Sentiment(CamelModel):
    overall: Polarity
    score: float = Field(..., description="Market sentiment between -1.0 and 1.0")
    description: str
    breakdown: SentimentBreakdown = Field(default_factory=SentimentBreakdown)

    @field_validator("overall", mode="before")
    @classmethod
    def _normalize_overall(cls, value: Any) -> Any:
        return _lower_label(value)

    @field_validator("score")
    @classmethod
    def _clamp_score(cls, value: float) -> float:
        if math.isnan(value):
            raise ValueError("score must be a number")
        return max(-1.0, min(1.0, value))


class Outlook(CamelModel):
    direction: Direction
    short_term: str
    mid_term: str
    risk_factors: List[str] = Field(default_factory=list)

    @field_validator("direction", mode="before")
    @classmethod
    def _normalize_direction(cls, value: Any) -> Any:
        return _lower_label(value)


class GeneratedAnalysis(CamelModel):
    """
    The part of the report requested from the generative model.

    Unknown keys are dropped on validation; in particular a `sources` list from
    the model is never read.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    title: str
    summary: str
    detailed_analysis: str
    key_points: List[str]
    market_factors: List[MarketFactor]
    sentiment: Sentiment
    outlook: Outlook
    investment_tip: str


class ReportSource(CamelModel):
    title: str
    source_name: str
    url: str
    thumbnail_url: str = ""


class AnalysisReport(GeneratedAnalysis):
    """Complete briefing: model output plus the fields the synthesizer attaches itself."""

    sources: List[ReportSource] = Field(default_factory=list)
    reference_snapshot: ReferenceSnapshot
    generated_at: datetime
    enriched_count: int = 0

    @classmethod
    def from_generated(
        cls,
        generated: GeneratedAnalysis,
        *,
        sources: List[ReportSource],
        reference_snapshot: ReferenceSnapshot,
        generated_at: datetime,
        enriched_count: int,
    ) -> "AnalysisReport":
        return cls(
            **generated.model_dump(),
            sources=sources,
            reference_snapshot=reference_snapshot,
            generated_at=generated_at,
            enriched_count=enriched_count,
        )
