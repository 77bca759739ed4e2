"""
Report synthesis: enriched articles + reference rates -> AnalysisReport.

The model only writes the analytical part (GeneratedAnalysis). Sources,
timestamps, counts and the reference snapshot are attached here from the
articles that were actually put in the prompt.
"""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from app.config import Settings, require_openai, settings
from app.core.logging import get_logger
from app.models.fx_analysis import AnalysisReport, GeneratedAnalysis, ReportSource
from app.models.fx_news import EnrichedArticle
from app.models.fx_rates import ReferenceSnapshot
from services.openai_service import OpenAIJSONService
from services.text_normalization import truncate

logger = get_logger().bind(module="analysis_service")

EXPECTED_KEY_POINTS = 5
BREAKDOWN_TOLERANCE = 5.0

SYSTEM_PROMPT = (
    "You are a senior foreign-exchange market analyst with twenty years of experience, "
    "writing research notes at the level of a bank research desk head. "
    "You analyse the KRW exchange rate from Korean news coverage and write in Korean."
)

_SHAPE_INSTRUCTIONS = """Return a JSON object with these keys:
- "title": one sentence summarising today's exchange-rate movement
- "summary": 4-5 sentences combining all articles, with concrete figures
- "detailedAnalysis": 8-10 sentences on the current level, main drivers, global context and the domestic economy
- "keyPoints": exactly 5 strings, each with concrete content and figures
- "marketFactors": at least 3 objects {"factor", "impact": "positive"|"negative"|"neutral", "description"} explaining the effect on USD/KRW
- "sentiment": {"overall": "positive"|"negative"|"neutral", "score": number between -1.0 and 1.0 (2 decimals), "description": 3-4 sentences, "breakdown": {"positive", "negative", "neutral"} as integer percentages summing to 100}
- "outlook": {"direction": "up"|"down"|"stable"|"uncertain", "shortTerm": one-week view with an expected range, "midTerm": one-month view, "riskFactors": 3 strings}
- "investmentTip": 3-4 sentences of practical advice for individuals investing or exchanging currency"""


def select_articles(articles: Sequence[EnrichedArticle], limit: int) -> List[EnrichedArticle]:
    """Enriched articles with text, in input order, at most `limit`."""
    chosen = [a for a in articles if a.enriched and a.full_text.strip()]
    return chosen[: max(0, limit)]


def _format_delta(value: float) -> str:
    return f"{value:+,.2f}"


def build_reference_block(snapshot: ReferenceSnapshot) -> str:
    """Empty string when the snapshot is unavailable; the prompt then omits the section."""
    if snapshot.is_unavailable:
        return ""
    lines = [f"[Reference rates, observed {snapshot.observed_at.isoformat()}]"]
    if snapshot.primary_rate:
        lines.append(
            f"{snapshot.primary_code}/KRW {snapshot.primary_rate:,.2f} "
            f"({_format_delta(snapshot.primary_delta)}, {snapshot.primary_trend})"
        )
    for code, rate in snapshot.secondary_rates.items():
        lines.append(f"{code}/KRW {rate:,.2f}")
    lines.append("Use these figures as the factual anchor for any level you quote.")
    return "\n".join(lines)


def build_user_prompt(
    articles: Sequence[EnrichedArticle],
    snapshot: ReferenceSnapshot,
    *,
    article_chars: int = 1000,
) -> str:
    news = "\n\n".join(
        f"[News {i}] {article.title}\n{truncate(article.full_text, article_chars)}"
        for i, article in enumerate(articles, start=1)
    )
    parts = [
        f"Analyse the following {len(articles)} exchange-rate news articles in depth "
        "and write an expert-level consolidated report."
    ]
    reference = build_reference_block(snapshot)
    if reference:
        parts.append(reference)
    parts.append(f"[News list]\n{news}")
    parts.append(_SHAPE_INSTRUCTIONS)
    return "\n\n".join(parts)


def _warn_on_shape(generated: GeneratedAnalysis) -> None:
    if len(generated.key_points) != EXPECTED_KEY_POINTS:
        logger.warning(
            "analysis_key_points_count",
            expected=EXPECTED_KEY_POINTS,
            actual=len(generated.key_points),
        )
    total = generated.sentiment.breakdown.total
    if abs(total - 100.0) > BREAKDOWN_TOLERANCE:
        logger.warning("analysis_breakdown_sum_off", total=total)


class AnalysisService:
    def __init__(
        self,
        *,
        cfg: Optional[Settings] = None,
        generator: Optional[OpenAIJSONService] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self.cfg = cfg or settings
        self._generator = generator
        self._clock = clock

    @property
    def generator(self) -> OpenAIJSONService:
        if self._generator is None:
            self._generator = OpenAIJSONService(
                model=self.cfg.OPENAI_MODEL,
                max_retries=self.cfg.OPENAI_MAX_RETRIES,
                timeout_s=self.cfg.OPENAI_TIMEOUT_S,
                api_key=require_openai(self.cfg),
            )
        return self._generator

    async def synthesize(
        self,
        articles: Sequence[EnrichedArticle],
        snapshot: ReferenceSnapshot,
    ) -> AnalysisReport:
        # Checked even with an injected generator: no key, no report.
        require_openai(self.cfg)

        submitted = select_articles(articles, self.cfg.ANALYSIS_MAX_ARTICLES)
        user_prompt = build_user_prompt(
            submitted, snapshot, article_chars=self.cfg.ANALYSIS_ARTICLE_CHARS
        )
        logger.info(
            "analysis_started",
            candidates=len(articles),
            submitted=len(submitted),
            snapshot_available=not snapshot.is_unavailable,
        )

        t0 = time.perf_counter()
        generated, meta = await self.generator.generate_json(
            SYSTEM_PROMPT,
            user_prompt,
            GeneratedAnalysis,
            action_type="fx_briefing_analysis",
        )
        _warn_on_shape(generated)

        report = AnalysisReport.from_generated(
            generated,
            sources=[
                ReportSource(
                    title=article.title,
                    source_name=article.source_name,
                    url=article.canonical_url,
                    thumbnail_url=article.thumbnail_url,
                )
                for article in submitted
            ],
            reference_snapshot=snapshot,
            generated_at=self._clock(),
            enriched_count=len(submitted),
        )
        logger.info(
            "analysis_done",
            sources=len(report.sources),
            sentiment=report.sentiment.overall,
            direction=report.outlook.direction,
            duration_ms=int((time.perf_counter() - t0) * 1000),
            model=meta.get("model"),
        )
        return report
