from __future__ import annotations

import time

from fastapi import APIRouter, Depends, Query

from api.responses import elapsed_ms, error_response
from app.core.logging import logger
from app.deps.briefing import get_briefing_service
from services.briefing_service import BriefingService

router = APIRouter(
    prefix="/api/news",
    tags=["news"],
)


@router.get("/analyze")
async def analyze_news(
    refresh: bool = Query(False, description="Bypass the cache and regenerate the report."),
    briefing: BriefingService = Depends(get_briefing_service),
):
    t0 = time.perf_counter()
    try:
        lookup = await briefing.get_analysis(refresh=refresh)
    except Exception as exc:
        return error_response(exc, event="analysis_request_failed", refresh=refresh)

    total_ms = elapsed_ms(t0)
    logger.info(
        "analysis_cache_hit" if lookup.cached else "analysis_generated",
        refresh=refresh,
        total_ms=total_ms,
    )
    return {
        "success": True,
        "data": lookup.value.model_dump(mode="json", by_alias=True),
        "cached": lookup.cached,
        "timing": {"total_ms": total_ms},
    }


@router.get("")
async def list_news(briefing: BriefingService = Depends(get_briefing_service)):
    """Search + enrichment only; never cached."""
    try:
        collection = await briefing.collect_news()
    except Exception as exc:
        return error_response(exc, event="news_request_failed")

    return {
        "success": True,
        "data": {
            "news": [article.model_dump(mode="json", by_alias=True) for article in collection.news],
            "total": collection.total,
            "enrichedCount": collection.enriched_count,
            "keywords": collection.keywords,
            "timing": collection.timing,
        },
    }
