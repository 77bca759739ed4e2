from __future__ import annotations

import time

from fastapi import APIRouter, Depends, Query

from api.responses import elapsed_ms, error_response
from app.core.logging import logger
from app.deps.briefing import get_briefing_service
from services.briefing_service import BriefingService

router = APIRouter(
    prefix="/api/exchange-rate",
    tags=["exchange-rate"],
)


@router.get("")
async def get_exchange_rates(
    refresh: bool = Query(False),
    briefing: BriefingService = Depends(get_briefing_service),
):
    t0 = time.perf_counter()
    try:
        lookup = await briefing.get_exchange_rates(refresh=refresh)
    except Exception as exc:
        return error_response(exc, event="exchange_rate_request_failed", refresh=refresh)

    total_ms = elapsed_ms(t0)
    logger.info("exchange_rate_served", cached=lookup.cached, total_ms=total_ms)
    return {
        "success": True,
        "data": lookup.value.model_dump(mode="json", by_alias=True),
        "cached": lookup.cached,
        "timing": {"total_ms": total_ms},
    }
