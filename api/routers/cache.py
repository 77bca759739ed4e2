from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query

from app.core.logging import logger
from app.deps.briefing import get_briefing_service
from app.deps.cron_auth import verify_cron_secret
from services.briefing_service import BriefingService

router = APIRouter(
    prefix="/api/cache",
    tags=["cache"],
    dependencies=[Depends(verify_cron_secret)],
)


@router.api_route("/invalidate", methods=["POST", "GET"])
async def invalidate_cache(
    tag: Optional[str] = Query(None, description="Cache tag to drop; all tags when omitted."),
    briefing: BriefingService = Depends(get_briefing_service),
):
    cleared = briefing.invalidate(tag)
    logger.info("cache_invalidate_requested", tag=tag, cleared=cleared)
    return {
        "success": True,
        "message": f"Cache cleared: {', '.join(cleared)}" if cleared else "Nothing to clear",
        "clearedTags": cleared,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
