from __future__ import annotations

import time

from fastapi import APIRouter, Depends, Query

from api.responses import elapsed_ms, error_response
from app.deps.briefing import get_digest_service
from app.deps.cron_auth import verify_cron_secret
from services.digest_service import DigestService

router = APIRouter(
    prefix="/api/cron",
    tags=["cron"],
    dependencies=[Depends(verify_cron_secret)],
)


@router.get("/send-digest")
async def send_digest(
    refresh: bool = Query(False),
    digest: DigestService = Depends(get_digest_service),
):
    t0 = time.perf_counter()
    try:
        result = await digest.dispatch(refresh=refresh)
    except Exception as exc:
        return error_response(exc, event="digest_request_failed")

    return {
        "success": True,
        "messageIds": result.message_ids,
        "recipients": len(result.recipients),
        "cached": result.cached,
        "timing": {"total_ms": elapsed_ms(t0)},
    }
