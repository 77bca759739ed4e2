from __future__ import annotations

import hmac
from typing import Optional

from fastapi import Depends, Header, HTTPException

from app.config import Settings
from app.core.logging import logger
from app.deps.briefing import get_settings

__all__ = ["verify_cron_secret"]


async def verify_cron_secret(
    authorization: Optional[str] = Header(None),
    cfg: Settings = Depends(get_settings),
) -> None:
    """
    Bearer check for scheduler-triggered endpoints.

    Enforced only when APP_ENV=production and CRON_SECRET is set; everywhere
    else the endpoints are open so they can be hit by hand during development.
    """
    secret = (cfg.CRON_SECRET or "").strip()
    if not cfg.is_production or not secret:
        return

    if not authorization or not str(authorization).startswith("Bearer "):
        logger.info("cron_auth_missing_or_malformed")
        raise HTTPException(status_code=401, detail="Unauthorized")

    token = str(authorization).split(" ", 1)[1].strip()
    if not hmac.compare_digest(token.encode("utf-8"), secret.encode("utf-8")):
        logger.info("cron_auth_invalid_token")
        raise HTTPException(status_code=401, detail="Unauthorized")
