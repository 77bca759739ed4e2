from __future__ import annotations

from typing import Optional

from fastapi import Depends

from app.config import Settings, settings
from app.core.logging import logger
from services.briefing_service import BriefingService, build_briefing_service
from services.digest_service import DigestService, build_digest_service

__all__ = [
    "get_settings",
    "get_briefing_service",
    "get_digest_service",
    "close_briefing_service",
]

# One pipeline (and therefore one ResultCache) per process.
_briefing_service: Optional[BriefingService] = None


def get_settings() -> Settings:
    return settings


def get_briefing_service() -> BriefingService:
    global _briefing_service
    if _briefing_service is None:
        _briefing_service = build_briefing_service(settings)
    return _briefing_service


def get_digest_service(
    briefing: BriefingService = Depends(get_briefing_service),
    cfg: Settings = Depends(get_settings),
) -> DigestService:
    return build_digest_service(briefing, cfg)


async def close_briefing_service() -> None:
    global _briefing_service
    if _briefing_service is not None:
        await _briefing_service.aclose()
        logger.info("briefing_service_closed")
        _briefing_service = None
