from __future__ import annotations

import time
from typing import Any, Dict

from fastapi.responses import JSONResponse

from app.core.errors import BriefingError
from app.core.logging import logger


def elapsed_ms(t0: float) -> int:
    return int((time.perf_counter() - t0) * 1000)


def error_response(exc: Exception, *, event: str, **context: Any) -> JSONResponse:
    """
    Single failure shape for every briefing route: HTTP 500 `{success: false, error}`.
    """
    if isinstance(exc, BriefingError):
        logger.error(event, error=str(exc), error_type=type(exc).__name__, **context)
        message = str(exc)
    else:
        logger.exception(event, error=str(exc), error_type=type(exc).__name__, **context)
        message = str(exc) or "Unknown error"
    payload: Dict[str, Any] = {"success": False, "error": message}
    return JSONResponse(status_code=500, content=payload)
