# app/main.py
from __future__ import annotations

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response as StarletteResponse

from app.config import settings
from app.core.logging import configure_logging, logger
from app.core.request_id import clear_request_id, set_request_id
from app.deps.briefing import close_briefing_service

from api.routers.analysis import router as analysis_router
from api.routers.cache import router as cache_router
from api.routers.cron import router as cron_router
from api.routers.exchange_rate import router as exchange_rate_router

configure_logging(service_name="api")


@asynccontextmanager
async def lifespan(_: FastAPI):
    logger.info("api_started", env=settings.APP_ENV, version=settings.APP_VERSION)
    yield
    await close_briefing_service()


app = FastAPI(
    title="FX News Briefing",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        req_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        set_request_id(req_id)
        logger.info("request_started", method=request.method, path=str(request.url.path))
        try:
            response: StarletteResponse = await call_next(request)
        except Exception as exc:
            logger.error("request_exception", error=str(exc.__class__.__name__))
            clear_request_id()
            raise
        logger.info("request_ended", status_code=response.status_code)
        response.headers["X-Request-Id"] = req_id
        clear_request_id()
        return response


# CORS first so it is the outermost middleware.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(RequestIdMiddleware)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=str(request.url.path))
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc) or "Internal Server Error"})


@app.get("/health")
async def health():
    return {"ok": True, "version": settings.APP_VERSION}


app.include_router(analysis_router)
app.include_router(exchange_rate_router)
app.include_router(cache_router)
app.include_router(cron_router)
