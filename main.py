"""
Map Snapshot FastAPI Application

Main entry point for the map snapshot service: renders OpenLayers maps with
optional WMS overlays and a marker to JPEG, PNG or WebP in a pooled headless
Chromium.

Run with: python main.py

Author: Map Snapshot maintainers
Date: 2026-10-14
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from logic.config import Settings, load_settings
from logic.errors import RateLimited, RenderError, ValidationError
from logic.ratelimit import FixedWindowRateLimiter
from server.pool import EnginePool
from server.reporting import EventReporter, LoggingReporter
from server.routes import router as routes_router
from server.screenshot import MapRenderer

# Load environment variables
load_dotenv()

logger = logging.getLogger("mapshot.main")


def configure_logging(settings: Settings):
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    pool: Optional[EnginePool] = None,
    reporter: Optional[EventReporter] = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Service settings. Read from the environment when omitted.
        pool: Engine pool. A Chromium-backed pool is created when omitted.
        reporter: Event sink for the pool and renderer. Defaults to logging.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or load_settings()
    reporter = reporter or LoggingReporter()
    pool = pool or EnginePool(capacity=settings.pool_capacity, reporter=reporter)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Map snapshot service starting (pool capacity %d)", pool.capacity)
        yield
        logger.info("Shutting down, draining engine pool")
        await pool.drain()

    app = FastAPI(title="Map Snapshot Service", lifespan=lifespan)
    app.state.settings = settings
    app.state.renderer = MapRenderer(pool, settings, reporter)
    app.state.rate_limiter = FixedWindowRateLimiter(
        settings.rate_limit_max_requests, settings.rate_limit_window_seconds
    )
    app.state.started_at = time.monotonic()

    app.include_router(routes_router)

    # ============================================================
    # Error Handlers
    # ============================================================

    @app.exception_handler(RenderError)
    async def render_error_handler(request: Request, exc: RenderError):
        headers = None
        if isinstance(exc, RateLimited):
            headers = {"Retry-After": str(exc.retry_after)}
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        details = []
        for err in exc.errors():
            loc = [str(part) for part in err.get("loc", ()) if part != "body"]
            details.append({"field": ".".join(loc) or "body", "message": err.get("msg", "invalid")})
        error = ValidationError(details)
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "InternalError", "message": "internal server error"},
        )

    return app


settings = load_settings()
configure_logging(settings)
app = create_app(settings)


if __name__ == "__main__":
    uvicorn.run(app, host=settings.host, port=settings.port)
