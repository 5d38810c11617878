"""
HTTP API routes.

Screenshot, preview and service information endpoints. Handlers only parse
and validate input; rendering is delegated to the MapRenderer stored on the
application state.

Author: Map Snapshot maintainers
Date: 2026-10-14
"""

import time
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import HTMLResponse, Response
from pydantic import BaseModel

from logic.config import Settings
from logic.document import render_document
from logic.errors import RateLimited
from logic.models import FORMATS
from logic.validation import MAX_OVERLAYS, parse_render_request
from server.screenshot import MapRenderer, RenderResult

router = APIRouter()


class PoolStatus(BaseModel):
    """Engine pool bookkeeping reported by the health check."""

    capacity: int
    idle: int
    leased: int
    created: int
    destroyed: int


class HealthStatus(BaseModel):
    status: str
    uptime: float
    pool: PoolStatus


def get_renderer(request: Request) -> MapRenderer:
    return request.app.state.renderer


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


async def enforce_rate_limit(request: Request):
    """Reject the request when its client has used up the current window.

    Raises:
        RateLimited: If the client exceeded the allowed request rate.
    """
    limiter = request.app.state.rate_limiter
    client = request.client.host if request.client else "unknown"
    allowed, retry_after = limiter.hit(client)
    if not allowed:
        raise RateLimited("too many requests, try again later", retry_after)


def image_response(result: RenderResult) -> Response:
    return Response(
        content=result.content,
        media_type=result.media_type,
        headers={
            "Cache-Control": "no-cache",
            "X-Render-Ready": result.ready_reason,
        },
    )


@router.get("/health", response_model=HealthStatus)
def health(request: Request):
    """Report liveness, uptime in seconds and pool counters."""
    renderer: MapRenderer = request.app.state.renderer
    return HealthStatus(
        status="ok",
        uptime=round(time.monotonic() - request.app.state.started_at, 3),
        pool=PoolStatus(**renderer.pool.stats()),
    )


@router.get("/screenshot")
async def screenshot_from_query(request: Request, renderer: MapRenderer = Depends(get_renderer),
                                _: None = Depends(enforce_rate_limit)):
    """Render a map from query parameters.

    Supports lat, lon, zoom, width, height, format and quality. Overlays and
    markers are only available through POST.

    Returns:
        Raw image bytes with Content-Type image/<format>.

    Raises:
        ValidationError: If any parameter is invalid.
    """
    render_request = parse_render_request(dict(request.query_params), allow_layers=False)
    result = await renderer.render(render_request)
    return image_response(result)


@router.post("/screenshot")
async def screenshot_from_body(payload: Dict[str, Any] = Body(...),
                               renderer: MapRenderer = Depends(get_renderer),
                               _: None = Depends(enforce_rate_limit)):
    """Render a map from a JSON body, including overlays and a marker.

    Args:
        payload: Request fields: lat, lon, zoom, width, height, format,
            quality, overlays and marker.

    Returns:
        Raw image bytes with Content-Type image/<format>.

    Raises:
        ValidationError: If any field is invalid.
    """
    render_request = parse_render_request(payload)
    result = await renderer.render(render_request)
    return image_response(result)


@router.post("/preview-html", response_class=HTMLResponse)
def preview_html(payload: Dict[str, Any] = Body(...),
                 settings: Settings = Depends(get_settings),
                 _: None = Depends(enforce_rate_limit)):
    """Return the generated map page instead of rendering it."""
    render_request = parse_render_request(payload)
    return HTMLResponse(render_document(render_request, settings))


@router.get("/api-info")
def api_info():
    """Describe the available endpoints."""
    return {
        "name": "Map Snapshot Service",
        "endpoints": {
            "GET /health": "Service status, uptime and engine pool counters.",
            "GET /screenshot": "Render a map from query parameters: "
                               "lat, lon, zoom, width, height, format, quality.",
            "POST /screenshot": "Render a map from a JSON body. Adds overlays and marker.",
            "POST /preview-html": "Return the generated map page for a JSON body.",
            "GET /api-info": "This document.",
        },
        "parameters": {
            "lat": "Latitude, -90 to 90 (required)",
            "lon": "Longitude, -180 to 180 (required)",
            "zoom": "Integer zoom level, 1 to 20 (required)",
            "width": "Image width in pixels, 100 to 2000 (default 640)",
            "height": "Image height in pixels, 100 to 2000 (default 480)",
            "format": f"One of {', '.join(FORMATS)} (default jpeg)",
            "quality": "JPEG quality, 1 to 100 (default 70)",
            "overlays": f"Up to {MAX_OVERLAYS} WMS layers: "
                        "{sourceUrl, layerNames, opacity 0-1 (default 1)}",
            "marker": "{lat?, lon?, label (max 50 chars)?, color?, radius (default 20)?}",
        },
    }
