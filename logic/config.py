"""
Configuration management module.

This module builds the service settings from environment variables. Values
from a local .env file are loaded by main.py before settings are read.

Author: Map Snapshot maintainers
Date: 2026-10-14
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_MAP_LIBRARY_JS = "https://cdn.jsdelivr.net/npm/ol@v7.3.0/dist/ol.js"
DEFAULT_MAP_LIBRARY_CSS = "https://cdn.jsdelivr.net/npm/ol@v7.3.0/ol.css"


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the map snapshot service.

    Attributes:
        port: Listen port for the HTTP server.
        host: Listen address for the HTTP server.
        log_level: Root logging level name.
        pool_capacity: Maximum number of idle browser engines kept for reuse.
        offline_grace_ms: In-page delay after which a page that never started a
            tile fetch is declared ready.
        tile_hard_ceiling_ms: In-page delay after which the page is declared
            ready regardless of tile state.
        render_timeout_ms: Server-side ceiling on waiting for the readiness signal,
            counted from the moment the document has loaded.
        page_load_timeout_ms: Ceiling on loading the generated document,
            including the mapping library download.
        settle_delay_ms: Pause between readiness and capture.
        base_tile_url: XYZ template for the base layer, or None for OpenStreetMap.
        map_library_js: Script URL of the mapping library.
        map_library_css: Stylesheet URL of the mapping library.
        rate_limit_max_requests: Requests allowed per client per window.
        rate_limit_window_seconds: Length of the rate limit window.
    """

    port: int = 3000
    host: str = "0.0.0.0"
    log_level: str = "INFO"
    pool_capacity: int = 3
    offline_grace_ms: int = 2000
    tile_hard_ceiling_ms: int = 15000
    render_timeout_ms: int = 20000
    page_load_timeout_ms: int = 20000
    settle_delay_ms: int = 1000
    base_tile_url: Optional[str] = None
    map_library_js: str = DEFAULT_MAP_LIBRARY_JS
    map_library_css: str = DEFAULT_MAP_LIBRARY_CSS
    rate_limit_max_requests: int = 100
    rate_limit_window_seconds: int = 900


def _env_int(environ: Mapping[str, str], name: str, default: int, minimum: int = 0) -> int:
    """Read a non-negative integer from the environment.

    Args:
        environ: Environment mapping.
        name: Variable name.
        default: Value used when the variable is unset or blank.
        minimum: Smallest accepted value.

    Returns:
        Parsed integer.

    Raises:
        ValueError: If the value is not an integer or is below the minimum.
    """
    raw = environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def _env_str(environ: Mapping[str, str], name: str, default: Optional[str]) -> Optional[str]:
    raw = environ.get(name, "").strip()
    return raw or default


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Load settings from environment variables.

    Args:
        environ: Mapping to read from. Defaults to os.environ.

    Returns:
        Settings with defaults applied for unset variables.
    """
    if environ is None:
        environ = os.environ

    return Settings(
        port=_env_int(environ, "PORT", 3000, minimum=1),
        host=_env_str(environ, "HOST", "0.0.0.0"),
        log_level=_env_str(environ, "LOG_LEVEL", "INFO").upper(),
        pool_capacity=_env_int(environ, "POOL_CAPACITY", 3),
        offline_grace_ms=_env_int(environ, "OFFLINE_GRACE_MS", 2000),
        tile_hard_ceiling_ms=_env_int(environ, "TILE_HARD_CEILING_MS", 15000),
        render_timeout_ms=_env_int(environ, "RENDER_TIMEOUT_MS", 20000, minimum=1),
        page_load_timeout_ms=_env_int(environ, "PAGE_LOAD_TIMEOUT_MS", 20000, minimum=1),
        settle_delay_ms=_env_int(environ, "SETTLE_DELAY_MS", 1000),
        base_tile_url=_env_str(environ, "BASE_TILE_URL", None),
        map_library_js=_env_str(environ, "MAP_LIBRARY_JS", DEFAULT_MAP_LIBRARY_JS),
        map_library_css=_env_str(environ, "MAP_LIBRARY_CSS", DEFAULT_MAP_LIBRARY_CSS),
        rate_limit_max_requests=_env_int(environ, "RATE_LIMIT_MAX_REQUESTS", 100, minimum=1),
        rate_limit_window_seconds=_env_int(environ, "RATE_LIMIT_WINDOW_SECONDS", 900, minimum=1),
    )
