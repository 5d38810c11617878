"""
Map page document generation.

Builds the self-contained HTML page loaded by the headless browser: an
OpenLayers map with the base layer, WMS overlays and optional marker, plus a
readiness script that reports when tile loading has settled.

Request values never reach the page as raw text. The template is autoescaped
and all map data is embedded as an HTML-safe JSON block.

Author: Map Snapshot maintainers
Date: 2026-10-16
"""

import os
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from logic.config import Settings
from logic.models import RenderRequest

BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
TEMPLATE_DIR = os.path.join(BASE_DIR, "templates")
TEMPLATE_NAME = "map.html"

# Name of the page binding the readiness script calls once.
READY_BINDING = "__reportMapReady"

_env = Environment(
    loader=FileSystemLoader(TEMPLATE_DIR),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def build_document_config(request: RenderRequest, settings: Settings) -> Dict[str, Any]:
    """Collect everything the page script needs into a JSON-ready dict.

    Args:
        request: Validated render request.
        settings: Service settings providing timer values and the base tile URL.

    Returns:
        Dictionary embedded verbatim (as JSON) into the page.
    """
    lat, lon = request.center
    marker: Optional[Dict[str, Any]] = None
    if request.marker is not None:
        pin = request.marker
        pin_lat, pin_lon = pin.position or request.center
        marker = {
            "lat": pin_lat,
            "lon": pin_lon,
            "label": pin.label,
            "color": pin.color,
            "radius": pin.radius,
        }

    return {
        "center": {"lat": lat, "lon": lon},
        "zoom": request.zoom,
        "base": {"url": settings.base_tile_url},
        "overlays": [
            {
                "url": overlay.source_url,
                "layers": overlay.layer_names,
                "opacity": overlay.opacity,
            }
            for overlay in request.overlays
        ],
        "marker": marker,
        "readiness": {
            "binding": READY_BINDING,
            "offlineGraceMs": settings.offline_grace_ms,
            "hardCeilingMs": settings.tile_hard_ceiling_ms,
        },
    }


def render_document(request: RenderRequest, settings: Settings) -> str:
    """Render the map page for a request.

    Args:
        request: Validated render request.
        settings: Service settings.

    Returns:
        Complete HTML document as a string.
    """
    template = _env.get_template(TEMPLATE_NAME)
    return template.render(
        config=build_document_config(request, settings),
        library_js=settings.map_library_js,
        library_css=settings.map_library_css,
    )
