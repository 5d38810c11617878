"""
Validation and sanitization utilities.

This module turns raw request input (query parameters or a JSON body) into a
RenderRequest. Every violated rule is collected so the caller receives the
complete list in a single 400 response.

Author: Map Snapshot maintainers
Date: 2026-10-14
"""

import math
from typing import Any, Dict, List, Optional, Tuple

from logic.errors import ValidationError
from logic.models import (
    DEFAULT_FORMAT,
    DEFAULT_HEIGHT,
    DEFAULT_PIN_COLOR,
    DEFAULT_PIN_RADIUS,
    DEFAULT_QUALITY,
    DEFAULT_WIDTH,
    FORMATS,
    OverlaySpec,
    PinSpec,
    RenderRequest,
)

LAT_RANGE = (-90.0, 90.0)
LON_RANGE = (-180.0, 180.0)
ZOOM_RANGE = (1, 20)
SIZE_RANGE = (100, 2000)
QUALITY_RANGE = (1, 100)
OPACITY_RANGE = (0.0, 1.0)
PIN_RADIUS_RANGE = (1.0, 200.0)

MAX_OVERLAYS = 5
MAX_LABEL_LEN = 50
MAX_COLOR_LEN = 64


class _Errors:
    """Accumulates violations as {"field", "message"} entries."""

    def __init__(self):
        self.items: List[Dict[str, str]] = []

    def add(self, field: str, message: str):
        self.items.append({"field": field, "message": message})

    def __bool__(self):
        return bool(self.items)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def sanitise_number(
        value: Any, field: str, errors: _Errors, *, integer: bool = False
) -> Optional[float]:
    """Convert a JSON number or numeric string.

    Booleans are rejected even though Python treats them as integers.

    Args:
        value: Raw value.
        field: Field name used in error messages.
        errors: Accumulator for violations.
        integer: Require an integral value.

    Returns:
        The number, or None if a violation was recorded.
    """
    if isinstance(value, bool):
        errors.add(field, f"{field} must be a number")
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            errors.add(field, f"{field} must be a number")
            return None
    else:
        errors.add(field, f"{field} must be a number")
        return None

    if math.isnan(number) or math.isinf(number):
        errors.add(field, f"{field} must be a finite number")
        return None
    if integer and not number.is_integer():
        errors.add(field, f"{field} must be an integer")
        return None
    return number


def check_range(
        value: Optional[float], field: str, bounds: Tuple[float, float], errors: _Errors
) -> Optional[float]:
    if value is None:
        return None
    low, high = bounds
    if not low <= value <= high:
        errors.add(field, f"{field} must be between {low:g} and {high:g}")
        return None
    return value


def _required_in_range(
        payload: Dict[str, Any], key: str, bounds, errors: _Errors, *, integer: bool = False
) -> Optional[float]:
    value = payload.get(key)
    if _is_missing(value):
        errors.add(key, f"{key} is required")
        return None
    return check_range(sanitise_number(value, key, errors, integer=integer), key, bounds, errors)


def _optional_in_range(
        payload: Dict[str, Any], key: str, bounds, default, errors: _Errors,
        *, field: Optional[str] = None, integer: bool = False
):
    field = field or key
    value = payload.get(key)
    if _is_missing(value):
        return default
    return check_range(sanitise_number(value, field, errors, integer=integer), field, bounds, errors)


def parse_format(value: Any, errors: _Errors) -> Optional[str]:
    if _is_missing(value):
        return DEFAULT_FORMAT
    if not isinstance(value, str) or value.strip().lower() not in FORMATS:
        errors.add("format", f"format must be one of: {', '.join(FORMATS)}")
        return None
    return value.strip().lower()


def parse_overlays(value: Any, errors: _Errors) -> Tuple[OverlaySpec, ...]:
    """Validate the overlays list.

    Args:
        value: Raw overlays value from the request body.
        errors: Accumulator for violations.

    Returns:
        Overlay specs in request order. Entries with violations are dropped.
    """
    if value is None:
        return ()
    if not isinstance(value, list):
        errors.add("overlays", "overlays must be an array")
        return ()
    if len(value) > MAX_OVERLAYS:
        errors.add("overlays", f"at most {MAX_OVERLAYS} overlays are allowed")

    overlays = []
    for index, item in enumerate(value[:MAX_OVERLAYS]):
        prefix = f"overlays[{index}]"
        if not isinstance(item, dict):
            errors.add(prefix, f"{prefix} must be an object")
            continue

        before = len(errors.items)
        source_url = item.get("sourceUrl")
        if not isinstance(source_url, str) or not source_url.strip():
            errors.add(f"{prefix}.sourceUrl", f"{prefix}.sourceUrl must be a non-empty string")
        layer_names = item.get("layerNames")
        if not isinstance(layer_names, str) or not layer_names.strip():
            errors.add(f"{prefix}.layerNames", f"{prefix}.layerNames must be a non-empty string")
        opacity = _optional_in_range(
            item, "opacity", OPACITY_RANGE, 1.0, errors, field=f"{prefix}.opacity"
        )

        if len(errors.items) == before:
            overlays.append(OverlaySpec(
                source_url=source_url.strip(),
                layer_names=layer_names.strip(),
                opacity=opacity,
            ))
    return tuple(overlays)


def parse_marker(value: Any, errors: _Errors) -> Optional[PinSpec]:
    """Validate the optional marker object.

    Args:
        value: Raw marker value from the request body.
        errors: Accumulator for violations.

    Returns:
        PinSpec, or None when no marker was requested or it was invalid.
    """
    if value is None:
        return None
    if not isinstance(value, dict):
        errors.add("marker", "marker must be an object")
        return None

    before = len(errors.items)

    position = None
    has_lat = not _is_missing(value.get("lat"))
    has_lon = not _is_missing(value.get("lon"))
    if has_lat and has_lon:
        lat = _optional_in_range(value, "lat", LAT_RANGE, None, errors, field="marker.lat")
        lon = _optional_in_range(value, "lon", LON_RANGE, None, errors, field="marker.lon")
        if lat is not None and lon is not None:
            position = (lat, lon)
    elif has_lat or has_lon:
        errors.add("marker", "marker.lat and marker.lon must be given together")

    label = value.get("label")
    if label is not None:
        if not isinstance(label, str):
            errors.add("marker.label", "marker.label must be a string")
        elif len(label) > MAX_LABEL_LEN:
            errors.add("marker.label", f"marker.label must be at most {MAX_LABEL_LEN} characters")

    color = value.get("color")
    if color is not None:
        if not isinstance(color, str) or not color.strip():
            errors.add("marker.color", "marker.color must be a non-empty string")
        elif len(color) > MAX_COLOR_LEN:
            errors.add("marker.color", f"marker.color must be at most {MAX_COLOR_LEN} characters")

    radius = _optional_in_range(
        value, "radius", PIN_RADIUS_RANGE, DEFAULT_PIN_RADIUS, errors, field="marker.radius"
    )

    if len(errors.items) != before:
        return None
    return PinSpec(
        position=position,
        label=label or None,
        color=color.strip() if color else DEFAULT_PIN_COLOR,
        radius=radius,
    )


def parse_render_request(payload: Any, *, allow_layers: bool = True) -> RenderRequest:
    """Validate raw input and build a RenderRequest.

    Args:
        payload: Dictionary of request fields (query parameters or JSON body).
        allow_layers: Whether overlays and marker are read. The GET endpoint
            ignores them.

    Returns:
        Validated RenderRequest.

    Raises:
        ValidationError: With every violated rule if any field is invalid.
    """
    errors = _Errors()
    if not isinstance(payload, dict):
        errors.add("body", "request body must be a JSON object")
        raise ValidationError(errors.items)

    lat = _required_in_range(payload, "lat", LAT_RANGE, errors)
    lon = _required_in_range(payload, "lon", LON_RANGE, errors)
    zoom = _required_in_range(payload, "zoom", ZOOM_RANGE, errors, integer=True)
    width = _optional_in_range(payload, "width", SIZE_RANGE, DEFAULT_WIDTH, errors, integer=True)
    height = _optional_in_range(payload, "height", SIZE_RANGE, DEFAULT_HEIGHT, errors, integer=True)
    image_format = parse_format(payload.get("format"), errors)

    quality = DEFAULT_QUALITY
    if image_format == "jpeg":
        quality = _optional_in_range(
            payload, "quality", QUALITY_RANGE, DEFAULT_QUALITY, errors, integer=True
        )

    overlays: Tuple[OverlaySpec, ...] = ()
    marker = None
    if allow_layers:
        overlays = parse_overlays(payload.get("overlays"), errors)
        marker = parse_marker(payload.get("marker"), errors)

    if errors:
        raise ValidationError(errors.items)

    return RenderRequest(
        center=(lat, lon),
        zoom=int(zoom),
        size=(int(width), int(height)),
        format=image_format,
        quality=int(quality),
        overlays=overlays,
        marker=marker,
    )
