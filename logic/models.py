"""
Request models for map rendering.

Instances are produced by logic.validation and never mutated afterwards.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

FORMATS = ("jpeg", "png", "webp")

MEDIA_TYPES = {
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}

DEFAULT_WIDTH = 640
DEFAULT_HEIGHT = 480
DEFAULT_FORMAT = "jpeg"
DEFAULT_QUALITY = 70
DEFAULT_PIN_RADIUS = 20.0
DEFAULT_PIN_COLOR = "#e53935"


@dataclass(frozen=True)
class OverlaySpec:
    """A WMS overlay drawn above the base layer."""

    source_url: str
    layer_names: str
    opacity: float = 1.0


@dataclass(frozen=True)
class PinSpec:
    """A point marker drawn above every tile layer.

    Attributes:
        position: (lat, lon) override; None places the pin at the map center.
        label: Optional text drawn above the pin.
        color: CSS color of the pin.
        radius: Pin radius in pixels.
    """

    position: Optional[Tuple[float, float]] = None
    label: Optional[str] = None
    color: str = DEFAULT_PIN_COLOR
    radius: float = DEFAULT_PIN_RADIUS


@dataclass(frozen=True)
class RenderRequest:
    """A fully validated render request."""

    center: Tuple[float, float]
    zoom: int
    size: Tuple[int, int] = (DEFAULT_WIDTH, DEFAULT_HEIGHT)
    format: str = DEFAULT_FORMAT
    quality: int = DEFAULT_QUALITY
    overlays: Tuple[OverlaySpec, ...] = field(default_factory=tuple)
    marker: Optional[PinSpec] = None

    @property
    def media_type(self) -> str:
        return MEDIA_TYPES[self.format]

    @property
    def width(self) -> int:
        return self.size[0]

    @property
    def height(self) -> int:
        return self.size[1]
