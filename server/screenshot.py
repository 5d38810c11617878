"""
Headless browser rendering for map screenshots.

Uses Playwright to load the generated map page in a pooled Chromium instance,
waits for the page to report that its tiles have settled, and captures a
screenshot in the requested format.

IMPORTANT: After installing/updating dependencies, run:
    python -m playwright install chromium

This downloads the necessary browser binaries for headless rendering.

Author: Map Snapshot maintainers
Date: 2026-10-15
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from io import BytesIO
from typing import Optional

from PIL import Image
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from logic.config import Settings
from logic.document import render_document
from logic.errors import (
    CaptureFailure,
    EngineAcquisitionFailure,
    RenderError,
    RenderFailure,
    RenderTimeout,
)
from logic.models import RenderRequest
from server.pool import EnginePool
from server.readiness import ReadinessWatch
from server.reporting import EventReporter

CAPTURE_TIMEOUT_MS = 10000
WEBP_QUALITY = 80


class RenderStage(str, Enum):
    VALIDATED = "validated"
    ENGINE_ACQUIRED = "engine_acquired"
    DOCUMENT_LOADED = "document_loaded"
    AWAITING_READINESS = "awaiting_readiness"
    READY = "ready"
    CAPTURED = "captured"
    RELEASED = "released"


@dataclass(frozen=True)
class RenderResult:
    """Captured image bytes and what it took to get them."""

    content: bytes
    media_type: str
    ready_reason: str
    elapsed_ms: int

    @property
    def content_length(self) -> int:
        return len(self.content)


def encode_webp(png_bytes: bytes, quality: int = WEBP_QUALITY) -> bytes:
    """Re-encode a PNG screenshot as WebP.

    Args:
        png_bytes: PNG image data.
        quality: WebP quality (1-100).

    Returns:
        WebP image data.
    """
    with Image.open(BytesIO(png_bytes)) as image:
        out = BytesIO()
        image.save(out, format="WEBP", quality=quality)
        return out.getvalue()


class MapRenderer:
    """Render map requests to images using engines leased from a pool.

    Attributes:
        pool: Pool engines are leased from and returned to.
        settings: Timer values and map page settings.
        reporter: Sink for render lifecycle events.
    """

    def __init__(self, pool: EnginePool, settings: Settings, reporter: Optional[EventReporter] = None):
        self.pool = pool
        self.settings = settings
        self.reporter = reporter or EventReporter()

    async def render(self, request: RenderRequest) -> RenderResult:
        """Render a validated request to image bytes.

        The leased engine is released on every exit path. It goes back to the
        pool after success and after a timeout on a still-connected engine,
        and is destroyed after any other failure.

        Args:
            request: Validated render request.

        Returns:
            RenderResult with the image bytes and media type.

        Raises:
            EngineAcquisitionFailure: If no engine could be started.
            RenderTimeout: If the map never reported readiness in time.
            CaptureFailure: If the screenshot call failed.
            RenderFailure: If the engine failed while loading the page.
        """
        loop = asyncio.get_running_loop()
        started_at = loop.time()
        stage = RenderStage.VALIDATED

        try:
            engine = await self.pool.acquire()
        except Exception as e:
            self.reporter.error("render.failed", e, stage=stage.value, kind=EngineAcquisitionFailure.kind)
            raise EngineAcquisitionFailure("could not start a render engine") from e
        stage = RenderStage.ENGINE_ACQUIRED

        healthy = True
        context = None
        try:
            context = await engine.new_context(
                viewport={"width": request.width, "height": request.height},
                device_scale_factor=1,
            )
            watch = ReadinessWatch(self.settings.render_timeout_ms)
            await watch.attach(context)
            page = await context.new_page()

            html = render_document(request, self.settings)
            load_started = loop.time()
            await page.set_content(
                html, wait_until="domcontentloaded", timeout=self.settings.page_load_timeout_ms
            )
            stage = RenderStage.DOCUMENT_LOADED
            self.reporter.event(
                "render.document_loaded",
                load_ms=int((loop.time() - load_started) * 1000),
            )

            # The readiness ceiling counts from here, after the in-page timers are running.
            stage = RenderStage.AWAITING_READINESS
            signal = await watch.wait()
            stage = RenderStage.READY
            self.reporter.event(
                "render.ready",
                reason=signal.reason,
                tiles_started=signal.started,
                tiles_completed=signal.completed,
            )

            if self.settings.settle_delay_ms:
                await asyncio.sleep(self.settings.settle_delay_ms / 1000)

            png_or_jpeg = await self._capture(page, request)
            stage = RenderStage.CAPTURED
        except RenderTimeout as e:
            healthy = self.pool.is_connected(engine)
            self._report_failure(e, stage)
            raise
        except PlaywrightTimeoutError as e:
            healthy = self.pool.is_connected(engine)
            error = RenderTimeout(
                f"map page did not load within {self.settings.page_load_timeout_ms} ms"
            )
            self._report_failure(error, stage, cause=e)
            raise error from e
        except RenderError as e:
            healthy = False
            self._report_failure(e, stage)
            raise
        except Exception as e:
            healthy = False
            error = RenderFailure("the render engine failed while loading the map")
            self._report_failure(error, stage, cause=e)
            raise error from e
        finally:
            if context is not None:
                try:
                    await context.close()
                except Exception as e:
                    healthy = False
                    self.reporter.error("render.context_close_failed", e)
            await self.pool.release(engine, healthy=healthy)

        if request.format == "webp":
            try:
                content = await loop.run_in_executor(None, encode_webp, png_or_jpeg)
            except Exception as e:
                error = RenderFailure("could not encode the captured map as webp")
                self._report_failure(error, RenderStage.CAPTURED, cause=e)
                raise error from e
        else:
            content = png_or_jpeg

        elapsed_ms = int((loop.time() - started_at) * 1000)
        self.reporter.event(
            "render.completed",
            format=request.format,
            bytes=len(content),
            elapsed_ms=elapsed_ms,
            stage=RenderStage.RELEASED.value,
        )
        return RenderResult(
            content=content,
            media_type=request.media_type,
            ready_reason=signal.reason,
            elapsed_ms=elapsed_ms,
        )

    async def _capture(self, page, request: RenderRequest) -> bytes:
        """Take the screenshot. WebP requests are captured as PNG first."""
        try:
            if request.format == "jpeg":
                return await page.screenshot(
                    type="jpeg",
                    quality=request.quality,
                    full_page=False,
                    timeout=CAPTURE_TIMEOUT_MS,
                )
            return await page.screenshot(type="png", full_page=False, timeout=CAPTURE_TIMEOUT_MS)
        except Exception as e:
            raise CaptureFailure("the render engine failed to capture the map") from e

    def _report_failure(self, error: RenderError, stage: RenderStage, cause: Optional[BaseException] = None):
        self.reporter.error(
            "render.failed",
            cause or error.__cause__ or error,
            stage=stage.value,
            kind=error.kind,
        )
