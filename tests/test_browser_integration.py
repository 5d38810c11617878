"""
End-to-end tests against a real headless Chromium.

Skipped when Playwright's Chromium is not installed. Install it with:
    python -m playwright install chromium

Network access is blocked for the page, so the map library never loads (or is
replaced by a small stub) and every timing below is driven by the readiness
script alone.

Run with: python -m pytest tests/test_browser_integration.py -v
"""

import asyncio
import time
from contextlib import asynccontextmanager

import pytest
from playwright.async_api import Error as PlaywrightError, async_playwright

from logic.config import Settings
from logic.document import render_document
from logic.models import RenderRequest
from server.pool import LAUNCH_ARGS, ChromiumLauncher, EnginePool
from server.readiness import ReadinessWatch
from server.screenshot import MapRenderer

pytestmark = pytest.mark.browser

ISTANBUL = RenderRequest(center=(41.0082, 28.9784), zoom=15, format="png")
# Refused immediately, so a missing library never stalls the page load.
UNREACHABLE_LIBRARY = "http://127.0.0.1:9/ol.js"


@asynccontextmanager
async def chromium():
    async with async_playwright() as p:
        try:
            browser = await p.chromium.launch(headless=True, args=LAUNCH_ARGS)
        except PlaywrightError as e:
            pytest.skip(f"Chromium is not installed: {e}")
        try:
            yield browser
        finally:
            await browser.close()


@asynccontextmanager
async def offline_page(browser, request=ISTANBUL, settings=None, library_handler=None):
    """Load the generated document with every network request aborted.

    library_handler, when given, answers requests for the mapping library.
    """
    settings = settings or Settings()
    context = await browser.new_context(viewport={"width": request.width, "height": request.height})
    await context.route("**/*", lambda route: route.abort())
    if library_handler is not None:
        await context.route(settings.map_library_js, library_handler)
    watch = ReadinessWatch(settings.render_timeout_ms)
    await watch.attach(context)
    page = await context.new_page()
    started = time.monotonic()
    await page.set_content(render_document(request, settings), wait_until="domcontentloaded")
    try:
        yield page, watch, started
    finally:
        await context.close()


@pytest.mark.asyncio
async def test_offline_page_is_ready_after_grace_period():
    async with chromium() as browser:
        async with offline_page(browser) as (page, watch, started):
            signal = await watch.wait()
            elapsed = time.monotonic() - started

    assert signal.reason == "offline"
    assert signal.started == 0
    assert 2.0 <= elapsed < 3.0


@pytest.mark.asyncio
async def test_finished_tiles_declare_ready_immediately():
    async with chromium() as browser:
        async with offline_page(browser) as (page, watch, started):
            await page.evaluate("""() => {
                const watch = window.__mapTileWatch;
                watch.tileStarted();
                watch.tileStarted();
                watch.tileEnded();
                watch.tileEnded();
            }""")
            signal = await watch.wait()
            elapsed = time.monotonic() - started

    assert signal.reason == "tiles"
    assert (signal.started, signal.completed) == (2, 2)
    assert elapsed < 2.0


@pytest.mark.asyncio
async def test_stuck_tiles_hit_the_page_ceiling_before_the_server_ceiling():
    async with chromium() as browser:
        async with offline_page(browser) as (page, watch, started):
            await page.evaluate("() => window.__mapTileWatch.tileStarted()")
            signal = await watch.wait()
            elapsed = time.monotonic() - started

    assert signal.reason == "ceiling"
    assert (signal.started, signal.completed) == (1, 0)
    assert 15.0 <= elapsed < 20.0


@pytest.mark.asyncio
async def test_readiness_is_declared_once():
    async with chromium() as browser:
        async with offline_page(browser) as (page, watch, started):
            await page.evaluate("""() => {
                const watch = window.__mapTileWatch;
                watch.tileStarted();
                watch.tileEnded();
                watch.tileStarted();
                watch.tileEnded();
            }""")
            await watch.wait()
            reason = await page.evaluate("() => window.__MAP_READY_REASON__")

    assert reason == "tiles"


@pytest.mark.asyncio
async def test_renderer_produces_png_with_real_engine():
    async with chromium():
        pass

    settings = Settings(map_library_js=UNREACHABLE_LIBRARY, settle_delay_ms=100)
    pool = EnginePool(launcher=ChromiumLauncher(), capacity=1)
    renderer = MapRenderer(pool, settings)
    try:
        result = await renderer.render(ISTANBUL)
        again = await renderer.render(ISTANBUL)
    finally:
        await pool.drain()

    assert result.media_type == "image/png"
    assert result.content.startswith(b"\x89PNG")
    assert result.ready_reason == "offline"
    assert again.content
    assert pool.created == 1


# Stands in for the mapping library: starts one tile and finishes it shortly after.
TILE_STUB = """
window.__mapTileWatch.tileStarted();
setTimeout(function () { window.__mapTileWatch.tileEnded(); }, 100);
"""


@pytest.mark.asyncio
async def test_slow_library_download_is_not_mistaken_for_offline():
    async def slow_library(route):
        await asyncio.sleep(2.5)
        await route.fulfill(status=200, content_type="application/javascript", body=TILE_STUB)

    async with chromium() as browser:
        async with offline_page(browser, library_handler=slow_library) as (page, watch, started):
            signal = await watch.wait()
            elapsed = time.monotonic() - started

    assert signal.reason == "tiles"
    assert (signal.started, signal.completed) == (1, 1)
    assert elapsed >= 2.5
