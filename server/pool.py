"""
Headless browser pool.

Chromium processes take seconds to start, so finished renders hand their
browser back to the pool instead of closing it. The pool keeps at most
`capacity` idle browsers and reuses the most recently released one first.

Author: Map Snapshot maintainers
Date: 2026-10-15
"""

import asyncio
from typing import Any, List, Optional, Set

from playwright.async_api import Browser, Playwright, async_playwright

from server.reporting import EventReporter

# Flags for running Chromium headless inside containers.
LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-zygote",
    "--no-first-run",
    "--mute-audio",
    "--hide-scrollbars",
]


class ChromiumLauncher:
    """Launch Chromium browsers from one shared Playwright driver.

    The driver is started on the first launch and stopped by stop().
    """

    def __init__(self, args: Optional[List[str]] = None):
        self.args = list(args if args is not None else LAUNCH_ARGS)
        self._playwright: Optional[Playwright] = None
        self._lock = asyncio.Lock()

    async def launch(self) -> Browser:
        async with self._lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            playwright = self._playwright
        return await playwright.chromium.launch(headless=True, args=self.args)

    async def stop(self):
        async with self._lock:
            if self._playwright is not None:
                playwright, self._playwright = self._playwright, None
                await playwright.stop()


class PoolClosed(RuntimeError):
    """Raised by acquire() after the pool has been drained."""


class EnginePool:
    """Bounded LIFO pool of browser engines.

    Engines only need `is_connected()` and an awaitable `close()`, which both
    Playwright's Browser and the test doubles provide.

    Attributes:
        capacity: Maximum number of idle engines retained.
        created: Engines launched so far.
        destroyed: Engines closed so far.
    """

    def __init__(self, launcher=None, capacity: int = 3, reporter: Optional[EventReporter] = None):
        self.launcher = launcher or ChromiumLauncher()
        self.capacity = capacity
        self.reporter = reporter or EventReporter()
        self.created = 0
        self.destroyed = 0
        self._idle: List[Any] = []
        self._leased: Set[Any] = set()
        self._lock = asyncio.Lock()
        self._closed = False

    @property
    def idle_count(self) -> int:
        return len(self._idle)

    @property
    def leased_count(self) -> int:
        return len(self._leased)

    def stats(self) -> dict:
        return {
            "capacity": self.capacity,
            "idle": len(self._idle),
            "leased": len(self._leased),
            "created": self.created,
            "destroyed": self.destroyed,
        }

    async def acquire(self):
        """Lease an engine, launching a new one if none is idle.

        Returns:
            An engine leased exclusively to the caller.

        Raises:
            PoolClosed: If the pool has been drained.
            Exception: Whatever the launcher raises when a launch fails.
        """
        dead = []
        engine = None
        async with self._lock:
            if self._closed:
                raise PoolClosed("engine pool is shut down")
            while self._idle:
                candidate = self._idle.pop()
                if self.is_connected(candidate):
                    engine = candidate
                    self._leased.add(engine)
                    break
                dead.append(candidate)

        for candidate in dead:
            await self._destroy(candidate, reason="disconnected while idle")

        if engine is not None:
            self.reporter.event("engine.reused", idle=len(self._idle))
            return engine

        engine = await self.launcher.launch()
        async with self._lock:
            self.created += 1
            closed = self._closed
            if not closed:
                self._leased.add(engine)
        if closed:
            await self._destroy(engine, reason="pool drained during launch")
            raise PoolClosed("engine pool is shut down")

        self.reporter.event("engine.launched", created=self.created)
        return engine

    async def release(self, engine, healthy: bool = True):
        """Return a leased engine to the pool.

        The engine goes back to the idle stack when it is healthy, still
        connected and there is room. Otherwise it is closed. Releasing an
        engine that is not currently leased does nothing.

        Args:
            engine: Engine previously returned by acquire().
            healthy: False when the caller no longer trusts the engine state.
        """
        reason = None
        async with self._lock:
            if engine not in self._leased:
                self.reporter.error("engine.release_unknown")
                return
            self._leased.discard(engine)
            if not healthy:
                reason = "unhealthy"
            elif self._closed:
                reason = "pool drained"
            elif not self.is_connected(engine):
                reason = "disconnected"
            elif len(self._idle) >= self.capacity:
                reason = "pool full"
            else:
                self._idle.append(engine)

        if reason is not None:
            await self._destroy(engine, reason=reason)

    async def drain(self):
        """Close every idle and leased engine. Safe to call more than once."""
        async with self._lock:
            self._closed = True
            engines = self._idle + list(self._leased)
            self._idle.clear()
            self._leased.clear()

        await asyncio.gather(*(self._destroy(e, reason="drain") for e in engines))

        stop = getattr(self.launcher, "stop", None)
        if stop is not None:
            try:
                await stop()
            except Exception as e:
                self.reporter.error("engine.driver_stop_failed", e)

    @staticmethod
    def is_connected(engine) -> bool:
        try:
            return bool(engine.is_connected())
        except Exception:
            return False

    async def _destroy(self, engine, reason: str):
        """Close an engine, reporting rather than raising close failures."""
        self.destroyed += 1
        try:
            await engine.close()
        except Exception as e:
            self.reporter.error("engine.close_failed", e, reason=reason)
            return
        self.reporter.event("engine.destroyed", reason=reason, destroyed=self.destroyed)
