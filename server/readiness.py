"""
Server side of the render-readiness handshake.

The map page calls a binding once tile loading settles (or one of its own
fallback timers fires). ReadinessWatch exposes that binding on a browser
context, turns the call into an asyncio future, and bounds the wait with its
own ceiling so a page that never reports still fails in finite time.

Author: Map Snapshot maintainers
Date: 2026-10-15
"""

import asyncio
from dataclasses import dataclass
from typing import Optional

from logic.document import READY_BINDING
from logic.errors import RenderTimeout


@dataclass(frozen=True)
class ReadySignal:
    """What the page reported when it declared itself ready.

    Attributes:
        reason: "tiles", "offline" or "ceiling".
        started: Tile fetches started.
        completed: Tile fetches ended, successfully or not.
    """

    reason: str
    started: int = 0
    completed: int = 0


class ReadinessWatch:
    """One-shot readiness future for a single render."""

    def __init__(self, timeout_ms: int):
        self.timeout_ms = timeout_ms
        self._future: Optional[asyncio.Future] = None

    async def attach(self, context):
        """Expose the readiness binding on a browser context.

        Must run before the page that loads the document is created.
        """
        self._future = asyncio.get_running_loop().create_future()
        await context.expose_function(READY_BINDING, self._on_ready)

    def _on_ready(self, reason="tiles", started=0, completed=0):
        if self._future is not None and not self._future.done():
            self._future.set_result(ReadySignal(str(reason), int(started or 0), int(completed or 0)))

    async def wait(self, timeout_ms: Optional[float] = None) -> ReadySignal:
        """Wait for the page to report readiness.

        Args:
            timeout_ms: Time left for this wait. Defaults to the full ceiling.

        Returns:
            The signal the page reported.

        Raises:
            RenderTimeout: If nothing is reported within timeout_ms.
        """
        if self._future is None:
            raise RuntimeError("ReadinessWatch.attach() was not called")
        if timeout_ms is None:
            timeout_ms = self.timeout_ms
        try:
            return await asyncio.wait_for(asyncio.shield(self._future), max(timeout_ms, 0) / 1000)
        except asyncio.TimeoutError:
            raise RenderTimeout(
                f"map did not report readiness within {self.timeout_ms} ms"
            )
