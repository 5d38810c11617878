import asyncio
import sys
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from PIL import Image

# Ensure the repository root is on sys.path so tests can import `main`,
# `logic.*` and `server.*`.
ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from logic.config import Settings  # noqa: E402
from logic.document import READY_BINDING  # noqa: E402
from server.pool import EnginePool  # noqa: E402
from server.reporting import EventReporter  # noqa: E402


def make_image_bytes(fmt: str = "PNG", size=(8, 6)) -> bytes:
    out = BytesIO()
    Image.new("RGB", size, (40, 120, 200)).save(out, format=fmt)
    return out.getvalue()


PNG_BYTES = make_image_bytes("PNG")
JPEG_BYTES = make_image_bytes("JPEG")


class RecordingReporter(EventReporter):
    """Keeps every event in memory for assertions."""

    def __init__(self):
        self.events = []
        self.errors = []

    def event(self, name, **fields):
        self.events.append((name, fields))

    def error(self, name, exc=None, **fields):
        self.errors.append((name, exc, fields))

    def names(self):
        return [name for name, _ in self.events]

    def error_kinds(self):
        return [fields.get("kind") for _, _, fields in self.errors]


@dataclass
class EngineBehavior:
    """How fake engines behave. Shared by every engine a launcher creates.

    ready_reason: reason passed to the readiness binding, or None to never
        report readiness.
    ready_delay: seconds between the document load and the readiness call.
    """

    ready_reason: Optional[str] = "tiles"
    load_error: Optional[Exception] = None
    capture_error: Optional[Exception] = None
    context_close_error: Optional[Exception] = None
    disconnect_on_load: bool = False
    ready_delay: float = 0.0


class FakePage:
    def __init__(self, context):
        self.context = context
        self.engine = context.engine
        self.documents = []

    async def set_content(self, html, wait_until=None, timeout=None):
        behavior = self.engine.behavior
        self.documents.append(html)
        self.engine.documents.append(html)
        if behavior.disconnect_on_load:
            self.engine.connected = False
        if behavior.load_error is not None:
            raise behavior.load_error
        if behavior.ready_reason is not None:
            binding = self.context.bindings[READY_BINDING]
            asyncio.get_running_loop().call_later(behavior.ready_delay, binding, behavior.ready_reason, 4, 4)

    async def screenshot(self, type="png", quality=None, full_page=False, timeout=None):
        behavior = self.engine.behavior
        self.engine.screenshots.append({"type": type, "quality": quality})
        if behavior.capture_error is not None:
            raise behavior.capture_error
        return JPEG_BYTES if type == "jpeg" else PNG_BYTES


class FakeContext:
    def __init__(self, engine, options):
        self.engine = engine
        self.options = options
        self.bindings = {}
        self.closed = False

    async def expose_function(self, name, callback):
        self.bindings[name] = callback

    async def new_page(self):
        return FakePage(self)

    async def close(self):
        self.closed = True
        if self.engine.behavior.context_close_error is not None:
            raise self.engine.behavior.context_close_error


class FakeEngine:
    def __init__(self, number, behavior):
        self.number = number
        self.behavior = behavior
        self.connected = True
        self.closed = False
        self.close_error: Optional[Exception] = None
        self.contexts = []
        self.documents = []
        self.screenshots = []

    def is_connected(self):
        return self.connected and not self.closed

    async def new_context(self, **options):
        context = FakeContext(self, options)
        self.contexts.append(context)
        return context

    async def close(self):
        self.closed = True
        if self.close_error is not None:
            raise self.close_error

    def __repr__(self):
        return f"FakeEngine({self.number})"


class FakeLauncher:
    def __init__(self, launch_delay: float = 0.0):
        self.behavior = EngineBehavior()
        self.launched = []
        self.launch_delay = launch_delay
        self.fail_with: Optional[Exception] = None
        self.stopped = False

    async def launch(self):
        if self.launch_delay:
            await asyncio.sleep(self.launch_delay)
        if self.fail_with is not None:
            raise self.fail_with
        engine = FakeEngine(len(self.launched), self.behavior)
        self.launched.append(engine)
        return engine

    async def stop(self):
        self.stopped = True


@pytest.fixture
def fast_settings():
    """Settings with short timers so failure paths finish quickly."""
    return Settings(
        settle_delay_ms=0,
        render_timeout_ms=300,
        rate_limit_max_requests=1000,
    )


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def pool(launcher, reporter):
    return EnginePool(launcher=launcher, capacity=3, reporter=reporter)


@pytest.fixture
def app(fast_settings, pool, reporter):
    from main import create_app

    return create_app(settings=fast_settings, pool=pool, reporter=reporter)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client
