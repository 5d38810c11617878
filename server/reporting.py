"""
Structured event reporting.

The pool and the render orchestrator describe what happens to them as named
events with keyword fields. Where those events end up is decided by the
reporter passed in at construction time.
"""

import logging
from typing import Any, Optional


class EventReporter:
    """Sink for render pipeline events. The base class discards everything."""

    def event(self, name: str, **fields: Any):
        """Record a normal lifecycle event, e.g. "engine.launched"."""

    def error(self, name: str, exc: Optional[BaseException] = None, **fields: Any):
        """Record a failure. exc is the exception that caused it, if any."""


class LoggingReporter(EventReporter):
    """Forward events to a standard library logger."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger("mapshot.events")

    @staticmethod
    def _format(name: str, fields: dict) -> str:
        if not fields:
            return name
        pairs = " ".join(f"{key}={value!r}" for key, value in sorted(fields.items()))
        return f"{name} {pairs}"

    def event(self, name: str, **fields: Any):
        self.logger.info(self._format(name, fields))

    def error(self, name: str, exc: Optional[BaseException] = None, **fields: Any):
        if exc is not None:
            fields["exc_type"] = type(exc).__name__
            fields["exc"] = str(exc)
        self.logger.warning(self._format(name, fields))
