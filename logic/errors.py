"""
Error taxonomy for the render pipeline.

Every failure the service reports to a caller is a RenderError carrying a
machine-readable kind, an HTTP status and a human-readable message.
"""

from typing import Any, Dict, List, Optional


class RenderError(Exception):
    """Base class for failures surfaced to HTTP callers."""

    kind = "RenderFailure"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message}


class ValidationError(RenderError):
    """Caller input violates one or more documented constraints.

    Attributes:
        details: One entry per violated rule, each with "field" and "message".
    """

    kind = "ValidationError"
    status_code = 400

    def __init__(self, details: List[Dict[str, str]], message: Optional[str] = None):
        super().__init__(message or f"{len(details)} invalid field(s)")
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body = super().to_dict()
        body["details"] = self.details
        return body


class EngineAcquisitionFailure(RenderError):
    kind = "EngineAcquisitionFailure"


class RenderTimeout(RenderError):
    kind = "RenderTimeout"


class CaptureFailure(RenderError):
    kind = "CaptureFailure"


class RenderFailure(RenderError):
    """The engine failed while loading the document."""


class RateLimited(RenderError):
    kind = "RateLimited"
    status_code = 429

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after
