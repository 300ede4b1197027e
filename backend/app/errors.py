# backend/app/errors.py
"""Exception types shared by the extraction, LLM and orchestration layers."""
from typing import Optional


class GanttGeneratorError(Exception):
    """Base class for errors reported to the client as a JSON error envelope."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class UploadProcessingError(GanttGeneratorError):
    """An uploaded research file could not be turned into text."""


class UpstreamAPIError(GanttGeneratorError):
    """The completion endpoint failed, returned a malformed envelope, or blocked the request."""

    def __init__(self, message: str = "", status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class SchemaMismatchError(GanttGeneratorError):
    """The JSON returned by the model does not have the expected shape."""

    status_code = 422


class ResearchNotFoundError(GanttGeneratorError):
    """No research context exists for the requested session."""

    status_code = 404


class ChartRenderError(GanttGeneratorError):
    """A valid chart could not be laid out or rendered."""
