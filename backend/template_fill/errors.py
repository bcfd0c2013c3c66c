"""Exception hierarchy shared by the fill service and the HTTP layer."""

from __future__ import annotations

from typing import Optional


class TemplateFillError(RuntimeError):
    """Domain-specific exception for service errors."""

    status_code = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details or message


class ValidationError(TemplateFillError):
    """The request is missing required data or carries an invalid value."""

    status_code = 400


class NotFoundError(TemplateFillError):
    """A template, zone set or variable set does not exist."""

    status_code = 404


class TemplateParseError(TemplateFillError):
    """The stored template could not be parsed as a document."""


class RenderError(TemplateFillError):
    """The document engine failed while producing a PDF."""

    def __init__(self, message: str, details: Optional[str] = None, retryable: bool = False):
        super().__init__(message, details)
        self.retryable = retryable
        if retryable:
            self.status_code = 504


class DeadlineExceeded(RenderError):
    """The per-request time budget ran out."""

    def __init__(self, message: str = "Request deadline exceeded", details: Optional[str] = None):
        super().__init__(message, details, retryable=True)


class UploadError(TemplateFillError):
    """Object storage rejected the upload. Callers fall back to raw bytes."""

    status_code = 502
