"""
Template filling package for the document webhook backend.

This module bundles reusable utilities for:
  - storing uploaded PDF / HTML templates and their zone / variable definitions
  - filling PDF forms, PDF zones and HTML templates from a webhook payload
  - rendering filled HTML to PDF and publishing the result to object storage
"""

from .errors import (
    DeadlineExceeded,
    NotFoundError,
    RenderError,
    TemplateFillError,
    TemplateParseError,
    UploadError,
    ValidationError,
)
from .service import FilledArtifact, TemplateFillService

__all__ = [
    "TemplateFillService",
    "FilledArtifact",
    "TemplateFillError",
    "ValidationError",
    "NotFoundError",
    "TemplateParseError",
    "RenderError",
    "DeadlineExceeded",
    "UploadError",
]
