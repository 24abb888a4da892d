"""Settings, errors and observability shared by every s3find module."""

from .config import settings
from .exceptions import S3FindError, ValidationError
from .observability import get_logger, get_tracer, run_context

__all__ = [
    "settings",
    "S3FindError",
    "ValidationError",
    "get_logger",
    "get_tracer",
    "run_context",
]
