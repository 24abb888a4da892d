"""Command dispatch over matched records."""

from .batching import BatchAccumulator
from .dispatcher import DispatchReport, Dispatcher, target_key
from .formatting import RecordFormatter, format_tags, object_url
from .summary import FindSummary, human_size

__all__ = [
    "BatchAccumulator",
    "DispatchReport",
    "Dispatcher",
    "target_key",
    "RecordFormatter",
    "format_tags",
    "object_url",
    "FindSummary",
    "human_size",
]
