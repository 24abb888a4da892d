"""Object filtering: metadata predicates and tag filters."""

from .filter_set import FilterSet
from .predicates import (
    NameGlob,
    NameGlobCaseInsensitive,
    RegexMatch,
    SizeEquals,
    SizeGreaterThan,
    SizeLessThan,
    StorageClassEquals,
    TimeOlderThan,
    TimeWithinLast,
    parse_size,
    parse_time,
)
from .tag_filters import TagEquals, TagExists, TagFilterSet

__all__ = [
    "FilterSet",
    "NameGlob",
    "NameGlobCaseInsensitive",
    "RegexMatch",
    "SizeEquals",
    "SizeGreaterThan",
    "SizeLessThan",
    "StorageClassEquals",
    "TimeOlderThan",
    "TimeWithinLast",
    "parse_size",
    "parse_time",
    "TagEquals",
    "TagExists",
    "TagFilterSet",
]
