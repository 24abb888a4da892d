"""Tag filters.

Tags are not part of a listing, so these filters are evaluated only for
records that already passed the metadata filters, after one tag lookup per
record. Every tag filter must hold.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Optional

from s3find.core.exceptions import ParseError


@dataclass(frozen=True)
class TagEquals:
    key: str
    value: str

    @classmethod
    def parse(cls, literal: str) -> "TagEquals":
        """Parse ``KEY=VALUE``; split on the first ``=``, both sides trimmed."""
        if "=" not in literal:
            raise ParseError(
                f"Invalid tag filter format. Expected KEY=VALUE, got: {literal}"
            )
        key, value = literal.split("=", 1)
        key = key.strip()
        if not key:
            raise ParseError("Tag filter key cannot be empty")
        return cls(key=key, value=value.strip())

    def matches(self, tags: Mapping[str, str]) -> bool:
        return tags.get(self.key) == self.value


@dataclass(frozen=True)
class TagExists:
    key: str

    @classmethod
    def parse(cls, literal: str) -> "TagExists":
        key = literal.strip()
        if not key:
            raise ParseError("Tag filter key cannot be empty")
        return cls(key=key)

    def matches(self, tags: Mapping[str, str]) -> bool:
        return self.key in tags


class TagFilterSet:
    """All tag filters of a run, combined with AND."""

    def __init__(self, filters: Iterable[TagEquals | TagExists] = ()):
        self.filters = list(filters)

    def __bool__(self) -> bool:
        return bool(self.filters)

    def matches(self, tags: Optional[Mapping[str, str]]) -> bool:
        """Evaluate against a fetched tag set; ``None`` (not fetched) never matches."""
        if tags is None:
            return False
        return all(f.matches(tags) for f in self.filters)

    @classmethod
    def from_arguments(
        cls, tag: Iterable[str] = (), tag_exists: Iterable[str] = ()
    ) -> "TagFilterSet":
        filters: list[TagEquals | TagExists] = [TagEquals.parse(t) for t in tag]
        filters.extend(TagExists.parse(k) for k in tag_exists)
        return cls(filters)
