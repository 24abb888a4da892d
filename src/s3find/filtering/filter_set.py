"""Composition of predicates into a single match decision."""

from collections.abc import Iterable, Sequence
from datetime import datetime
from typing import Optional

from s3find.core import get_logger
from s3find.schemas import ObjectRecord

from .predicates import (
    NameGlob,
    NameGlobCaseInsensitive,
    Predicate,
    RegexMatch,
    StorageClassEquals,
    parse_size,
    parse_time,
    utc_now,
)

logger = get_logger(__name__)


class FilterSet:
    """Predicates grouped by kind.

    A record matches when, for every kind present, at least one predicate of
    that kind holds. Kinds are evaluated in the order they were first added
    and evaluation stops at the first kind with no holding predicate. An
    empty set matches every record.
    """

    def __init__(self, predicates: Iterable[Predicate] = ()):
        self._groups: dict[str, list[Predicate]] = {}
        for predicate in predicates:
            self.add(predicate)

    def add(self, predicate: Predicate) -> "FilterSet":
        self._groups.setdefault(predicate.kind, []).append(predicate)
        return self

    @property
    def kinds(self) -> list[str]:
        return list(self._groups)

    def predicates(self, kind: str) -> list[Predicate]:
        return list(self._groups.get(kind, ()))

    def __len__(self) -> int:
        return sum(len(group) for group in self._groups.values())

    def __bool__(self) -> bool:
        return bool(self._groups)

    def matches(self, record: ObjectRecord) -> bool:
        for group in self._groups.values():
            if not any(predicate.matches(record) for predicate in group):
                return False
        return True

    @classmethod
    def from_arguments(
        cls,
        name: Sequence[str] = (),
        iname: Sequence[str] = (),
        regex: Sequence[str] = (),
        size: Sequence[str] = (),
        mtime: Sequence[str] = (),
        storage_class: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "FilterSet":
        """Build a filter set from raw command-line literals.

        Args:
            name: Glob patterns
            iname: Case-insensitive glob patterns
            regex: Regular expressions
            size: Size literals such as ``+10M``
            mtime: Time literals such as ``-2d``
            storage_class: Storage class to match exactly
            now: Evaluation instant for time predicates; captured once here
                when omitted so the whole run uses the same instant

        Raises:
            ParseError: If any literal is malformed
        """
        now = now or utc_now()
        filters = cls()

        for pattern in name:
            filters.add(NameGlob(pattern))
        for pattern in iname:
            filters.add(NameGlobCaseInsensitive(pattern))
        for pattern in regex:
            filters.add(RegexMatch(pattern))
        for literal in size:
            filters.add(parse_size(literal))
        for literal in mtime:
            filters.add(parse_time(literal, now))
        if storage_class:
            filters.add(StorageClassEquals(storage_class))

        logger.debug("Filter set built", kinds=filters.kinds, predicates=len(filters))
        return filters
