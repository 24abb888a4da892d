"""Filter predicates over a single object's metadata.

Every predicate is built once from a command-line literal and compiles
whatever it needs at construction time, so ``matches`` never fails. A
malformed literal raises ``ParseError`` before any listing call is made.

Size literals: ``[+|-]N[k|M|G|T|P]`` (base 1024)
    ``5k``  exactly 5 * 1024 bytes
    ``+5k`` strictly more than 5 * 1024 bytes
    ``-5k`` strictly less than 5 * 1024 bytes

Time literals: ``[+|-]N[s|m|h|d|w]``
    ``5d`` and ``-5d`` modified within ``[now - 5d, now]``
    ``+5d``            modified strictly before ``now - 5d``
"""

import fnmatch
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import ClassVar, Protocol

from s3find.core.exceptions import ParseError
from s3find.schemas import ObjectRecord

_SIZE_RE = re.compile(r"^([+-]?)(\d+)([kMGTP]?)$")
_TIME_RE = re.compile(r"^([+-]?)(\d+)([smhdw]?)$")

_SIZE_UNITS = {
    "": 1,
    "k": 1024,
    "M": 1024**2,
    "G": 1024**3,
    "T": 1024**4,
    "P": 1024**5,
}

_TIME_UNITS = {
    "": 1,
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 3600 * 24,
    "w": 3600 * 24 * 7,
}


class Predicate(Protocol):
    """A single testable condition over one object record."""

    kind: ClassVar[str]

    def matches(self, record: ObjectRecord) -> bool: ...


@dataclass(frozen=True)
class NameGlob:
    """Shell-style glob over the whole key; ``*`` also crosses ``/``."""

    kind: ClassVar[str] = "name"

    pattern: str
    _compiled: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_compiled", _compile_glob(self.pattern))

    def matches(self, record: ObjectRecord) -> bool:
        return self._compiled.match(record.key) is not None


@dataclass(frozen=True)
class NameGlobCaseInsensitive:
    """Glob over the key with both sides lower-cased."""

    kind: ClassVar[str] = "iname"

    pattern: str
    _compiled: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_compiled", _compile_glob(self.pattern.lower()))

    def matches(self, record: ObjectRecord) -> bool:
        return self._compiled.match(record.key.lower()) is not None


@dataclass(frozen=True)
class RegexMatch:
    """Regular expression searched anywhere in the key."""

    kind: ClassVar[str] = "regex"

    pattern: str
    _compiled: re.Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        try:
            compiled = re.compile(self.pattern)
        except re.error as e:
            raise ParseError(f"Invalid regex '{self.pattern}': {e}")
        object.__setattr__(self, "_compiled", compiled)

    def matches(self, record: ObjectRecord) -> bool:
        return self._compiled.search(record.key) is not None


@dataclass(frozen=True)
class SizeEquals:
    kind: ClassVar[str] = "size"

    size: int

    def matches(self, record: ObjectRecord) -> bool:
        return record.size == self.size


@dataclass(frozen=True)
class SizeGreaterThan:
    kind: ClassVar[str] = "size"

    size: int

    def matches(self, record: ObjectRecord) -> bool:
        return record.size > self.size


@dataclass(frozen=True)
class SizeLessThan:
    kind: ClassVar[str] = "size"

    size: int

    def matches(self, record: ObjectRecord) -> bool:
        return record.size < self.size


@dataclass(frozen=True)
class TimeWithinLast:
    """Modified within ``[now - window, now]``."""

    kind: ClassVar[str] = "mtime"

    window: timedelta
    now: datetime

    def matches(self, record: ObjectRecord) -> bool:
        return self.now - self.window <= record.last_modified <= self.now


@dataclass(frozen=True)
class TimeOlderThan:
    """Modified strictly before ``now - window``."""

    kind: ClassVar[str] = "mtime"

    window: timedelta
    now: datetime

    def matches(self, record: ObjectRecord) -> bool:
        return record.last_modified < self.now - self.window


@dataclass(frozen=True)
class StorageClassEquals:
    """Exact, case-sensitive storage class match; unknown classes allowed."""

    kind: ClassVar[str] = "storage_class"

    storage_class: str

    def matches(self, record: ObjectRecord) -> bool:
        return record.storage_class == self.storage_class


def _compile_glob(pattern: str) -> re.Pattern:
    _check_glob(pattern)
    return re.compile(fnmatch.translate(pattern), re.DOTALL)


def _check_glob(pattern: str) -> None:
    """Reject patterns a shell glob refuses.

    A ``[`` class needs at least one member and a closing ``]`` (a ``]``
    right after the opening bracket is a member). ``**`` must form a whole
    path component and three or more stars in a row are invalid.

    Raises:
        ParseError: If the pattern is malformed
    """
    i = 0
    while i < len(pattern):
        char = pattern[i]
        if char == "[":
            first = i + 2 if pattern[i + 1 : i + 2] == "!" else i + 1
            close = pattern.find("]", first + 1)
            if first >= len(pattern) or close == -1:
                raise ParseError(f"Invalid glob '{pattern}': unclosed character class")
            i = close + 1
        elif char == "*":
            end = i
            while end < len(pattern) and pattern[end] == "*":
                end += 1
            if end - i > 2:
                raise ParseError(f"Invalid glob '{pattern}': use * or **")
            if end - i == 2 and (
                (i > 0 and pattern[i - 1] != "/")
                or (end < len(pattern) and pattern[end] != "/")
            ):
                raise ParseError(
                    f"Invalid glob '{pattern}': ** must be a whole path segment"
                )
            i = end
        else:
            i += 1


def parse_size(literal: str) -> SizeEquals | SizeGreaterThan | SizeLessThan:
    """Parse a ``--bytes-size`` literal into a size predicate.

    Raises:
        ParseError: If the literal is malformed
    """
    match = _SIZE_RE.match(literal.strip())
    if not match:
        raise ParseError(f"Invalid size parameter: '{literal}'")

    sign, number, unit = match.groups()
    size = int(number) * _SIZE_UNITS[unit]

    if sign == "+":
        return SizeGreaterThan(size)
    if sign == "-":
        return SizeLessThan(size)
    return SizeEquals(size)


def parse_time(literal: str, now: datetime) -> TimeWithinLast | TimeOlderThan:
    """Parse a ``--mtime`` literal into a time predicate anchored at ``now``.

    The unsigned form is the same window as the ``-`` form.

    Raises:
        ParseError: If the literal is malformed or ``now`` is naive
    """
    if now.tzinfo is None:
        raise ParseError("Evaluation instant must be timezone-aware")

    match = _TIME_RE.match(literal.strip())
    if not match:
        raise ParseError(f"Invalid mtime parameter: '{literal}'")

    sign, number, unit = match.groups()
    window = timedelta(seconds=int(number) * _TIME_UNITS[unit])

    if sign == "+":
        return TimeOlderThan(window=window, now=now)
    return TimeWithinLast(window=window, now=now)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
