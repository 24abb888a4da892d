"""Tests for filter predicates."""

from datetime import datetime, timedelta

import pytest

from s3find.core.exceptions import ParseError
from s3find.filtering.predicates import (
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


class TestSizeLiterals:
    """Test --bytes-size parsing and matching."""

    def test_greater_than(self, make_record):
        """Test +10M is strictly greater than 10 MiB."""
        predicate = parse_size("+10M")
        assert isinstance(predicate, SizeGreaterThan)
        assert predicate.matches(make_record("k", size=10 * 1024**2 + 1))
        assert not predicate.matches(make_record("k", size=10 * 1024**2))

    def test_less_than(self, make_record):
        """Test -10k is strictly less than 10 KiB."""
        predicate = parse_size("-10k")
        assert isinstance(predicate, SizeLessThan)
        assert predicate.matches(make_record("k", size=10239))
        assert not predicate.matches(make_record("k", size=10240))

    def test_exact(self, make_record):
        """Test an unsigned literal matches the exact size only."""
        predicate = parse_size("5k")
        assert isinstance(predicate, SizeEquals)
        assert predicate.matches(make_record("k", size=5120))
        assert not predicate.matches(make_record("k", size=5121))

    def test_units(self):
        """Test every unit is a power of 1024."""
        assert parse_size("7") == SizeEquals(7)
        assert parse_size("1G") == SizeEquals(1024**3)
        assert parse_size("1T") == SizeEquals(1024**4)
        assert parse_size("2P") == SizeEquals(2 * 1024**5)

    @pytest.mark.parametrize("literal", ["", "10X", "++1", "1.5k", "k", "10m"])
    def test_invalid(self, literal):
        """Test malformed literals are rejected."""
        with pytest.raises(ParseError):
            parse_size(literal)


class TestTimeLiterals:
    """Test --mtime parsing and matching."""

    def test_minus_and_unsigned_are_the_same_window(self, now, make_record):
        """Test -10h and 10h both match objects modified in the last 10 hours."""
        recent = make_record("k", age=timedelta(hours=9))
        old = make_record("k", age=timedelta(hours=11))

        for literal in ("-10h", "10h"):
            predicate = parse_time(literal, now)
            assert isinstance(predicate, TimeWithinLast)
            assert predicate.matches(recent)
            assert not predicate.matches(old)

    def test_plus_is_older_than(self, now, make_record):
        """Test +10h matches objects modified more than 10 hours ago."""
        predicate = parse_time("+10h", now)
        assert isinstance(predicate, TimeOlderThan)
        assert predicate.matches(make_record("k", age=timedelta(hours=11)))
        assert not predicate.matches(make_record("k", age=timedelta(hours=9)))

    def test_window_boundary(self, now, make_record):
        """Test the boundary instant belongs to the window, not to the older side."""
        boundary = make_record("k", age=timedelta(hours=10))
        assert parse_time("10h", now).matches(boundary)
        assert not parse_time("+10h", now).matches(boundary)

    def test_future_timestamp_is_not_within_window(self, now, make_record):
        """Test the window ends at now."""
        future = make_record("k", age=timedelta(hours=-1))
        assert not parse_time("10h", now).matches(future)

    def test_units(self, now):
        """Test seconds to weeks."""
        assert parse_time("30", now).window == timedelta(seconds=30)
        assert parse_time("2m", now).window == timedelta(minutes=2)
        assert parse_time("3d", now).window == timedelta(days=3)
        assert parse_time("1w", now).window == timedelta(weeks=1)

    def test_naive_now_rejected(self):
        """Test the evaluation instant must be timezone-aware."""
        with pytest.raises(ParseError):
            parse_time("1d", datetime(2024, 1, 1))

    @pytest.mark.parametrize("literal", ["", "1y", "d", "+-1d", "1.5h"])
    def test_invalid(self, now, literal):
        """Test malformed literals are rejected."""
        with pytest.raises(ParseError):
            parse_time(literal, now)


class TestNamePredicates:
    """Test glob and regex predicates."""

    def test_star_crosses_slashes(self, make_record):
        """Test * matches across key segments."""
        predicate = NameGlob("*.txt")
        assert predicate.matches(make_record("dir/sub/file.txt"))
        assert not predicate.matches(make_record("dir/file.txt.bak"))

    def test_question_mark_and_brackets(self, make_record):
        """Test ? and [...] match one character."""
        assert NameGlob("file?.log").matches(make_record("file1.log"))
        assert not NameGlob("file?.log").matches(make_record("file12.log"))
        assert NameGlob("[ab].log").matches(make_record("b.log"))
        assert not NameGlob("[ab].log").matches(make_record("c.log"))

    @pytest.mark.parametrize(
        "pattern", ["logs/[abc", "[a-", "[!", "[]", "a***b", "logs/**.txt", "x**/y"]
    )
    def test_malformed_glob(self, pattern):
        """Test broken globs are rejected for both name filters."""
        with pytest.raises(ParseError):
            NameGlob(pattern)
        with pytest.raises(ParseError):
            NameGlobCaseInsensitive(pattern)

    @pytest.mark.parametrize(
        "pattern", ["[]]", "[!a].txt", "logs/**/x.txt", "**/x", "logs/**"]
    )
    def test_unusual_but_valid_glob(self, pattern):
        """Test bracket and recursive forms a shell glob accepts."""
        NameGlob(pattern)

    def test_recursive_wildcard_matches(self, make_record):
        """Test ** crosses any number of segments."""
        predicate = NameGlob("logs/**/x.txt")
        assert predicate.matches(make_record("logs/a/b/x.txt"))
        assert not predicate.matches(make_record("data/a/x.txt"))

    def test_glob_is_anchored(self, make_record):
        """Test the pattern must match the whole key."""
        assert not NameGlob("file").matches(make_record("dir/file"))
        assert NameGlob("*file").matches(make_record("dir/file"))

    def test_case_insensitive(self, make_record):
        """Test iname lower-cases pattern and key."""
        predicate = NameGlobCaseInsensitive("*.TXT")
        assert predicate.matches(make_record("Notes.txt"))
        assert predicate.matches(make_record("NOTES.TXT"))
        assert not NameGlob("*.TXT").matches(make_record("notes.txt"))

    def test_regex_searches_anywhere(self, make_record):
        """Test a regex need not match from the start of the key."""
        predicate = RegexMatch(r"\d{4}-\d{2}")
        assert predicate.matches(make_record("logs/2024-05/app.log"))
        assert not predicate.matches(make_record("logs/latest/app.log"))

    def test_invalid_regex(self):
        """Test an invalid regex is a parse error."""
        with pytest.raises(ParseError):
            RegexMatch("([unclosed")


class TestStorageClassPredicate:
    """Test storage class equality."""

    def test_exact_match(self, make_record):
        """Test equality is exact and case-sensitive."""
        predicate = StorageClassEquals("STANDARD")
        assert predicate.matches(make_record("k", storage_class="STANDARD"))
        assert not predicate.matches(make_record("k", storage_class="standard"))
        assert not predicate.matches(make_record("k", storage_class="GLACIER"))

    def test_unknown_class_passes_through(self, make_record):
        """Test storage classes the tool does not know still compare."""
        predicate = StorageClassEquals("FUTURE_TIER")
        assert predicate.matches(make_record("k", storage_class="FUTURE_TIER"))
