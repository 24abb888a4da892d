"""Tests for the paginated walker."""

import asyncio

import pytest

from s3find.core.exceptions import TraversalError
from s3find.objectstorage.listing import Walker
from s3find.schemas import TraversalSpec


def collect(walker):
    async def _collect():
        return [record async for record in walker.walk()]

    return asyncio.run(_collect())


class TestFlatWalk:
    """Test the default, delimiter-less walk."""

    def test_follows_continuation_tokens(self, fake_lister, make_record):
        """Test every page is fetched and listing order is kept."""
        records = [make_record(f"k{i:02d}") for i in range(25)]
        lister = fake_lister(records)
        walker = Walker(lister, TraversalSpec(bucket="bucket", page_size=10))

        result = collect(walker)

        assert [r.key for r in result] == [r.key for r in records]
        assert walker.pages_fetched == 3
        assert [call[2] for call in lister.calls] == [None, "10", "20"]
        assert all(call[1] is None for call in lister.calls)

    def test_prefix_is_passed_through(self, fake_lister, make_record):
        """Test the flat walk lists the raw prefix."""
        lister = fake_lister([make_record("logs/a"), make_record("logsfoo")])
        walker = Walker(lister, TraversalSpec(bucket="bucket", prefix="logs"))

        assert [r.key for r in collect(walker)] == ["logs/a", "logsfoo"]

    def test_empty_listing(self, fake_lister):
        """Test an empty bucket yields nothing after one call."""
        lister = fake_lister([])
        walker = Walker(lister, TraversalSpec(bucket="bucket"))

        assert collect(walker) == []
        assert len(lister.calls) == 1


class TestDepthLimitedWalk:
    """Test delimiter-based, depth-limited traversal."""

    def test_maxdepth_zero(self, fake_lister, sample_tree):
        """Test only objects directly under the prefix are emitted."""
        lister = fake_lister(sample_tree)
        walker = Walker(lister, TraversalSpec(bucket="bucket", maxdepth=0))

        assert [r.key for r in collect(walker)] == ["a"]
        # b/ is a leaf at depth 0 and is never listed
        assert [call[0] for call in lister.calls] == [""]
        assert lister.calls[0][1] == "/"

    def test_maxdepth_one(self, fake_lister, sample_tree):
        """Test one subdirectory level is descended."""
        lister = fake_lister(sample_tree)
        walker = Walker(lister, TraversalSpec(bucket="bucket", maxdepth=1))

        assert [r.key for r in collect(walker)] == ["a", "b/c"]
        assert [call[0] for call in lister.calls] == ["", "b/"]

    def test_maxdepth_two_reaches_everything(self, fake_lister, sample_tree):
        """Test a deep enough walk emits every object."""
        lister = fake_lister(sample_tree)
        walker = Walker(lister, TraversalSpec(bucket="bucket", maxdepth=2))

        assert [r.key for r in collect(walker)] == ["a", "b/c", "b/d/e"]

    def test_prefix_is_treated_as_directory(self, fake_lister, make_record):
        """Test a slash is appended to a non-empty prefix."""
        lister = fake_lister(
            [make_record("logs/x"), make_record("logs/y/z"), make_record("logsfoo")]
        )
        walker = Walker(
            lister, TraversalSpec(bucket="bucket", prefix="logs", maxdepth=0)
        )

        assert [r.key for r in collect(walker)] == ["logs/x"]
        assert lister.calls[0][0] == "logs/"

    def test_breadth_first_order(self, fake_lister, make_record):
        """Test shallower prefixes are fully listed before deeper ones."""
        lister = fake_lister(
            [
                make_record("a/1"),
                make_record("a/deep/2"),
                make_record("b/3"),
                make_record("top"),
            ]
        )
        walker = Walker(lister, TraversalSpec(bucket="bucket", maxdepth=2))

        assert [r.key for r in collect(walker)] == ["top", "a/1", "b/3", "a/deep/2"]


class TestVersionsWalk:
    """Test the all-versions walk."""

    def test_versions_and_delete_markers(self, fake_lister, make_record):
        """Test one record per version and per delete marker."""
        lister = fake_lister(
            [
                make_record("x", size=20, version_id="v2", is_latest=True),
                make_record("x", size=10, version_id="v1", is_latest=False),
                make_record("y", version_id="m1", is_delete_marker=True, is_latest=True),
            ]
        )
        walker = Walker(lister, TraversalSpec(bucket="bucket", all_versions=True))

        result = collect(walker)

        assert [(r.key, r.version_id) for r in result] == [
            ("x", "v2"),
            ("x", "v1"),
            ("y", "m1"),
        ]
        marker = result[2]
        assert marker.is_delete_marker
        assert marker.size == 0
        assert all(call[3] for call in lister.calls)

    def test_versions_win_over_maxdepth(self, fake_lister, sample_tree):
        """Test maxdepth is ignored when listing all versions."""
        lister = fake_lister(sample_tree)
        walker = Walker(
            lister, TraversalSpec(bucket="bucket", all_versions=True, maxdepth=0)
        )

        assert [r.key for r in collect(walker)] == ["a", "b/c", "b/d/e"]
        assert lister.calls[0][1] is None


class TestLimitAndFilter:
    """Test early termination and the record filter."""

    def test_limit_stops_listing(self, fake_lister, many_records):
        """Test limit=5 over 100 matches yields 5 and fetches one page."""
        lister = fake_lister(many_records)
        walker = Walker(lister, TraversalSpec(bucket="bucket", page_size=10, limit=5))

        result = collect(walker)

        assert [r.key for r in result] == [f"key-{i:03d}" for i in range(5)]
        assert len(lister.calls) == 1
        assert walker.pages_fetched == 1

    def test_limit_counts_matches_only(self, fake_lister, many_records):
        """Test records rejected by the filter do not count toward the limit."""
        lister = fake_lister(many_records)
        walker = Walker(
            lister,
            TraversalSpec(bucket="bucket", page_size=10, limit=3),
            record_filter=lambda r: r.key.endswith("7"),
        )

        result = collect(walker)

        assert [r.key for r in result] == ["key-007", "key-017", "key-027"]
        assert len(lister.calls) == 3
        assert walker.records_seen == 28

    def test_listing_failure(self, fake_lister, make_record):
        """Test a failing page raises after earlier records were yielded."""
        lister = fake_lister(
            [make_record(f"k{i}") for i in range(5)], fail_after_pages=1
        )
        walker = Walker(lister, TraversalSpec(bucket="bucket", page_size=2))
        seen = []

        async def consume():
            async for record in walker.walk():
                seen.append(record.key)

        with pytest.raises(TraversalError):
            asyncio.run(consume())
        assert seen == ["k0", "k1"]
