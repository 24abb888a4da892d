"""Test configuration and fixtures for s3find."""

import threading
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from s3find.core.exceptions import ObjectOperationError, TraversalError
from s3find.objectstorage.listing import ListingPage
from s3find.objectstorage.mutations import (
    RESTORE_INITIATED,
    BatchKeyError,
    BatchResult,
)
from s3find.schemas import ObjectIdentity, ObjectRecord

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def build_record(key, size=0, age=timedelta(hours=1), **kwargs):
    return ObjectRecord(key=key, size=size, last_modified=NOW - age, **kwargs)


class FakeLister:
    """In-memory listing collaborator with S3 prefix and delimiter semantics.

    Records are served in the order given; tokens are stringified offsets.
    """

    def __init__(self, records, fail_after_pages=None):
        self.records = list(records)
        self.fail_after_pages = fail_after_pages
        self.calls = []

    def list_page(
        self,
        bucket,
        prefix,
        delimiter=None,
        continuation_token=None,
        all_versions=False,
        page_size=1000,
    ):
        if self.fail_after_pages is not None and len(self.calls) >= self.fail_after_pages:
            raise TraversalError(f"Failed to list s3://{bucket}/{prefix}")
        self.calls.append((prefix, delimiter, continuation_token, all_versions))

        items = []
        seen_prefixes = set()
        for record in self.records:
            if not record.key.startswith(prefix):
                continue
            rest = record.key[len(prefix):]
            if delimiter and delimiter in rest:
                common = prefix + rest.split(delimiter, 1)[0] + delimiter
                if common not in seen_prefixes:
                    seen_prefixes.add(common)
                    items.append(common)
            else:
                items.append(record)

        start = int(continuation_token or 0)
        chunk = items[start:start + page_size]
        more = start + page_size < len(items)
        return ListingPage(
            records=[i for i in chunk if isinstance(i, ObjectRecord)],
            common_prefixes=[i for i in chunk if isinstance(i, str)],
            next_token=str(start + page_size) if more else None,
        )


class FakeMutator:
    """Records every call; keys listed in the ``fail_*`` sets fail."""

    def __init__(
        self,
        tags=None,
        fail_copy=(),
        fail_delete=(),
        fail_tags=(),
        fail_batches=(),
        restore_outcome=RESTORE_INITIATED,
        call_delay=0.0,
    ):
        self.tags = dict(tags or {})
        self.fail_copy = set(fail_copy)
        self.fail_delete = set(fail_delete)
        self.fail_tags = set(fail_tags)
        self.fail_batches = set(fail_batches)
        self.restore_outcome = restore_outcome
        self.call_delay = call_delay

        self.calls = []
        self.delete_batches = []
        self._lock = threading.Lock()
        self._in_flight = 0
        self.max_in_flight = 0

    def _enter(self, *call):
        with self._lock:
            self.calls.append(call)
            self._in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self._in_flight)
        if self.call_delay:
            time.sleep(self.call_delay)
        with self._lock:
            self._in_flight -= 1

    def delete_batch(self, bucket, identities):
        self._enter("delete", [i.key for i in identities])
        self.delete_batches.append(list(identities))
        if len(self.delete_batches) in self.fail_batches:
            raise ObjectOperationError("DeleteObjects failed", code="InternalError")

        result = BatchResult()
        for identity in identities:
            if identity.key in self.fail_delete:
                result.errors.append(
                    BatchKeyError(identity.key, identity.version_id, "AccessDenied", "Access Denied")
                )
            else:
                result.deleted.append(identity)
        return result

    def copy_object(
        self, source_bucket, source, destination_bucket, destination_key, storage_class=None
    ):
        self._enter("copy", source.key, destination_bucket, destination_key, storage_class)
        if source.key in self.fail_copy:
            raise ObjectOperationError(f"Copy failed for s3://{source_bucket}/{source.key}")

    def get_tags(self, bucket, identity):
        self._enter("get_tags", identity.key)
        if identity.key in self.fail_tags:
            raise ObjectOperationError(f"Get tags failed for s3://{bucket}/{identity.key}")
        return dict(self.tags.get(identity.key, {}))

    def put_tags(self, bucket, identity, tags):
        self._enter("put_tags", identity.key, dict(tags))
        if identity.key in self.fail_tags:
            raise ObjectOperationError(f"Set tags failed for s3://{bucket}/{identity.key}")

    def make_public(self, bucket, identity):
        self._enter("make_public", identity.key)

    def public_url(self, bucket, key):
        return f"https://{bucket}.s3.amazonaws.com/{key}"

    def restore_object(self, bucket, identity, days, tier):
        self._enter("restore", identity.key, days, tier)
        return self.restore_outcome

    def change_storage_class(self, bucket, identity, storage_class):
        self._enter("change_storage_class", identity.key, storage_class)

    def download(self, bucket, identity, destination):
        self._enter("download", identity.key, str(destination))
        Path(destination).parent.mkdir(parents=True, exist_ok=True)
        Path(destination).write_text(f"content of {identity.key}")
        return len(f"content of {identity.key}")


@pytest.fixture
def now():
    """Fixed evaluation instant."""
    return NOW


@pytest.fixture
def make_record():
    """Factory for object records aged relative to ``NOW``."""
    return build_record


@pytest.fixture
def fake_lister():
    """Factory for in-memory listers."""
    return FakeLister


@pytest.fixture
def fake_mutator():
    """Factory for recording mutators."""
    return FakeMutator


@pytest.fixture
def sample_tree():
    """The a, b/c, b/d/e layout used by the depth tests."""
    return [build_record("a"), build_record("b/c"), build_record("b/d/e")]


@pytest.fixture
def many_records():
    """One hundred keys, key-000 to key-099."""
    return [build_record(f"key-{i:03d}", size=i) for i in range(100)]


@pytest.fixture
def identities():
    """Factory for a list of identities named obj-N."""
    return lambda count: [ObjectIdentity(key=f"obj-{i}") for i in range(count)]
