"""Paginated traversal of an S3 namespace.

The walker turns a TraversalSpec into a lazy async stream of ObjectRecord,
one listing call at a time. Three modes share the same pagination loop:

    flat          ListObjectsV2 without a delimiter (every key under the prefix)
    depth         ListObjectsV2 with ``/`` as delimiter; common prefixes deeper
                  than ``maxdepth`` are never listed
    all versions  ListObjectVersions, one record per version and delete marker

Listing calls are blocking collaborator calls and run on the executor handed
to the walker; the event loop is free while a page is in flight. The next
page is requested only when the consumer asks for more records, so stopping
iteration (or reaching ``limit``) stops listing.
"""

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Callable
from concurrent.futures import Executor
from dataclasses import dataclass, field
from functools import partial
from typing import Optional, Protocol, Union

from s3find.core import get_logger
from s3find.core.exceptions import S3FindError, TraversalError
from s3find.schemas import ObjectRecord, TraversalSpec

logger = get_logger(__name__)

DELIMITER = "/"

# Plain continuation token, or (key marker, version id marker) for versions.
ListingToken = Union[str, tuple[str, Optional[str]]]


@dataclass
class ListingPage:
    """One page returned by a listing call."""

    records: list[ObjectRecord] = field(default_factory=list)
    common_prefixes: list[str] = field(default_factory=list)
    next_token: Optional[ListingToken] = None


class ObjectLister(Protocol):
    """Issues a single listing call."""

    def list_page(
        self,
        bucket: str,
        prefix: str,
        delimiter: Optional[str] = None,
        continuation_token: Optional[ListingToken] = None,
        all_versions: bool = False,
        page_size: int = 1000,
    ) -> ListingPage:
        """Return one page of results and the token for the next one."""
        ...


class Walker:
    """Enumerates candidate objects for one run."""

    def __init__(
        self,
        lister: ObjectLister,
        spec: TraversalSpec,
        record_filter: Optional[Callable[[ObjectRecord], bool]] = None,
        executor: Optional[Executor] = None,
    ):
        """Initialize the walker.

        Args:
            lister: Listing collaborator
            spec: What to walk
            record_filter: Records failing it are skipped and do not count
                toward ``spec.limit``
            executor: Where blocking listing calls run (the loop default when None)
        """
        self.lister = lister
        self.spec = spec
        self.record_filter = record_filter
        self.executor = executor
        self.pages_fetched = 0
        self.records_seen = 0
        self.records_yielded = 0

        if spec.all_versions and spec.maxdepth is not None:
            logger.warning(
                "--maxdepth is ignored together with --all-versions",
                maxdepth=spec.maxdepth,
            )

    async def walk(self) -> AsyncIterator[ObjectRecord]:
        """Yield matching records in listing order until exhausted or limited.

        Raises:
            TraversalError: If a listing call fails
        """
        spec = self.spec
        logger.info(
            "Walk started",
            bucket=spec.bucket,
            prefix=spec.prefix,
            maxdepth=spec.maxdepth if spec.depth_limited else None,
            all_versions=spec.all_versions,
        )

        if spec.depth_limited:
            source = self._walk_depth_limited()
        else:
            source = self._walk_prefix(spec.prefix, delimiter=None)

        try:
            async for record in source:
                self.records_seen += 1
                if self.record_filter is not None and not self.record_filter(record):
                    continue
                yield record
                self.records_yielded += 1
                if spec.limit is not None and self.records_yielded >= spec.limit:
                    logger.info("Result limit reached", limit=spec.limit)
                    return
        finally:
            await source.aclose()
            logger.info(
                "Walk finished",
                pages=self.pages_fetched,
                seen=self.records_seen,
                yielded=self.records_yielded,
            )

    async def _walk_depth_limited(self) -> AsyncIterator[ObjectRecord]:
        """Breadth-first walk over delimiter-grouped prefixes."""
        root = self.spec.prefix
        if root and not root.endswith(DELIMITER):
            root += DELIMITER

        maxdepth = self.spec.maxdepth or 0
        pending: deque[tuple[str, int]] = deque([(root, 0)])

        while pending:
            prefix, depth = pending.popleft()
            async for item in self._walk_prefix(prefix, delimiter=DELIMITER):
                if isinstance(item, str):
                    if depth < maxdepth:
                        pending.append((item, depth + 1))
                    else:
                        logger.debug("Prefix below maxdepth skipped", prefix=item)
                    continue
                yield item

    async def _walk_prefix(
        self, prefix: str, delimiter: Optional[str]
    ) -> AsyncIterator:
        """Follow continuation tokens for one prefix.

        Yields records and, with a delimiter, common prefixes as plain strings.
        """
        token: Optional[ListingToken] = None
        while True:
            page = await self._fetch(prefix, delimiter, token)
            for record in page.records:
                yield record
            for common_prefix in page.common_prefixes:
                yield common_prefix
            token = page.next_token
            if token is None:
                return

    async def _fetch(
        self, prefix: str, delimiter: Optional[str], token: Optional[ListingToken]
    ) -> ListingPage:
        loop = asyncio.get_running_loop()
        call = partial(
            self.lister.list_page,
            self.spec.bucket,
            prefix,
            delimiter=delimiter,
            continuation_token=token,
            all_versions=self.spec.all_versions,
            page_size=self.spec.page_size,
        )
        try:
            page = await loop.run_in_executor(self.executor, call)
        except TraversalError:
            raise
        except S3FindError as e:
            raise TraversalError(f"Listing s3://{self.spec.bucket}/{prefix} failed: {e}")

        self.pages_fetched += 1
        logger.debug(
            "Listing page fetched",
            prefix=prefix,
            records=len(page.records),
            common_prefixes=len(page.common_prefixes),
            more=page.next_token is not None,
        )
        return page
