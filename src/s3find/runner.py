"""One find run: walk, filter, dispatch, summarize."""

import asyncio
from collections import deque
from collections.abc import AsyncIterator, Callable
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

import typer

from s3find.core import get_logger, get_tracer, run_context, settings
from s3find.core.exceptions import ObjectOperationError
from s3find.dispatch import DispatchReport, Dispatcher, FindSummary
from s3find.filtering import FilterSet, TagFilterSet
from s3find.objectstorage.listing import ObjectLister, Walker
from s3find.objectstorage.mutations import ObjectMutator
from s3find.schemas import Command, ObjectRecord, TraversalSpec

logger = get_logger(__name__)
tracer = get_tracer(__name__)

# Exit statuses
EXIT_OK = 0
EXIT_FATAL = 1
EXIT_KEY_FAILURES = 2

# (record, pending tag lookup) in listing order
PendingLookups = deque[tuple[ObjectRecord, asyncio.Task]]


@dataclass(frozen=True)
class RunReport:
    """Everything a finished run reports back to the caller."""

    dispatch: DispatchReport
    pages_fetched: int
    records_seen: int
    tag_lookup_failures: int

    def exit_code(self, fail_on_key_errors: bool = False) -> int:
        if fail_on_key_errors and self.dispatch.failed:
            return EXIT_KEY_FAILURES
        return EXIT_OK


class FindRunner:
    """Wires a walker, the filters and a dispatcher for one command."""

    def __init__(
        self,
        spec: TraversalSpec,
        command: Command,
        lister: ObjectLister,
        mutator: ObjectMutator,
        filters: Optional[FilterSet] = None,
        tag_filters: Optional[TagFilterSet] = None,
        summary: Optional[FindSummary] = None,
        echo: Callable[[str], None] = typer.echo,
        tag_concurrency: Optional[int] = None,
    ):
        self.spec = spec
        self.command = command
        self.lister = lister
        self.mutator = mutator
        self.filters = filters if filters is not None else FilterSet()
        self.tag_filters = tag_filters if tag_filters is not None else TagFilterSet()
        self.summary = summary if summary is not None else FindSummary()
        self.echo = echo
        self.tag_concurrency = tag_concurrency or settings.tag_concurrency

    def run(self) -> RunReport:
        """Run to completion on a fresh event loop.

        Raises:
            ValidationError: If the command cannot be set up
            TraversalError: If a listing call fails
        """
        return asyncio.run(self.run_async())

    async def run_async(self) -> RunReport:
        spec = self.spec
        with run_context(
            bucket=spec.bucket, prefix=spec.prefix, command=self.command.type
        ), tracer.start_as_current_span("s3find.find") as span:
            span.set_attribute("s3find.bucket", spec.bucket)
            span.set_attribute("s3find.prefix", spec.prefix)
            span.set_attribute("s3find.command", self.command.type)

            # One extra worker keeps a thread free for listing calls.
            workers = settings.concurrency + 1
            if self.tag_filters:
                workers += self.tag_concurrency
            with ThreadPoolExecutor(max_workers=workers) as executor:
                walker, records = self._records(executor)
                dispatcher = Dispatcher(
                    self.mutator,
                    spec.bucket,
                    self.command,
                    summary=self.summary,
                    executor=executor,
                    echo=self.echo,
                )
                dispatch_report = await dispatcher.run(records)

            report = RunReport(
                dispatch=dispatch_report,
                pages_fetched=walker.pages_fetched,
                records_seen=walker.records_seen,
                tag_lookup_failures=self.summary.tag_lookup_failures,
            )
            span.set_attribute("s3find.pages", report.pages_fetched)
            span.set_attribute("s3find.matched", dispatch_report.matched)
            span.set_attribute("s3find.failed", dispatch_report.failed)
            span.set_attribute("s3find.tag_lookup_failures", report.tag_lookup_failures)

            logger.info(
                "Find finished",
                pages=report.pages_fetched,
                seen=report.records_seen,
                matched=dispatch_report.matched,
                failed=dispatch_report.failed,
                tag_lookup_failures=report.tag_lookup_failures,
            )
        return report

    def _records(self, executor: Executor) -> tuple[Walker, AsyncIterator[ObjectRecord]]:
        if not self.tag_filters:
            walker = Walker(
                self.lister, self.spec, record_filter=self.filters.matches, executor=executor
            )
            return walker, walker.walk()

        # Tag filters run after the walker, so the limit must too.
        unlimited = self.spec.model_copy(update={"limit": None})
        walker = Walker(
            self.lister, unlimited, record_filter=self.filters.matches, executor=executor
        )
        return walker, self._tag_filtered(walker.walk(), executor)

    async def _tag_filtered(
        self, records: AsyncIterator[ObjectRecord], executor: Executor
    ) -> AsyncIterator[ObjectRecord]:
        """Keep records whose tags satisfy every tag filter.

        Up to ``tag_concurrency`` lookups are in flight at once and matches
        come out in listing order. Delete markers have no tags and never
        match. A failed lookup drops the record and is counted.
        """
        limit = self.spec.limit
        yielded = 0
        pending: PendingLookups = deque()
        lookups = self._looked_up(records, executor, pending)
        try:
            async for record, tags in lookups:
                if not self.tag_filters.matches(tags):
                    continue
                yield record
                yielded += 1
                if limit is not None and yielded >= limit:
                    logger.info("Result limit reached", limit=limit)
                    return
        finally:
            await lookups.aclose()
            for _, task in pending:
                task.cancel()
            await asyncio.gather(*(task for _, task in pending), return_exceptions=True)
            await records.aclose()

    async def _looked_up(
        self,
        records: AsyncIterator[ObjectRecord],
        executor: Executor,
        pending: PendingLookups,
    ) -> AsyncIterator[tuple[ObjectRecord, Optional[dict[str, str]]]]:
        async for record in records:
            if record.is_delete_marker:
                continue
            task = asyncio.create_task(self._lookup_tags(record, executor))
            pending.append((record, task))
            # Hand back finished lookups in order; block only on a full window.
            while pending and (
                len(pending) >= self.tag_concurrency or pending[0][1].done()
            ):
                ready, task = pending.popleft()
                yield ready, await task

        while pending:
            ready, task = pending.popleft()
            yield ready, await task

    async def _lookup_tags(
        self, record: ObjectRecord, executor: Executor
    ) -> Optional[dict[str, str]]:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(
                executor, self.mutator.get_tags, self.spec.bucket, record.identity
            )
        except ObjectOperationError as e:
            self.summary.record_tag_lookup_failure()
            logger.warning("Tag lookup failed", key=record.key, error=str(e))
            return None


def run_find(
    spec: TraversalSpec,
    command: Command,
    lister: ObjectLister,
    mutator: ObjectMutator,
    filters: Optional[FilterSet] = None,
    tag_filters: Optional[TagFilterSet] = None,
    summary: Optional[FindSummary] = None,
    echo: Callable[[str], None] = typer.echo,
    tag_concurrency: Optional[int] = None,
) -> RunReport:
    """Walk ``spec``, filter and apply ``command`` to every match."""
    return FindRunner(
        spec,
        command,
        lister,
        mutator,
        filters=filters,
        tag_filters=tag_filters,
        summary=summary,
        echo=echo,
        tag_concurrency=tag_concurrency,
    ).run()
