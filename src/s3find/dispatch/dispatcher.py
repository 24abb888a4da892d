"""Application of one command to the stream of matched records.

Three execution strategies cover every command:

    streaming    ``ls``, ``print`` and ``nothing`` render records as they
                 arrive; no remote call
    per object   one blocking collaborator call per record, run on the
                 executor with at most ``concurrency`` calls in flight
    batched      ``delete`` (and the delete half of ``move``) accumulate
                 identities and issue one DeleteObjects call per batch

A failure of one object is recorded as a KeyFailure and never stops the
stream. Only errors from the record stream itself (listing failures)
propagate, after in-flight operations have completed.
"""

import asyncio
import shlex
import subprocess
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from concurrent.futures import Executor
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Optional

import typer

from s3find.core import get_logger, settings
from s3find.core.exceptions import CommandExecutionError
from s3find.objectstorage.mutations import (
    RESTORE_IN_PROGRESS,
    RESTORE_INITIATED,
    BatchResult,
    ObjectMutator,
)
from s3find.schemas import (
    ARCHIVE_STORAGE_CLASSES,
    ChangeStorageClassCommand,
    Command,
    CopyCommand,
    DeleteCommand,
    DownloadCommand,
    ExecCommand,
    KeyFailure,
    ListCommand,
    ListTagsCommand,
    MakePublicCommand,
    MoveCommand,
    NoOpCommand,
    ObjectIdentity,
    ObjectRecord,
    PrintCommand,
    RestoreCommand,
    SetTagsCommand,
)

from .batching import BatchAccumulator
from .formatting import RecordFormatter, format_tags, object_url
from .summary import FindSummary

logger = get_logger(__name__)

# Outcomes of a per-object operation
DONE = "done"
SKIPPED = "skipped"
# Completed later by a batch (the delete half of move)
DEFERRED = "deferred"

ObjectOperation = Callable[[ObjectRecord], Awaitable[str]]


@dataclass(frozen=True)
class DispatchReport:
    """Outcome of one dispatch pass."""

    command: str
    matched: int
    succeeded: int
    skipped: int
    failures: tuple[KeyFailure, ...]

    @property
    def failed(self) -> int:
        return len(self.failures)


def target_key(key: str, destination_prefix: str, flat: bool) -> str:
    """Destination key for copy and move.

    ``flat`` keeps only the last path segment of the source key.
    """
    name = key.rsplit("/", 1)[-1] if flat else key
    if destination_prefix and not destination_prefix.endswith("/"):
        destination_prefix += "/"
    return destination_prefix + name


class Dispatcher:
    """Runs one command over a stream of matched records."""

    def __init__(
        self,
        mutator: ObjectMutator,
        bucket: str,
        command: Command,
        summary: Optional[FindSummary] = None,
        executor: Optional[Executor] = None,
        echo: Callable[[str], None] = typer.echo,
        concurrency: Optional[int] = None,
        batch_size: Optional[int] = None,
        exec_timeout: Optional[int] = None,
    ):
        """Initialize the dispatcher.

        Args:
            mutator: Mutation collaborator
            bucket: Bucket the records were listed from
            command: Command to apply
            summary: Statistics sink (a fresh one when None)
            executor: Where blocking calls run (the loop default when None)
            echo: Output line sink
            concurrency: Maximum in-flight per-object calls
            batch_size: Identities per batched delete call
            exec_timeout: Seconds an exec process may run
        """
        self.mutator = mutator
        self.bucket = bucket
        self.command = command
        self.summary = summary if summary is not None else FindSummary()
        self.executor = executor
        self.echo = echo
        self.concurrency = concurrency or settings.concurrency
        self.batch_size = batch_size or settings.delete_batch_size
        self.exec_timeout = exec_timeout or settings.exec_timeout
        self._deletes: Optional[BatchAccumulator] = None

    async def run(self, records: AsyncIterator[ObjectRecord]) -> DispatchReport:
        """Consume ``records`` and apply the command to each one.

        Raises:
            TraversalError: If the record stream fails
        """
        command = self.command
        logger.info("Dispatch started", command=command.type, bucket=self.bucket)
        stream = self._observed(records)

        if isinstance(command, NoOpCommand):
            async for _ in stream:
                pass
        elif isinstance(command, (ListCommand, PrintCommand)):
            await self._run_streaming(stream, command)
        elif isinstance(command, DeleteCommand):
            await self._run_delete(stream)
        elif isinstance(command, MoveCommand):
            await self._run_batched_per_object(stream, self._object_operation(command))
        else:
            await self._run_per_object(stream, self._object_operation(command))

        summary = self.summary
        report = DispatchReport(
            command=command.type,
            matched=summary.total_files,
            succeeded=summary.succeeded,
            skipped=summary.skipped,
            failures=tuple(summary.failures),
        )
        logger.info(
            "Dispatch finished",
            command=report.command,
            matched=report.matched,
            succeeded=report.succeeded,
            skipped=report.skipped,
            failed=report.failed,
        )
        return report

    async def _observed(
        self, records: AsyncIterator[ObjectRecord]
    ) -> AsyncIterator[ObjectRecord]:
        async for record in records:
            self.summary.observe(record)
            yield record

    async def _call(self, func: Callable, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, partial(func, *args, **kwargs))

    # Strategies

    async def _run_streaming(
        self,
        stream: AsyncIterator[ObjectRecord],
        command: ListCommand | PrintCommand,
    ) -> None:
        if isinstance(command, PrintCommand):
            render = RecordFormatter(self.bucket, command.format).format
        else:
            render = self._url_of

        async for record in stream:
            self.echo(render(record))
            self.summary.record_success()

    def _url_of(self, record: ObjectRecord) -> str:
        return object_url(self.bucket, record.key)

    async def _run_delete(self, stream: AsyncIterator[ObjectRecord]) -> None:
        deletes = self._new_batch()
        try:
            async for record in stream:
                await deletes.add(record.identity)
        finally:
            await self._close_batch(deletes)

    async def _run_per_object(
        self, stream: AsyncIterator[ObjectRecord], operation: ObjectOperation
    ) -> None:
        semaphore = asyncio.Semaphore(self.concurrency)
        in_flight: set[asyncio.Task] = set()
        try:
            async for record in stream:
                # Acquire before creating the task so the listing waits for
                # a free slot.
                await semaphore.acquire()
                task = asyncio.create_task(self._guarded(operation, record, semaphore))
                in_flight.add(task)
                task.add_done_callback(in_flight.discard)
        finally:
            if in_flight:
                await asyncio.gather(*in_flight)

    async def _run_batched_per_object(
        self, stream: AsyncIterator[ObjectRecord], operation: ObjectOperation
    ) -> None:
        self._deletes = self._new_batch()
        try:
            await self._run_per_object(stream, operation)
        finally:
            await self._close_batch(self._deletes)

    async def _guarded(
        self,
        operation: ObjectOperation,
        record: ObjectRecord,
        semaphore: asyncio.Semaphore,
    ) -> None:
        try:
            outcome = await operation(record)
        except CommandExecutionError as e:
            self.summary.record_failure(
                KeyFailure(
                    key=record.key,
                    version_id=record.version_id,
                    operation=self.command.type,
                    message=str(e),
                )
            )
        else:
            if outcome == DONE:
                self.summary.record_success()
            elif outcome == SKIPPED:
                self.summary.record_skip()
        finally:
            semaphore.release()

    # Batched deletes

    def _new_batch(self) -> BatchAccumulator:
        return BatchAccumulator(self._delete_batch, max_size=self.batch_size)

    async def _delete_batch(self, identities: Sequence[ObjectIdentity]) -> BatchResult:
        result = await self._call(self.mutator.delete_batch, self.bucket, list(identities))
        for identity in result.deleted:
            self.echo(f"deleted: {object_url(self.bucket, identity.key)}")
        return result

    async def _close_batch(self, deletes: BatchAccumulator) -> None:
        await deletes.close()
        self.summary.record_success(len(deletes.succeeded))
        for failure in deletes.failures:
            logger.warning(
                "Delete failed",
                key=failure.key,
                version_id=failure.version_id,
                error=failure.message,
            )
            self.summary.record_failure(failure)

    # Per-object operations

    def _object_operation(self, command: Command) -> ObjectOperation:
        if isinstance(command, ListTagsCommand):
            return self._list_tags
        if isinstance(command, DownloadCommand):
            return partial(self._download, command)
        if isinstance(command, (CopyCommand, MoveCommand)):
            return partial(self._copy, command)
        if isinstance(command, SetTagsCommand):
            return partial(self._set_tags, command)
        if isinstance(command, MakePublicCommand):
            return self._make_public
        if isinstance(command, RestoreCommand):
            return partial(self._restore, command)
        if isinstance(command, ChangeStorageClassCommand):
            return partial(self._change_storage_class, command)
        if isinstance(command, ExecCommand):
            return partial(self._exec, command)
        raise CommandExecutionError(f"Unsupported command: {command.type}")

    def _skip_delete_marker(self, record: ObjectRecord) -> bool:
        if record.is_delete_marker:
            logger.debug(
                "Delete marker skipped",
                command=self.command.type,
                key=record.key,
                version_id=record.version_id,
            )
            return True
        return False

    async def _list_tags(self, record: ObjectRecord) -> str:
        if self._skip_delete_marker(record):
            return SKIPPED
        tags = await self._call(self.mutator.get_tags, self.bucket, record.identity)
        self.echo(f"{object_url(self.bucket, record.key)} {format_tags(tags)}")
        return DONE

    async def _download(self, command: DownloadCommand, record: ObjectRecord) -> str:
        if self._skip_delete_marker(record):
            return SKIPPED

        root = Path(command.destination).resolve()
        file_path = (root / record.key).resolve()
        if root not in file_path.parents:
            raise CommandExecutionError(
                f"Key {record.key} resolves outside {command.destination}"
            )

        self.echo(f"downloading: {object_url(self.bucket, record.key)} => {file_path}")
        if file_path.exists() and not command.force:
            logger.info("File exists, download skipped", path=str(file_path))
            return SKIPPED

        written = await self._call(
            self.mutator.download, self.bucket, record.identity, file_path
        )
        logger.debug("Downloaded", key=record.key, bytes=written)
        return DONE

    async def _copy(self, command: CopyCommand | MoveCommand, record: ObjectRecord) -> str:
        if self._skip_delete_marker(record):
            return SKIPPED

        target = target_key(record.key, command.destination_prefix, command.flat)
        verb = "moving" if isinstance(command, MoveCommand) else "copying"
        self.echo(
            f"{verb}: {object_url(self.bucket, record.key)} => "
            f"{object_url(command.destination_bucket, target)}"
        )
        await self._call(
            self.mutator.copy_object,
            self.bucket,
            record.identity,
            command.destination_bucket,
            target,
            command.storage_class,
        )

        if self._deletes is None:
            return DONE
        # The source is only deleted once its copy exists.
        await self._deletes.add(record.identity)
        return DEFERRED

    async def _set_tags(self, command: SetTagsCommand, record: ObjectRecord) -> str:
        if self._skip_delete_marker(record):
            return SKIPPED
        tags = {tag.key: tag.value for tag in command.tags}
        await self._call(self.mutator.put_tags, self.bucket, record.identity, tags)
        self.echo(f"tags are set for: {object_url(self.bucket, record.key)}")
        return DONE

    async def _make_public(self, record: ObjectRecord) -> str:
        if self._skip_delete_marker(record):
            return SKIPPED
        await self._call(self.mutator.make_public, self.bucket, record.identity)
        url = await self._call(self.mutator.public_url, self.bucket, record.key)
        self.echo(f"{record.key} {url}")
        return DONE

    async def _restore(self, command: RestoreCommand, record: ObjectRecord) -> str:
        if self._skip_delete_marker(record):
            return SKIPPED
        if record.storage_class not in ARCHIVE_STORAGE_CLASSES:
            logger.debug(
                "Not archived, restore skipped",
                key=record.key,
                storage_class=record.storage_class,
            )
            return SKIPPED

        outcome = await self._call(
            self.mutator.restore_object,
            self.bucket,
            record.identity,
            command.days,
            command.tier,
        )
        if outcome == RESTORE_INITIATED:
            self.echo(f"Restore initiated for: {record.key}")
        elif outcome == RESTORE_IN_PROGRESS:
            self.echo(f"Restore already in progress for: {record.key}")
        else:
            self.echo(
                f"Object is not in Glacier storage or already restored: {record.key}"
            )
        return DONE

    async def _change_storage_class(
        self, command: ChangeStorageClassCommand, record: ObjectRecord
    ) -> str:
        if self._skip_delete_marker(record):
            return SKIPPED
        self.echo(
            f"Changing storage class for {object_url(self.bucket, record.key)} "
            f"to {command.storage_class}"
        )
        await self._call(
            self.mutator.change_storage_class,
            self.bucket,
            record.identity,
            command.storage_class,
        )
        return DONE

    async def _exec(self, command: ExecCommand, record: ObjectRecord) -> str:
        url = object_url(self.bucket, record.key)
        args = [token.replace("{}", url) for token in shlex.split(command.utility)]
        completed = await self._call(self._run_process, args)
        if completed.stdout:
            self.echo(completed.stdout.rstrip("\n"))
        if completed.returncode != 0:
            raise CommandExecutionError(
                f"{shlex.join(args)} exited with status {completed.returncode}: "
                f"{completed.stderr.strip()}"
            )
        return DONE

    def _run_process(self, args: list[str]) -> subprocess.CompletedProcess[str]:
        try:
            return subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=self.exec_timeout,
                check=False,
            )
        except subprocess.TimeoutExpired:
            raise CommandExecutionError(
                f"{shlex.join(args)} timed out after {self.exec_timeout} seconds"
            )
        except OSError as e:
            raise CommandExecutionError(f"Cannot run {shlex.join(args)}: {e}")
