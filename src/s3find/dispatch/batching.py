"""Accumulation of object identities into batched delete calls."""

from collections.abc import Awaitable, Callable, Sequence

from s3find.core import get_logger
from s3find.core.config import MAX_DELETE_BATCH
from s3find.core.exceptions import CommandExecutionError, S3FindError, ValidationError
from s3find.objectstorage.mutations import BatchResult
from s3find.schemas import KeyFailure, ObjectIdentity

logger = get_logger(__name__)

BatchFlush = Callable[[Sequence[ObjectIdentity]], Awaitable[BatchResult]]


class BatchAccumulator:
    """Collects identities and issues one flush call per full batch.

    Batches are issued in the order identities were added. A failing flush
    call is recorded as a failure of every key in that batch; later batches
    are still issued.
    """

    def __init__(
        self,
        flush: BatchFlush,
        max_size: int = MAX_DELETE_BATCH,
        operation: str = "delete",
    ):
        if not 1 <= max_size <= MAX_DELETE_BATCH:
            raise ValidationError(
                f"Batch size must be between 1 and {MAX_DELETE_BATCH}, got {max_size}"
            )
        self._flush = flush
        self.max_size = max_size
        self.operation = operation
        self._pending: list[ObjectIdentity] = []
        self._closed = False

        self.batches_issued = 0
        self.succeeded: list[ObjectIdentity] = []
        self.failures: list[KeyFailure] = []

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def add(self, identity: ObjectIdentity) -> None:
        """Queue one identity, flushing first if the batch became full."""
        if self._closed:
            raise CommandExecutionError("Cannot add to a closed batch accumulator")
        self._pending.append(identity)
        if len(self._pending) >= self.max_size:
            await self._issue()

    async def close(self) -> None:
        """Flush whatever is left. Further adds are rejected."""
        if self._closed:
            return
        self._closed = True
        if self._pending:
            await self._issue()
        logger.info(
            "Batches complete",
            operation=self.operation,
            batches=self.batches_issued,
            succeeded=len(self.succeeded),
            failed=len(self.failures),
        )

    async def _issue(self) -> None:
        # Take ownership of the batch before awaiting so concurrent adds start
        # a fresh one.
        batch, self._pending = self._pending, []
        self.batches_issued += 1
        logger.debug(
            "Issuing batch",
            operation=self.operation,
            batch=self.batches_issued,
            size=len(batch),
        )

        try:
            result = await self._flush(batch)
        except S3FindError as e:
            logger.error(
                "Batch call failed",
                operation=self.operation,
                batch=self.batches_issued,
                size=len(batch),
                error=str(e),
            )
            self.failures.extend(
                KeyFailure(i.key, i.version_id, self.operation, str(e)) for i in batch
            )
            return

        self.succeeded.extend(result.deleted)
        for error in result.errors:
            self.failures.append(
                KeyFailure(
                    key=error.key,
                    version_id=error.version_id,
                    operation=self.operation,
                    message=f"{error.code}: {error.message}",
                )
            )
