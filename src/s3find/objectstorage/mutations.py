"""Remote operations applied to matched objects.

``ObjectMutator`` is the contract the dispatcher depends on; ``S3ObjectMutator``
implements it with boto3. Every method is a blocking call that either
succeeds or raises ``ObjectOperationError`` for that single object, except
``delete_batch``, which reports per-key outcomes in a ``BatchResult``.
"""

import os
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, NoReturn, Optional, Protocol

from botocore.exceptions import BotoCoreError, ClientError

from s3find.core import get_logger
from s3find.core.exceptions import ObjectOperationError
from s3find.objectstorage.clients import S3ClientManager
from s3find.schemas import ObjectIdentity

logger = get_logger(__name__)

# Restore outcomes
RESTORE_INITIATED = "initiated"
RESTORE_IN_PROGRESS = "in-progress"
RESTORE_NOT_ARCHIVED = "not-archived"

_DOWNLOAD_CHUNK = 1024 * 1024


@dataclass(frozen=True)
class BatchKeyError:
    key: str
    version_id: Optional[str]
    code: str
    message: str


@dataclass
class BatchResult:
    """Per-key outcome of one batched delete call."""

    deleted: list[ObjectIdentity] = field(default_factory=list)
    errors: list[BatchKeyError] = field(default_factory=list)


class ObjectMutator(Protocol):
    """Mutation collaborator used by the dispatcher."""

    def delete_batch(
        self, bucket: str, identities: Sequence[ObjectIdentity]
    ) -> BatchResult: ...

    def copy_object(
        self,
        source_bucket: str,
        source: ObjectIdentity,
        destination_bucket: str,
        destination_key: str,
        storage_class: Optional[str] = None,
    ) -> None: ...

    def get_tags(self, bucket: str, identity: ObjectIdentity) -> dict[str, str]: ...

    def put_tags(
        self, bucket: str, identity: ObjectIdentity, tags: dict[str, str]
    ) -> None: ...

    def make_public(self, bucket: str, identity: ObjectIdentity) -> None: ...

    def public_url(self, bucket: str, key: str) -> str: ...

    def restore_object(
        self, bucket: str, identity: ObjectIdentity, days: int, tier: str
    ) -> str: ...

    def change_storage_class(
        self, bucket: str, identity: ObjectIdentity, storage_class: str
    ) -> None: ...

    def download(
        self, bucket: str, identity: ObjectIdentity, destination: Path
    ) -> int: ...


def _version_kwargs(identity: ObjectIdentity) -> dict[str, Any]:
    return {"VersionId": identity.version_id} if identity.version_id else {}


def _error_code(error: Exception) -> Optional[str]:
    if isinstance(error, ClientError):
        return error.response.get("Error", {}).get("Code")
    return None


class S3ObjectMutator:
    """boto3 implementation of ObjectMutator."""

    def __init__(self, client_manager: S3ClientManager):
        self.client_manager = client_manager

    @property
    def client(self):
        return self.client_manager.client

    def _fail(
        self, operation: str, bucket: str, key: str, error: Exception
    ) -> NoReturn:
        error_msg = f"{operation} failed for s3://{bucket}/{key}: {error}"
        logger.warning(error_msg, code=_error_code(error))
        raise ObjectOperationError(error_msg, code=_error_code(error))

    def delete_batch(
        self, bucket: str, identities: Sequence[ObjectIdentity]
    ) -> BatchResult:
        """Delete up to 1000 objects in one DeleteObjects call.

        A failure of the call itself is reported as an error for every key.
        """
        objects = [{"Key": i.key, **_version_kwargs(i)} for i in identities]
        try:
            response = self.client.delete_objects(
                Bucket=bucket, Delete={"Objects": objects, "Quiet": False}
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Batch delete failed", bucket=bucket, keys=len(objects), error=str(e))
            code = _error_code(e) or "RequestFailed"
            return BatchResult(
                errors=[BatchKeyError(i.key, i.version_id, code, str(e)) for i in identities]
            )

        result = BatchResult()
        for deleted in response.get("Deleted", []):
            result.deleted.append(
                ObjectIdentity(key=deleted["Key"], version_id=deleted.get("VersionId"))
            )
        for error in response.get("Errors", []):
            result.errors.append(
                BatchKeyError(
                    key=error.get("Key", ""),
                    version_id=error.get("VersionId"),
                    code=error.get("Code", ""),
                    message=error.get("Message", ""),
                )
            )
        return result

    def copy_object(
        self,
        source_bucket: str,
        source: ObjectIdentity,
        destination_bucket: str,
        destination_key: str,
        storage_class: Optional[str] = None,
    ) -> None:
        copy_source: dict[str, str] = {"Bucket": source_bucket, "Key": source.key}
        if source.version_id:
            copy_source["VersionId"] = source.version_id

        kwargs: dict[str, Any] = {
            "Bucket": destination_bucket,
            "Key": destination_key,
            "CopySource": copy_source,
        }
        if storage_class:
            kwargs["StorageClass"] = storage_class

        try:
            self.client.copy_object(**kwargs)
        except (ClientError, BotoCoreError) as e:
            self._fail("Copy", source_bucket, source.key, e)

    def get_tags(self, bucket: str, identity: ObjectIdentity) -> dict[str, str]:
        try:
            response = self.client.get_object_tagging(
                Bucket=bucket, Key=identity.key, **_version_kwargs(identity)
            )
        except (ClientError, BotoCoreError) as e:
            self._fail("Get tags", bucket, identity.key, e)
        return {tag["Key"]: tag["Value"] for tag in response.get("TagSet", [])}

    def put_tags(
        self, bucket: str, identity: ObjectIdentity, tags: dict[str, str]
    ) -> None:
        tag_set = [{"Key": k, "Value": v} for k, v in tags.items()]
        try:
            self.client.put_object_tagging(
                Bucket=bucket,
                Key=identity.key,
                Tagging={"TagSet": tag_set},
                **_version_kwargs(identity),
            )
        except (ClientError, BotoCoreError) as e:
            self._fail("Set tags", bucket, identity.key, e)

    def make_public(self, bucket: str, identity: ObjectIdentity) -> None:
        try:
            self.client.put_object_acl(
                Bucket=bucket,
                Key=identity.key,
                ACL="public-read",
                **_version_kwargs(identity),
            )
        except (ClientError, BotoCoreError) as e:
            self._fail("Make public", bucket, identity.key, e)

    def public_url(self, bucket: str, key: str) -> str:
        region = self.client_manager.region_name
        if region == "us-east-1":
            return f"https://{bucket}.s3.amazonaws.com/{key}"
        return f"https://{bucket}.s3-{region}.amazonaws.com/{key}"

    def restore_object(
        self, bucket: str, identity: ObjectIdentity, days: int, tier: str
    ) -> str:
        """Request a restore; returns one of the RESTORE_* outcomes.

        An already running restore and an object that is not archived are
        outcomes, not failures.
        """
        try:
            self.client.restore_object(
                Bucket=bucket,
                Key=identity.key,
                RestoreRequest={
                    "Days": days,
                    "GlacierJobParameters": {"Tier": tier},
                },
                **_version_kwargs(identity),
            )
        except ClientError as e:
            code = _error_code(e)
            if code == "RestoreAlreadyInProgress":
                return RESTORE_IN_PROGRESS
            if code == "InvalidObjectState":
                return RESTORE_NOT_ARCHIVED
            self._fail("Restore", bucket, identity.key, e)
        except BotoCoreError as e:
            self._fail("Restore", bucket, identity.key, e)
        return RESTORE_INITIATED

    def change_storage_class(
        self, bucket: str, identity: ObjectIdentity, storage_class: str
    ) -> None:
        copy_source: dict[str, str] = {"Bucket": bucket, "Key": identity.key}
        if identity.version_id:
            copy_source["VersionId"] = identity.version_id
        try:
            self.client.copy_object(
                Bucket=bucket,
                Key=identity.key,
                CopySource=copy_source,
                StorageClass=storage_class,
                MetadataDirective="COPY",
            )
        except (ClientError, BotoCoreError) as e:
            self._fail("Change storage class", bucket, identity.key, e)

    def download(
        self, bucket: str, identity: ObjectIdentity, destination: Path
    ) -> int:
        """Stream an object to ``destination``; returns the bytes written.

        The body is written to a hidden ``.part`` file in the same directory
        and moved onto ``destination`` only once complete, so an interrupted
        transfer never leaves a truncated file under the final name.
        """
        written = 0
        partial_path: Optional[str] = None
        try:
            response = self.client.get_object(
                Bucket=bucket, Key=identity.key, **_version_kwargs(identity)
            )
            os.makedirs(destination.parent, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                dir=destination.parent,
                prefix=f".{destination.name}.",
                suffix=".part",
                delete=False,
            ) as output:
                partial_path = output.name
                for chunk in response["Body"].iter_chunks(chunk_size=_DOWNLOAD_CHUNK):
                    output.write(chunk)
                    written += len(chunk)
            os.replace(partial_path, destination)
        except (ClientError, BotoCoreError, OSError) as e:
            if partial_path is not None and os.path.exists(partial_path):
                os.remove(partial_path)
            self._fail("Download", bucket, identity.key, e)
        return written
