"""boto3 implementation of the listing collaborator."""

from datetime import datetime, timezone
from typing import Any, Optional

from botocore.exceptions import BotoCoreError, ClientError

from s3find.core import get_logger
from s3find.core.exceptions import TraversalError
from s3find.objectstorage.clients import S3ClientManager
from s3find.schemas import DEFAULT_STORAGE_CLASS, ObjectRecord

from .walker import ListingPage, ListingToken

logger = get_logger(__name__)

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class S3ObjectLister:
    """Lists objects with ListObjectsV2 or ListObjectVersions."""

    def __init__(self, client_manager: S3ClientManager):
        self.client_manager = client_manager

    def list_page(
        self,
        bucket: str,
        prefix: str,
        delimiter: Optional[str] = None,
        continuation_token: Optional[ListingToken] = None,
        all_versions: bool = False,
        page_size: int = 1000,
    ) -> ListingPage:
        """Issue one listing call.

        Raises:
            TraversalError: If the call fails
        """
        try:
            if all_versions:
                return self._list_versions(
                    bucket, prefix, delimiter, continuation_token, page_size
                )
            return self._list_objects(
                bucket, prefix, delimiter, continuation_token, page_size
            )
        except (ClientError, BotoCoreError) as e:
            error_msg = f"Failed to list s3://{bucket}/{prefix}: {e}"
            logger.error(error_msg, error=str(e))
            raise TraversalError(error_msg)

    def _list_objects(
        self,
        bucket: str,
        prefix: str,
        delimiter: Optional[str],
        token: Optional[ListingToken],
        page_size: int,
    ) -> ListingPage:
        kwargs: dict[str, Any] = {
            "Bucket": bucket,
            "Prefix": prefix,
            "MaxKeys": page_size,
            "FetchOwner": True,
        }
        if delimiter:
            kwargs["Delimiter"] = delimiter
        if token is not None:
            kwargs["ContinuationToken"] = token

        response = self.client_manager.client.list_objects_v2(**kwargs)

        records = [_object_record(obj) for obj in response.get("Contents", [])]
        common_prefixes = [cp["Prefix"] for cp in response.get("CommonPrefixes", [])]
        next_token = (
            response.get("NextContinuationToken") if response.get("IsTruncated") else None
        )
        return ListingPage(records, common_prefixes, next_token)

    def _list_versions(
        self,
        bucket: str,
        prefix: str,
        delimiter: Optional[str],
        token: Optional[ListingToken],
        page_size: int,
    ) -> ListingPage:
        kwargs: dict[str, Any] = {"Bucket": bucket, "Prefix": prefix, "MaxKeys": page_size}
        if delimiter:
            kwargs["Delimiter"] = delimiter
        if token is not None:
            key_marker, version_id_marker = token
            kwargs["KeyMarker"] = key_marker
            if version_id_marker:
                kwargs["VersionIdMarker"] = version_id_marker

        response = self.client_manager.client.list_object_versions(**kwargs)

        records = [_version_record(v) for v in response.get("Versions", [])]
        records.extend(_delete_marker_record(m) for m in response.get("DeleteMarkers", []))
        # boto3 splits versions and markers into two lists; restore key order,
        # newest version of a key first.
        records.sort(key=lambda r: r.last_modified, reverse=True)
        records.sort(key=lambda r: r.key)

        common_prefixes = [cp["Prefix"] for cp in response.get("CommonPrefixes", [])]
        next_token = None
        if response.get("IsTruncated"):
            next_token = (
                response.get("NextKeyMarker", ""),
                response.get("NextVersionIdMarker"),
            )
        return ListingPage(records, common_prefixes, next_token)


def _owner(entry: dict) -> Optional[str]:
    owner = entry.get("Owner") or {}
    return owner.get("DisplayName") or owner.get("ID")


def _object_record(obj: dict) -> ObjectRecord:
    return ObjectRecord(
        key=obj["Key"],
        size=obj.get("Size", 0),
        last_modified=obj.get("LastModified", _EPOCH),
        storage_class=obj.get("StorageClass", DEFAULT_STORAGE_CLASS),
        e_tag=obj.get("ETag"),
        owner=_owner(obj),
    )


def _version_record(version: dict) -> ObjectRecord:
    return ObjectRecord(
        key=version["Key"],
        size=version.get("Size", 0),
        last_modified=version.get("LastModified", _EPOCH),
        storage_class=version.get("StorageClass", DEFAULT_STORAGE_CLASS),
        version_id=version.get("VersionId"),
        e_tag=version.get("ETag"),
        owner=_owner(version),
        is_latest=version.get("IsLatest"),
    )


def _delete_marker_record(marker: dict) -> ObjectRecord:
    return ObjectRecord(
        key=marker["Key"],
        size=0,
        last_modified=marker.get("LastModified", _EPOCH),
        version_id=marker.get("VersionId"),
        is_delete_marker=True,
        owner=_owner(marker),
        is_latest=marker.get("IsLatest"),
    )
