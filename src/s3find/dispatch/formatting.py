"""Rendering of matched records for ``ls``, ``lstags`` and ``print``."""

import csv
import io
import json
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

from s3find.schemas import ObjectRecord


def object_url(bucket: str, key: str) -> str:
    return f"s3://{bucket}/{key}"


def format_timestamp(value: datetime) -> str:
    """RFC 3339 in UTC with second precision, e.g. ``2024-01-31T08:00:00Z``."""
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_tags(tags: Mapping[str, str]) -> str:
    return ",".join(f"{key}:{value}" for key, value in tags.items())


def record_fields(record: ObjectRecord) -> dict[str, Any]:
    """Flat field mapping shared by the json and csv formats."""
    fields: dict[str, Any] = {
        "e_tag": record.e_tag or "",
        "owner": record.owner or "",
        "size": record.size,
        "last_modified": format_timestamp(record.last_modified),
        "key": record.key,
        "storage_class": record.storage_class,
    }
    if record.version_id is not None:
        fields["version_id"] = record.version_id
        fields["is_latest"] = record.is_latest
        fields["is_delete_marker"] = record.is_delete_marker
    return fields


class RecordFormatter:
    """Renders one record per line in ``text``, ``json`` or ``csv``.

    CSV lines carry no header row.
    """

    def __init__(self, bucket: str, output_format: str = "text"):
        if output_format not in ("text", "json", "csv"):
            raise ValueError(f"Unsupported print format: {output_format}")
        self.bucket = bucket
        self.output_format = output_format

    def format(self, record: ObjectRecord) -> str:
        if self.output_format == "json":
            return json.dumps(record_fields(record))
        if self.output_format == "csv":
            return self._csv_line(record)
        return self._text_line(record)

    def _text_line(self, record: ObjectRecord) -> str:
        line = (
            f"{record.e_tag or 'NoEtag'} "
            f"{record.owner or 'None'} "
            f"{record.size} "
            f"{format_timestamp(record.last_modified)} "
            f'"{object_url(self.bucket, record.key)}" '
            f"{record.storage_class}"
        )
        if record.version_id is not None:
            line += f" {record.version_id}"
            if record.is_delete_marker:
                line += " (delete marker)"
        return line

    def _csv_line(self, record: ObjectRecord) -> str:
        buffer = io.StringIO()
        csv.writer(buffer, lineterminator="").writerow(record_fields(record).values())
        return buffer.getvalue()
