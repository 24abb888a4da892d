"""Run statistics: what matched and how the actions went."""

from typing import Optional

from s3find.core import get_logger
from s3find.schemas import KeyFailure, ObjectRecord

logger = get_logger(__name__)

PROGRESS_INTERVAL = 1000


def human_size(size: int) -> str:
    """Render a byte count the way the summary prints it."""
    if size >= 1024**4:
        return f"{size / (1024**4):.2f} TB"
    elif size >= 1024**3:
        return f"{size / (1024**3):.2f} GB"
    elif size >= 1024**2:
        return f"{size / (1024**2):.2f} MB"
    elif size >= 1024:
        return f"{size / 1024:.2f} KB"
    return f"{size} bytes"


class FindSummary:
    """Observes matched records and action outcomes.

    Never influences matching or dispatch; the dispatcher only reports to it.
    """

    def __init__(self, progress_interval: int = PROGRESS_INTERVAL):
        self.progress_interval = progress_interval
        self.total_files = 0
        self.total_space = 0
        self.max_size: Optional[int] = None
        self.max_key = ""
        self.min_size: Optional[int] = None
        self.min_key = ""
        self.succeeded = 0
        self.skipped = 0
        self.failures: list[KeyFailure] = []
        self.tag_lookup_failures = 0

    @property
    def average_size(self) -> int:
        if not self.total_files:
            return 0
        return self.total_space // self.total_files

    @property
    def failed(self) -> int:
        return len(self.failures)

    def observe(self, record: ObjectRecord) -> None:
        """Count one matched record, before any action runs on it."""
        self.total_files += 1
        self.total_space += record.size

        # Ties go to the later record for the largest and the earlier for the smallest.
        if self.max_size is None or record.size >= self.max_size:
            self.max_size = record.size
            self.max_key = record.key
        if self.min_size is None or record.size < self.min_size:
            self.min_size = record.size
            self.min_key = record.key

        if self.total_files % self.progress_interval == 0:
            logger.debug(
                "Progress",
                matched=self.total_files,
                bytes=self.total_space,
                succeeded=self.succeeded,
                failed=self.failed,
            )

    def record_success(self, count: int = 1) -> None:
        self.succeeded += count

    def record_skip(self, count: int = 1) -> None:
        self.skipped += count

    def record_tag_lookup_failure(self) -> None:
        self.tag_lookup_failures += 1

    def record_failure(self, failure: KeyFailure) -> None:
        self.failures.append(failure)

    def render(self) -> str:
        rows = [
            ("Total files:", str(self.total_files)),
            ("Total space:", human_size(self.total_space)),
            ("Largest file:", self.max_key),
            ("Largest file size:", human_size(self.max_size or 0)),
            ("Smallest file:", self.min_key),
            ("Smallest file size:", human_size(self.min_size or 0)),
            ("Average file size:", human_size(self.average_size)),
        ]
        if self.succeeded or self.failures:
            rows.append(("Succeeded:", str(self.succeeded)))
            rows.append(("Failed:", str(self.failed)))
        if self.tag_lookup_failures:
            rows.append(("Tag lookups failed:", str(self.tag_lookup_failures)))
        lines = ["", "Summary"]
        lines.extend(f"{label:19} {value}" for label, value in rows)
        return "\n".join(lines)
