"""Data model for s3find: object records, traversal settings and commands."""

import re
import shlex
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from s3find.core.exceptions import ParseError

DEFAULT_STORAGE_CLASS = "STANDARD"

# ListObjectsV2 and ListObjectVersions return at most this many keys per call.
MAX_PAGE_SIZE = 1000

# Storage classes only restorable from the archive tiers.
ARCHIVE_STORAGE_CLASSES = frozenset({"GLACIER", "DEEP_ARCHIVE"})

_TAG_PAIR_RE = re.compile(r"^(\w+):(\w+)$")


@dataclass(frozen=True)
class ObjectRecord:
    """One object, or one object version, observed during traversal.

    Attributes:
        key: Full object key within the bucket
        size: Size in bytes (always 0 for delete markers)
        last_modified: UTC modification instant
        storage_class: Storage class tag as reported by the listing
        version_id: Version identifier (all-versions mode only)
        is_delete_marker: True for delete markers (all-versions mode only)
        e_tag: Entity tag, when the listing reports one
        owner: Owner display name, when the listing reports one
        is_latest: Whether this is the current version (all-versions mode only)
    """

    key: str
    size: int
    last_modified: datetime
    storage_class: str = DEFAULT_STORAGE_CLASS
    version_id: Optional[str] = None
    is_delete_marker: bool = False
    e_tag: Optional[str] = None
    owner: Optional[str] = None
    is_latest: Optional[bool] = None

    def __post_init__(self):
        if self.is_delete_marker and self.size != 0:
            object.__setattr__(self, "size", 0)
        if self.size < 0:
            raise ValueError(f"Object size cannot be negative: {self.size}")

    @property
    def identity(self) -> "ObjectIdentity":
        return ObjectIdentity(key=self.key, version_id=self.version_id)


@dataclass(frozen=True)
class ObjectIdentity:
    """Key plus optional version id: the unit a batched delete addresses."""

    key: str
    version_id: Optional[str] = None


@dataclass(frozen=True)
class KeyFailure:
    """A per-object operation that failed; reported at the end of a run."""

    key: str
    version_id: Optional[str]
    operation: str
    message: str


class TraversalSpec(BaseModel):
    """What to walk and how.

    ``all_versions`` and ``maxdepth`` are mutually exclusive; when both are
    given the walk lists all versions and ignores the depth.
    """

    model_config = ConfigDict(extra="forbid")

    bucket: str = Field(..., min_length=1, description="Bucket to walk")
    prefix: str = Field("", description="Key prefix to start from")
    maxdepth: Optional[int] = Field(
        None, ge=0, description="Subdirectory levels to descend below the prefix"
    )
    all_versions: bool = Field(False, description="List every object version")
    page_size: int = Field(
        MAX_PAGE_SIZE,
        ge=1,
        le=MAX_PAGE_SIZE,
        description="Keys requested per listing call (a hint, not a contract)",
    )
    limit: Optional[int] = Field(None, ge=1, description="Stop after N matches")

    @property
    def depth_limited(self) -> bool:
        return self.maxdepth is not None and not self.all_versions


class TagPair(BaseModel):
    """A tag written by the ``tags`` command."""

    model_config = ConfigDict(extra="forbid")

    key: str
    value: str

    @classmethod
    def parse(cls, literal: str) -> "TagPair":
        """Parse a ``key:value`` literal (word characters only on each side)."""
        match = _TAG_PAIR_RE.match(literal)
        if not match:
            raise ParseError(f"Cannot parse tag '{literal}', expected KEY:VALUE")
        return cls(key=match.group(1), value=match.group(2))


# Commands. One model per action; the ``type`` field discriminates.


class ListCommand(BaseModel):
    """Print the matched keys as s3:// URLs."""

    type: Literal["ls"] = "ls"


class ListTagsCommand(BaseModel):
    """Print the matched keys together with their tags."""

    type: Literal["lstags"] = "lstags"


class PrintCommand(BaseModel):
    """Print full metadata of the matched objects."""

    type: Literal["print"] = "print"
    format: Literal["text", "json", "csv"] = "text"


class DeleteCommand(BaseModel):
    """Delete the matched objects (or versions) in batches."""

    type: Literal["delete"] = "delete"


class DownloadCommand(BaseModel):
    """Download the matched objects below a local directory."""

    type: Literal["download"] = "download"
    destination: str = Field(..., min_length=1)
    force: bool = False


class CopyCommand(BaseModel):
    """Server-side copy of the matched objects to another S3 location."""

    type: Literal["copy"] = "copy"
    destination_bucket: str = Field(..., min_length=1)
    destination_prefix: str = ""
    flat: bool = False
    storage_class: Optional[str] = None


class MoveCommand(BaseModel):
    """Copy the matched objects, then delete each source whose copy succeeded."""

    type: Literal["move"] = "move"
    destination_bucket: str = Field(..., min_length=1)
    destination_prefix: str = ""
    flat: bool = False
    storage_class: Optional[str] = None


class SetTagsCommand(BaseModel):
    """Replace the tag set of the matched objects."""

    type: Literal["tags"] = "tags"
    tags: list[TagPair] = Field(..., min_length=1)


class MakePublicCommand(BaseModel):
    """Grant public-read on the matched objects."""

    type: Literal["public"] = "public"


class RestoreCommand(BaseModel):
    """Request a temporary restore of archived objects."""

    type: Literal["restore"] = "restore"
    days: int = Field(1, ge=1, le=365)
    tier: Literal["Standard", "Expedited", "Bulk"] = "Standard"


class ChangeStorageClassCommand(BaseModel):
    """Rewrite the matched objects in place with a new storage class."""

    type: Literal["change-storage"] = "change-storage"
    storage_class: str = Field(..., min_length=1)


class ExecCommand(BaseModel):
    """Run an external program once per matched object."""

    type: Literal["exec"] = "exec"
    utility: str = Field(..., min_length=1)

    @model_validator(mode="after")
    def _check_utility(self) -> "ExecCommand":
        try:
            tokens = shlex.split(self.utility)
        except ValueError as e:
            raise ValueError(f"Cannot parse exec utility: {e}")
        if not tokens:
            raise ValueError("exec utility cannot be blank")
        return self


class NoOpCommand(BaseModel):
    """Match only; do nothing with the results."""

    type: Literal["nothing"] = "nothing"


Command = Annotated[
    Union[
        ListCommand,
        ListTagsCommand,
        PrintCommand,
        DeleteCommand,
        DownloadCommand,
        CopyCommand,
        MoveCommand,
        SetTagsCommand,
        MakePublicCommand,
        RestoreCommand,
        ChangeStorageClassCommand,
        ExecCommand,
        NoOpCommand,
    ],
    Field(discriminator="type"),
]
