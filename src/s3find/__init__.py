"""Walk an Amazon S3 path hierarchy and act on the matching objects.

This package is the library behind the ``s3find`` command: a find(1) for
S3 buckets. A run walks one bucket and prefix, keeps the objects matched by
a set of filters and applies exactly one command to each of them.

Key Features:
    - Glob, regex, size, modification time, storage class and tag filters
    - Flat, depth-limited and all-versions traversal
    - Listing, printing, batched deletes, copy, move, download, tagging,
      restore, storage class changes and exec
    - CLI interface

Usage:
    >>> from s3find import (
    ...     FilterSet, S3ClientConfig, S3ClientManager, S3ObjectLister,
    ...     S3ObjectMutator, TraversalSpec, ListCommand, run_find,
    ... )
    >>> manager = S3ClientManager(S3ClientConfig(aws_profile="default"))
    >>> report = run_find(
    ...     TraversalSpec(bucket="bucket", prefix="logs"),
    ...     ListCommand(),
    ...     S3ObjectLister(manager),
    ...     S3ObjectMutator(manager),
    ...     filters=FilterSet.from_arguments(name=["*.gz"]),
    ... )
"""

__version__ = "0.1.0"

from .dispatch import DispatchReport, Dispatcher, FindSummary
from .filtering import FilterSet, TagFilterSet
from .objectstorage import (
    S3ClientConfig,
    S3ClientManager,
    S3ObjectLister,
    S3ObjectMutator,
    Walker,
    parse_s3_path,
)
from .runner import FindRunner, RunReport, run_find
from .schemas import (
    ChangeStorageClassCommand,
    Command,
    CopyCommand,
    DeleteCommand,
    DownloadCommand,
    ExecCommand,
    ListCommand,
    ListTagsCommand,
    MakePublicCommand,
    MoveCommand,
    NoOpCommand,
    ObjectRecord,
    PrintCommand,
    RestoreCommand,
    SetTagsCommand,
    TraversalSpec,
)

__all__ = [
    # Pipeline
    "FindRunner",
    "RunReport",
    "run_find",
    "Walker",
    "Dispatcher",
    "DispatchReport",
    "FindSummary",
    # Filters
    "FilterSet",
    "TagFilterSet",
    # S3 collaborators
    "S3ClientConfig",
    "S3ClientManager",
    "S3ObjectLister",
    "S3ObjectMutator",
    "parse_s3_path",
    # Data model
    "ObjectRecord",
    "TraversalSpec",
    "Command",
    "ListCommand",
    "ListTagsCommand",
    "PrintCommand",
    "DeleteCommand",
    "DownloadCommand",
    "CopyCommand",
    "MoveCommand",
    "SetTagsCommand",
    "MakePublicCommand",
    "RestoreCommand",
    "ChangeStorageClassCommand",
    "ExecCommand",
    "NoOpCommand",
]
