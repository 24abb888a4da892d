"""Command-line interface for s3find.

Walks an S3 path, filters the objects and runs one command on every match:

    s3find [FILTERS] s3://bucket/prefix [COMMAND [ARGS]]

Commands:
    - ls: Print the matched keys (the default)
    - lstags: Print the matched keys with their tags
    - print: Print full object metadata (text, json or csv)
    - delete: Delete the matched keys in batches
    - download: Download the matched keys to a local directory
    - copy / move: Server-side copy (and delete) to another S3 location
    - tags: Replace the tags of the matched keys
    - public: Make the matched keys publicly readable
    - restore: Restore archived objects
    - change-storage: Rewrite the matched keys with a new storage class
    - exec: Run a program for every key, {} is replaced by the s3 url
    - nothing: Match only
"""

from dataclasses import dataclass
from typing import Annotated, Callable, Optional

import typer
from pydantic import ValidationError as PydanticValidationError

from . import __version__
from .core import settings
from .core.exceptions import S3FindError
from .dispatch import FindSummary
from .filtering import FilterSet, TagFilterSet
from .objectstorage.clients import (
    S3ClientConfig,
    S3ClientManager,
    S3Path,
    parse_s3_path,
)
from .objectstorage.listing import S3ObjectLister
from .objectstorage.mutations import S3ObjectMutator
from .runner import EXIT_FATAL, run_find
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
    PrintCommand,
    RestoreCommand,
    SetTagsCommand,
    TagPair,
    TraversalSpec,
)

app = typer.Typer(
    name="s3find",
    help="Walk an Amazon S3 path hierarchy and act on the matching objects.",
    no_args_is_help=True,
)


@dataclass
class FindOptions:
    """Everything the group callback parsed, handed to the command."""

    location: S3Path
    spec: TraversalSpec
    filters: FilterSet
    tag_filters: TagFilterSet
    client_config: S3ClientConfig
    summarize: bool
    strict: bool
    tag_concurrency: int


def version_callback(value: bool) -> None:
    """Display version information."""
    if value:
        typer.echo(f"s3find {__version__}")
        raise typer.Exit()


def _fail(error: Exception) -> typer.Exit:
    typer.echo(f"Error: {error}", err=True)
    return typer.Exit(EXIT_FATAL)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    path: Annotated[
        str, typer.Argument(help="S3 path to walk through, s3://bucket/path")
    ],
    name: Annotated[
        Optional[list[str]],
        typer.Option("--name", help="Glob pattern for match, can be multiple"),
    ] = None,
    iname: Annotated[
        Optional[list[str]],
        typer.Option(
            "--iname", help="Case-insensitive glob pattern for match, can be multiple"
        ),
    ] = None,
    regex: Annotated[
        Optional[list[str]],
        typer.Option("--regex", help="Regex pattern for match, can be multiple"),
    ] = None,
    bytes_size: Annotated[
        Optional[list[str]],
        typer.Option(
            "--bytes-size",
            help="File size for match: 5k exact, +5k bigger, -5k smaller "
            "(units k, M, G, T, P; base 1024)",
        ),
    ] = None,
    mtime: Annotated[
        Optional[list[str]],
        typer.Option(
            "--mtime",
            help="Modification time for match: -10h or 10h within the last "
            "10 hours, +10h earlier than that (units s, m, h, d, w)",
        ),
    ] = None,
    storage_class: Annotated[
        Optional[str],
        typer.Option("--storage-class", help="Object storage class for match"),
    ] = None,
    tag: Annotated[
        Optional[list[str]],
        typer.Option(
            "--tag",
            help="Tag KEY=VALUE the object must carry, can be multiple "
            "(one GetObjectTagging call per candidate)",
        ),
    ] = None,
    tag_exists: Annotated[
        Optional[list[str]],
        typer.Option("--tag-exists", help="Tag KEY the object must carry"),
    ] = None,
    tag_concurrency: Annotated[
        int,
        typer.Option(
            "--tag-concurrency",
            min=1,
            help="Maximum concurrent GetObjectTagging requests",
        ),
    ] = settings.tag_concurrency,
    limit: Annotated[
        Optional[int], typer.Option("--limit", help="Stop after N matches")
    ] = None,
    number: Annotated[
        int,
        typer.Option(
            "--number", help="Keys requested per listing call (at most 1000)"
        ),
    ] = 1000,
    maxdepth: Annotated[
        Optional[int],
        typer.Option(
            "--maxdepth",
            help="Descend at most N levels of subdirectories below the prefix",
        ),
    ] = None,
    all_versions: Annotated[
        bool,
        typer.Option(
            "--all-versions",
            help="Include every object version and delete marker "
            "(--maxdepth is then ignored)",
        ),
    ] = False,
    summarize: Annotated[
        bool,
        typer.Option("--summarize", "-s", help="Print summary statistics"),
    ] = False,
    strict: Annotated[
        bool,
        typer.Option(
            "--strict", help="Exit with status 2 when any object operation failed"
        ),
    ] = False,
    # S3 options
    aws_access_key: Annotated[
        Optional[str],
        typer.Option("--aws-access-key", help="AWS access key ID"),
    ] = None,
    aws_secret_key: Annotated[
        Optional[str],
        typer.Option("--aws-secret-key", help="AWS secret access key"),
    ] = None,
    aws_region: Annotated[
        Optional[str], typer.Option("--aws-region", help="AWS region name")
    ] = None,
    aws_profile: Annotated[
        Optional[str],
        typer.Option("--aws-profile", help="AWS CLI profile name"),
    ] = None,
    endpoint_url: Annotated[
        Optional[str],
        typer.Option(
            "--endpoint-url", help="Custom S3 endpoint URL (MinIO, Ceph, ...)"
        ),
    ] = None,
    force_path_style: Annotated[
        bool,
        typer.Option(
            "--force-path-style", help="Address buckets as endpoint/bucket/key"
        ),
    ] = False,
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version", callback=version_callback, is_eager=True, help="Show version."
        ),
    ] = None,
) -> None:
    """
    s3find: find(1) for S3.

    Filters go before the path, the command and its options after it.
    Without a command the matched keys are listed.

    Examples:
        s3find --name '*.log' --mtime +30d s3://bucket/logs delete
        s3find --bytes-size +1G s3://bucket print --format json
        s3find --maxdepth 1 s3://bucket/data/
    """
    try:
        location = parse_s3_path(path)
        spec = TraversalSpec(
            bucket=location.bucket,
            prefix=location.prefix,
            maxdepth=maxdepth,
            all_versions=all_versions,
            page_size=number,
            limit=limit,
        )
        filters = FilterSet.from_arguments(
            name=name or (),
            iname=iname or (),
            regex=regex or (),
            size=bytes_size or (),
            mtime=mtime or (),
            storage_class=storage_class,
        )
        tag_filters = TagFilterSet.from_arguments(tag=tag or (), tag_exists=tag_exists or ())
        client_config = S3ClientConfig(
            access_key_id=aws_access_key,
            secret_access_key=aws_secret_key,
            region_name=aws_region,
            endpoint_url=endpoint_url,
            aws_profile=aws_profile,
            force_path_style=force_path_style,
            max_pool_connections=settings.concurrency
            + (tag_concurrency if tag_filters else 0),
        )
    except (S3FindError, PydanticValidationError) as e:
        raise _fail(e)

    ctx.obj = FindOptions(
        location=location,
        spec=spec,
        filters=filters,
        tag_filters=tag_filters,
        client_config=client_config,
        summarize=summarize,
        strict=strict,
        tag_concurrency=tag_concurrency,
    )

    if ctx.invoked_subcommand is None:
        _execute(ctx, ListCommand)


def _execute(ctx: typer.Context, build: Callable[[], Command]) -> None:
    """Build the command, run it and turn the outcome into an exit status."""
    options: FindOptions = ctx.obj
    summary = FindSummary()
    try:
        command = build()
        manager = S3ClientManager(options.client_config)
        report = run_find(
            options.spec,
            command,
            S3ObjectLister(manager),
            S3ObjectMutator(manager),
            filters=options.filters,
            tag_filters=options.tag_filters,
            summary=summary,
            tag_concurrency=options.tag_concurrency,
        )
    except (S3FindError, PydanticValidationError) as e:
        raise _fail(e)

    if options.summarize:
        typer.echo(summary.render())

    for failure in report.dispatch.failures:
        typer.echo(
            f"{failure.operation} failed: {options.location.url(failure.key)}: "
            f"{failure.message}",
            err=True,
        )

    exit_code = report.exit_code(options.strict or settings.fail_on_key_errors)
    if exit_code:
        raise typer.Exit(exit_code)


@app.command("ls")
def ls_cmd(ctx: typer.Context) -> None:
    """Print the list of matched keys."""
    _execute(ctx, ListCommand)


@app.command("lstags")
def lstags_cmd(ctx: typer.Context) -> None:
    """Print the list of matched keys with tags."""
    _execute(ctx, ListTagsCommand)


@app.command("print")
def print_cmd(
    ctx: typer.Context,
    output_format: Annotated[
        str, typer.Option("--format", help="Output format: text, json or csv")
    ] = "text",
) -> None:
    """Extended print with detail information."""
    _execute(ctx, lambda: PrintCommand(format=output_format))


@app.command("delete")
def delete_cmd(ctx: typer.Context) -> None:
    """Delete matched keys."""
    _execute(ctx, DeleteCommand)


@app.command("download")
def download_cmd(
    ctx: typer.Context,
    destination: Annotated[
        str, typer.Argument(help="Directory destination to download files to")
    ],
    force: Annotated[
        bool,
        typer.Option("--force", help="Overwrite files that are already present"),
    ] = False,
) -> None:
    """Download matched keys."""
    _execute(ctx, lambda: DownloadCommand(destination=destination, force=force))


DestinationArgument = Annotated[
    str, typer.Argument(help="S3 destination, s3://bucket/prefix")
]
FlatOption = Annotated[
    bool, typer.Option("--flat", help="Keep only the file name of each key")
]
StorageClassOption = Annotated[
    Optional[str],
    typer.Option("--storage-class", help="Storage class for the new objects"),
]


@app.command("copy")
def copy_cmd(
    ctx: typer.Context,
    destination: DestinationArgument,
    flat: FlatOption = False,
    storage_class: StorageClassOption = None,
) -> None:
    """Copy matched keys to a s3 destination."""

    def build() -> CopyCommand:
        target = parse_s3_path(destination)
        return CopyCommand(
            destination_bucket=target.bucket,
            destination_prefix=target.prefix,
            flat=flat,
            storage_class=storage_class,
        )

    _execute(ctx, build)


@app.command("move")
def move_cmd(
    ctx: typer.Context,
    destination: DestinationArgument,
    flat: FlatOption = False,
    storage_class: StorageClassOption = None,
) -> None:
    """Move matched keys to a s3 destination."""

    def build() -> MoveCommand:
        target = parse_s3_path(destination)
        return MoveCommand(
            destination_bucket=target.bucket,
            destination_prefix=target.prefix,
            flat=flat,
            storage_class=storage_class,
        )

    _execute(ctx, build)


@app.command("tags")
def tags_cmd(
    ctx: typer.Context,
    tags: Annotated[list[str], typer.Argument(help="Tags to set, KEY:VALUE")],
) -> None:
    """Set the tags (overwrite) for the matched keys."""
    _execute(ctx, lambda: SetTagsCommand(tags=[TagPair.parse(t) for t in tags]))


@app.command("public")
def public_cmd(ctx: typer.Context) -> None:
    """Make the matched keys publicly readable."""
    _execute(ctx, MakePublicCommand)


@app.command("restore")
def restore_cmd(
    ctx: typer.Context,
    days: Annotated[
        int, typer.Option("--days", help="Days to keep the restored copy (1-365)")
    ] = 1,
    tier: Annotated[
        str,
        typer.Option("--tier", help="Retrieval tier: Standard, Expedited or Bulk"),
    ] = "Standard",
) -> None:
    """Restore objects from Glacier and Deep Archive storage."""
    _execute(ctx, lambda: RestoreCommand(days=days, tier=tier))


@app.command("change-storage")
def change_storage_cmd(
    ctx: typer.Context,
    storage_class: Annotated[str, typer.Argument(help="New storage class")],
) -> None:
    """Change the storage class of matched objects."""
    _execute(ctx, lambda: ChangeStorageClassCommand(storage_class=storage_class))


@app.command("exec")
def exec_cmd(
    ctx: typer.Context,
    utility: Annotated[
        str,
        typer.Option("--utility", help="Program to run, {} is replaced by the s3 url"),
    ],
) -> None:
    """Exec any program with every key."""
    _execute(ctx, lambda: ExecCommand(utility=utility))


@app.command("nothing")
def nothing_cmd(ctx: typer.Context) -> None:
    """Do not do anything with keys, do not print them as well."""
    _execute(ctx, NoOpCommand)


if __name__ == "__main__":
    app()
