"""boto3 client construction and ``s3://`` path handling.

Credentials are resolved in this order: a named profile, explicit keys,
then boto3's default chain (environment, shared config, instance and
container roles). Any S3-compatible endpoint (MinIO, Ceph, Wasabi) can be
targeted through ``endpoint_url``, usually together with path-style
addressing.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from pydantic import BaseModel, ConfigDict, Field

from s3find.core import get_logger
from s3find.core.exceptions import ValidationError

logger = get_logger(__name__)

_S3_PATH_RE = re.compile(r"^s3://([^/]+)(/(.*))?$")

_INVALID_BUCKET_PREFIXES = ("sthree-", "amzn-s3-demo-", "xn--")
_INVALID_BUCKET_SUFFIXES = ("-s3alias", "--ol-s3", ".mrap", "--x-s3", "--table-s3")
_BUCKET_CHARS_RE = re.compile(r"^[a-z0-9][a-z0-9.-]*[a-z0-9]$")


class S3ClientConfig(BaseModel):
    """Connection settings for one run.

    Example:
        # Local MinIO
        config = S3ClientConfig(
            access_key_id="minio",
            secret_access_key="minio123",
            endpoint_url="http://localhost:9000",
            force_path_style=True,
        )
    """

    model_config = ConfigDict(extra="forbid")

    access_key_id: Optional[str] = Field(None, description="AWS access key ID")
    secret_access_key: Optional[str] = Field(None, description="AWS secret access key")
    session_token: Optional[str] = Field(
        None, description="Session token accompanying temporary keys"
    )
    region_name: Optional[str] = Field(
        None, description="AWS region name; resolved from the profile when omitted"
    )
    endpoint_url: Optional[str] = Field(
        None, description="Endpoint of an S3-compatible service"
    )
    aws_profile: Optional[str] = Field(
        None, description="Named profile from the shared AWS config"
    )
    force_path_style: bool = Field(
        False, description="Address buckets as endpoint/bucket/key"
    )
    max_pool_connections: int = Field(
        32, ge=1, description="HTTP connections shared by concurrent calls"
    )


@dataclass(frozen=True)
class S3Path:
    """A parsed ``s3://bucket/prefix`` location."""

    bucket: str
    prefix: str = ""

    def url(self, key: str) -> str:
        return f"s3://{self.bucket}/{key}"


class S3ClientManager:
    """Lazily builds one S3 client and shares it between threads.

    boto3 clients are thread-safe, so the listing and mutation collaborators
    of a run use the same instance from the executor.
    """

    def __init__(self, config: S3ClientConfig):
        self.config = config
        self._client = None

    @property
    def client(self):
        if self._client is None:
            self._client = self._create_client()
        return self._client

    @property
    def region_name(self) -> str:
        return self.client.meta.region_name or "us-east-1"

    def _session(self) -> boto3.Session:
        config = self.config
        if config.aws_profile:
            logger.info("Using AWS profile", profile=config.aws_profile)
            return boto3.Session(profile_name=config.aws_profile)
        if config.access_key_id and config.secret_access_key:
            logger.info("Using explicit AWS credentials")
            return boto3.Session(
                aws_access_key_id=config.access_key_id,
                aws_secret_access_key=config.secret_access_key,
                aws_session_token=config.session_token,
            )
        logger.info("Using the default AWS credential chain")
        return boto3.Session()

    def _create_client(self):
        s3_options: Dict[str, Any] = {}
        if self.config.force_path_style:
            s3_options["addressing_style"] = "path"

        botocore_config = Config(
            max_pool_connections=self.config.max_pool_connections,
            retries={"mode": "standard"},
            s3=s3_options,
        )
        client = self._session().client(
            "s3",
            region_name=self.config.region_name,
            endpoint_url=self.config.endpoint_url,
            config=botocore_config,
        )
        logger.info(
            "S3 client created",
            region=client.meta.region_name,
            endpoint=self.config.endpoint_url,
            path_style=self.config.force_path_style,
        )
        return client


def validate_bucket_name(bucket: str) -> bool:
    """Check a bucket name against the S3 general purpose bucket naming rules."""
    if not 3 <= len(bucket) <= 63:
        return False
    if not _BUCKET_CHARS_RE.match(bucket):
        return False
    if ".." in bucket or ".-" in bucket or "-." in bucket:
        return False
    if bucket.startswith(_INVALID_BUCKET_PREFIXES):
        return False
    if bucket.endswith(_INVALID_BUCKET_SUFFIXES):
        return False
    # Formatted as an IP address
    parts = bucket.split(".")
    if len(parts) == 4 and all(p.isdigit() and int(p) <= 255 for p in parts):
        return False
    return True


def parse_s3_path(s3_path: str) -> S3Path:
    """Parse S3 path into bucket and prefix components.

    Trailing slashes are stripped from the prefix, so ``s3://b/logs/`` and
    ``s3://b/logs`` walk the same prefix.

    Args:
        s3_path: S3 path in format s3://bucket/prefix or s3://bucket

    Returns:
        Parsed S3Path

    Raises:
        ValidationError: If path format or bucket name is invalid
    """
    match = _S3_PATH_RE.match(s3_path)
    if not match:
        raise ValidationError(f"Invalid s3 path: {s3_path}")

    bucket = match.group(1)
    if not validate_bucket_name(bucket):
        raise ValidationError(f"Invalid s3 path, bad bucket name: {s3_path}")

    prefix = (match.group(3) or "").rstrip("/")
    logger.debug("S3 path parsed", bucket=bucket, prefix=prefix)
    return S3Path(bucket=bucket, prefix=prefix)
