"""S3 client management and configuration."""

from .s3_client import (
    S3ClientConfig,
    S3ClientManager,
    S3Path,
    parse_s3_path,
    validate_bucket_name,
)

__all__ = [
    "S3ClientConfig",
    "S3ClientManager",
    "S3Path",
    "parse_s3_path",
    "validate_bucket_name",
]
