"""Object storage collaborators: client construction, listing and mutations."""

from .clients import S3ClientConfig, S3ClientManager, S3Path, parse_s3_path
from .listing import ListingPage, ObjectLister, S3ObjectLister, Walker
from .mutations import BatchKeyError, BatchResult, ObjectMutator, S3ObjectMutator

__all__ = [
    "S3ClientConfig",
    "S3ClientManager",
    "S3Path",
    "parse_s3_path",
    "ListingPage",
    "ObjectLister",
    "S3ObjectLister",
    "Walker",
    "BatchKeyError",
    "BatchResult",
    "ObjectMutator",
    "S3ObjectMutator",
]
