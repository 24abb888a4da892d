"""Object storage listing operations."""

from .s3_lister import S3ObjectLister
from .walker import ListingPage, ListingToken, ObjectLister, Walker

__all__ = ["ListingPage", "ListingToken", "ObjectLister", "S3ObjectLister", "Walker"]
