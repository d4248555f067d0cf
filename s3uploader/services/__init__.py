"""Services for s3uploader module."""
from .digest import DigestStream, DigestTee, new_hasher
from .keys import generate_token, resolve_content_type, resolve_key
from .progress import ProgressTracker, compute_percent
from .storage import S3StorageClient, S3Upload

__all__ = [
    "DigestStream",
    "DigestTee",
    "new_hasher",
    "generate_token",
    "resolve_content_type",
    "resolve_key",
    "ProgressTracker",
    "compute_percent",
    "S3StorageClient",
    "S3Upload",
]
