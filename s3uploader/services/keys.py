"""
Key resolution - derive the destination key and content type of an upload.

Pure functions: no I/O, never fail. S3 keys are slash-delimited whatever the
host OS, so everything here uses posix path semantics.
"""
import logging
import mimetypes
import posixpath
import uuid
from typing import Optional

from ..models import UploadRequest

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def generate_token() -> str:
    """Random object name (uuid4, 122 bits of entropy)."""
    return str(uuid.uuid4())


def _clean(value: Optional[str]) -> str:
    if not value:
        return ""
    return value.strip().replace("\\", "/")


def _candidate_name(request: UploadRequest) -> str:
    path = _clean(request.path)
    if path:
        base = posixpath.basename(path)
        if base:
            return base

    descriptor = _clean(request.descriptor)
    if descriptor:
        return descriptor.lstrip("/")

    return generate_token()


def resolve_key(request: UploadRequest, directory_prefix: Optional[str] = None) -> str:
    """
    Resolve the storage key for a request.

    Priority: explicit key > basename of path > descriptor > generated token.
    A non-empty ``directory_prefix`` replaces the directory part of the name
    when it differs from it.

    Args:
        request: Upload request (only metadata is read)
        directory_prefix: Configured directory for uploaded objects

    Returns:
        Forward-slash storage key, never empty
    """
    if request.key:
        return request.key

    name = _candidate_name(request)
    dirname, basename = posixpath.split(name)
    if not basename:
        basename = generate_token()

    prefix = _clean(directory_prefix).strip("/")
    if prefix and prefix != dirname:
        dirname = prefix

    key = f"{dirname}/{basename}" if dirname else basename
    logger.debug("Resolved key %s (path=%s, descriptor=%s)", key, request.path, request.descriptor)
    return key


def resolve_content_type(key: str) -> str:
    """MIME type guessed from the key's extension."""
    content_type, _ = mimetypes.guess_type(posixpath.basename(key), strict=False)
    return content_type or DEFAULT_CONTENT_TYPE
