"""
Exceptions for the streaming upload pipeline.

Every failure reaches the caller through one of these types; nothing in the
pipeline retries or swallows an error.
"""
from typing import Any, Dict, Optional

from botocore.exceptions import BotoCoreError, ClientError


class UploaderError(Exception):
    """Base class for all s3uploader errors."""


class ConfigError(UploaderError):
    """Raised when the adapter configuration is incomplete or invalid."""


class InvalidStateError(UploaderError):
    """Raised when a component is used out of order (programming error)."""


class DigestError(UploaderError):
    """Raised when the hash accumulator fails to consume a chunk."""


class SourceStreamError(UploaderError):
    """The input stream failed (read error, premature close)."""


class StorageError(UploaderError):
    """
    A storage-client operation failed.

    Attributes:
        operation: Client operation that failed (put, list, delete, ...)
        key: Object key involved, if any
        code: Backend error code, if the backend returned one
    """

    def __init__(
        self,
        message: str,
        operation: str,
        key: Optional[str] = None,
        code: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.key = key
        self.code = code
        self.metadata = metadata or {}


class TransferError(StorageError):
    """The storage client rejected or failed the put operation."""


class ObjectNotFoundError(StorageError):
    """The requested key or bucket does not exist."""


_NOT_FOUND_CODES = {"NoSuchKey", "NoSuchBucket", "404", "NotFound"}


def map_client_error(
    error: Exception,
    operation: str,
    key: Optional[str] = None,
) -> StorageError:
    """
    Translate a botocore error into a StorageError.

    Args:
        error: Exception raised by the S3 client
        operation: Client operation being performed
        key: Object key involved, if any

    Returns:
        TransferError for uploads, ObjectNotFoundError for missing objects,
        StorageError otherwise.
    """
    code = None
    message = str(error)
    metadata: Dict[str, Any] = {"operation": operation}

    if isinstance(error, ClientError):
        details = error.response.get("Error", {})
        code = details.get("Code")
        message = details.get("Message") or message
        metadata["request_id"] = error.response.get("ResponseMetadata", {}).get("RequestId")
    elif not isinstance(error, BotoCoreError):
        metadata["error_type"] = type(error).__name__

    if key:
        metadata["key"] = key

    text = f"{operation} failed: {message}"
    if operation == "put":
        return TransferError(text, operation, key=key, code=code, metadata=metadata)
    if code in _NOT_FOUND_CODES:
        return ObjectNotFoundError(text, operation, key=key, code=code, metadata=metadata)
    return StorageError(text, operation, key=key, code=code, metadata=metadata)
