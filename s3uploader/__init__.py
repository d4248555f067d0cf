"""
s3uploader - streaming uploads to S3 with integrity digests and progress.

Each upload is streamed straight from its source into the bucket; a digest
of the exact bytes sent is computed on the way through.

Usage:
    from s3uploader import StorageAdapter, AdapterConfig, UploadRequest

    config = AdapterConfig(bucket="media", directory_prefix="uploads")
    async with StorageAdapter(config) as adapter:
        result = await adapter.upload(
            UploadRequest.from_path("report.csv"),
            on_progress=lambda event: print(event.percent),
        )
        print(result.key, result.digest, result.etag)

    # Any async byte stream works as a source
    request = UploadRequest(source=response.aiter_bytes(), descriptor="avatar.png")
    async with adapter.receive() as sink:
        await sink.write(request)
    print(request.result.key)
"""
from .exceptions import (
    ConfigError,
    DigestError,
    InvalidStateError,
    ObjectNotFoundError,
    SourceStreamError,
    StorageError,
    TransferError,
    UploaderError,
)
from .models import AdapterConfig, ProgressEvent, TransferProgress, UploadRequest, UploadResult
from .orchestrator import StorageAdapter, UploadOrchestrator, UploadSink
from .services import DigestStream, DigestTee, ProgressTracker, S3StorageClient, resolve_key

__version__ = "0.1.0"
__all__ = [
    # Main
    "StorageAdapter",
    "UploadSink",
    "UploadOrchestrator",
    # Models
    "AdapterConfig",
    "ProgressEvent",
    "TransferProgress",
    "UploadRequest",
    "UploadResult",
    # Services
    "DigestStream",
    "DigestTee",
    "ProgressTracker",
    "S3StorageClient",
    "resolve_key",
    # Errors
    "UploaderError",
    "ConfigError",
    "DigestError",
    "InvalidStateError",
    "ObjectNotFoundError",
    "SourceStreamError",
    "StorageError",
    "TransferError",
]
