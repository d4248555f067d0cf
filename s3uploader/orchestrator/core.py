"""Storage adapter - the facade the host application talks to."""
import asyncio
import logging
from typing import AbstractSet, Any, AsyncIterator, Dict, List, Optional, Sequence

from boto3.s3.transfer import S3Transfer
from s3transfer.manager import TransferManager

from ..exceptions import InvalidStateError
from ..models import AdapterConfig, UploadRequest, UploadResult
from ..protocols import IStorageClient
from ..services.progress import ProgressHandler
from ..services.storage import S3StorageClient
from .sink import UploadSink

logger = logging.getLogger(__name__)

# Request overrides that carry over to reads (SSE-C keys, RequestPayer, ...) and removals.
READ_OVERRIDES = frozenset(S3Transfer.ALLOWED_DOWNLOAD_ARGS)
DELETE_OVERRIDES = frozenset(TransferManager.ALLOWED_DELETE_ARGS)


class StorageAdapter:
    """
    List, remove, read, sign and upload objects in one bucket.

    Only uploads go through the streaming pipeline (UploadSink ->
    UploadOrchestrator); the other operations are single requests.

    Usage:
        async with StorageAdapter(AdapterConfig.from_env()) as adapter:
            result = await adapter.upload(UploadRequest.from_path("report.csv"))
            keys = await adapter.ls("uploads")

        # Sink style, several requests through one writable
        async with adapter.receive(on_progress=print) as sink:
            await sink.write(request)
    """

    def __init__(
        self,
        config: Optional[AdapterConfig] = None,
        client: Optional[IStorageClient] = None,
    ):
        """
        Initialize adapter.

        Args:
            config: Adapter configuration (default: from environment)
            client: Pre-built storage client; by default an S3StorageClient
                is opened in __aenter__ and closed in __aexit__
        """
        self._config = config or AdapterConfig.from_env()
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self):
        """Validate configuration and open the storage client."""
        self._config.validate()
        if self._client is None:
            self._client = await S3StorageClient(self._config).start()
        return self

    async def __aexit__(self, *args):
        """Cleanup resources."""
        if self._owns_client and self._client is not None:
            client, self._client = self._client, None
            await client.close()

    @property
    def config(self) -> AdapterConfig:
        return self._config

    @property
    def client(self) -> IStorageClient:
        if self._client is None:
            raise InvalidStateError("StorageAdapter not initialized. Use 'async with' context.")
        return self._client

    def _object_params(
        self,
        key: str,
        bucket: Optional[str] = None,
        allowed: AbstractSet[str] = READ_OVERRIDES,
    ) -> Dict[str, Any]:
        """Bucket and Key plus the configured request overrides the operation accepts."""
        params = {
            name: value
            for name, value in self._config.request_overrides.items()
            if name in allowed
        }
        params["Bucket"] = bucket or self._config.bucket
        params["Key"] = key
        return params

    async def ls(self, dirname: Optional[str] = None, bucket: Optional[str] = None) -> List[str]:
        """
        List object keys below ``dirname`` (bucket root when empty).

        Returned keys are relative to ``dirname``.
        """
        dirname = dirname or ""
        params = {"Bucket": bucket or self._config.bucket, "Prefix": dirname}
        keys = [item["Key"] async for item in self.client.list_objects(params)]

        if dirname:
            prefix = dirname.rstrip("/") + "/"
            keys = [key[len(prefix):] if key.startswith(prefix) else key for key in keys]
        return keys

    async def rm(self, key: str, bucket: Optional[str] = None) -> Dict[str, Any]:
        """Remove the object at ``key``."""
        return await self.client.delete_object(self._object_params(key, bucket, DELETE_OVERRIDES))

    async def read(self, key: str, bucket: Optional[str] = None) -> bytes:
        """Download the whole object into memory."""
        return await self.client.get_object(self._object_params(key, bucket))

    def stream(
        self,
        key: str,
        chunk_size: int = 1024 * 1024,
        bucket: Optional[str] = None,
    ) -> AsyncIterator[bytes]:
        """Lazily stream the object; request errors surface from the iterator."""
        return self.client.iter_object(self._object_params(key, bucket), chunk_size)

    async def url(
        self,
        operation: str,
        key: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        expires_in: Optional[int] = None,
        bucket: Optional[str] = None,
    ) -> str:
        """
        Generate a signed URL for an S3 client operation.

        Args:
            operation: S3 client method name (get_object, put_object, ...)
            key: Object key
            params: Extra operation parameters, merged over the configured
                request overrides
            expires_in: Lifetime in seconds (default: config.signed_url_expiry)
            bucket: Bucket override for this call
        """
        config = self._config.merged(bucket=bucket)
        request = config.request_params()
        if key:
            request["Key"] = key
        request.update(params or {})
        return await self.client.generate_signed_url(
            operation,
            request,
            expires_in or config.signed_url_expiry,
        )

    def receive(
        self,
        on_progress: Optional[ProgressHandler] = None,
        bucket: Optional[str] = None,
        directory_prefix: Optional[str] = None,
        request_overrides: Optional[Dict[str, Any]] = None,
        client_options: Optional[Dict[str, Any]] = None,
    ) -> UploadSink:
        """
        Create an upload sink.

        Args:
            on_progress: Called with a ProgressEvent as each upload progresses
            bucket: Bucket override for these uploads
            directory_prefix: Directory override for resolved keys
            request_overrides: Extra S3 upload arguments (ACL, Metadata, ...)
            client_options: Transfer options (multipart_threshold, max_concurrency, ...)
        """
        config = self._config.merged(
            bucket=bucket,
            directory_prefix=directory_prefix,
            request_overrides=request_overrides,
            client_options=client_options,
        ).validate()
        return UploadSink(self.client, config, on_progress)

    async def upload(
        self,
        request: UploadRequest,
        on_progress: Optional[ProgressHandler] = None,
        **overrides,
    ) -> UploadResult:
        """Upload a single request and return its result."""
        sink = self.receive(on_progress, **overrides)
        result = await sink.write(request)
        await sink.end()
        return result

    async def upload_many(
        self,
        requests: Sequence[UploadRequest],
        concurrency: int = 4,
        on_progress: Optional[ProgressHandler] = None,
        **overrides,
    ) -> List[UploadResult]:
        """
        Upload several requests concurrently, each through its own pipeline.

        Results come back in input order. The first failure cancels the
        uploads still in flight and is re-raised.
        """
        semaphore = asyncio.Semaphore(max(1, concurrency))

        async def upload_one(request: UploadRequest) -> UploadResult:
            async with semaphore:
                return await self.upload(request, on_progress, **overrides)

        tasks = [asyncio.create_task(upload_one(request)) for request in requests]
        try:
            return list(await asyncio.gather(*tasks))
        except Exception:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
