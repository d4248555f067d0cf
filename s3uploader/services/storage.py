"""
Storage Service - Single Responsibility: talk to the S3 API.

Wraps one aioboto3 S3 client. The client handle is shared by every upload of
the process; each put() gets its own S3Upload object, so there is no mutable
state shared between concurrent uploads.
"""
import logging
from typing import Any, AsyncIterator, Dict, Optional

import aioboto3
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import InvalidStateError, UploaderError, map_client_error
from ..models import AdapterConfig, DEFAULT_SIGNED_URL_EXPIRY, TransferProgress
from ..utils.events import EventEmitter

logger = logging.getLogger(__name__)


class S3Upload(EventEmitter):
    """
    In-flight upload returned by S3StorageClient.put().

    Nothing is sent until result() is awaited, so progress listeners can be
    attached first. Multipart negotiation and part retries are left to
    aioboto3's managed transfer (upload_fileobj).

    Events:
        progress: TransferProgress with the cumulative byte count
    """

    def __init__(self, storage: "S3StorageClient", params: Dict[str, Any], options: Optional[Dict[str, Any]] = None):
        super().__init__()
        extra_args = dict(params)
        self.body = extra_args.pop("Body")
        self.bucket = extra_args.pop("Bucket")
        self.key = extra_args.pop("Key")
        self._extra_args = extra_args
        self._options = dict(options or {})
        self._storage = storage
        self._loaded = 0
        self._started = False

    @property
    def loaded(self) -> int:
        return self._loaded

    def _on_transferred(self, amount: int) -> None:
        self._loaded += amount
        self.emit("progress", TransferProgress(loaded=self._loaded))

    async def result(self) -> Dict[str, Any]:
        """
        Run the transfer and return the completion payload.

        Returns:
            Object metadata from head_object plus Bucket and Key

        Raises:
            TransferError: If S3 rejected or failed the upload
        """
        if self._started:
            raise InvalidStateError(f"upload of {self.key} already started")
        self._started = True

        client = self._storage.client
        transfer_config = TransferConfig(**self._options) if self._options else None

        logger.debug("Starting transfer: s3://%s/%s", self.bucket, self.key)
        try:
            await client.upload_fileobj(
                self.body,
                self.bucket,
                self.key,
                ExtraArgs=self._extra_args or None,
                Callback=self._on_transferred,
                Config=transfer_config,
            )
            # upload_fileobj returns nothing, so ETag/VersionId come from a second
            # request. A concurrent write to the same key in between is not detected:
            # the payload may then describe that other write.
            head = await client.head_object(Bucket=self.bucket, Key=self.key)
        except UploaderError:
            raise
        except (ClientError, BotoCoreError) as exc:
            raise map_client_error(exc, "put", self.key) from exc

        completion = {k: v for k, v in head.items() if k != "ResponseMetadata"}
        completion["Bucket"] = self.bucket
        completion["Key"] = self.key
        completion.setdefault("ETag", "")
        return completion


class S3StorageClient:
    """
    S3 (or S3-compatible) storage client.

    Usage:
        async with S3StorageClient(config) as client:
            upload = client.put({"Bucket": "b", "Key": "k", "Body": body})
            payload = await upload.result()
    """

    def __init__(self, config: AdapterConfig, session: Optional[Any] = None):
        """
        Initialize storage client.

        Args:
            config: Adapter configuration (credentials, region, endpoint)
            session: Pre-built aioboto3 session
        """
        self._config = config
        self._session = session or aioboto3.Session()
        self._client_context = None
        self._client = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *args):
        await self.close()

    async def start(self) -> "S3StorageClient":
        """Open the underlying aioboto3 client (idempotent)."""
        if self._client is not None:
            return self
        logger.info(
            "Opening S3 client (region=%s, endpoint=%s)",
            self._config.region,
            self._config.endpoint_url or "aws",
        )
        self._client_context = self._session.client("s3", **self._config.service_params())
        self._client = await self._client_context.__aenter__()
        return self

    async def close(self) -> None:
        if self._client_context is not None:
            context, self._client_context, self._client = self._client_context, None, None
            await context.__aexit__(None, None, None)

    @property
    def client(self) -> Any:
        if self._client is None:
            raise InvalidStateError("S3StorageClient not initialized. Use 'async with' context.")
        return self._client

    def put(self, params: Dict[str, Any], options: Optional[Dict[str, Any]] = None) -> S3Upload:
        return S3Upload(self, params, options)

    async def list_objects(self, params: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            async for page in paginator.paginate(**params):
                for item in page.get("Contents", []):
                    yield item
        except (ClientError, BotoCoreError) as exc:
            raise map_client_error(exc, "list", params.get("Prefix")) from exc

    async def delete_object(self, params: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self.client.delete_object(**params)
        except (ClientError, BotoCoreError) as exc:
            raise map_client_error(exc, "delete", params.get("Key")) from exc
        logger.info("Deleted s3://%s/%s", params.get("Bucket"), params.get("Key"))
        return {k: v for k, v in response.items() if k != "ResponseMetadata"}

    async def get_object(self, params: Dict[str, Any]) -> bytes:
        try:
            response = await self.client.get_object(**params)
            async with response["Body"] as stream:
                return await stream.read()
        except (ClientError, BotoCoreError) as exc:
            raise map_client_error(exc, "get", params.get("Key")) from exc

    async def iter_object(self, params: Dict[str, Any], chunk_size: int = 1024 * 1024) -> AsyncIterator[bytes]:
        try:
            response = await self.client.get_object(**params)
            async with response["Body"] as stream:
                while True:
                    chunk = await stream.read(chunk_size)
                    if not chunk:
                        break
                    yield chunk
        except (ClientError, BotoCoreError) as exc:
            raise map_client_error(exc, "get", params.get("Key")) from exc

    async def generate_signed_url(
        self,
        operation: str,
        params: Dict[str, Any],
        expires_in: int = DEFAULT_SIGNED_URL_EXPIRY,
    ) -> str:
        try:
            return await self.client.generate_presigned_url(
                ClientMethod=operation,
                Params=params,
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as exc:
            raise map_client_error(exc, "signed_url", params.get("Key")) from exc
