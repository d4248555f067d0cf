"""Upload orchestration - one request through key resolution, digest tee and storage put."""
import asyncio
import logging
import posixpath
from typing import Any, Dict, Mapping, Optional

from boto3.s3.transfer import S3Transfer

from ..exceptions import (
    ConfigError,
    DigestError,
    InvalidStateError,
    SourceStreamError,
    TransferError,
    UploaderError,
)
from ..models import AdapterConfig, UploadRequest, UploadResult
from ..protocols import IStorageClient
from ..services.digest import DigestStream, DigestTee
from ..services.keys import resolve_content_type, resolve_key
from ..services.progress import ProgressHandler, ProgressTracker

logger = logging.getLogger(__name__)

# Parameters computed by the pipeline; caller overrides never replace them.
RESERVED_PARAMS = frozenset({"Key", "Body", "ContentType"})
ALLOWED_OVERRIDES = (frozenset(S3Transfer.ALLOWED_UPLOAD_ARGS) | {"Bucket"}) - RESERVED_PARAMS


def build_put_params(
    overrides: Optional[Mapping[str, Any]],
    body: Any,
    content_type: str,
    key: str,
) -> Dict[str, Any]:
    """
    Merge put parameters: caller overrides < {Body, ContentType} < {Key}.

    Overrides outside the S3 upload arguments are dropped, so caller data can
    never change what the key resolver computed.
    """
    params: Dict[str, Any] = {}
    for name, value in (overrides or {}).items():
        if name in RESERVED_PARAMS:
            logger.warning("Ignoring request override %r: computed by the uploader", name)
        elif name not in ALLOWED_OVERRIDES:
            logger.warning("Ignoring request override %r: not an S3 upload argument", name)
        else:
            params[name] = value

    params["Body"] = body
    params["ContentType"] = content_type
    params["Key"] = key
    return params


def _set_content_type(headers: Dict[str, str], content_type: str) -> None:
    for name in list(headers):
        if name.lower() == "content-type":
            headers[name] = content_type
            return
    headers["content-type"] = content_type


class UploadOrchestrator:
    """
    Streams one UploadRequest into storage.

    Every run() builds its own tee and tracker; only the storage client is
    shared, so one orchestrator may serve concurrent requests.
    """

    def __init__(
        self,
        client: IStorageClient,
        config: AdapterConfig,
        on_progress: Optional[ProgressHandler] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            client: Storage client
            config: Adapter configuration for this upload (bucket, prefix, overrides)
            on_progress: Optional progress handler
        """
        if not config.bucket:
            raise ConfigError("bucket is required for uploads")
        self._client = client
        self._config = config
        self._on_progress = on_progress

    async def run(self, request: UploadRequest) -> UploadResult:
        """
        Upload ``request.source`` and assemble the result.

        Raises:
            SourceStreamError: The input stream failed
            TransferError: The storage client failed the put
            DigestError: The hash accumulator failed
            InvalidStateError: The client completed before the body reached EOF
        """
        config = self._config
        key = resolve_key(request, config.directory_prefix)
        content_type = resolve_content_type(key)
        if request.headers is not None:
            _set_content_type(request.headers, content_type)

        tee = DigestTee(config.digest_algorithm)
        body = DigestStream(
            request.source,
            tee,
            key=key,
            name=request.name or posixpath.basename(key),
            byte_count=request.size,
        )
        params = build_put_params(config.request_params(), body, content_type, key)

        logger.debug("Uploading %s (%s) to bucket %s", key, content_type, params.get("Bucket"))
        try:
            in_flight = self._client.put(params, dict(config.client_options))
            ProgressTracker().attach(in_flight, self._on_progress)
            completion = await in_flight.result()
        except asyncio.CancelledError:
            logger.warning("Upload cancelled: %s", key)
            raise
        except Exception as exc:
            error = self._classify_failure(exc, body, key)
            logger.error("Upload failed for %s: %s", key, error)
            if error is exc:
                raise
            raise error from exc
        finally:
            await body.aclose()

        if not tee.finished:
            raise InvalidStateError(
                f"storage reported completion for {key} before the body reached end-of-data"
            )

        result = UploadResult.from_completion(
            key=key,
            content_type=content_type,
            digest=tee.digest("hex"),
            completion=completion,
            size=tee.bytes_hashed,
            algorithm=tee.algorithm,
        )
        logger.info("Uploaded %s (%d bytes, %s=%s, etag=%s)", key, result.size, tee.algorithm, result.digest, result.etag)
        return result

    @staticmethod
    def _classify_failure(exc: Exception, body: DigestStream, key: str) -> UploaderError:
        """Map a put failure to the error kind the caller sees."""
        if body.error is not None:
            if isinstance(exc, SourceStreamError):
                return exc
            return SourceStreamError(f"source stream failed: {body.error}")
        if body.tee.failed:
            if isinstance(exc, DigestError):
                return exc
            return DigestError(f"{body.tee.algorithm} update failed: {body.tee.error}")
        if isinstance(exc, UploaderError):
            return exc
        return TransferError(f"put failed: {exc}", "put", key=key)
