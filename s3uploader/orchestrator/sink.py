"""Upload sink - writable end of the adapter's upload surface."""
import asyncio
import logging
from typing import AsyncIterable, Iterable, List, Optional, Union

from ..exceptions import InvalidStateError
from ..models import AdapterConfig, UploadRequest, UploadResult
from ..protocols import IStorageClient
from ..services.progress import ProgressHandler
from ..utils.events import EventEmitter
from .upload import UploadOrchestrator

logger = logging.getLogger(__name__)


class UploadSink(EventEmitter):
    """
    Accepts UploadRequests one at a time and uploads each to completion.

    On success the request's ``result`` is set. The first failure emits
    ``error`` and the sink refuses further writes; ``finish`` is emitted by
    end() only when every write succeeded.

    Events:
        upload: request finished successfully (argument: the UploadRequest)
        error: a request failed (argument: the exception)
        finish: end() called on a healthy sink (argument: list of UploadResult)

    Usage:
        async with adapter.receive(on_progress=print) as sink:
            await sink.write(UploadRequest(source=stream, descriptor="avatar.png"))
    """

    def __init__(
        self,
        client: IStorageClient,
        config: AdapterConfig,
        on_progress: Optional[ProgressHandler] = None,
    ):
        super().__init__()
        self._orchestrator = UploadOrchestrator(client, config, on_progress)
        self._lock = asyncio.Lock()
        self._ended = False
        self._error: Optional[BaseException] = None
        self.results: List[UploadResult] = []

    @property
    def ended(self) -> bool:
        return self._ended

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None and not self._ended:
            await self.end()

    async def write(self, request: UploadRequest) -> UploadResult:
        """
        Upload one request. Writes are processed in order, one at a time.

        Raises:
            InvalidStateError: The sink has ended or already failed
            UploaderError: The upload failed (also emitted as ``error``)
        """
        async with self._lock:
            if self._error is not None:
                raise InvalidStateError("upload sink has failed and accepts no further writes") from self._error
            if self._ended:
                raise InvalidStateError("write after end()")

            try:
                result = await self._orchestrator.run(request)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._error = exc
                self.emit("error", exc)
                raise

            request.result = result
            self.results.append(result)
            self.emit("upload", request)
            return result

    async def end(self) -> List[UploadResult]:
        """Close the sink; emits ``finish`` unless a write failed."""
        async with self._lock:
            if self._ended:
                return list(self.results)
            self._ended = True

        if self._error is None:
            logger.debug("Upload sink finished: %d uploads", len(self.results))
            self.emit("finish", list(self.results))
        return list(self.results)

    async def consume(
        self,
        requests: Union[Iterable[UploadRequest], AsyncIterable[UploadRequest]],
    ) -> List[UploadResult]:
        """Write every request from ``requests`` then end the sink."""
        if hasattr(requests, "__aiter__"):
            async for request in requests:
                await self.write(request)
        else:
            for request in requests:
                await self.write(request)
        return await self.end()
