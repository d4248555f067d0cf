"""
Digest tee - forward upload bytes unchanged while hashing them.

DigestTee is the identity transform with an incremental hash accumulator.
DigestStream is the pull-based reader the storage client consumes as the
request body: it only reads from the source when the client asks for more
data, so a stalled network path pauses the source instead of growing a
buffer.
"""
import asyncio
import base64
import hashlib
import io
import inspect
import logging
from typing import Any, AsyncIterator, Optional, Union

from blake3 import blake3

from ..exceptions import DigestError, InvalidStateError, SourceStreamError
from ..models import DEFAULT_DIGEST_ALGORITHM
from ..utils.events import EventEmitter

logger = logging.getLogger(__name__)

DEFAULT_READ_SIZE = 65536


def new_hasher(algorithm: str):
    """
    Create a hash accumulator.

    Args:
        algorithm: ``blake3`` or any fixed-length hashlib algorithm name

    Raises:
        ValueError: If the algorithm is unknown or has no fixed digest size
    """
    name = (algorithm or "").lower()
    if name == "blake3":
        return blake3()
    if name.startswith("shake_"):
        raise ValueError(f"variable-length digest not supported: {algorithm}")
    return hashlib.new(name)


class DigestTee(EventEmitter):
    """
    Identity transform accumulating a digest of every chunk written.

    Events:
        error: the accumulator failed (argument: the exception)
        finish: end-of-data reached, digest available
    """

    def __init__(self, algorithm: str = DEFAULT_DIGEST_ALGORITHM):
        super().__init__()
        self.algorithm = algorithm
        self._hasher = new_hasher(algorithm)
        self._digest: Optional[bytes] = None
        self._error: Optional[BaseException] = None
        self.bytes_hashed = 0

    @property
    def finished(self) -> bool:
        return self._digest is not None

    @property
    def failed(self) -> bool:
        return self._error is not None

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def write(self, chunk: bytes) -> bytes:
        """Hash ``chunk`` and hand the identical chunk back for the downstream consumer."""
        if self._error is not None:
            raise InvalidStateError("digest tee has failed and refuses further writes") from self._error
        if self._digest is not None:
            raise InvalidStateError("write after finish()")

        try:
            self._hasher.update(chunk)
        except Exception as exc:
            self._error = exc
            logger.error("%s accumulator failed after %d bytes: %s", self.algorithm, self.bytes_hashed, exc)
            self.emit("error", exc)
            raise DigestError(f"{self.algorithm} update failed: {exc}") from exc

        self.bytes_hashed += len(chunk)
        return chunk

    def finish(self) -> None:
        """Mark end-of-data. Calling it again is a no-op."""
        if self._error is not None:
            raise InvalidStateError("cannot finish a failed digest tee") from self._error
        if self._digest is not None:
            return
        self._digest = self._hasher.digest()
        self.emit("finish")

    def digest(self, encoding: Optional[str] = "hex") -> Union[str, bytes]:
        """
        Final digest of all bytes written.

        Args:
            encoding: ``hex``, ``base64`` or ``bytes``

        Raises:
            InvalidStateError: If called before finish()
        """
        if self._digest is None:
            raise InvalidStateError("digest requested before finish()")
        if encoding == "hex":
            return self._digest.hex()
        if encoding == "base64":
            return base64.b64encode(self._digest).decode("ascii")
        if encoding in (None, "bytes"):
            return self._digest
        raise ValueError(f"unsupported digest encoding: {encoding}")


class DigestStream:
    """
    Async readable body feeding a source through a DigestTee.

    The source may be an async iterable of bytes, an object whose
    ``read(size)`` returns bytes or an awaitable of bytes, or a blocking
    ``io`` file object (read in a worker thread).
    """

    def __init__(
        self,
        source: Any,
        tee: DigestTee,
        key: Optional[str] = None,
        name: Optional[str] = None,
        byte_count: Optional[int] = None,
        read_size: int = DEFAULT_READ_SIZE,
    ):
        self._source = source
        self._tee = tee
        self._read_size = read_size
        self._iterator = None
        self._buffer = bytearray()
        self._eof = False
        self._closed = False
        self.key = key
        self.name = name
        self.byte_count = byte_count
        self.bytes_read = 0
        self.error: Optional[BaseException] = None

    @property
    def tee(self) -> DigestTee:
        return self._tee

    @property
    def at_eof(self) -> bool:
        return self._eof and not self._buffer

    async def _read_source(self) -> Optional[bytes]:
        """Next raw chunk from the source, None at end-of-data."""
        read = getattr(self._source, "read", None)
        if read is not None:
            if isinstance(self._source, io.IOBase):
                data = await asyncio.to_thread(read, self._read_size)
            else:
                data = read(self._read_size)
                if inspect.isawaitable(data):
                    data = await data
            return data or None

        if self._iterator is None:
            self._iterator = self._source.__aiter__()
        try:
            return await self._iterator.__anext__()
        except StopAsyncIteration:
            return None

    async def _pull(self) -> Optional[bytes]:
        if self._eof:
            return None
        if self._closed:
            raise InvalidStateError("read from a closed digest stream")

        while True:
            try:
                chunk = await self._read_source()
                if chunk is not None and not isinstance(chunk, bytes):
                    # bytes-like only; str and int raise TypeError here
                    chunk = memoryview(chunk).tobytes()
            except Exception as exc:
                self.error = exc
                logger.error("Source stream failed after %d bytes (key=%s): %s", self.bytes_read, self.key, exc)
                raise SourceStreamError(f"source stream failed: {exc}") from exc

            if chunk is None:
                self._eof = True
                self._tee.finish()
                return None
            if chunk:
                break

        self.bytes_read += len(chunk)
        return self._tee.write(chunk)

    async def read(self, size: int = -1) -> bytes:
        """
        Read up to ``size`` bytes (everything if negative).

        Returns b"" once the source is exhausted.
        """
        if self.error is not None:
            raise SourceStreamError(f"source stream failed: {self.error}") from self.error

        if size is None or size < 0:
            while True:
                chunk = await self._pull()
                if chunk is None:
                    break
                self._buffer.extend(chunk)
            data = bytes(self._buffer)
            self._buffer.clear()
            return data

        while len(self._buffer) < size:
            chunk = await self._pull()
            if chunk is None:
                break
            self._buffer.extend(chunk)

        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iter_chunks()

    async def _iter_chunks(self) -> AsyncIterator[bytes]:
        if self._buffer:
            data = bytes(self._buffer)
            self._buffer.clear()
            yield data
        while True:
            chunk = await self._pull()
            if chunk is None:
                return
            yield chunk

    async def aclose(self) -> None:
        """Tear down the source. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._buffer.clear()

        close = getattr(self._source, "aclose", None) or getattr(self._source, "close", None)
        if close is None:
            return
        try:
            result = close()
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            logger.warning("Failed to close source stream (key=%s): %s", self.key, exc)
