"""
Protocols (Interfaces) for Dependency Inversion.

The upload pipeline only depends on these small interfaces; the aioboto3
client in ``services.storage`` is one implementation, test fakes are another.
"""
from typing import Any, AsyncIterator, Callable, Dict, Optional, Protocol, runtime_checkable


@runtime_checkable
class IInFlightUpload(Protocol):
    """One active put operation, from first byte to terminal outcome."""

    body: Any

    def on(self, event_name: str, callback: Callable) -> Any:
        """Subscribe to ``progress`` notifications (TransferProgress)."""
        ...

    async def result(self) -> Dict[str, Any]:
        """Run the transfer to completion and return the backend payload (with ETag)."""
        ...


@runtime_checkable
class IStorageClient(Protocol):
    """Interface for object storage operations."""

    def put(self, params: Dict[str, Any], options: Optional[Dict[str, Any]] = None) -> IInFlightUpload:
        """Prepare a streaming upload of ``params["Body"]``."""
        ...

    def list_objects(self, params: Dict[str, Any]) -> AsyncIterator[Dict[str, Any]]:
        """Iterate over every object matching ``params`` (all pages)."""
        ...

    async def delete_object(self, params: Dict[str, Any]) -> Dict[str, Any]:
        """Delete one object."""
        ...

    async def get_object(self, params: Dict[str, Any]) -> bytes:
        """Download one object into memory."""
        ...

    def iter_object(self, params: Dict[str, Any], chunk_size: int = 1024 * 1024) -> AsyncIterator[bytes]:
        """Stream one object in chunks."""
        ...

    async def generate_signed_url(
        self,
        operation: str,
        params: Dict[str, Any],
        expires_in: int = 900,
    ) -> str:
        """Presigned URL for ``operation``."""
        ...
