"""Progress tracking for in-flight uploads."""
import logging
import uuid
from typing import Callable, Optional

from ..models import ProgressEvent, TransferProgress
from ..protocols import IInFlightUpload

logger = logging.getLogger(__name__)

ProgressHandler = Callable[[ProgressEvent], None]


def compute_percent(written: int, total: Optional[int]) -> int:
    """floor(written / total * 100) kept within [0, 100]; 0 when total is unknown or zero."""
    if not total:
        return 0
    percent = int(written * 100 // total)
    return max(0, min(100, percent))


class ProgressTracker:
    """
    Republishes storage-client progress notifications as ProgressEvents.

    One tracker serves one upload: ``attach`` generates the request id that
    correlates every event of that upload.
    """

    def __init__(self):
        self.request_id: Optional[str] = None

    def attach(self, in_flight: IInFlightUpload, handler: Optional[ProgressHandler]) -> Optional[str]:
        """
        Subscribe ``handler`` to the upload's progress notifications.

        Args:
            in_flight: Upload returned by the storage client's put()
            handler: Called synchronously with each ProgressEvent

        Returns:
            The generated request id, or None if no handler was attached
        """
        if not callable(handler):
            return None

        request_id = str(uuid.uuid4())
        self.request_id = request_id
        body = getattr(in_flight, "body", None)
        known_total = getattr(body, "byte_count", None)
        key = getattr(body, "key", None)
        name = getattr(body, "name", None)

        def on_progress(progress: TransferProgress) -> None:
            written = progress.loaded
            total = progress.total or known_total or None
            handler(
                ProgressEvent(
                    request_id=request_id,
                    bytes_written=written,
                    bytes_total=total,
                    percent=compute_percent(written, total),
                    key=key,
                    name=name,
                )
            )

        in_flight.on("progress", on_progress)
        logger.debug("Progress tracking attached: request_id=%s key=%s", request_id, key)
        return request_id
