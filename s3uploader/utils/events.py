from typing import Callable, Dict, List
import logging
logger = logging.getLogger(__name__)


class EventEmitter:
    """Simple synchronous event emitter for upload events."""

    def __init__(self):
        self._listeners: Dict[str, List[Callable]] = {}

    def on(self, event_name: str, callback: Callable):
        """Subscribe to an event."""
        if event_name not in self._listeners:
            self._listeners[event_name] = []
        if callback not in self._listeners[event_name]:
            self._listeners[event_name].append(callback)
        return self

    def off(self, event_name: str, callback: Callable):
        """Unsubscribe from an event."""
        if event_name in self._listeners:
            if callback in self._listeners[event_name]:
                self._listeners[event_name].remove(callback)
        return self

    def listener_count(self, event_name: str) -> int:
        return len(self._listeners.get(event_name, []))

    def emit(self, event_name: str, *args, **kwargs) -> bool:
        """
        Call every listener of ``event_name`` in subscription order.

        Listener failures are logged and do not reach the emitter, so a broken
        progress handler never aborts a transfer.

        Returns:
            True if the event had listeners
        """
        if event_name not in self._listeners:
            return False

        for callback in self._listeners[event_name][:]:  # Copy list to avoid modification during iteration
            try:
                callback(*args, **kwargs)
            except Exception as e:
                logger.error(f"Error in event listener for {event_name}: {e}")
        return bool(self._listeners[event_name])
