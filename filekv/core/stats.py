"""
FILEKV - Server Statistics

Counts connections and responses by listening on the event bus.
"""

import logging
import threading
from collections import Counter
from typing import Any, Dict

from filekv.core.events import Event, EventBus, EventType

logger = logging.getLogger(__name__)


class ServerStats:
    """
    Thread-safe counters fed by server events.

    Subscribes on construction and unsubscribes on stop(), so it can be
    registered with the ShutdownCoordinator like any other component.
    """

    def __init__(self, event_bus: EventBus):
        """
        Initialize stats and subscribe to server events.

        Args:
            event_bus: Event bus the server publishes on
        """
        self._event_bus = event_bus
        self._lock = threading.Lock()

        self._connections = 0
        self._failures = 0
        self._statuses: Counter = Counter()
        self._commands: Counter = Counter()

        for event_type, handler in self._subscriptions():
            self._event_bus.subscribe(event_type, handler)

    def stop(self) -> None:
        """Stop counting; later events leave the counters unchanged."""
        for event_type, handler in self._subscriptions():
            self._event_bus.unsubscribe(event_type, handler)
        logger.debug("Stats unsubscribed from event bus")

    def snapshot(self) -> Dict[str, Any]:
        """
        Get a copy of the current counters.

        Returns:
            Dict with connections, failures, per-status and per-command counts
        """
        with self._lock:
            return {
                "connections": self._connections,
                "failures": self._failures,
                "statuses": dict(self._statuses),
                "commands": dict(self._commands),
            }

    def _subscriptions(self):
        return [
            (EventType.CONNECTION_ACCEPTED, self._on_connection_accepted),
            (EventType.REQUEST_COMPLETED, self._on_request_completed),
            (EventType.CONNECTION_FAILED, self._on_connection_failed),
        ]

    def _on_connection_accepted(self, event: Event) -> None:
        with self._lock:
            self._connections += 1

    def _on_request_completed(self, event: Event) -> None:
        status = event.data.get("status")
        command = event.data.get("command")
        with self._lock:
            if status:
                self._statuses[status] += 1
            if command:
                self._commands[command] += 1

    def _on_connection_failed(self, event: Event) -> None:
        with self._lock:
            self._failures += 1
        logger.debug(f"Connection failure recorded: {event.data.get('reason')}")
