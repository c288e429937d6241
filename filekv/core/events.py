"""
FILEKV - Event System

Event bus that lets the server report what it does without knowing who listens.
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)


class EventType(Enum):
    """Types of events that can be published."""

    CONNECTION_ACCEPTED = "connection_accepted"
    REQUEST_COMPLETED = "request_completed"
    CONNECTION_FAILED = "connection_failed"
    SHUTDOWN_REQUESTED = "shutdown_requested"


@dataclass
class Event:
    """Event data structure."""

    type: EventType
    data: Dict[str, Any]
    timestamp: float

    @classmethod
    def create(cls, event_type: EventType, **kwargs) -> "Event":
        """
        Create an event with current timestamp.

        Args:
            event_type: Type of event
            **kwargs: Event data

        Returns:
            Event instance
        """
        return cls(type=event_type, data=kwargs, timestamp=time.time())


class EventBus:
    """
    Event bus for publish-subscribe communication.

    Thread-safe for concurrent subscribe/publish operations, so worker
    threads of a threaded server can publish while stats are read.
    """

    def __init__(self):
        self._handlers: Dict[EventType, List[Callable]] = {}
        self._lock = threading.RLock()

    def subscribe(self, event_type: EventType, handler: Callable[[Event], None]) -> None:
        """
        Subscribe to an event type.

        Args:
            event_type: Type of event to listen for
            handler: Callable that receives Event objects
        """
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

    def unsubscribe(self, event_type: EventType, handler: Callable[[Event], None]) -> None:
        """Remove a handler; unknown handlers are ignored."""
        with self._lock:
            handlers = self._handlers.get(event_type, [])
            if handler in handlers:
                handlers.remove(handler)

    def publish(self, event: Event) -> None:
        """
        Publish an event to all subscribers.

        Errors in handlers are logged and never reach the publisher.
        Handlers are called outside the lock.
        """
        with self._lock:
            handlers = list(self._handlers.get(event.type, []))

        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                logger.error(f"Error in event handler for {event.type}: {e}", exc_info=True)

    def emit(self, event_type: EventType, **kwargs) -> None:
        """Shorthand for publish(Event.create(...))."""
        self.publish(Event.create(event_type, **kwargs))
