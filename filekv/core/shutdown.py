"""
FILEKV - Shutdown Coordinator

Carries the "begin graceful shutdown" signal into the connection loop
and stops server components when it fires.
"""

import logging
import threading
from typing import List, Optional, Protocol

from filekv.core.events import EventBus, EventType

logger = logging.getLogger(__name__)


class Stoppable(Protocol):
    """Protocol for components that can be stopped."""

    def stop(self) -> None:
        """Stop the component and release resources."""
        ...


class ShutdownCoordinator:
    """
    Coordinates graceful shutdown of server components.

    The shutdown flag is the cancellation token the connection loop checks
    between accepts. Components are stopped in reverse registration order
    and errors in one component don't prevent others from stopping.
    """

    def __init__(self, event_bus: Optional[EventBus] = None):
        """
        Initialize shutdown coordinator.

        Args:
            event_bus: Optional bus to announce the shutdown request on
        """
        self._components: List[Stoppable] = []
        self._shutdown_event = threading.Event()
        self._lock = threading.Lock()
        self._event_bus = event_bus
        self._stopped = False

    def register(self, component: Stoppable) -> None:
        """
        Register a component for shutdown.

        Args:
            component: Component to register
        """
        with self._lock:
            self._components.append(component)
            logger.debug(f"Registered component for shutdown: {type(component).__name__}")

    def is_shutdown_requested(self) -> bool:
        """
        Check if shutdown has been requested.

        Returns:
            True if shutdown was requested
        """
        return self._shutdown_event.is_set()

    def request_shutdown(self) -> None:
        """
        Set the shutdown flag.

        Safe to call from a signal handler; only the first call is announced.
        """
        with self._lock:
            if self._shutdown_event.is_set():
                return
            self._shutdown_event.set()

        logger.info("Shutdown requested")
        if self._event_bus is not None:
            self._event_bus.emit(EventType.SHUTDOWN_REQUESTED)

    def shutdown(self) -> None:
        """
        Request shutdown and stop all registered components once.

        Components are stopped in reverse registration order (LIFO).
        Errors in one component do not prevent others from stopping.
        """
        self.request_shutdown()

        with self._lock:
            if self._stopped:
                return
            self._stopped = True
            components = list(reversed(self._components))

        logger.info("Starting shutdown sequence")
        for component in components:
            component_name = type(component).__name__
            try:
                logger.debug(f"Stopping {component_name}...")
                component.stop()
                logger.debug(f"{component_name} stopped successfully")
            except Exception as e:
                logger.error(f"Error stopping {component_name}: {e}", exc_info=True)

        logger.info("Shutdown sequence complete")
