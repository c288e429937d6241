"""
FILEKV - Connection Loop

Accepts connections and drives one protocol handler call per connection.
Serial by default: the next connection is accepted only after the current
one has been answered and closed. Optionally hands each connection to
its own thread.
"""

import logging
import socket
import threading
from typing import List, Optional

from filekv.core.errors import ResourceSetupError
from filekv.core.events import EventBus, EventType
from filekv.core.shutdown import ShutdownCoordinator
from filekv.core.types import ConnectionState
from filekv.protocol.handler import ProtocolHandler

logger = logging.getLogger(__name__)


class ConnectionLoop:
    """
    Accept loop bound to a listening socket.

    The shutdown coordinator is the cancellation token: its flag is checked
    between accepts and nothing is served once it is set. In-flight
    requests are allowed to finish.
    """

    def __init__(
        self,
        listener: socket.socket,
        handler: ProtocolHandler,
        shutdown: ShutdownCoordinator,
        event_bus: Optional[EventBus] = None,
        threaded: bool = False,
        connection_timeout: float = 5.0,
        poll_interval: float = 0.5,
    ):
        """
        Initialize connection loop.

        Args:
            listener: Bound, listening socket
            handler: Protocol handler serving each connection
            shutdown: Coordinator whose flag stops the loop
            event_bus: Optional bus to publish connection events on
            threaded: Serve each connection in its own thread
            connection_timeout: Read/write deadline per connection (seconds)
            poll_interval: Accept timeout between shutdown-flag checks (seconds)
        """
        self._listener = listener
        self._handler = handler
        self._shutdown = shutdown
        self._event_bus = event_bus
        self._threaded = threaded
        self._connection_timeout = connection_timeout
        self._poll_interval = poll_interval

        self._workers: List[threading.Thread] = []
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        """Whether stop() has closed the listener."""
        with self._lock:
            return self._closed

    @property
    def address(self):
        """Address the listener is bound to."""
        return self._listener.getsockname()

    def serve(self) -> None:
        """
        Accept and serve connections until shutdown is requested.

        Raises:
            ResourceSetupError: If accept fails for a reason other than shutdown
        """
        self._listener.settimeout(self._poll_interval)
        logger.info(f"Serving ({'threaded' if self._threaded else 'serial'})")

        try:
            while not self._shutdown.is_shutdown_requested():
                try:
                    conn, addr = self._listener.accept()
                except socket.timeout:
                    continue
                except ConnectionAbortedError as e:
                    logger.warning(f"Connection aborted before accept completed: {e}")
                    continue
                except OSError as e:
                    if self._shutdown.is_shutdown_requested() or self.closed:
                        break
                    raise ResourceSetupError(f"accept failed: {e}") from e

                if self._shutdown.is_shutdown_requested():
                    conn.close()
                    break

                peer = f"{addr[0]}:{addr[1]}"
                logger.info(f"Connection from {peer}")
                if self._event_bus is not None:
                    self._event_bus.emit(EventType.CONNECTION_ACCEPTED, peer=peer)

                if self._threaded:
                    self._start_worker(conn, peer)
                else:
                    self._serve_connection(conn, peer)
        finally:
            self._join_workers()
            logger.info("Connection loop stopped")

    def _start_worker(self, conn: socket.socket, peer: str) -> None:
        worker = threading.Thread(
            target=self._serve_connection,
            args=(conn, peer),
            name=f"filekv-{peer}",
            daemon=True,
        )
        with self._lock:
            self._workers = [w for w in self._workers if w.is_alive()]
            self._workers.append(worker)
        worker.start()

    def _serve_connection(self, conn: socket.socket, peer: str) -> None:
        exchange = None
        try:
            with conn:
                conn.settimeout(self._connection_timeout)
                exchange = self._handler.handle(conn, peer)
        except Exception as e:
            logger.error(f"{peer}: connection failed: {e}", exc_info=True)
            if self._event_bus is not None:
                self._event_bus.emit(EventType.CONNECTION_FAILED, peer=peer, reason=str(e))

        if exchange is not None:
            exchange.state = ConnectionState.CLOSED
        logger.debug(f"{peer}: connection closed")

    def _join_workers(self) -> None:
        with self._lock:
            workers = list(self._workers)
            self._workers.clear()
        for worker in workers:
            worker.join(self._connection_timeout)
            if worker.is_alive():
                logger.warning(f"Worker {worker.name} still running after shutdown")

    def stop(self) -> None:
        """Close the listener so no further connections are accepted."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        try:
            self._listener.close()
        except OSError as e:
            logger.warning(f"Error closing listener: {e}")
        logger.info("Listener closed")
