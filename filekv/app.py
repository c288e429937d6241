"""
FILEKV - Application Wiring

Builds the server from a configuration and runs it until shutdown.
"""

import logging
import signal
import threading
from typing import Optional

from filekv.config.settings import ServerConfig
from filekv.core.events import EventBus
from filekv.core.shutdown import ShutdownCoordinator
from filekv.core.stats import ServerStats
from filekv.infrastructure.filesystem import FileSystemAdapter
from filekv.infrastructure.network import open_listener
from filekv.protocol.handler import ProtocolHandler
from filekv.server.loop import ConnectionLoop
from filekv.storage.records import RecordStore

logger = logging.getLogger(__name__)


class FileKVServer:
    """
    A configured server: listener, record store, handler and loop.

    Construction binds the listening socket, so a ResourceSetupError
    surfaces before anything is served.
    """

    def __init__(self, config: ServerConfig, fs: Optional[FileSystemAdapter] = None):
        """
        Build server components.

        Args:
            config: Validated server configuration
            fs: Filesystem adapter for the record store (real filesystem if omitted)
        """
        self.config = config
        self.event_bus = EventBus()
        self.stats = ServerStats(self.event_bus)
        self.shutdown = ShutdownCoordinator(self.event_bus)
        # Registered first so it is stopped last, after the loop
        self.shutdown.register(self.stats)

        self.store = RecordStore(
            config.storage_root,
            fs=fs,
            max_value_length=config.max_value_length,
        )
        self.handler = ProtocolHandler(
            self.store,
            event_bus=self.event_bus,
            max_message_length=config.max_message_length,
        )

        listener = open_listener(config.host, config.port, config.backlog)
        self.loop = ConnectionLoop(
            listener,
            self.handler,
            self.shutdown,
            event_bus=self.event_bus,
            threaded=config.threaded,
            connection_timeout=config.connection_timeout,
            poll_interval=config.accept_poll_interval,
        )
        self.shutdown.register(self.loop)

    @property
    def address(self):
        return self.loop.address

    def serve_forever(self) -> None:
        """Serve until shutdown is requested, then stop all components."""
        try:
            self.loop.serve()
        finally:
            self.shutdown.shutdown()
            logger.info(f"Final stats: {self.stats.snapshot()}")

    def request_shutdown(self) -> None:
        self.shutdown.request_shutdown()


def install_signal_handlers(shutdown: ShutdownCoordinator) -> None:
    """
    Route SIGINT and SIGTERM to a shutdown request.

    Only possible from the main thread; elsewhere this is a no-op.
    """
    if threading.current_thread() is not threading.main_thread():
        logger.debug("Not on main thread, signal handlers not installed")
        return

    def _handle(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name}")
        shutdown.request_shutdown()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def run(config: ServerConfig) -> None:
    """
    Validate the config, start the server and block until shutdown.

    Raises:
        ValueError: If the configuration is invalid
        ResourceSetupError: If the listener can't be set up
    """
    config.validate()
    server = FileKVServer(config)
    install_signal_handlers(server.shutdown)
    server.serve_forever()
