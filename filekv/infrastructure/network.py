"""
FILEKV - Network Setup

Creates the listening socket the connection loop accepts on.
"""

import logging
import socket

from filekv.core.errors import ResourceSetupError

logger = logging.getLogger(__name__)


def open_listener(host: str, port: int, backlog: int = 1) -> socket.socket:
    """
    Create a bound, listening TCP socket.

    Args:
        host: Address to bind
        port: Port to bind (0 picks a free port)
        backlog: Listen backlog; 1 keeps acceptance serial

    Returns:
        Listening socket

    Raises:
        ResourceSetupError: If the address can't be resolved, bound or listened on
    """
    try:
        infos = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM, flags=socket.AI_PASSIVE)
    except socket.gaierror as e:
        raise ResourceSetupError(f"Invalid server address {host}:{port}: {e}") from e

    family, socktype, proto, _, address = infos[0]
    sock = socket.socket(family, socktype, proto)
    try:
        # Allow quick restart on the same port
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(address)
        sock.listen(backlog)
    except OSError as e:
        sock.close()
        raise ResourceSetupError(f"Cannot listen on {host}:{port}: {e}") from e

    bound = sock.getsockname()
    logger.info(f"Listening on {bound[0]}:{bound[1]} (backlog {backlog})")
    return sock
