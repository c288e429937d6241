"""
FILEKV - Core Types

Protocol constants, enums and dataclasses shared by the parser,
the protocol handler and the connection loop.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

MAX_MESSAGE_LENGTH = 128  # Read buffer and per-line response cap (bytes)
MAX_VALUE_LENGTH = 100  # Largest value a record may hold (bytes)
MAX_TOKENS = 3  # command, key, value
MIN_REQUEST_LENGTH = 5  # 3-letter command + space + 1-char key


class Command(Enum):
    """Commands understood by the server, with their expected token count."""

    SET = ("SET", 3)
    GET = ("GET", 2)
    DEL = ("DEL", 2)

    def __init__(self, wire_name: str, arity: int):
        self.wire_name = wire_name
        self.arity = arity

    @classmethod
    def from_token(cls, token: str) -> Optional["Command"]:
        """
        Look up a command by its exact, case-sensitive wire name.

        Args:
            token: First token of a request line

        Returns:
            Matching Command, or None if the token names no command
        """
        for command in cls:
            if command.wire_name == token:
                return command
        return None


class Status(Enum):
    """Status line of a response."""

    OK = "OK"
    NOTFOUND = "NOTFOUND"
    ALREADYSET = "ALREADYSET"
    ERROR = "ERROR"


class ConnectionState(Enum):
    """States a connection passes through in the protocol handler."""

    AWAIT_REQUEST = "await_request"
    PARSED = "parsed"
    DISPATCHED = "dispatched"
    RESPONSE_SENT = "response_sent"
    CLOSED = "closed"


@dataclass
class Request:
    """A parsed request line."""

    command: Command
    key: str
    value: Optional[bytes] = None


@dataclass
class Response:
    """
    Response to a single request.

    Each entry of ``lines`` is written to the connection with its own
    write call, so a GET hit goes out as two writes and an error with the
    usage block as three.
    """

    status: Status
    lines: List[bytes] = field(default_factory=list)

    def encode(self) -> bytes:
        """Return the full response as it appears on the wire."""
        return b"".join(self.lines)
