"""
FILEKV - Protocol Handler

Owns one accepted connection: reads exactly one request, parses it,
runs it against the record store and writes exactly one response.
Closing the connection is left to the caller.

States: AWAIT_REQUEST -> PARSED -> DISPATCHED -> RESPONSE_SENT -> CLOSED
A request rejected by the parser skips PARSED and DISPATCHED: its error
response is sent straight from AWAIT_REQUEST.
"""

import logging
import socket
from dataclasses import dataclass
from typing import Optional, Protocol

from filekv.core.errors import (
    ArityError,
    InvalidKeyError,
    KeyExistsError,
    KeyNotFoundError,
    ProtocolError,
    RequestTooLongError,
    RequestTooShortError,
    ResponseTooLargeError,
    StorageIOError,
    TooManyTokensError,
    UnknownCommandError,
    ValueTooLargeError,
)
from filekv.core.events import EventBus, EventType
from filekv.core.types import (
    MAX_MESSAGE_LENGTH,
    MIN_REQUEST_LENGTH,
    Command,
    ConnectionState,
    Request,
    Response,
)
from filekv.protocol import responses
from filekv.protocol.parser import parse_request
from filekv.storage.records import RecordStore

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """The part of a socket the handler uses."""

    def recv(self, bufsize: int) -> bytes:
        ...

    def sendall(self, data: bytes) -> None:
        ...


@dataclass
class Exchange:
    """What happened on one connection."""

    peer: str
    state: ConnectionState = ConnectionState.AWAIT_REQUEST
    command: Optional[str] = None
    response: Optional[Response] = None


class ProtocolHandler:
    """
    Request/response handler for a single connection.

    Stateless between connections; one instance serves every connection,
    including concurrent ones in threaded mode.
    """

    def __init__(
        self,
        store: RecordStore,
        event_bus: Optional[EventBus] = None,
        max_message_length: int = MAX_MESSAGE_LENGTH,
    ):
        """
        Initialize protocol handler.

        Args:
            store: Record store requests run against
            event_bus: Optional bus to publish request outcomes on
            max_message_length: Read buffer size and per-line response cap
        """
        self._store = store
        self._event_bus = event_bus
        self._max_message_length = max_message_length

    def _emit(self, event_type: EventType, **kwargs) -> None:
        if self._event_bus is not None:
            self._event_bus.emit(event_type, **kwargs)

    def _advance(self, exchange: Exchange, state: ConnectionState) -> None:
        logger.debug(f"{exchange.peer}: {exchange.state.value} -> {state.value}")
        exchange.state = state

    def handle(self, conn: Connection, peer: str = "unknown") -> Exchange:
        """
        Serve one request on an accepted connection.

        Args:
            conn: Accepted connection (a socket, or anything with recv/sendall)
            peer: Printable peer address for logs

        Returns:
            Exchange describing the outcome; state is RESPONSE_SENT on success
        """
        exchange = Exchange(peer=peer)

        try:
            data = conn.recv(self._max_message_length)
        except socket.timeout:
            logger.warning(f"{peer}: timed out waiting for a request")
            self._emit(EventType.CONNECTION_FAILED, peer=peer, reason="read timeout")
            return exchange
        except OSError as e:
            logger.warning(f"{peer}: read failed: {e}")
            self._emit(EventType.CONNECTION_FAILED, peer=peer, reason=str(e))
            return exchange

        if not data:
            logger.info(f"{peer}: empty message, peer closed without sending")
            return exchange

        logger.info(f"{peer}: received {len(data)} bytes")
        response = self.process(data, exchange)
        exchange.response = response

        try:
            self._send(conn, response)
        except (socket.timeout, OSError) as e:
            logger.warning(f"{peer}: write failed: {e}")
            self._emit(EventType.CONNECTION_FAILED, peer=peer, reason=str(e))
            return exchange

        self._advance(exchange, ConnectionState.RESPONSE_SENT)
        self._emit(
            EventType.REQUEST_COMPLETED,
            peer=peer,
            command=exchange.command,
            status=response.status.value,
        )
        return exchange

    def process(self, data: bytes, exchange: Optional[Exchange] = None) -> Response:
        """
        Turn raw request bytes into a response, touching storage as needed.

        Never raises for bad input or storage failures; every outcome is a
        response.

        Args:
            data: Bytes from a single read
            exchange: Optional exchange to record state and command on

        Returns:
            Response to send
        """
        if exchange is None:
            exchange = Exchange(peer="local")

        try:
            request = self._parse(data)
        except ProtocolError as e:
            logger.info(f"{exchange.peer}: rejected request: {e}")
            return self._fit(self._protocol_error_response(e))

        exchange.command = request.command.wire_name
        self._advance(exchange, ConnectionState.PARSED)
        response = self._dispatch(request, exchange)
        self._advance(exchange, ConnectionState.DISPATCHED)
        logger.info(
            f"{exchange.peer}: {request.command.wire_name} {request.key!r} -> {response.status.value}"
        )
        return self._fit(response)

    def _parse(self, data: bytes) -> Request:
        if len(data) >= self._max_message_length and not data.endswith(b"\n"):
            raise RequestTooLongError(f"No line terminator within {len(data)} bytes")

        if data.endswith(b"\n"):
            data = data[:-1]
            if data.endswith(b"\r"):
                data = data[:-1]

        if len(data) < MIN_REQUEST_LENGTH:
            raise RequestTooShortError(f"Request too short: {data!r}")

        return parse_request(data)

    def _protocol_error_response(self, error: ProtocolError) -> Response:
        if isinstance(error, TooManyTokensError):
            command = Command.from_token(error.command)
            if command is not None:
                return responses.arity_error(command)
            return responses.error(responses.UNKNOWN_COMMAND, with_usage=True)

        if isinstance(error, ArityError):
            return responses.arity_error(Command.from_token(error.command))

        if isinstance(error, UnknownCommandError):
            return responses.error(responses.UNKNOWN_COMMAND, with_usage=True)

        if isinstance(error, RequestTooLongError):
            return responses.error(responses.TOO_LONG, with_usage=True)

        return responses.error(responses.TOO_SHORT, with_usage=True)

    def _dispatch(self, request: Request, exchange: Exchange) -> Response:
        try:
            if request.command is Command.SET:
                try:
                    self._store.create(request.key, request.value)
                except KeyExistsError:
                    return responses.already_set()
                return responses.ok()

            if request.command is Command.GET:
                try:
                    value = self._store.read(request.key)
                except KeyNotFoundError:
                    return responses.not_found()
                logger.debug(f"{exchange.peer}: value for {request.key!r}: {value!r}")
                return responses.ok_value(value)

            try:
                self._store.delete(request.key)
            except KeyNotFoundError:
                return responses.not_found()
            return responses.ok()

        except InvalidKeyError as e:
            logger.info(f"{exchange.peer}: {e}")
            return responses.error(responses.INVALID_KEY)
        except ValueTooLargeError as e:
            logger.info(f"{exchange.peer}: {e}")
            return responses.error(responses.VALUE_TOO_LARGE)
        except StorageIOError as e:
            logger.error(f"{exchange.peer}: storage failure: {e}", exc_info=True)
            self._emit(EventType.CONNECTION_FAILED, peer=exchange.peer, reason=str(e))
            return responses.error(responses.STORAGE_FAILURE)

    def _check_size(self, response: Response) -> None:
        for line in response.lines:
            if len(line) > self._max_message_length:
                raise ResponseTooLargeError(
                    f"Response line of {len(line)} bytes exceeds {self._max_message_length}"
                )

    def _fit(self, response: Response) -> Response:
        try:
            self._check_size(response)
        except ResponseTooLargeError as e:
            logger.error(str(e))
            return responses.error(responses.RESPONSE_TOO_LARGE)
        return response

    def _send(self, conn: Connection, response: Response) -> None:
        for line in response.lines:
            conn.sendall(line)
            logger.debug(f"Sent {len(line)} bytes")
