"""
Unit tests for the protocol handler.
"""

import socket

import pytest

from filekv.core.events import EventBus, EventType
from filekv.core.types import ConnectionState, Status
from filekv.infrastructure.filesystem import MockFileSystem
from filekv.protocol import responses
from filekv.protocol.handler import ProtocolHandler
from filekv.storage.records import RecordStore

USAGE = b"".join(responses.USAGE_LINES)


class MockConnection:
    """Mock connection recording every write."""

    def __init__(self, incoming: bytes = b"", recv_error: Exception = None, send_error: Exception = None):
        self._incoming = incoming
        self._recv_error = recv_error
        self._send_error = send_error
        self.recv_sizes = []
        self.writes = []

    def recv(self, bufsize: int) -> bytes:
        self.recv_sizes.append(bufsize)
        if self._recv_error is not None:
            raise self._recv_error
        data, self._incoming = self._incoming[:bufsize], self._incoming[bufsize:]
        return data

    def sendall(self, data: bytes) -> None:
        if self._send_error is not None:
            raise self._send_error
        self.writes.append(data)

    @property
    def output(self) -> bytes:
        return b"".join(self.writes)


@pytest.fixture
def fs():
    return MockFileSystem()


@pytest.fixture
def handler(fs):
    return ProtocolHandler(RecordStore("/db", fs=fs))


def send(handler, line: bytes) -> bytes:
    conn = MockConnection(line)
    handler.handle(conn, "test")
    return conn.output


class TestCommands:
    """Tests for SET/GET/DEL dispatch."""

    def test_scenario(self, handler):
        assert send(handler, b"SET manzana apple\n") == b"OK\n"
        assert send(handler, b"SET perro dog\n") == b"OK\n"
        assert send(handler, b"GET perro\n") == b"OK\ndog\n"
        assert send(handler, b"GET casa\n") == b"NOTFOUND\n"
        assert send(handler, b"DEL perro\n") == b"OK\n"
        assert send(handler, b"GET perro\n") == b"NOTFOUND\n"

    def test_set_existing_keeps_value(self, handler):
        send(handler, b"SET key v1\n")
        assert send(handler, b"SET key v2\n") == b"ALREADYSET\n"
        assert send(handler, b"GET key\n") == b"OK\nv1\n"

    def test_del_missing(self, handler):
        assert send(handler, b"DEL nothing\n") == b"NOTFOUND\n"

    def test_repeated_del(self, handler):
        send(handler, b"SET key v\n")
        assert send(handler, b"DEL key\n") == b"OK\n"
        assert send(handler, b"DEL key\n") == b"NOTFOUND\n"

    def test_get_success_is_two_writes(self, handler):
        send(handler, b"SET perro dog\n")
        conn = MockConnection(b"GET perro\n")
        handler.handle(conn, "test")
        assert conn.writes == [b"OK\n", b"dog\n"]

    def test_request_without_newline(self, handler):
        assert send(handler, b"SET a b") == b"OK\n"

    def test_crlf_terminator(self, handler):
        send(handler, b"SET key value\r\n")
        assert send(handler, b"GET key\r\n") == b"OK\nvalue\n"

    def test_reads_once_with_buffer_size(self, handler):
        conn = MockConnection(b"GET key\n")
        handler.handle(conn, "test")
        assert conn.recv_sizes == [128]

    @pytest.mark.parametrize("value", [b"caf\xe9", b"a\xc2\xa0b", b"a\x1cb"])
    def test_value_bytes_round_trip(self, handler, value):
        assert send(handler, b"SET clave " + value + b"\n") == b"OK\n"
        assert send(handler, b"GET clave\n") == b"OK\n" + value + b"\n"

    def test_non_utf8_key(self, handler):
        assert send(handler, b"SET caf\xe9 latte\n") == b"OK\n"
        assert send(handler, b"GET caf\xe9\n") == b"OK\nlatte\n"
        assert send(handler, b"GET cafe\n") == b"NOTFOUND\n"


class TestMalformedRequests:
    """Malformed input gets the documented error and never mutates storage."""

    @pytest.mark.parametrize(
        "line, expected",
        [
            (b"SET onlykey\n", b"ERROR: SET requires key and value.\n"),
            (b"SET a b c\n", b"ERROR: SET requires key and value.\n"),
            (b"GET a b\n", b"ERROR: GET takes only a key.\n"),
            (b"GET a b c\n", b"ERROR: GET takes only a key.\n"),
            (b"DEL a b\n", b"ERROR: DEL takes only a key.\n"),
        ],
    )
    def test_arity_errors(self, handler, fs, line, expected):
        assert send(handler, line) == expected
        assert fs.dirs == set()

    @pytest.mark.parametrize("line", [b"FOO x\n", b"set key value\n", b"FOO a b c\n"])
    def test_unknown_command(self, handler, fs, line):
        assert send(handler, line) == b"ERROR: no valid command detected.\n" + USAGE
        assert fs.dirs == set()

    @pytest.mark.parametrize("line", [b"GET\n", b"ab\n", b"GETKEY\n", b"     \n"])
    def test_too_short(self, handler, line):
        assert send(handler, line) == b"ERROR: command too short.\n" + USAGE

    def test_too_long(self, handler):
        line = b"SET key " + b"v" * 120
        assert send(handler, line) == b"ERROR: command too long.\n" + USAGE

    def test_invalid_key(self, handler, fs):
        assert send(handler, b"SET ../etc value\n") == b"ERROR: invalid key.\n"
        assert send(handler, b"GET ..\n") == b"ERROR: invalid key.\n"
        assert fs.dirs == set()

    def test_value_too_large(self, handler):
        line = b"SET key " + b"v" * 101 + b"\n"
        assert send(handler, line) == b"ERROR: value too large.\n"
        assert send(handler, b"GET key\n") == b"NOTFOUND\n"

    def test_usage_block_is_separate_writes(self, handler):
        conn = MockConnection(b"FOO x\n")
        handler.handle(conn, "test")
        assert conn.writes[1:] == list(responses.USAGE_LINES)

    def test_arity_checked_before_key(self, handler):
        assert send(handler, b"GET ../x extra\n") == b"ERROR: GET takes only a key.\n"


class TestConnectionOutcomes:
    """Tests for state tracking and failure handling."""

    def test_state_after_response(self, handler):
        conn = MockConnection(b"GET key\n")
        exchange = handler.handle(conn, "peer")

        assert exchange.state is ConnectionState.RESPONSE_SENT
        assert exchange.command == "GET"
        assert exchange.response.status is Status.NOTFOUND
        assert exchange.response.encode() == conn.output

    def test_empty_message_writes_nothing(self, handler):
        conn = MockConnection(b"")
        exchange = handler.handle(conn, "peer")

        assert conn.writes == []
        assert exchange.state is ConnectionState.AWAIT_REQUEST
        assert exchange.response is None

    def test_read_timeout(self, handler):
        conn = MockConnection(recv_error=socket.timeout("timed out"))
        exchange = handler.handle(conn, "peer")

        assert conn.writes == []
        assert exchange.state is ConnectionState.AWAIT_REQUEST

    def test_write_failure_does_not_raise(self, handler):
        conn = MockConnection(b"GET key\n", send_error=BrokenPipeError("gone"))
        exchange = handler.handle(conn, "peer")

        assert exchange.state is ConnectionState.DISPATCHED

    def test_storage_failure_answered(self, handler, fs):
        fs.error = PermissionError("denied")
        assert send(handler, b"SET key value\n") == b"ERROR: internal storage error.\n"

    def test_protocol_error_state(self, handler):
        exchange = handler.handle(MockConnection(b"FOO x\n"), "peer")
        assert exchange.state is ConnectionState.RESPONSE_SENT
        assert exchange.command is None
        assert exchange.response.status is Status.ERROR


class TestEvents:
    """Tests for events published by the handler."""

    def test_request_completed_event(self, fs):
        bus = EventBus()
        events = []
        bus.subscribe(EventType.REQUEST_COMPLETED, events.append)
        handler = ProtocolHandler(RecordStore("/db", fs=fs), event_bus=bus)

        handler.handle(MockConnection(b"SET k v\n"), "peer")

        assert events[0].data == {"peer": "peer", "command": "SET", "status": "OK"}

    def test_storage_failure_event(self, fs):
        bus = EventBus()
        failures = []
        bus.subscribe(EventType.CONNECTION_FAILED, failures.append)
        handler = ProtocolHandler(RecordStore("/db", fs=fs), event_bus=bus)
        fs.error = OSError(5, "I/O error")

        handler.handle(MockConnection(b"GET k\n"), "peer")

        assert len(failures) == 1


class TestResponseSize:
    """Tests for the per-line response cap."""

    def test_oversized_line_replaced(self, fs):
        # A store allowing values the message buffer can't carry
        handler = ProtocolHandler(RecordStore("/db", fs=fs, max_value_length=200), max_message_length=64)
        fs.put("/db/big", b"x" * 100)

        conn = MockConnection(b"GET big\n")
        handler.handle(conn, "peer")

        assert conn.output == b"ERROR: response too large.\n"
