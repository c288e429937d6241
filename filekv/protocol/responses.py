"""
FILEKV - Responses

Builders for every response the server sends.
"""

from typing import Dict

from filekv.core.types import Command, Response, Status

USAGE_LINES = (
    b"Usage:\n<CMD> <key> [<value>]\nCommands:\n\tSET\tCreate a new key-value record.\n",
    b"\tGET\tGet the value of a key.\n\tDEL\tDelete a record by key.\n",
)

ARITY_MESSAGES: Dict[Command, str] = {
    Command.SET: "SET requires key and value.",
    Command.GET: "GET takes only a key.",
    Command.DEL: "DEL takes only a key.",
}

TOO_SHORT = "command too short."
TOO_LONG = "command too long."
UNKNOWN_COMMAND = "no valid command detected."
INVALID_KEY = "invalid key."
VALUE_TOO_LARGE = "value too large."
STORAGE_FAILURE = "internal storage error."
RESPONSE_TOO_LARGE = "response too large."


def ok() -> Response:
    return Response(Status.OK, [b"OK\n"])


def ok_value(value: bytes) -> Response:
    """GET hit: status line, then the value on its own line."""
    return Response(Status.OK, [b"OK\n", value + b"\n"])


def not_found() -> Response:
    return Response(Status.NOTFOUND, [b"NOTFOUND\n"])


def already_set() -> Response:
    return Response(Status.ALREADYSET, [b"ALREADYSET\n"])


def error(message: str, with_usage: bool = False) -> Response:
    """
    Build an error response.

    Args:
        message: Text after the ``ERROR: `` prefix
        with_usage: Append the usage block

    Returns:
        Response with status ERROR
    """
    lines = [f"ERROR: {message}\n".encode("utf-8")]
    if with_usage:
        lines.extend(USAGE_LINES)
    return Response(Status.ERROR, lines)


def arity_error(command: Command) -> Response:
    return error(ARITY_MESSAGES[command])
