"""
FILEKV - Command Parser

Turns a request line into a Request. No quoting or escaping: tokens are
separated by runs of ASCII whitespace, so a value can't contain a space.
Values stay raw bytes; only the command and key are decoded.
"""

import logging
from typing import List

from filekv.core.errors import (
    ArityError,
    RequestTooShortError,
    TooManyTokensError,
    UnknownCommandError,
)
from filekv.core.types import MAX_TOKENS, Command, Request

logger = logging.getLogger(__name__)


def decode_token(token: bytes) -> str:
    """Decode a command or key token; undecodable bytes survive as surrogates."""
    return token.decode("utf-8", errors="surrogateescape")


def tokenize(line: bytes, max_tokens: int = MAX_TOKENS) -> List[bytes]:
    """
    Split a line on ASCII whitespace runs.

    Args:
        line: Request line without its terminator
        max_tokens: Largest number of tokens allowed

    Returns:
        Non-empty tokens in order

    Raises:
        TooManyTokensError: If the line holds more than max_tokens tokens
    """
    tokens = line.split()
    if len(tokens) > max_tokens:
        raise TooManyTokensError(decode_token(tokens[0]), max_tokens)
    return tokens


def parse_request(line: bytes) -> Request:
    """
    Parse a request line into a Request.

    Checks run in the order the client sees them answered: token count,
    command name, then arity. Key validity is left to the storage layer.

    Args:
        line: Request line without its terminator

    Returns:
        Parsed request

    Raises:
        RequestTooShortError: If there is no key
        TooManyTokensError: If there are more than three tokens
        UnknownCommandError: If the command isn't SET, GET or DEL
        ArityError: If the token count doesn't match the command
    """
    tokens = tokenize(line)
    logger.debug(f"Received {len(tokens)} tokens")

    if len(tokens) < 2:
        raise RequestTooShortError(f"Request has no key: {line!r}")

    name = decode_token(tokens[0])
    command = Command.from_token(name)
    if command is None:
        raise UnknownCommandError(name)

    if len(tokens) != command.arity:
        raise ArityError(command.wire_name, len(tokens))

    value = tokens[2] if command is Command.SET else None
    return Request(command=command, key=decode_token(tokens[1]), value=value)
