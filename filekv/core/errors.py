"""
FILEKV - Custom Exception Classes

Defines the exception hierarchy for the server.
All custom exceptions inherit from FileKVError.
"""

from typing import Optional


class FileKVError(Exception):
    """Base exception for all FILEKV errors."""

    pass


class ProtocolError(FileKVError):
    """Raised when a request cannot be understood. Always answered, never fatal."""

    pass


class RequestTooShortError(ProtocolError):
    """Raised when a request is too short to hold a command and a key."""

    pass


class RequestTooLongError(ProtocolError):
    """Raised when a request fills the read buffer without a line terminator."""

    pass


class TooManyTokensError(ProtocolError):
    """Raised when a request line holds more tokens than allowed."""

    def __init__(self, command: str, max_tokens: int):
        super().__init__(f"More than {max_tokens} tokens in request for {command!r}")
        self.command = command
        self.max_tokens = max_tokens


class UnknownCommandError(ProtocolError):
    """Raised when the command name is not SET, GET or DEL."""

    def __init__(self, name: str):
        super().__init__(f"Unknown command: {name!r}")
        self.name = name


class ArityError(ProtocolError):
    """Raised when a known command has the wrong number of arguments."""

    def __init__(self, command: str, token_count: Optional[int] = None):
        super().__init__(f"Wrong number of arguments for {command}")
        self.command = command
        self.token_count = token_count


class ResponseTooLargeError(FileKVError):
    """Raised when a response line does not fit in the message buffer."""

    pass


class StorageError(FileKVError):
    """Base class for storage layer errors."""

    def __init__(self, key: str, message: Optional[str] = None):
        super().__init__(message or key)
        self.key = key


class KeyNotFoundError(StorageError):
    """Raised when a record does not exist."""

    pass


class KeyExistsError(StorageError):
    """Raised when creating a record whose key is already set."""

    pass


class InvalidKeyError(StorageError):
    """Raised when a key cannot be used as a record file name."""

    pass


class ValueTooLargeError(StorageError):
    """Raised when a value exceeds the configured maximum length."""

    pass


class StorageIOError(StorageError):
    """Raised when the filesystem fails unexpectedly."""

    pass


class ResourceSetupError(FileKVError):
    """Raised when the listening socket cannot be set up or accept fails for good."""

    pass
