"""
FILEKV - Record Store

Maps keys to files under the storage root and performs create, read,
delete and existence checks against them. One file per record, named
after the key, holding exactly the value bytes.
"""

import logging
import os
from typing import Optional

from filekv.core.errors import (
    InvalidKeyError,
    KeyExistsError,
    KeyNotFoundError,
    StorageIOError,
    ValueTooLargeError,
)
from filekv.core.types import MAX_VALUE_LENGTH
from filekv.infrastructure.filesystem import TEMP_PREFIX, FileSystemAdapter, RealFileSystem
from filekv.storage.locks import KeyLockTable

logger = logging.getLogger(__name__)

DIR_MODE = 0o755
FILE_MODE = 0o644

# Same set bytes.split() separates on.
ASCII_WHITESPACE = frozenset(" \t\n\r\x0b\x0c")


class RecordStore:
    """
    File-per-key record store.

    Every operation validates the key, makes sure the storage root exists
    and runs under the key's lock, so exists-then-act sequences stay atomic
    when connections are handled in parallel.
    """

    def __init__(
        self,
        root: str,
        fs: Optional[FileSystemAdapter] = None,
        max_value_length: int = MAX_VALUE_LENGTH,
        dir_mode: int = DIR_MODE,
        file_mode: int = FILE_MODE,
    ):
        """
        Initialize record store.

        Args:
            root: Storage root directory (created lazily on first use)
            fs: Filesystem adapter (RealFileSystem if omitted)
            max_value_length: Largest value accepted or returned, in bytes
            dir_mode: Permissions for the storage root
            file_mode: Permissions for record files
        """
        self._root = root
        self._fs = fs if fs is not None else RealFileSystem()
        self._max_value_length = max_value_length
        self._dir_mode = dir_mode
        self._file_mode = file_mode
        self._locks = KeyLockTable()

    @property
    def root(self) -> str:
        return self._root

    @property
    def max_value_length(self) -> int:
        return self._max_value_length

    def validate_key(self, key: str) -> None:
        """
        Check that a key can be used as a file name inside the storage root.

        Raises:
            InvalidKeyError: If the key is empty, contains whitespace, a path
                separator or NUL, is '.' or '..', or uses the temp-file prefix
        """
        if not key:
            raise InvalidKeyError(key, "Key must not be empty")

        if any(ch in ASCII_WHITESPACE for ch in key):
            raise InvalidKeyError(key, f"Key contains whitespace: {key!r}")

        separators = {"/", "\0", os.sep}
        if os.altsep:
            separators.add(os.altsep)
        if any(sep in key for sep in separators):
            raise InvalidKeyError(key, f"Key contains a path separator: {key!r}")

        if key in (".", "..") or key.startswith(TEMP_PREFIX):
            raise InvalidKeyError(key, f"Reserved key: {key!r}")

    def path_for(self, key: str) -> str:
        """
        Build the record path for a key.

        Args:
            key: Record key

        Returns:
            ``<root>/<key>``

        Raises:
            InvalidKeyError: If the key is invalid or the path escapes the root
        """
        self.validate_key(key)
        path = os.path.join(self._root, key)

        root = os.path.normpath(os.path.abspath(self._root))
        if os.path.dirname(os.path.normpath(os.path.abspath(path))) != root:
            raise InvalidKeyError(key, f"Key escapes storage root: {key!r}")

        logger.debug(f"Record path for {key!r}: {path}")
        return path

    def _ensure_root(self) -> None:
        try:
            self._fs.ensure_dir(self._root, self._dir_mode)
        except OSError as e:
            raise StorageIOError("", f"Cannot create storage root {self._root}: {e}") from e

    def _exists(self, key: str, path: str) -> bool:
        try:
            return self._fs.exists(path)
        except OSError as e:
            raise StorageIOError(key, f"Cannot stat {path}: {e}") from e

    def exists(self, key: str) -> bool:
        """
        Check whether a record exists.

        Returns:
            True iff the record file is present

        Raises:
            InvalidKeyError: If the key is invalid
            StorageIOError: On filesystem errors other than 'not found'
        """
        path = self.path_for(key)
        self._ensure_root()
        with self._locks.hold(key):
            return self._exists(key, path)

    def create(self, key: str, value: bytes) -> None:
        """
        Create a record. Existing records are never overwritten.

        Args:
            key: Record key
            value: Exact bytes to store

        Raises:
            InvalidKeyError: If the key is invalid
            ValueTooLargeError: If the value exceeds max_value_length
            KeyExistsError: If the record already exists
            StorageIOError: On unexpected filesystem errors
        """
        path = self.path_for(key)
        if len(value) > self._max_value_length:
            raise ValueTooLargeError(
                key, f"Value of {len(value)} bytes exceeds {self._max_value_length}"
            )

        self._ensure_root()
        with self._locks.hold(key):
            if self._exists(key, path):
                raise KeyExistsError(key)
            try:
                self._fs.create_exclusive(path, value, self._file_mode)
            except FileExistsError as e:
                # Created behind our back by another process
                raise KeyExistsError(key) from e
            except OSError as e:
                raise StorageIOError(key, f"Cannot create {path}: {e}") from e

        logger.debug(f"Created record {key!r} ({len(value)} bytes)")

    def read(self, key: str) -> bytes:
        """
        Read a record's value.

        Returns:
            The stored bytes

        Raises:
            InvalidKeyError: If the key is invalid
            KeyNotFoundError: If the record doesn't exist
            ValueTooLargeError: If the stored file is longer than max_value_length
            StorageIOError: On unexpected filesystem errors
        """
        path = self.path_for(key)
        self._ensure_root()
        with self._locks.hold(key):
            try:
                data = self._fs.read(path, self._max_value_length + 1)
            except FileNotFoundError as e:
                raise KeyNotFoundError(key) from e
            except OSError as e:
                raise StorageIOError(key, f"Cannot read {path}: {e}") from e

        if len(data) > self._max_value_length:
            raise ValueTooLargeError(
                key, f"Stored value for {key!r} exceeds {self._max_value_length} bytes"
            )
        return data

    def delete(self, key: str) -> None:
        """
        Delete a record. Deleting a missing record is an error.

        Raises:
            InvalidKeyError: If the key is invalid
            KeyNotFoundError: If the record doesn't exist
            StorageIOError: On unexpected filesystem errors
        """
        path = self.path_for(key)
        self._ensure_root()
        with self._locks.hold(key):
            if not self._exists(key, path):
                raise KeyNotFoundError(key)
            try:
                self._fs.delete(path)
            except FileNotFoundError as e:
                raise KeyNotFoundError(key) from e
            except OSError as e:
                raise StorageIOError(key, f"Cannot delete {path}: {e}") from e

        logger.debug(f"Deleted record {key!r}")
