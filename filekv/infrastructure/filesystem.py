"""
FILEKV - Filesystem Abstraction

Provides abstraction layer for the file I/O the record store performs.
This allows mocking in tests and keeps os calls in one place.
"""

import os
import tempfile
from typing import Dict, Optional, Protocol, Set

# Prefix of in-flight temp files inside the storage root
TEMP_PREFIX = ".filekv-tmp-"


class FileSystemAdapter(Protocol):
    """Protocol for filesystem operations."""

    def exists(self, path: str) -> bool:
        """Check if a file exists. Errors other than 'not found' propagate."""
        ...

    def read(self, path: str, limit: int) -> bytes:
        """Read at most ``limit`` bytes of a file."""
        ...

    def create_exclusive(self, path: str, data: bytes, mode: int) -> None:
        """Create a file with full contents; raise FileExistsError if present."""
        ...

    def delete(self, path: str) -> None:
        """Delete a file; raise FileNotFoundError if absent."""
        ...

    def ensure_dir(self, path: str, mode: int) -> None:
        """Create a directory (and parents) if it doesn't exist."""
        ...


class RealFileSystem:
    """Real filesystem implementation."""

    def exists(self, path: str) -> bool:
        try:
            os.stat(path)
        except FileNotFoundError:
            return False
        return True

    def read(self, path: str, limit: int) -> bytes:
        with open(path, "rb") as f:
            return f.read(limit)

    def create_exclusive(self, path: str, data: bytes, mode: int) -> None:
        """
        Write to a temp file in the target directory, then hard-link it into place.

        The link fails with FileExistsError when the target exists, so a record
        is either absent or complete, and a concurrent create never overwrites.
        """
        directory = os.path.dirname(path) or "."
        fd, tmp_path = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=directory)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, mode)
            os.link(tmp_path, path)
        finally:
            os.unlink(tmp_path)

    def delete(self, path: str) -> None:
        os.remove(path)

    def ensure_dir(self, path: str, mode: int) -> None:
        os.makedirs(path, mode=mode, exist_ok=True)


class MockFileSystem:
    """Mock filesystem for testing."""

    def __init__(self):
        self._files: Dict[str, bytes] = {}
        self._modes: Dict[str, int] = {}
        self.dirs: Set[str] = set()
        # When set, every operation raises this error
        self.error: Optional[OSError] = None

    def _check(self) -> None:
        if self.error is not None:
            raise self.error

    def exists(self, path: str) -> bool:
        self._check()
        return path in self._files

    def read(self, path: str, limit: int) -> bytes:
        self._check()
        if path not in self._files:
            raise FileNotFoundError(f"File not found: {path}")
        return self._files[path][:limit]

    def create_exclusive(self, path: str, data: bytes, mode: int) -> None:
        self._check()
        if path in self._files:
            raise FileExistsError(f"File exists: {path}")
        self._files[path] = bytes(data)
        self._modes[path] = mode

    def delete(self, path: str) -> None:
        self._check()
        if path not in self._files:
            raise FileNotFoundError(f"File not found: {path}")
        del self._files[path]
        self._modes.pop(path, None)

    def ensure_dir(self, path: str, mode: int) -> None:
        self._check()
        self.dirs.add(path)

    def mode_of(self, path: str) -> int:
        """Get the mode a file was created with (testing helper)."""
        return self._modes[path]

    def put(self, path: str, data: bytes) -> None:
        """Place a file directly, bypassing create semantics (testing helper)."""
        self._files[path] = bytes(data)
