"""
Unit tests for infrastructure components.
"""

import os
import socket
import stat

import pytest

from filekv.core.errors import ResourceSetupError
from filekv.infrastructure.filesystem import TEMP_PREFIX, MockFileSystem, RealFileSystem
from filekv.infrastructure.network import open_listener


class TestMockFileSystem:
    """Tests for MockFileSystem."""

    def test_exists_returns_false_for_nonexistent_file(self):
        fs = MockFileSystem()
        assert fs.exists("/db/missing") is False

    def test_create_and_read(self):
        fs = MockFileSystem()
        fs.create_exclusive("/db/key", b"value", 0o644)
        assert fs.read("/db/key", 100) == b"value"
        assert fs.mode_of("/db/key") == 0o644

    def test_read_respects_limit(self):
        fs = MockFileSystem()
        fs.put("/db/key", b"0123456789")
        assert fs.read("/db/key", 4) == b"0123"

    def test_create_existing_raises(self):
        fs = MockFileSystem()
        fs.create_exclusive("/db/key", b"one", 0o644)
        with pytest.raises(FileExistsError):
            fs.create_exclusive("/db/key", b"two", 0o644)
        assert fs.read("/db/key", 100) == b"one"

    def test_delete(self):
        fs = MockFileSystem()
        fs.put("/db/key", b"value")
        fs.delete("/db/key")
        assert fs.exists("/db/key") is False

    def test_delete_nonexistent_raises(self):
        fs = MockFileSystem()
        with pytest.raises(FileNotFoundError):
            fs.delete("/db/missing")

    def test_read_nonexistent_raises(self):
        fs = MockFileSystem()
        with pytest.raises(FileNotFoundError):
            fs.read("/db/missing", 100)

    def test_injected_error(self):
        fs = MockFileSystem()
        fs.error = PermissionError("denied")
        with pytest.raises(PermissionError):
            fs.exists("/db/key")


class TestRealFileSystem:
    """Tests for RealFileSystem against a temporary directory."""

    def test_create_exclusive_writes_exact_bytes(self, tmp_path):
        fs = RealFileSystem()
        path = str(tmp_path / "perro")

        fs.create_exclusive(path, b"dog", 0o644)

        assert (tmp_path / "perro").read_bytes() == b"dog"
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o644

    def test_create_exclusive_leaves_no_temp_files(self, tmp_path):
        fs = RealFileSystem()
        fs.create_exclusive(str(tmp_path / "a"), b"1", 0o644)

        assert sorted(os.listdir(tmp_path)) == ["a"]

    def test_create_exclusive_does_not_overwrite(self, tmp_path):
        fs = RealFileSystem()
        path = str(tmp_path / "key")
        fs.create_exclusive(path, b"first", 0o644)

        with pytest.raises(FileExistsError):
            fs.create_exclusive(path, b"second", 0o644)

        assert (tmp_path / "key").read_bytes() == b"first"
        assert not [n for n in os.listdir(tmp_path) if n.startswith(TEMP_PREFIX)]

    def test_exists(self, tmp_path):
        fs = RealFileSystem()
        (tmp_path / "present").write_bytes(b"x")

        assert fs.exists(str(tmp_path / "present")) is True
        assert fs.exists(str(tmp_path / "absent")) is False

    def test_read_limit(self, tmp_path):
        fs = RealFileSystem()
        (tmp_path / "big").write_bytes(b"a" * 50)
        assert fs.read(str(tmp_path / "big"), 10) == b"a" * 10

    def test_delete_missing_raises(self, tmp_path):
        fs = RealFileSystem()
        with pytest.raises(FileNotFoundError):
            fs.delete(str(tmp_path / "absent"))

    def test_ensure_dir_creates_with_mode(self, tmp_path):
        fs = RealFileSystem()
        path = str(tmp_path / "db")
        old_umask = os.umask(0o022)
        try:
            fs.ensure_dir(path, 0o755)
            fs.ensure_dir(path, 0o755)  # Second call is a no-op
        finally:
            os.umask(old_umask)

        assert os.path.isdir(path)
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o755


class TestOpenListener:
    """Tests for open_listener."""

    def test_listens_on_ephemeral_port(self):
        sock = open_listener("127.0.0.1", 0)
        try:
            host, port = sock.getsockname()[:2]
            assert host == "127.0.0.1"
            assert port > 0

            client = socket.create_connection((host, port), timeout=1.0)
            client.close()
        finally:
            sock.close()

    def test_port_in_use_raises(self):
        first = open_listener("127.0.0.1", 0)
        try:
            port = first.getsockname()[1]
            with pytest.raises(ResourceSetupError, match="Cannot listen"):
                open_listener("127.0.0.1", port)
        finally:
            first.close()
