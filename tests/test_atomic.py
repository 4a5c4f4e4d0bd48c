"""Tests for claude_restore.atomic module."""

import os
import stat
import threading
from pathlib import Path
from unittest.mock import patch

from claude_restore.atomic import atomic_copy_file, atomic_write_bytes, atomic_write_text
from claude_restore.errors import INTERNAL_ERROR


class TestAtomicWriteText:
    """Tests for atomic_write_text()."""

    def test_creates_file(self, tmp_path: Path):
        """atomic_write_text creates a new file."""
        file_path = tmp_path / "test.txt"

        result = atomic_write_text(file_path, "hello world")

        assert result.is_ok()
        assert result.unwrap() == file_path
        assert file_path.read_text() == "hello world"

    def test_overwrites_existing_file(self, tmp_path: Path):
        """atomic_write_text overwrites existing file content."""
        file_path = tmp_path / "test.txt"
        file_path.write_text("old content")

        result = atomic_write_text(file_path, "new content")

        assert result.is_ok()
        assert file_path.read_text() == "new content"

    def test_creates_parent_directories(self, tmp_path: Path):
        """atomic_write_text creates parent directories if needed."""
        file_path = tmp_path / "src" / "components" / "App.tsx"

        result = atomic_write_text(file_path, "export {}")

        assert result.is_ok()
        assert file_path.read_text() == "export {}"

    def test_sets_default_permissions(self, tmp_path: Path):
        """Restored files are owner read/write, readable by others."""
        file_path = tmp_path / "test.txt"

        atomic_write_text(file_path, "content")

        mode = file_path.stat().st_mode
        assert mode & stat.S_IRWXU == stat.S_IRUSR | stat.S_IWUSR
        assert mode & stat.S_IRGRP == stat.S_IRGRP
        assert mode & stat.S_IROTH == stat.S_IROTH

    def test_sets_custom_permissions(self, tmp_path: Path):
        """atomic_write_text respects custom mode parameter."""
        file_path = tmp_path / "bundle.json"

        atomic_write_text(file_path, "{}", mode=0o600)

        mode = file_path.stat().st_mode
        assert mode & stat.S_IRWXG == 0
        assert mode & stat.S_IRWXO == 0

    def test_handles_unicode_content(self, tmp_path: Path):
        """atomic_write_text writes UTF-8."""
        file_path = tmp_path / "test.txt"
        content = "Hello 世界 🌍"

        atomic_write_text(file_path, content)

        assert file_path.read_bytes() == content.encode("utf-8")

    def test_handles_empty_content(self, tmp_path: Path):
        file_path = tmp_path / "empty.txt"

        result = atomic_write_text(file_path, "")

        assert result.is_ok()
        assert file_path.read_text() == ""

    def test_preserves_newlines(self, tmp_path: Path):
        """Line endings are written verbatim."""
        file_path = tmp_path / "crlf.txt"

        atomic_write_text(file_path, "a\r\nb\n")

        assert file_path.read_bytes() == b"a\r\nb\n"


class TestAtomicWriteFailures:
    """Tests for error handling in atomic writes."""

    def test_returns_error_on_permission_denied(self, tmp_path: Path):
        """PermissionError becomes an Err instead of raising."""
        file_path = tmp_path / "test.txt"

        with patch("claude_restore.atomic.os.replace", side_effect=PermissionError("denied")):
            result = atomic_write_text(file_path, "content")

        assert result.is_err()
        assert result.err().code == INTERNAL_ERROR
        assert "Permission denied" in result.err().message
        assert not file_path.exists()

    def test_cleans_temp_on_failure(self, tmp_path: Path):
        """A failed rename leaves no temp file behind."""
        file_path = tmp_path / "test.txt"

        with patch("claude_restore.atomic.os.replace", side_effect=OSError("disk full")):
            result = atomic_write_text(file_path, "content")

        assert result.is_err()
        assert "disk full" in result.err().message
        assert list(tmp_path.iterdir()) == []

    def test_parent_is_a_file(self, tmp_path: Path):
        """A file where a directory should be is reported, not raised."""
        blocker = tmp_path / "src"
        blocker.write_text("not a directory")

        result = atomic_write_text(blocker / "index.ts", "x")

        assert result.is_err()
        assert result.err().context["path"] == str(blocker / "index.ts")

    def test_no_temp_files_left_behind(self, tmp_path: Path):
        """Successful writes leave only the target."""
        atomic_write_text(tmp_path / "a.txt", "a")
        atomic_write_text(tmp_path / "a.txt", "b")

        assert [p.name for p in tmp_path.iterdir()] == ["a.txt"]


class TestAtomicCopyFile:
    """Tests for atomic_copy_file()."""

    def test_copies_bytes_verbatim(self, tmp_path: Path):
        """Binary blobs are copied byte for byte."""
        source = tmp_path / "abc@v1"
        source.write_bytes(b"\x89PNG\r\n\x1a\n\x00\xff")
        dest = tmp_path / "out" / "logo.png"

        result = atomic_copy_file(source, dest)

        assert result.is_ok()
        assert dest.read_bytes() == source.read_bytes()

    def test_missing_source(self, tmp_path: Path):
        dest = tmp_path / "out.txt"

        result = atomic_copy_file(tmp_path / "missing@v1", dest)

        assert result.is_err()
        assert result.err().code == INTERNAL_ERROR
        assert not dest.exists()


class TestAtomicWriteConcurrency:
    """Tests for concurrent write safety."""

    def test_survives_concurrent_writes(self, tmp_path: Path):
        """The target always holds one complete write."""
        file_path = tmp_path / "concurrent.txt"
        results = []

        def write(index: int):
            results.append(atomic_write_bytes(file_path, f"content-{index}".encode()).is_ok())

        threads = [threading.Thread(target=write, args=(i,)) for i in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert all(results)
        content = file_path.read_text()
        assert content.startswith("content-")
        assert int(content.split("-")[1]) in range(10)
        assert not [p for p in os.listdir(tmp_path) if p.endswith(".tmp")]
