# noqa: D104
"""Tests for virtual filesystems."""

from __future__ import annotations

from pathlib import Path

import pytest

from cura_runtime.filesystem import DirectoryFilesystem, MemoryFilesystem, normalize_path


class TestNormalizePath:
    """Tests for path normalization."""

    def test_relative_and_absolute_match(self) -> None:
        """Test relative paths resolve against the root."""
        assert normalize_path("Model.stl") == normalize_path("/Model.stl")

    def test_dot_segments(self) -> None:
        """Test . and .. segments collapse."""
        assert str(normalize_path("definitions/./x/../printer.def.json")) == (
            "/definitions/printer.def.json"
        )

    def test_escape_rejected(self) -> None:
        """Test paths cannot climb above the root."""
        with pytest.raises(ValueError):
            normalize_path("../etc/passwd")


class TestMemoryFilesystem:
    """Tests for MemoryFilesystem."""

    def test_write_and_read(self) -> None:
        """Test round trip of str and bytes payloads."""
        fs = MemoryFilesystem()
        fs.write_file("Model.stl", b"solid")
        fs.write_file("/note.txt", "hello")
        assert fs.read_file("/Model.stl") == b"solid"
        assert fs.read_file("note.txt") == b"hello"

    def test_write_requires_parent(self) -> None:
        """Test writing into a missing directory fails."""
        fs = MemoryFilesystem()
        with pytest.raises(FileNotFoundError):
            fs.write_file("/definitions/printer.def.json", "{}")

    def test_mkdir_twice_fails(self) -> None:
        """Test mkdir on an existing directory fails."""
        fs = MemoryFilesystem()
        fs.mkdir("/definitions")
        with pytest.raises(FileExistsError):
            fs.mkdir("/definitions")

    def test_rmdir_requires_empty(self) -> None:
        """Test rmdir refuses a non-empty directory."""
        fs = MemoryFilesystem()
        fs.mkdir("/definitions")
        fs.write_file("/definitions/a.def.json", "{}")
        with pytest.raises(OSError):
            fs.rmdir("/definitions")
        fs.unlink("/definitions/a.def.json")
        fs.rmdir("/definitions")
        assert not fs.exists("/definitions")

    def test_unlink_missing(self) -> None:
        """Test unlinking a missing file fails."""
        with pytest.raises(FileNotFoundError):
            MemoryFilesystem().unlink("Model.gcode")

    def test_listdir(self) -> None:
        """Test listdir returns direct children only."""
        fs = MemoryFilesystem()
        fs.mkdir("/definitions")
        fs.mkdir("/definitions/nested")
        fs.write_file("/definitions/b.def.json", "{}")
        fs.write_file("/definitions/a.def.json", "{}")
        fs.write_file("/definitions/nested/c.def.json", "{}")
        assert fs.listdir("/definitions") == ["a.def.json", "b.def.json", "nested"]


class TestDirectoryFilesystem:
    """Tests for DirectoryFilesystem."""

    def test_files_land_under_root(self, tmp_path: Path) -> None:
        """Test virtual paths map under the host root."""
        fs = DirectoryFilesystem(tmp_path / "root")
        fs.mkdir("/definitions")
        fs.write_file("/definitions/printer.def.json", '{"name": "x"}')
        assert (tmp_path / "root" / "definitions" / "printer.def.json").exists()
        assert fs.listdir("definitions") == ["printer.def.json"]

    def test_escape_rejected(self, tmp_path: Path) -> None:
        """Test virtual paths cannot reach outside the root."""
        fs = DirectoryFilesystem(tmp_path / "root")
        with pytest.raises(ValueError):
            fs.write_file("../outside.txt", "x")

    def test_destroy(self, tmp_path: Path) -> None:
        """Test destroy removes the backing directory."""
        fs = DirectoryFilesystem(tmp_path / "root")
        fs.write_file("Model.stl", b"solid")
        fs.destroy()
        assert not (tmp_path / "root").exists()
