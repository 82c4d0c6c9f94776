"""Virtual filesystems the engine reads its inputs from and writes output to.

Paths are POSIX style. Relative paths resolve against the filesystem root,
so ``Model.stl`` and ``/Model.stl`` name the same file.
"""

from __future__ import annotations

import shutil
from abc import ABC, abstractmethod
from pathlib import Path, PurePosixPath


def normalize_path(path: str) -> PurePosixPath:
    """Resolve ``path`` against the virtual root, rejecting ``..`` escapes."""
    parts: list[str] = []
    for part in PurePosixPath("/", path).parts[1:]:
        if part == ".":
            continue
        if part == "..":
            if not parts:
                raise ValueError(f"path escapes filesystem root: {path}")
            parts.pop()
            continue
        parts.append(part)
    return PurePosixPath("/", *parts)


class VirtualFilesystem(ABC):
    """Minimal filesystem surface the runtime needs from an engine."""

    @abstractmethod
    def mkdir(self, path: str) -> None:
        """Create a directory. Fails if it already exists."""

    @abstractmethod
    def rmdir(self, path: str) -> None:
        """Remove an empty directory."""

    @abstractmethod
    def write_file(self, path: str, data: bytes | str) -> None:
        """Create or replace a file."""

    @abstractmethod
    def read_file(self, path: str) -> bytes:
        """Return a file's contents."""

    @abstractmethod
    def unlink(self, path: str) -> None:
        """Delete a file."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Whether a file or directory exists at ``path``."""

    @abstractmethod
    def listdir(self, path: str) -> list[str]:
        """Names of the entries directly inside a directory, sorted."""


class MemoryFilesystem(VirtualFilesystem):
    """Dict-backed in-memory filesystem."""

    def __init__(self) -> None:
        self._files: dict[PurePosixPath, bytes] = {}
        self._dirs: set[PurePosixPath] = {PurePosixPath("/")}

    def _require_parent(self, path: PurePosixPath) -> None:
        if path.parent not in self._dirs:
            raise FileNotFoundError(f"No such directory: {path.parent}")

    def mkdir(self, path: str) -> None:
        target = normalize_path(path)
        if target in self._dirs or target in self._files:
            raise FileExistsError(f"File exists: {target}")
        self._require_parent(target)
        self._dirs.add(target)

    def rmdir(self, path: str) -> None:
        target = normalize_path(path)
        if target not in self._dirs:
            raise FileNotFoundError(f"No such directory: {target}")
        if target == PurePosixPath("/"):
            raise PermissionError("Cannot remove filesystem root")
        if self.listdir(path):
            raise OSError(f"Directory not empty: {target}")
        self._dirs.remove(target)

    def write_file(self, path: str, data: bytes | str) -> None:
        target = normalize_path(path)
        if target in self._dirs:
            raise IsADirectoryError(f"Is a directory: {target}")
        self._require_parent(target)
        self._files[target] = data.encode("utf-8") if isinstance(data, str) else bytes(data)

    def read_file(self, path: str) -> bytes:
        target = normalize_path(path)
        try:
            return self._files[target]
        except KeyError:
            raise FileNotFoundError(f"No such file: {target}") from None

    def unlink(self, path: str) -> None:
        target = normalize_path(path)
        if target not in self._files:
            raise FileNotFoundError(f"No such file: {target}")
        del self._files[target]

    def exists(self, path: str) -> bool:
        target = normalize_path(path)
        return target in self._files or target in self._dirs

    def listdir(self, path: str) -> list[str]:
        target = normalize_path(path)
        if target not in self._dirs:
            raise FileNotFoundError(f"No such directory: {target}")
        entries = [p.name for p in self._files if p.parent == target]
        entries += [d.name for d in self._dirs if d.parent == target and d != target]
        return sorted(entries)


class DirectoryFilesystem(VirtualFilesystem):
    """Virtual filesystem rooted in a real host directory."""

    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def host_path(self, path: str) -> Path:
        """Host path backing the virtual ``path``."""
        relative = normalize_path(path).relative_to("/")
        return self.root.joinpath(*relative.parts)

    def mkdir(self, path: str) -> None:
        self.host_path(path).mkdir()

    def rmdir(self, path: str) -> None:
        self.host_path(path).rmdir()

    def write_file(self, path: str, data: bytes | str) -> None:
        payload = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        self.host_path(path).write_bytes(payload)

    def read_file(self, path: str) -> bytes:
        return self.host_path(path).read_bytes()

    def unlink(self, path: str) -> None:
        self.host_path(path).unlink()

    def exists(self, path: str) -> bool:
        return self.host_path(path).exists()

    def listdir(self, path: str) -> list[str]:
        return sorted(entry.name for entry in self.host_path(path).iterdir())

    def destroy(self) -> None:
        """Delete the backing directory and everything in it."""
        shutil.rmtree(self.root, ignore_errors=True)


__all__ = [
    "VirtualFilesystem",
    "MemoryFilesystem",
    "DirectoryFilesystem",
    "normalize_path",
]
