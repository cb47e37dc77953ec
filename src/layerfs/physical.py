"""Writable physical locations behind a write area.

LocalWriter wraps standard library Path and shutil operations on a directory;
MemoryWriter writes into a MemoryStore. Both satisfy the PhysicalWriter
protocol structurally. Relative paths use "/" and never start with it.
"""

from __future__ import annotations

import io
import logging
import os
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO

from layerfs.errors import IOConflictError
from layerfs.providers.folder import FolderProvider
from layerfs.providers.memory import MemoryStore
from layerfs.types import PhysicalEntry, WriteMode

logger = logging.getLogger(__name__)


@contextmanager
def translate_os_errors(action: str, target: str) -> Iterator[None]:
    """Re-raise OSError from physical I/O as IOConflictError."""
    try:
        yield
    except IOConflictError:
        raise
    except OSError as e:
        logger.debug("Cannot %s '%s': %s", action, target, e)
        raise IOConflictError(f"Cannot {action} '{target}': {e.strerror or e}") from e


class LocalWriter:
    """Write access to a directory on the local disk."""

    def __init__(self, location: str | Path) -> None:
        self.root = Path(location).expanduser().resolve()
        self.location = str(self.root)
        self._describer = FolderProvider()

    def path_for(self, relative_path: str) -> Path:
        """Absolute path of a relative write-area path."""
        return self.root.joinpath(*[p for p in relative_path.split("/") if p])

    def prepare(self) -> None:
        """Create the write location if missing."""
        with translate_os_errors("create", self.location):
            self.root.mkdir(parents=True, exist_ok=True)

    def exists(self, relative_path: str) -> bool:
        """Check if a path exists."""
        return self.path_for(relative_path).exists()

    def is_dir(self, relative_path: str) -> bool:
        """Check if a path is a directory."""
        return self.path_for(relative_path).is_dir()

    def list_names(self, relative_path: str) -> list[str]:
        """Names inside a directory with their on-disk spelling."""
        path = self.path_for(relative_path)
        if not path.is_dir():
            return []
        with translate_os_errors("list", str(path)):
            return sorted(os.listdir(path))

    def create_directory(self, relative_path: str) -> None:
        """Create a directory and its parents."""
        path = self.path_for(relative_path)
        with translate_os_errors("create directory", str(path)):
            path.mkdir(parents=True, exist_ok=True)

    def delete_directory(self, relative_path: str, recursive: bool = True) -> None:
        """Remove a directory tree, or only an empty directory."""
        path = self.path_for(relative_path)
        with translate_os_errors("delete directory", str(path)):
            if recursive:
                shutil.rmtree(path)
            else:
                path.rmdir()

    def delete_file(self, relative_path: str) -> None:
        """Remove a file."""
        path = self.path_for(relative_path)
        with translate_os_errors("delete file", str(path)):
            path.unlink()

    def rename(self, relative_path: str, new_name: str) -> str:
        """Rename a file or directory within its parent."""
        path = self.path_for(relative_path)
        target = path.with_name(new_name)
        with translate_os_errors("rename", str(path)):
            if target.exists() and not _same_file(path, target):
                raise FileExistsError(17, "File exists", str(target))
            path.rename(target)
        return target.relative_to(self.root).as_posix()

    def open_write(self, relative_path: str, mode: WriteMode) -> BinaryIO:
        """Open a file for writing.

        CREATE creates or truncates, OPEN keeps content with the position at
        the start, OPEN_OR_CREATE opens or creates, TRUNCATE empties an
        existing file and APPEND positions at the end.
        """
        path = self.path_for(relative_path)
        with translate_os_errors("open", str(path)):
            if mode is WriteMode.CREATE:
                return open(path, "wb")
            if mode is WriteMode.APPEND:
                if not path.is_file():
                    raise FileNotFoundError(2, "No such file", str(path))
                return open(path, "ab")
            if mode is WriteMode.OPEN_OR_CREATE:
                fd = os.open(path, os.O_RDWR | os.O_CREAT, 0o666)
                return os.fdopen(fd, "r+b")
            stream = open(path, "r+b")
            if mode is WriteMode.TRUNCATE:
                stream.truncate(0)
            return stream

    def stat(self, relative_path: str) -> PhysicalEntry:
        """Describe an existing entry."""
        path = self.path_for(relative_path)
        with translate_os_errors("stat", str(path)):
            return self._describer.describe(path, relative_path.strip("/"))

    def __repr__(self) -> str:
        return f"LocalWriter({self.location!r})"


def _same_file(left: Path, right: Path) -> bool:
    # Case-only renames on case-insensitive disks
    try:
        return os.path.samefile(left, right)
    except OSError:
        return False


class _MemoryWriteStream(io.BytesIO):
    """Buffer that stores its content into a MemoryStore on close."""

    def __init__(self, store: MemoryStore, relative_path: str, initial: bytes = b"") -> None:
        super().__init__(initial)
        self._store = store
        self._relative_path = relative_path

    def flush(self) -> None:
        super().flush()
        if not self.closed:
            self._store.write_file(self._relative_path, self.getvalue())

    def close(self) -> None:
        if not self.closed:
            self.flush()
        super().close()


class MemoryWriter:
    """Write access to an in-memory store (RAM disk)."""

    def __init__(self, store: MemoryStore) -> None:
        self.store = store
        self.location = store.location

    def prepare(self) -> None:
        """Nothing to create; stores always exist."""

    def exists(self, relative_path: str) -> bool:
        return self.store.exists(relative_path)

    def is_dir(self, relative_path: str) -> bool:
        return self.store.is_dir(relative_path)

    def list_names(self, relative_path: str) -> list[str]:
        return self.store.names(relative_path)

    def create_directory(self, relative_path: str) -> None:
        with translate_os_errors("create directory", relative_path):
            self.store.add_directory(relative_path)

    def delete_directory(self, relative_path: str, recursive: bool = True) -> None:
        with translate_os_errors("delete directory", relative_path):
            self.store.remove_directory(relative_path, recursive=recursive)

    def delete_file(self, relative_path: str) -> None:
        with translate_os_errors("delete file", relative_path):
            self.store.delete_file(relative_path)

    def rename(self, relative_path: str, new_name: str) -> str:
        with translate_os_errors("rename", relative_path):
            return self.store.rename(relative_path, new_name)

    def open_write(self, relative_path: str, mode: WriteMode) -> BinaryIO:
        """Open a buffered stream; content reaches the store on flush or close."""
        with translate_os_errors("open", relative_path):
            existing = self.store.is_file(relative_path)
            if mode.requires_existing and not existing:
                raise FileNotFoundError(2, "No such file", relative_path)
            keep = existing and mode in (WriteMode.OPEN, WriteMode.OPEN_OR_CREATE, WriteMode.APPEND)
            initial = self.store.read_file(relative_path) if keep else b""
            # Materialize the file now so it exists while the stream is open
            self.store.write_file(relative_path, initial)
            stream = _MemoryWriteStream(self.store, relative_path, initial)
            if mode is WriteMode.APPEND:
                stream.seek(0, io.SEEK_END)
            return stream

    def stat(self, relative_path: str) -> PhysicalEntry:
        with translate_os_errors("stat", relative_path):
            return self.store.stat(relative_path)

    def __repr__(self) -> str:
        return f"MemoryWriter({self.location!r})"
