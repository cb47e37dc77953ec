"""In-memory stores and the provider that mounts them.

A store is a non-physical location addressed as ``mem://<name>``. It can be
mounted read-only like any other source, or written through a MemoryWriter
to act as a RAM-disk write area.
"""

from __future__ import annotations

import io
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import BinaryIO

from layerfs.providers.base import BaseProvider
from layerfs.types import Locator, PhysicalEntry

SCHEME = "mem://"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _clean(relative_path: str) -> str:
    return "/".join(part for part in relative_path.replace("\\", "/").split("/") if part)


@dataclass
class _StoredFile:
    data: bytes = b""
    create_date: datetime = field(default_factory=_now)
    modified_date: datetime = field(default_factory=_now)


@dataclass
class _StoredDirectory:
    create_date: datetime = field(default_factory=_now)


class MemoryStore:
    """Named tree of byte buffers.

    Paths are relative, "/" separated and compared exactly; the virtual
    tree above the store is responsible for case handling.
    """

    def __init__(self, name: str) -> None:
        if not name or "/" in name:
            raise ValueError(f"Invalid memory store name: {name!r}")
        self.name = name
        self._files: dict[str, _StoredFile] = {}
        self._directories: dict[str, _StoredDirectory] = {}
        self._lock = threading.RLock()

    @property
    def location(self) -> str:
        """Mountable location of this store."""
        return f"{SCHEME}{self.name}"

    def exists(self, relative_path: str) -> bool:
        path = _clean(relative_path)
        return not path or path in self._files or path in self._directories

    def is_dir(self, relative_path: str) -> bool:
        path = _clean(relative_path)
        return not path or path in self._directories

    def is_file(self, relative_path: str) -> bool:
        return _clean(relative_path) in self._files

    def names(self, relative_path: str = "") -> list[str]:
        """Names directly inside a directory; empty if it does not exist."""
        base = _clean(relative_path)
        if base and base not in self._directories:
            return []
        prefix = base + "/" if base else ""
        with self._lock:
            children = {
                p[len(prefix):]
                for p in (*self._directories, *self._files)
                if p.startswith(prefix) and "/" not in p[len(prefix):]
            }
        return sorted(children)

    def add_directory(self, relative_path: str) -> None:
        """Create a directory and any missing ancestors.

        Raises:
            FileExistsError: If a file occupies one of the segments.
        """
        parts = _clean(relative_path).split("/")
        with self._lock:
            for depth in range(1, len(parts) + 1):
                path = "/".join(parts[:depth])
                if not path:
                    continue
                if path in self._files:
                    raise FileExistsError(f"{path} is a file")
                self._directories.setdefault(path, _StoredDirectory())

    def remove_directory(self, relative_path: str, recursive: bool = True) -> None:
        """Remove a directory.

        Raises:
            FileNotFoundError: If the directory does not exist.
            OSError: If it is not empty and ``recursive`` is False.
        """
        path = _clean(relative_path)
        prefix = path + "/" if path else ""
        with self._lock:
            if path and path not in self._directories:
                raise FileNotFoundError(path)
            children = [p for p in (*self._files, *self._directories) if p.startswith(prefix)]
            if children and not recursive:
                raise OSError(f"Directory not empty: {path}")
            for child in children:
                self._files.pop(child, None)
                self._directories.pop(child, None)
            if path:
                del self._directories[path]

    def write_file(self, relative_path: str, data: bytes) -> None:
        """Store file content; the parent directory must exist."""
        path = _clean(relative_path)
        parent = path.rpartition("/")[0]
        with self._lock:
            if parent and parent not in self._directories:
                raise FileNotFoundError(f"Directory not found: {parent}")
            if path in self._directories:
                raise IsADirectoryError(path)
            stored = self._files.get(path)
            if stored is None:
                self._files[path] = _StoredFile(bytes(data))
            else:
                stored.data = bytes(data)
                stored.modified_date = _now()

    def read_file(self, relative_path: str) -> bytes:
        path = _clean(relative_path)
        try:
            return self._files[path].data
        except KeyError:
            raise FileNotFoundError(path) from None

    def delete_file(self, relative_path: str) -> None:
        path = _clean(relative_path)
        with self._lock:
            if self._files.pop(path, None) is None:
                raise FileNotFoundError(path)

    def rename(self, relative_path: str, new_name: str) -> str:
        """Rename a file or directory; returns the new relative path."""
        path = _clean(relative_path)
        parent = path.rpartition("/")[0]
        target = f"{parent}/{new_name}" if parent else new_name
        with self._lock:
            if target in self._files or target in self._directories:
                raise FileExistsError(target)
            if path in self._files:
                self._files[target] = self._files.pop(path)
                return target
            if path not in self._directories:
                raise FileNotFoundError(path)
            prefix = path + "/"
            for table in (self._files, self._directories):
                for key in [k for k in table if k == path or k.startswith(prefix)]:
                    table[target + key[len(path):]] = table.pop(key)
            return target

    def stat(self, relative_path: str) -> PhysicalEntry:
        path = _clean(relative_path)
        stored = self._files.get(path)
        if stored is not None:
            return PhysicalEntry(
                relative_path=path,
                is_directory=False,
                size=len(stored.data),
                create_date=stored.create_date,
                modified_date=stored.modified_date,
                locator=(self.name, path),
            )
        directory = self._directories.get(path)
        if directory is None:
            raise FileNotFoundError(path)
        return PhysicalEntry(path, True, 0, directory.create_date, directory.create_date, None)

    def entries(self, relative_path: str = "") -> Iterator[PhysicalEntry]:
        """Yield entries below a directory, relative to that directory."""
        base = _clean(relative_path)
        prefix = base + "/" if base else ""
        with self._lock:
            paths = [p for p in (*self._directories, *self._files) if p.startswith(prefix)]
        for path in paths:
            entry = self.stat(path)
            yield PhysicalEntry(
                relative_path=path[len(prefix):],
                is_directory=entry.is_directory,
                size=entry.size,
                create_date=entry.create_date,
                modified_date=entry.modified_date,
                locator=entry.locator,
            )

    def clear(self) -> None:
        with self._lock:
            self._files.clear()
            self._directories.clear()

    def __repr__(self) -> str:
        return f"MemoryStore({self.name!r}, files={len(self._files)})"


def parse_location(physical_path: str) -> tuple[str, str]:
    """Split ``mem://name/sub/path`` into the store name and inner path."""
    if not physical_path.startswith(SCHEME):
        raise ValueError(f"Not a memory location: {physical_path}")
    name, _, inner = physical_path[len(SCHEME):].partition("/")
    return name, _clean(inner)


class MemoryProvider(BaseProvider):
    """Mounts registered MemoryStore instances."""

    name = "memory"
    description = "In-memory store"

    def __init__(self) -> None:
        self.stores: dict[str, MemoryStore] = {}

    def register(self, store: MemoryStore) -> MemoryStore:
        """Make a store mountable under its location."""
        self.stores[store.name] = store
        return store

    def create_store(self, name: str) -> MemoryStore:
        """Create and register an empty store, or return the existing one."""
        return self.stores.get(name) or self.register(MemoryStore(name))

    def get_store(self, physical_path: str) -> MemoryStore:
        name, _ = parse_location(physical_path)
        try:
            return self.stores[name]
        except KeyError:
            raise FileNotFoundError(f"Memory store not registered: {name}") from None

    def can_read(self, physical_path: str) -> bool:
        """Claim ``mem://`` locations of registered stores."""
        if not physical_path.startswith(SCHEME):
            return False
        name, inner = parse_location(physical_path)
        store = self.stores.get(name)
        return store is not None and store.is_dir(inner)

    def _entries(self, physical_path: str) -> Iterator[PhysicalEntry]:
        _, inner = parse_location(physical_path)
        return self.get_store(physical_path).entries(inner)

    def open_read(self, locator: Locator) -> BinaryIO:
        """Return a copy of the stored bytes as a stream."""
        store_name, relative_path = locator
        try:
            store = self.stores[store_name]
        except KeyError:
            raise FileNotFoundError(f"Memory store not registered: {store_name}") from None
        return io.BytesIO(store.read_file(relative_path))
