"""Base provider implementation with shared behavior.

Concrete providers differ in how they list a source and open its files; the
ordering rules and timestamp handling are common and live here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from datetime import datetime, timezone
from typing import BinaryIO

from layerfs.types import Locator, PhysicalEntry


def utc_timestamp(value: float) -> datetime:
    """Convert a POSIX timestamp to an aware UTC datetime."""
    return datetime.fromtimestamp(value, tz=timezone.utc)


def path_sort_key(relative_path: str) -> tuple[str, ...]:
    """Sort key that places every directory before its contents."""
    return tuple(part.casefold() for part in relative_path.strip("/").split("/"))


def implied_directories(file_paths: Iterable[str]) -> set[str]:
    """Collect every ancestor directory of the given relative file paths."""
    directories: set[str] = set()
    for file_path in file_paths:
        parts = file_path.strip("/").split("/")[:-1]
        for depth in range(1, len(parts) + 1):
            directories.add("/".join(parts[:depth]))
    return directories


class BaseProvider(ABC):
    """Base class for provider implementations.

    Subclasses implement ``can_read``, ``_entries`` and ``open_read``;
    ``enumerate`` guarantees the deterministic parent-first order the merge
    algorithm relies on.
    """

    name: str
    description: str = ""

    @abstractmethod
    def can_read(self, physical_path: str) -> bool:
        """Check whether this provider understands a physical location."""
        ...

    @abstractmethod
    def _entries(self, physical_path: str) -> Iterable[PhysicalEntry]:
        """Produce the raw entries of a location in any order."""
        ...

    @abstractmethod
    def open_read(self, locator: Locator) -> BinaryIO:
        """Open a read stream for a file reported by enumerate."""
        ...

    def enumerate(self, physical_path: str) -> Iterator[PhysicalEntry]:
        """Enumerate entries sorted so parents precede their children."""
        entries = sorted(self._entries(physical_path), key=lambda e: path_sort_key(e.relative_path))
        return iter(entries)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
