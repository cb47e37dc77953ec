"""Shared data types for layerfs."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, NamedTuple

__all__ = [
    "CancelToken",
    "ConflictResolution",
    "CopyProgress",
    "CopyResult",
    "DeleteResult",
    "Locator",
    "MountPoint",
    "PhysicalEntry",
    "WriteMode",
]

# Provider specific handle for a physical file: a path string for folders,
# a tuple for archive members and in-memory stores.
Locator = Any


@dataclass(frozen=True)
class MountPoint:
    """Binding of a physical source to a location in the virtual tree.

    Attributes:
        virtual_path: Normalized directory path the source is mounted at.
        physical_path: Location handed to the provider.
        provider_id: Name of the provider that reads the source.
    """

    virtual_path: str
    physical_path: str
    provider_id: str

    def __post_init__(self) -> None:
        """Validate invariants."""
        if not self.virtual_path.startswith("/") or not self.virtual_path.endswith("/"):
            raise ValueError(f"virtual_path must be a directory path: {self.virtual_path!r}")
        if not self.physical_path:
            raise ValueError("physical_path cannot be empty")
        if not self.provider_id:
            raise ValueError("provider_id cannot be empty")

    def __str__(self) -> str:
        return f"{self.physical_path} -> {self.virtual_path} ({self.provider_id})"


@dataclass(frozen=True)
class PhysicalEntry:
    """One directory or file reported by a provider.

    Attributes:
        relative_path: Posix path relative to the mounted physical root,
            without a leading separator.
        is_directory: True for directories.
        size: Size in bytes (0 for directories).
        create_date: Creation timestamp.
        modified_date: Last modification timestamp.
        locator: Provider specific handle used to open the file.
    """

    relative_path: str
    is_directory: bool
    size: int
    create_date: datetime
    modified_date: datetime
    locator: Locator = None

    @property
    def name(self) -> str:
        """Last segment of the relative path."""
        return self.relative_path.rstrip("/").rsplit("/", 1)[-1]


class WriteMode(Enum):
    """How a write-area stream opens its target file."""

    CREATE = "create"
    OPEN = "open"
    OPEN_OR_CREATE = "open_or_create"
    TRUNCATE = "truncate"
    APPEND = "append"

    @property
    def requires_existing(self) -> bool:
        """True for modes that fail when the file does not exist."""
        return self in (WriteMode.OPEN, WriteMode.TRUNCATE, WriteMode.APPEND)


@dataclass(frozen=True)
class CopyProgress:
    """Cumulative progress reported after each unit of copy work.

    Attributes:
        current_path: Virtual path of the entry that was just processed.
        directories_copied: Directories created so far.
        files_copied: Files copied so far.
        total_directories: Directories the copy will create.
        total_files: Files the copy will write.
    """

    current_path: str
    directories_copied: int
    files_copied: int
    total_directories: int
    total_files: int


class CopyResult(NamedTuple):
    """Counts returned by a completed copy."""

    directory_count: int
    file_count: int


class DeleteResult(NamedTuple):
    """Outcome of a directory deletion.

    Attributes:
        completed: False if the deletion was cancelled part way.
        physical: True if anything was removed from the write location;
            False when entries were only hidden until the next refresh.
    """

    completed: bool
    physical: bool


class ConflictResolution(Enum):
    """Answer to a name conflict during a bulk copy, move, export or import.

    The ``*_ALL`` answers are kept for the rest of the operation.
    """

    OVERWRITE = "overwrite"
    OVERWRITE_ALL = "overwrite_all"
    SKIP = "skip"
    SKIP_ALL = "skip_all"
    RENAME = "rename"
    RENAME_ALL = "rename_all"
    CANCEL = "cancel"
    FAIL = "fail"

    @property
    def applies_to_all(self) -> bool:
        return self in (
            ConflictResolution.OVERWRITE_ALL,
            ConflictResolution.SKIP_ALL,
            ConflictResolution.RENAME_ALL,
        )

    @property
    def overwrites(self) -> bool:
        return self in (ConflictResolution.OVERWRITE, ConflictResolution.OVERWRITE_ALL)

    @property
    def skips(self) -> bool:
        return self in (ConflictResolution.SKIP, ConflictResolution.SKIP_ALL)

    @property
    def renames(self) -> bool:
        return self in (ConflictResolution.RENAME, ConflictResolution.RENAME_ALL)


class CancelToken:
    """Cooperative cancellation flag shared between threads."""

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request cancellation."""
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        """True once cancel() has been called."""
        return self._event.is_set()
