"""Protocol definitions for the engine's collaborators.

Providers read physical sources, writers mutate the single writable location
behind a write area, and the notifier lets a writer patch the virtual tree
without a full remount. All concrete implementations satisfy these protocols
structurally (duck typing), so test doubles need no inheritance.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import TYPE_CHECKING, BinaryIO, Protocol, runtime_checkable

from layerfs.types import Locator, MountPoint, PhysicalEntry, WriteMode

if TYPE_CHECKING:
    from layerfs.tree import VirtualDirectory, VirtualFile


@runtime_checkable
class Provider(Protocol):
    """Protocol for read-only physical sources (folders, archives, ...)."""

    name: str

    def can_read(self, physical_path: str) -> bool:
        """Check whether this provider understands a physical location.

        Args:
            physical_path: Location passed to mount.

        Returns:
            True if the provider can enumerate the location.
        """
        ...

    def enumerate(self, physical_path: str) -> Iterator[PhysicalEntry]:
        """Enumerate every directory and file below a physical location.

        Args:
            physical_path: Location passed to mount, or a directory inside
                it when a single branch is being refreshed.

        Returns:
            Entries with paths relative to ``physical_path``. Parents are
            reported before their children.
        """
        ...

    def open_read(self, locator: Locator) -> BinaryIO:
        """Open a read stream for a file reported by enumerate.

        Args:
            locator: The ``PhysicalEntry.locator`` of the file.

        Returns:
            Binary stream owned by the caller.
        """
        ...


@runtime_checkable
class PhysicalWriter(Protocol):
    """Protocol for the writable location behind a write area.

    Paths are relative to ``location`` and use "/" separators.
    """

    location: str

    def prepare(self) -> None:
        """Create the writable location if it does not exist."""
        ...

    def exists(self, relative_path: str) -> bool:
        """Check if a file or directory exists."""
        ...

    def is_dir(self, relative_path: str) -> bool:
        """Check if a path is a directory."""
        ...

    def list_names(self, relative_path: str) -> list[str]:
        """Names of the entries directly inside a directory, as stored.

        Returns an empty list when the directory does not exist.
        """
        ...

    def create_directory(self, relative_path: str) -> None:
        """Create a directory chain; existing directories are not an error."""
        ...

    def delete_directory(self, relative_path: str, recursive: bool = True) -> None:
        """Remove a directory, with its contents when ``recursive``."""
        ...

    def delete_file(self, relative_path: str) -> None:
        """Remove a file."""
        ...

    def rename(self, relative_path: str, new_name: str) -> str:
        """Rename an entry in place.

        Returns:
            The new relative path.
        """
        ...

    def open_write(self, relative_path: str, mode: WriteMode) -> BinaryIO:
        """Open a writable binary stream.

        Args:
            relative_path: File to open.
            mode: Open semantics.

        Returns:
            Binary stream owned by the caller.
        """
        ...

    def stat(self, relative_path: str) -> PhysicalEntry:
        """Describe an existing file or directory."""
        ...


@runtime_checkable
class Notifier(Protocol):
    """Incremental update channel used by writers to patch the tree.

    Calls never fail when the tree is already in the requested state.
    """

    def notify_directory_added(self, mount_point: MountPoint, path: str) -> VirtualDirectory:
        """Ensure a directory exists in the tree."""
        ...

    def notify_directory_deleted(self, path: str) -> None:
        """Remove a directory subtree if present."""
        ...

    def notify_file_deleted(self, path: str) -> None:
        """Remove a file if present."""
        ...

    def notify_directory_renamed(
        self, mount_point: MountPoint, old_path: str, physical_path: str, new_name: str
    ) -> VirtualDirectory | None:
        """Move a directory subtree to its new name."""
        ...

    def notify_file_renamed(
        self, mount_point: MountPoint, old_path: str, file_info: PhysicalEntry
    ) -> VirtualFile | None:
        """Replace a file entry with its renamed counterpart."""
        ...

    def notify_file_write_stream_closed(
        self, mount_point: MountPoint, file_info: PhysicalEntry
    ) -> VirtualFile:
        """Create or refresh a file entry after its content changed."""
        ...
