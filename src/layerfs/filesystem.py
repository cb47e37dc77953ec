"""The FileSystem façade: mounts, lookups, searches and tree notifications."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import replace
from typing import BinaryIO

from layerfs import paths
from layerfs.errors import NameConflictError, NotFoundError
from layerfs.mounts import MountRegistry
from layerfs.paths import PathResolver
from layerfs.physical import translate_os_errors
from layerfs.providers import ProviderRegistry
from layerfs.tree import VirtualDirectory, VirtualFile, VirtualTree
from layerfs.types import MountPoint, PhysicalEntry

logger = logging.getLogger(__name__)


class FileSystem:
    """Merged, read-mostly view over an ordered list of mounted sources.

    The FileSystem is also the Notifier that write areas use to patch the
    tree after changing physical data. It does no locking of its own;
    callers must serialize mutations against each other and against reads.

    Attributes:
        tree: The virtual tree built from the mount list.
        providers: Providers available for mounting.
    """

    def __init__(
        self,
        providers: ProviderRegistry | None = None,
        case_sensitive: bool = False,
    ) -> None:
        self.providers = providers or ProviderRegistry.create_default()
        self.tree = VirtualTree(PathResolver(case_sensitive=case_sensitive))
        self.mounts = MountRegistry(self.tree, self.providers)

    @property
    def resolver(self) -> PathResolver:
        return self.tree.resolver

    @property
    def root(self) -> VirtualDirectory:
        return self.tree.root

    @property
    def mount_points(self) -> tuple[MountPoint, ...]:
        """Mount points in override order (last wins)."""
        return self.mounts.mount_points

    def mount(self, physical_path: str, virtual_path: str = paths.ROOT) -> MountPoint:
        """Mount a physical source; see MountRegistry.mount."""
        return self.mounts.mount(physical_path, virtual_path)

    def unmount(self, mount_point: MountPoint) -> None:
        """Remove a mount point and the entries it contributed."""
        self.mounts.unmount(mount_point)

    def unmount_by_physical_path(
        self, physical_path: str, virtual_path: str | None = None
    ) -> list[MountPoint]:
        """Unmount every mount point of a source, optionally at one location."""
        return self.mounts.unmount_by_physical_path(physical_path, virtual_path)

    def refresh(self) -> None:
        """Rebuild the tree from the mount list."""
        self.mounts.refresh()

    def refresh_path(self, path: str) -> None:
        """Rebuild one directory from the mount that provided it.

        Raises:
            NotFoundError: If the directory does not exist.
        """
        directory = self.get_directory(path)
        if directory is None:
            raise NotFoundError(f"Directory not found: {paths.normalize_directory(path)}")
        self.mounts.refresh_directory(directory)

    def get_directory(self, path: str) -> VirtualDirectory | None:
        """Find a directory, or None if any segment is missing."""
        return self.tree.get_directory(path)

    def get_file(self, path: str) -> VirtualFile | None:
        """Find a file, or None if any segment is missing."""
        return self.tree.get_file(path)

    def find_files(
        self, path: str, mask: str | None = None, recursive: bool = True
    ) -> Iterator[VirtualFile]:
        """Search for files by name mask.

        Called with a single argument the mask is searched from the root:
        ``find_files("*.txt")``; otherwise ``find_files("/img", "cat*")``.

        Raises:
            InvalidPathError: If the mask is empty or contains a separator.
            NotFoundError: If the start directory does not exist.
        """
        if mask is None:
            path, mask = paths.ROOT, path
        return self.tree.find_files(path, mask, recursive)

    def find_directories(
        self, path: str, mask: str | None = None, recursive: bool = True
    ) -> Iterator[VirtualDirectory]:
        """Search for directories by name mask; arguments as in find_files."""
        if mask is None:
            path, mask = paths.ROOT, path
        return self.tree.find_directories(path, mask, recursive)

    def open_read(self, file: str | VirtualFile) -> BinaryIO:
        """Open a read stream through the provider that supplied a file.

        Raises:
            NotFoundError: If the file is not in the tree.
            IOConflictError: If the physical data cannot be opened.
        """
        if isinstance(file, str):
            found = self.get_file(file)
            if found is None:
                raise NotFoundError(f"File not found: {file}")
            file = found
        if file.mount_point is None:
            raise NotFoundError(f"File has no source: {file.full_path}")
        provider = self.providers.get(file.mount_point.provider_id)
        with translate_os_errors("open", file.full_path):
            return provider.open_read(file.physical.locator)

    def read_bytes(self, path: str) -> bytes:
        """Read a whole file."""
        with self.open_read(path) as stream:
            return stream.read()

    # Notifier

    def notify_directory_added(self, mount_point: MountPoint, path: str) -> VirtualDirectory:
        """Ensure a directory exists; existing directories are returned as is."""
        existing = self.tree.get_directory(path)
        if existing is not None:
            return existing
        return self.tree.ensure_directory_path(path, mount_point)

    def notify_directory_deleted(self, path: str) -> None:
        """Remove a directory subtree; absent directories are ignored."""
        if paths.is_root(path):
            self.tree.clear()
            return
        if self.tree.get_directory(path) is not None:
            self.tree.remove_entry(paths.normalize_directory(path))

    def notify_file_deleted(self, path: str) -> None:
        """Remove a file; absent files are ignored."""
        file = self.tree.get_file(path)
        directory = file.directory if file is not None else None
        if directory is not None:
            directory._detach_file(file.name)

    def notify_directory_renamed(
        self, mount_point: MountPoint, old_path: str, physical_path: str, new_name: str
    ) -> VirtualDirectory | None:
        """Move a directory subtree to a new name in the same parent.

        Files of the subtree that came from ``mount_point`` get their provider
        information re-read from ``physical_path``, the renamed location.

        Returns:
            The renamed directory, or None if neither name is in the tree.
        """
        parent_path, old_name = paths.parent_and_name(old_path)
        new_path = paths.normalize_directory(parent_path + new_name)
        current = self.tree.get_directory(old_path)
        if current is None:
            return self.tree.get_directory(new_path)

        if not self.resolver.same(old_name, new_name):
            parent = current.parent
            if parent is not None and parent.contains(new_name):
                raise NameConflictError(f"Cannot rename {old_path}: {new_path} already exists")

        directory = self.tree.remove_entry(paths.normalize_directory(old_path))
        directory.name = new_name
        self.tree.attach_directory(parent_path, directory)
        self._rebind_files(mount_point, directory, physical_path)
        logger.debug("Renamed directory '%s' to '%s'", old_path, directory.full_path)
        return directory

    def notify_file_renamed(
        self, mount_point: MountPoint, old_path: str, file_info: PhysicalEntry
    ) -> VirtualFile | None:
        """Replace a file entry with the entry for its new name.

        ``file_info.relative_path`` is relative to the mount location.
        """
        new_path = paths.normalize_file(mount_point.virtual_path + file_info.relative_path)
        old = self.tree.get_file(old_path)
        if old is None:
            return self.tree.get_file(new_path)
        self.notify_file_deleted(old_path)
        parent_path, name = paths.parent_and_name(new_path)
        self.tree.ensure_directory_path(parent_path, mount_point)
        return self.tree.add_file(parent_path, file_info, mount_point, name=name)

    def notify_file_write_stream_closed(
        self, mount_point: MountPoint, file_info: PhysicalEntry
    ) -> VirtualFile:
        """Create a file entry or refresh its metadata after a write."""
        path = paths.normalize_file(mount_point.virtual_path + file_info.relative_path)
        parent_path, name = paths.parent_and_name(path)
        directory = self.tree.ensure_directory_path(parent_path, mount_point)
        existing = directory.get_file(name)
        if existing is not None:
            existing.physical = file_info
            existing.mount_point = mount_point
            return existing
        return self.tree.add_file(parent_path, file_info, mount_point, name=name)

    def _rebind_files(
        self, mount_point: MountPoint, directory: VirtualDirectory, physical_path: str
    ) -> None:
        provider = self.providers.get(mount_point.provider_id)
        renamed = {
            self.resolver.key(entry.relative_path): entry
            for entry in provider.enumerate(physical_path)
            if not entry.is_directory
        }
        # Mount-relative spelling of the renamed location, when it is inside the mount
        base = mount_point.physical_path.rstrip("/") + "/"
        prefix = physical_path[len(base):].strip("/") if physical_path.startswith(base) else None
        for file in self.tree.iter_files(directory):
            if file.mount_point != mount_point:
                continue
            inner = paths.relative_to(file.full_path, directory.full_path, self.resolver)
            entry = renamed.get(self.resolver.key(inner))
            if entry is None:
                continue
            if prefix:
                relative_path = f"{prefix}/{entry.relative_path}"
            else:
                relative_path = paths.relative_to(file.full_path, mount_point.virtual_path, self.resolver)
            file.physical = replace(entry, relative_path=relative_path)

    def __repr__(self) -> str:
        return f"FileSystem(mounts={len(self.mount_points)})"
