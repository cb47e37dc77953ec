"""Ordered mount points and the merge algorithm that builds the tree.

Mount order is override order: entries folded by a later mount replace
same-path entries from earlier ones. Every entry carries the mount point that
produced it, so unmounting and refreshing are pure functions of the ordered
mount list.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path

from layerfs import paths
from layerfs.errors import InvalidPathError, NameConflictError, NotFoundError
from layerfs.physical import translate_os_errors
from layerfs.providers import ProviderRegistry
from layerfs.tree import VirtualDirectory, VirtualTree
from layerfs.types import MountPoint, PhysicalEntry

logger = logging.getLogger(__name__)

# "mem://store", "git:/repo" and similar locations are handed to providers
# untouched. Single letters are Windows drive names, not schemes.
_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]+:")


def normalize_physical_path(physical_path: str) -> str:
    """Make local paths absolute; leave provider scheme locations alone."""
    if not physical_path or not physical_path.strip():
        raise InvalidPathError("Physical path cannot be empty")
    if _SCHEME_RE.match(physical_path):
        return physical_path
    return str(Path(physical_path).expanduser().resolve())


@dataclass(frozen=True)
class FoldResult:
    """Counts of entries applied by a single fold."""

    directory_count: int
    file_count: int


@dataclass(frozen=True)
class _PlannedEntry:
    virtual_path: str
    entry: PhysicalEntry


class MountRegistry:
    """Holds mount points in order and projects them onto a VirtualTree."""

    def __init__(self, tree: VirtualTree, providers: ProviderRegistry) -> None:
        self.tree = tree
        self.providers = providers
        self._mount_points: list[MountPoint] = []

    @property
    def mount_points(self) -> tuple[MountPoint, ...]:
        """Mount points in the order they were applied."""
        return tuple(self._mount_points)

    def __contains__(self, mount_point: object) -> bool:
        return mount_point in self._mount_points

    def mount(self, physical_path: str, virtual_path: str = paths.ROOT) -> MountPoint:
        """Mount a physical source at a virtual directory.

        Mounting an already mounted source again re-stamps its entries and
        moves it to the end of the override order.

        Raises:
            UnsupportedSourceError: If no provider can read the source.
            NameConflictError: If the source would put a file and a directory
                at the same path; the tree is left unchanged.
            InvalidPathError: If either path is malformed.
        """
        physical = normalize_physical_path(physical_path)
        location = paths.normalize_directory(virtual_path)
        provider = self.providers.resolve(physical)
        mount_point = MountPoint(location, physical, provider.name)

        logger.info("Mounting '%s' at '%s' with provider '%s'", physical, location, provider.name)
        result = self._fold(mount_point)

        if mount_point in self._mount_points:
            self._mount_points.remove(mount_point)
        self._mount_points.append(mount_point)
        logger.info(
            "%d directories and %d files merged from '%s'",
            result.directory_count,
            result.file_count,
            physical,
        )
        return mount_point

    def unmount(self, mount_point: MountPoint) -> None:
        """Remove a mount point and every tree entry it contributed.

        Entries of earlier mounts that were overridden are not restored;
        call refresh() for that. Directories that still hold entries of other
        mounts are kept and take over the provenance of their first child.

        Raises:
            NotFoundError: If the mount point is not registered.
        """
        if mount_point not in self._mount_points:
            raise NotFoundError(f"Mount point not found: {mount_point}")
        self._mount_points.remove(mount_point)

        removed_files = 0
        for file in [f for f in self.tree.iter_files(self.tree.root) if f.mount_point == mount_point]:
            directory = file.directory
            if directory is not None:
                directory._detach_file(file.name)
                removed_files += 1

        owned = [d for d in self.tree.iter_directories(self.tree.root) if d.mount_point == mount_point]
        owned.sort(key=lambda d: d.full_path.count(paths.SEPARATOR), reverse=True)
        removed_dirs = 0
        for directory in owned:
            parent = directory.parent
            if directory.is_empty() and parent is not None:
                parent._detach_directory(directory.name)
                removed_dirs += 1
            else:
                directory.mount_point = _first_child_mount_point(directory)

        if self.tree.root.mount_point == mount_point:
            self.tree.root.mount_point = None

        logger.info(
            "Unmounted '%s' from '%s' (%d directories, %d files removed)",
            mount_point.physical_path,
            mount_point.virtual_path,
            removed_dirs,
            removed_files,
        )

    def unmount_by_physical_path(
        self, physical_path: str, virtual_path: str | None = None
    ) -> list[MountPoint]:
        """Unmount every mount point of a physical source.

        Args:
            physical_path: Source location as passed to mount.
            virtual_path: Only unmount where the source is mounted here.

        Returns:
            The mount points that were removed, in list order.
        """
        physical = normalize_physical_path(physical_path)
        location = paths.normalize_directory(virtual_path) if virtual_path is not None else None
        matches = [
            mp
            for mp in self._mount_points
            if mp.physical_path == physical
            and (location is None or self.tree.resolver.same(mp.virtual_path, location))
        ]
        for mount_point in matches:
            self.unmount(mount_point)
        return matches

    def refresh(self) -> None:
        """Rebuild the tree by replaying every mount point in order."""
        logger.info("Refreshing %d mount points", len(self._mount_points))
        self.tree.clear()
        for mount_point in self._mount_points:
            self._fold(mount_point)

    def refresh_directory(self, directory: VirtualDirectory) -> None:
        """Re-read one directory's children from its provenance mount.

        Refreshing the root or a mount location falls back to refresh().
        """
        mount_point = directory.mount_point
        if (
            directory.parent is None
            or mount_point is None
            or mount_point not in self._mount_points
            or self.tree.resolver.same(directory.full_path, mount_point.virtual_path)
        ):
            self.refresh()
            return

        prefix = paths.relative_to(directory.full_path, mount_point.virtual_path, self.tree.resolver)
        directory._clear()
        self._fold(mount_point, prefix=prefix)

    def _fold(self, mount_point: MountPoint, prefix: str | None = None) -> FoldResult:
        """Merge one mount point's entries into the tree.

        The whole plan is checked for directory/file name conflicts before
        the tree is touched.
        """
        provider = self.providers.get(mount_point.provider_id)
        with translate_os_errors("read", mount_point.physical_path):
            entries = list(provider.enumerate(mount_point.physical_path))
        plan = self._plan(mount_point, entries, prefix)
        directories = [p for p in plan if p.entry.is_directory]
        files = [p for p in plan if not p.entry.is_directory]
        self._check_conflicts(mount_point, directories, files)

        self.tree.ensure_directory_path(mount_point.virtual_path, mount_point, restamp=prefix is None)

        for planned in directories:
            existing = self.tree.get_directory(planned.virtual_path)
            if existing is not None and existing.mount_point not in (None, mount_point):
                logger.debug(
                    "'%s' already provided by '%s', now provided by '%s'",
                    planned.virtual_path,
                    existing.mount_point.physical_path,
                    mount_point.physical_path,
                )
            self.tree.ensure_directory_path(planned.virtual_path, mount_point, restamp=True)

        for planned in files:
            parent_path, name = paths.parent_and_name(planned.virtual_path)
            directory = self.tree.ensure_directory_path(parent_path, mount_point)
            existing = directory.get_file(name)
            if existing is not None and existing.mount_point != mount_point:
                logger.debug(
                    "'%s' overridden by '%s'", existing.full_path, mount_point.physical_path
                )
            self.tree.add_file(parent_path, planned.entry, mount_point, name=name)

        return FoldResult(len(directories), len(files))

    def _plan(self, mount_point: MountPoint, entries, prefix: str | None) -> list[_PlannedEntry]:
        plan = []
        base = prefix.strip(paths.SEPARATOR) + paths.SEPARATOR if prefix else ""
        for entry in entries:
            if base and not self.tree.resolver.key(entry.relative_path).startswith(
                self.tree.resolver.key(base)
            ):
                continue
            try:
                virtual_path = paths.normalize(mount_point.virtual_path + entry.relative_path)
            except InvalidPathError as e:
                logger.warning("Skipping '%s' from '%s': %s", entry.relative_path, mount_point.physical_path, e)
                continue
            if virtual_path == paths.ROOT:
                continue
            plan.append(_PlannedEntry(virtual_path, entry))
        return plan

    def _check_conflicts(
        self,
        mount_point: MountPoint,
        directories: list[_PlannedEntry],
        files: list[_PlannedEntry],
    ) -> None:
        key = self.tree.resolver.key
        location = paths.split(mount_point.virtual_path)
        directory_keys = {
            key(paths.normalize_directory("/".join(location[:depth])))
            for depth in range(1, len(location) + 1)
        }
        for planned in directories:
            directory_keys.add(key(paths.normalize_directory(planned.virtual_path)))
        for planned in files:
            parent_path, _ = paths.parent_and_name(planned.virtual_path)
            segments = paths.split(parent_path)
            for depth in range(1, len(segments) + 1):
                directory_keys.add(key(paths.normalize_directory("/".join(segments[:depth]))))

        for planned in files:
            if key(paths.normalize_directory(planned.virtual_path)) in directory_keys:
                raise NameConflictError(
                    f"'{planned.virtual_path}' is both a file and a directory in {mount_point.physical_path}"
                )
            if self.tree.get_directory(planned.virtual_path) is not None:
                raise NameConflictError(
                    f"Cannot mount file '{planned.virtual_path}': a directory already has that path"
                )

        for directory_key in directory_keys:
            if directory_key == paths.ROOT:
                continue
            if self._existing_file(directory_key) is not None:
                raise NameConflictError(
                    f"Cannot mount directory '{directory_key}': a file already has that path"
                )

    def _existing_file(self, directory_path: str):
        return self.tree.get_file(directory_path.rstrip(paths.SEPARATOR))


def _first_child_mount_point(directory: VirtualDirectory) -> MountPoint | None:
    for child in directory.directories:
        return child.mount_point
    for file in directory.files:
        return file.mount_point
    return None
