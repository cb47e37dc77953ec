"""In-memory hierarchy of virtual directories and files.

Parents own their children through name-keyed maps. Back references
(``VirtualFile.directory`` and ``VirtualDirectory.parent``) are weak so the
tree stays a simple rooted structure. Full paths are derived from the parent
chain, never stored, which keeps them correct across renames.
"""

from __future__ import annotations

import weakref
from collections.abc import Iterator
from datetime import datetime
from typing import Union

from layerfs import paths
from layerfs.errors import InvalidPathError, NameConflictError, NotFoundError
from layerfs.paths import PathResolver
from layerfs.types import MountPoint, PhysicalEntry

__all__ = ["VirtualDirectory", "VirtualFile", "VirtualTree"]


class VirtualFile:
    """A file in the virtual tree.

    Attributes:
        name: File name including extension.
        mount_point: Mount point that last contributed this entry.
        physical: Provider information used to open the file.
    """

    __slots__ = ("name", "mount_point", "physical", "_directory", "__weakref__")

    def __init__(
        self,
        name: str,
        physical: PhysicalEntry,
        mount_point: MountPoint | None,
    ) -> None:
        self.name = name
        self.physical = physical
        self.mount_point = mount_point
        self._directory: weakref.ref[VirtualDirectory] | None = None

    @property
    def directory(self) -> VirtualDirectory | None:
        """Directory that holds this file, or None once detached."""
        return self._directory() if self._directory is not None else None

    @property
    def full_path(self) -> str:
        """Absolute virtual path of the file."""
        directory = self.directory
        prefix = directory.full_path if directory is not None else paths.ROOT
        return prefix + self.name

    @property
    def extension(self) -> str:
        """Extension including the leading dot, or an empty string."""
        dot = self.name.rfind(".")
        return self.name[dot:] if dot > 0 else ""

    @property
    def base_name(self) -> str:
        """File name without its extension."""
        dot = self.name.rfind(".")
        return self.name[:dot] if dot > 0 else self.name

    @property
    def size(self) -> int:
        return self.physical.size

    @property
    def create_date(self) -> datetime:
        return self.physical.create_date

    @property
    def modified_date(self) -> datetime:
        return self.physical.modified_date

    def __repr__(self) -> str:
        return f"VirtualFile({self.full_path!r}, size={self.size})"


class VirtualDirectory:
    """A directory in the virtual tree.

    Children are kept in two insertion-ordered maps keyed through the tree's
    PathResolver. A name may be used by a directory or a file, never both.
    """

    __slots__ = (
        "name",
        "mount_point",
        "_parent",
        "_resolver",
        "_directories",
        "_files",
        "__weakref__",
    )

    def __init__(
        self,
        name: str,
        mount_point: MountPoint | None,
        resolver: PathResolver,
        parent: VirtualDirectory | None = None,
    ) -> None:
        self.name = name
        self.mount_point = mount_point
        self._resolver = resolver
        self._parent: weakref.ref[VirtualDirectory] | None = (
            weakref.ref(parent) if parent is not None else None
        )
        self._directories: dict[str, VirtualDirectory] = {}
        self._files: dict[str, VirtualFile] = {}

    @property
    def parent(self) -> VirtualDirectory | None:
        """Parent directory, or None for the root and detached subtrees."""
        return self._parent() if self._parent is not None else None

    @property
    def full_path(self) -> str:
        """Absolute virtual path ending with a separator."""
        parent = self.parent
        if parent is None:
            return paths.ROOT if not self.name else paths.ROOT + self.name + paths.SEPARATOR
        return parent.full_path + self.name + paths.SEPARATOR

    @property
    def directories(self) -> list[VirtualDirectory]:
        return list(self._directories.values())

    @property
    def files(self) -> list[VirtualFile]:
        return list(self._files.values())

    def get_directory(self, name: str) -> VirtualDirectory | None:
        return self._directories.get(self._resolver.key(name))

    def get_file(self, name: str) -> VirtualFile | None:
        return self._files.get(self._resolver.key(name))

    def contains(self, name: str) -> bool:
        """Check whether a directory or file with this name exists here."""
        key = self._resolver.key(name)
        return key in self._directories or key in self._files

    def is_empty(self) -> bool:
        return not self._directories and not self._files

    def _add_directory(self, child: VirtualDirectory) -> VirtualDirectory:
        key = self._resolver.key(child.name)
        if key in self._files:
            raise NameConflictError(
                f"Cannot add directory '{child.name}' to {self.full_path}: a file has that name"
            )
        if key in self._directories:
            raise NameConflictError(
                f"Directory '{child.name}' already exists in {self.full_path}"
            )
        child._parent = weakref.ref(self)
        self._directories[key] = child
        return child

    def _add_file(self, file: VirtualFile) -> VirtualFile:
        key = self._resolver.key(file.name)
        if key in self._directories:
            raise NameConflictError(
                f"Cannot add file '{file.name}' to {self.full_path}: a directory has that name"
            )
        file._directory = weakref.ref(self)
        self._files[key] = file
        return file

    def _detach_directory(self, name: str) -> VirtualDirectory:
        child = self._directories.pop(self._resolver.key(name))
        child._parent = None
        return child

    def _detach_file(self, name: str) -> VirtualFile:
        file = self._files.pop(self._resolver.key(name))
        file._directory = None
        return file

    def _clear(self) -> None:
        self._directories.clear()
        self._files.clear()

    def __repr__(self) -> str:
        return (
            f"VirtualDirectory({self.full_path!r}, "
            f"directories={len(self._directories)}, files={len(self._files)})"
        )


Entry = Union[VirtualDirectory, VirtualFile]


class VirtualTree:
    """Rooted tree of virtual entries with path based access."""

    def __init__(self, resolver: PathResolver | None = None) -> None:
        self.resolver = resolver or PathResolver()
        self.root = VirtualDirectory("", None, self.resolver)

    def clear(self) -> None:
        """Drop every entry, leaving an empty root."""
        self.root._clear()
        self.root.mount_point = None

    def get_directory(self, path: str) -> VirtualDirectory | None:
        """Walk from the root to a directory.

        Returns None at the first missing segment; never creates anything.
        """
        directory = self.root
        for segment in paths.split(path):
            child = directory.get_directory(segment)
            if child is None:
                return None
            directory = child
        return directory

    def get_file(self, path: str) -> VirtualFile | None:
        """Find a file by path, or None if any segment is missing."""
        parent_path, name = paths.parent_and_name(paths.normalize_file(path))
        directory = self.get_directory(parent_path)
        if directory is None:
            return None
        return directory.get_file(name)

    def ensure_directory_path(
        self,
        path: str,
        mount_point: MountPoint | None,
        restamp: bool = False,
    ) -> VirtualDirectory:
        """Return the directory at ``path``, creating missing segments.

        New directories are stamped with ``mount_point``. When ``restamp`` is
        set the final directory is stamped even if it already existed.

        Raises:
            NameConflictError: If a segment collides with an existing file.
        """
        segments = paths.split(path)
        directory = self.root
        for index, segment in enumerate(segments):
            if directory.get_file(segment) is not None:
                conflict = paths.ROOT + paths.SEPARATOR.join(segments[: index + 1])
                raise NameConflictError(f"{conflict} is a file, not a directory")
            child = directory.get_directory(segment)
            if child is None:
                child = directory._add_directory(
                    VirtualDirectory(segment, mount_point, self.resolver)
                )
            directory = child
        if restamp and mount_point is not None:
            directory.mount_point = mount_point
        return directory

    def insert_file(self, directory_path: str, file: VirtualFile) -> VirtualFile:
        """Place a file in a directory, replacing any file of the same name.

        Raises:
            NotFoundError: If the directory does not exist.
            NameConflictError: If a directory of the same name exists there.
        """
        directory = self.get_directory(directory_path)
        if directory is None:
            raise NotFoundError(f"Directory not found: {paths.normalize_directory(directory_path)}")
        if directory.get_file(file.name) is not None:
            directory._detach_file(file.name)
        return directory._add_file(file)

    def add_file(
        self,
        directory_path: str,
        physical: PhysicalEntry,
        mount_point: MountPoint | None,
        name: str | None = None,
    ) -> VirtualFile:
        """Create a file entry from provider information and insert it."""
        return self.insert_file(
            directory_path, VirtualFile(name or physical.name, physical, mount_point)
        )

    def attach_directory(self, parent_path: str, directory: VirtualDirectory) -> VirtualDirectory:
        """Insert a detached subtree under ``parent_path``.

        Raises:
            NotFoundError: If the parent does not exist.
            NameConflictError: If the name is already used at that level.
        """
        parent = self.get_directory(parent_path)
        if parent is None:
            raise NotFoundError(f"Directory not found: {paths.normalize_directory(parent_path)}")
        return parent._add_directory(directory)

    def remove_entry(self, path: str) -> Entry:
        """Detach a file or a whole directory subtree.

        A path with a trailing separator only matches directories. The
        detached entry is returned so it can be re-inserted elsewhere.

        Raises:
            InvalidPathError: For the root directory.
            NotFoundError: If nothing exists at ``path``.
        """
        parent_path, name = paths.parent_and_name(path)
        parent = self.get_directory(parent_path)
        if parent is not None:
            wants_directory = path.replace("\\", paths.SEPARATOR).endswith(paths.SEPARATOR)
            if not wants_directory and parent.get_file(name) is not None:
                return parent._detach_file(name)
            if parent.get_directory(name) is not None:
                return parent._detach_directory(name)
        raise NotFoundError(f"Entry not found: {path}")

    def iter_directories(self, start: VirtualDirectory) -> Iterator[VirtualDirectory]:
        """Yield descendants of ``start`` in pre-order, sorted by name."""
        for child in sorted(start.directories, key=lambda d: self.resolver.key(d.name)):
            yield child
            yield from self.iter_directories(child)

    def iter_files(self, start: VirtualDirectory) -> Iterator[VirtualFile]:
        """Yield every file below ``start`` in pre-order, sorted by name."""
        yield from sorted(start.files, key=lambda f: self.resolver.key(f.name))
        for child in sorted(start.directories, key=lambda d: self.resolver.key(d.name)):
            yield from self.iter_files(child)

    def find_files(self, path: str, mask: str, recursive: bool = True) -> Iterator[VirtualFile]:
        """Lazily yield files under ``path`` whose names match ``mask``.

        Validation happens immediately; the returned iterator re-walks the
        live tree each time ``find_files`` is called.

        Raises:
            InvalidPathError: If the mask is empty or contains a separator.
            NotFoundError: If the start directory does not exist.
        """
        paths.validate_mask(mask)
        start = self._require_directory(path)
        if recursive:
            candidates = self.iter_files(start)
        else:
            candidates = iter(sorted(start.files, key=lambda f: self.resolver.key(f.name)))
        return (f for f in candidates if self.resolver.match(f.name, mask))

    def find_directories(
        self, path: str, mask: str, recursive: bool = True
    ) -> Iterator[VirtualDirectory]:
        """Lazily yield directories under ``path`` whose names match ``mask``."""
        paths.validate_mask(mask)
        start = self._require_directory(path)
        if recursive:
            candidates = self.iter_directories(start)
        else:
            candidates = iter(sorted(start.directories, key=lambda d: self.resolver.key(d.name)))
        return (d for d in candidates if self.resolver.match(d.name, mask))

    def _require_directory(self, path: str) -> VirtualDirectory:
        directory = self.get_directory(path)
        if directory is None:
            raise NotFoundError(f"Directory not found: {paths.normalize_directory(path)}")
        return directory
