"""The single writable location overlaid on a FileSystem.

A WriteArea performs physical changes through a PhysicalWriter and, while it
is mounted, patches the virtual tree through the FileSystem's notifier
methods so that the live tree matches what a full refresh would build.
Content that only exists in read-only mounts is never touched physically:
deleting it hides the tree entry until the next refresh.

Physical paths keep the spelling already stored in the write location; a
tree entry named ``Docs`` by a read-only mount maps to an existing ``docs``
directory rather than creating a second one.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from collections.abc import Callable, Iterable, Iterator
from pathlib import Path
from typing import BinaryIO

from layerfs import paths
from layerfs.errors import (
    AlreadyExistsError,
    InvalidPathError,
    IOConflictError,
    NameConflictError,
    NotFoundError,
)
from layerfs.filesystem import FileSystem
from layerfs.physical import LocalWriter, MemoryWriter, translate_os_errors
from layerfs.protocols import PhysicalWriter
from layerfs.providers.memory import SCHEME as MEMORY_SCHEME
from layerfs.providers.memory import parse_location
from layerfs.transfer import (
    ConflictCallback,
    ConflictPolicy,
    CopyTracker,
    CopyUnit,
    ProgressCallback,
    next_free_name,
    run_units,
)
from layerfs.tree import VirtualDirectory, VirtualFile
from layerfs.types import (
    CancelToken,
    CopyResult,
    DeleteResult,
    MountPoint,
    WriteMode,
)

logger = logging.getLogger(__name__)

DeleteCallback = Callable[[str], None]


class _NotifyingStream:
    """Write stream proxy that runs a callback once after closing."""

    def __init__(self, stream: BinaryIO, on_close: Callable[[], None]) -> None:
        self._stream = stream
        self._on_close = on_close
        self._notified = False

    def __getattr__(self, name: str):
        return getattr(self._stream, name)

    @property
    def closed(self) -> bool:
        return self._stream.closed

    def close(self) -> None:
        self._stream.close()
        if not self._notified:
            self._notified = True
            self._on_close()

    def __enter__(self) -> _NotifyingStream:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class WriteArea:
    """Binds one writable physical location to a FileSystem.

    The write area is mounted at the root, after every other mount point,
    so its content overrides read-only sources.

    Attributes:
        filesystem: The FileSystem whose tree is kept in sync.
        writer: Physical write access to the location.
    """

    def __init__(self, filesystem: FileSystem, writer: PhysicalWriter) -> None:
        self.filesystem = filesystem
        self.writer = writer
        self._mount_point: MountPoint | None = None

    @classmethod
    def create(cls, filesystem: FileSystem, location: str | Path) -> WriteArea:
        """Create a write area for a directory or a ``mem://`` store."""
        location = str(location)
        if location.startswith(MEMORY_SCHEME):
            name, _ = parse_location(location)
            return cls.in_memory(filesystem, name)
        return cls(filesystem, LocalWriter(location))

    @classmethod
    def in_memory(cls, filesystem: FileSystem, name: str) -> WriteArea:
        """Create a RAM-disk write area backed by a named MemoryStore."""
        store = filesystem.providers.memory.create_store(name)
        return cls(filesystem, MemoryWriter(store))

    @property
    def location(self) -> str:
        return self.writer.location

    @property
    def mount_point(self) -> MountPoint | None:
        """Mount point of the write area while it is mounted."""
        return self._mount_point if self.is_mounted else None

    @property
    def is_mounted(self) -> bool:
        return self._mount_point is not None and self._mount_point in self.filesystem.mount_points

    def mount(self) -> MountPoint:
        """Mount the location at the root as the last mount point.

        Does nothing if the write area is already the last mount point.
        """
        self.writer.prepare()
        mount_points = self.filesystem.mount_points
        if self.is_mounted and mount_points[-1] == self._mount_point:
            return self._mount_point
        self._mount_point = self.filesystem.mount(self.writer.location, paths.ROOT)
        logger.info("Write area '%s' mounted", self.location)
        return self._mount_point

    def unmount(self) -> None:
        """Unmount the location; does nothing if it is not mounted."""
        if not self.is_mounted:
            return
        self.filesystem.unmount(self._mount_point)
        logger.info("Write area '%s' unmounted", self.location)

    def create_directory(self, path: str) -> VirtualDirectory | None:
        """Create a directory chain in the write area.

        Existing directories are not an error.

        Returns:
            The virtual directory, or None when the write area is not mounted.

        Raises:
            InvalidPathError: If the path names the root.
            IOConflictError: If a segment is already used by a file.
        """
        segments = paths.split(path)
        if not segments:
            raise InvalidPathError("Cannot create the root directory")
        for depth in range(1, len(segments) + 1):
            prefix = paths.ROOT + paths.SEPARATOR.join(segments[:depth])
            if self.filesystem.get_file(prefix) is not None:
                raise IOConflictError(f"Cannot create directory {path}: {prefix} is a file")

        relative_path = self._relative_path(path)
        self.writer.create_directory(relative_path)
        logger.debug("Created directory '%s' in '%s'", relative_path, self.location)

        if not self.is_mounted:
            return None
        restamp = self.filesystem.mount_points[-1] == self._mount_point
        directory = None
        for depth in range(1, len(segments) + 1):
            directory = self.filesystem.tree.ensure_directory_path(
                paths.SEPARATOR.join(segments[:depth]), self._mount_point, restamp=restamp
            )
        return directory

    def delete_directory(
        self,
        path: str,
        on_delete: DeleteCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> DeleteResult:
        """Delete a directory subtree.

        The physical directory is deleted if it exists in the write area;
        entries that come from read-only mounts are only removed from the
        tree. With a callback or a token the subtree is deleted entry by
        entry, deepest first, reporting each virtual path after removal.

        Returns:
            Whether the deletion completed and whether anything was removed
            from the write location.

        Raises:
            NotFoundError: If the directory is not in the FileSystem.
        """
        directory = self._require_directory(path)

        if on_delete is None and cancel_token is None:
            return DeleteResult(True, self._delete_directory_entry(directory))

        physical = False
        for entry in self._deletion_order(directory):
            if cancel_token is not None and cancel_token.is_cancelled:
                logger.info("Deletion of '%s' cancelled", directory.full_path)
                return DeleteResult(False, physical)
            full_path = entry.full_path
            if isinstance(entry, VirtualFile):
                removed = self._delete_file_entry(entry)
            else:
                removed = self._delete_directory_entry(entry)
            physical = physical or removed
            if on_delete is not None:
                on_delete(full_path)
        return DeleteResult(True, physical)

    def delete_file(self, path: str) -> bool:
        """Delete a file.

        Returns:
            True if a physical file was deleted from the write area, False if
            the entry was only hidden until the next refresh.

        Raises:
            NotFoundError: If the file is not in the FileSystem.
        """
        file = self.filesystem.get_file(path)
        if file is None:
            raise NotFoundError(f"File not found: {path}")
        return self._delete_file_entry(file)

    def delete_files(
        self,
        file_paths: Iterable[str],
        on_delete: DeleteCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> list[str]:
        """Delete several files, skipping paths that do not exist.

        Returns:
            Virtual paths of the deleted files, in the order given.
        """
        deleted = []
        for path in file_paths:
            if cancel_token is not None and cancel_token.is_cancelled:
                break
            file = self.filesystem.get_file(path)
            if file is None:
                logger.debug("Skipping missing file '%s'", path)
                continue
            full_path = file.full_path
            self._delete_file_entry(file)
            deleted.append(full_path)
            if on_delete is not None:
                on_delete(full_path)
        return deleted

    def rename_file(self, path: str, new_name: str) -> str:
        """Rename a file that physically lives in the write area.

        Returns:
            The new virtual path.

        Raises:
            NotFoundError: If the file is not in the FileSystem.
            IOConflictError: If the file only exists in a read-only mount.
            NameConflictError: If the new name is already used.
            InvalidPathError: If the new name is not a single valid name.
        """
        self._validate_name(new_name)
        file = self.filesystem.get_file(path)
        if file is None:
            raise NotFoundError(f"File not found: {path}")
        directory = file.directory
        self._check_rename_target(directory, file.name, new_name)

        old_path = file.full_path
        relative_path = self._file_relative_path(file)
        if not self._physically_present(relative_path):
            raise IOConflictError(f"{old_path} is not stored in the write area {self.location}")
        new_relative = self.writer.rename(relative_path, new_name)
        new_path = directory.full_path + new_name
        logger.info("Renamed '%s' to '%s'", old_path, new_path)
        if self.is_mounted:
            info = self.writer.stat(new_relative)
            renamed = self.filesystem.notify_file_renamed(self._mount_point, old_path, info)
            if renamed is not None:
                new_path = renamed.full_path
        return new_path

    def rename_directory(self, path: str, new_name: str) -> str:
        """Rename a directory that physically lives in the write area.

        Returns:
            The new virtual path.

        Raises:
            NotFoundError: If the directory is not in the FileSystem.
            IOConflictError: If it only exists in a read-only mount.
            NameConflictError: If the new name is already used.
            InvalidPathError: If the new name is not valid or path is the root.
        """
        self._validate_name(new_name)
        directory = self._require_directory(path)
        parent = directory.parent
        if parent is None:
            raise InvalidPathError("Cannot rename the root directory")
        self._check_rename_target(parent, directory.name, new_name)

        old_path = directory.full_path
        relative_path = self._relative_path(old_path)
        if not self.writer.is_dir(relative_path):
            raise IOConflictError(f"{old_path} is not stored in the write area {self.location}")
        new_relative = self.writer.rename(relative_path, new_name)
        new_path = parent.full_path + new_name + paths.SEPARATOR
        logger.info("Renamed '%s' to '%s'", old_path, new_path)
        if self.is_mounted:
            physical_path = self.writer.location.rstrip("/") + "/" + new_relative
            self.filesystem.notify_directory_renamed(
                self._mount_point, old_path, physical_path, new_name
            )
        return new_path

    def open_stream(self, path: str, mode: WriteMode = WriteMode.OPEN_OR_CREATE) -> BinaryIO:
        """Open a write stream on a file in the write area.

        OPEN and APPEND on a file that only exists in a read-only mount copy
        its content into the write area first. Closing the stream updates
        the tree entry.

        Raises:
            NotFoundError: If the file is required but missing, or its parent
                directory does not exist.
            NameConflictError: If a directory has the file's path.
        """
        file_path = paths.normalize_file(path)
        parent_path, name = paths.parent_and_name(file_path)
        existing = self.filesystem.get_file(file_path)
        if mode.requires_existing and existing is None:
            raise NotFoundError(f"File not found: {file_path}")
        parent = self.filesystem.get_directory(parent_path)
        if parent is None:
            raise NotFoundError(f"Directory not found: {parent_path}")
        if parent.get_directory(name) is not None:
            raise NameConflictError(f"{file_path} is a directory")

        if existing is not None:
            relative_path = self._file_relative_path(existing)
        else:
            relative_path = self._relative_path(file_path)
        self._ensure_physical_parent(relative_path)

        physical_mode = mode
        if not self._physically_present(relative_path):
            if existing is not None and mode in (WriteMode.OPEN, WriteMode.APPEND, WriteMode.OPEN_OR_CREATE):
                self._copy_up(existing, relative_path)
            elif mode is WriteMode.TRUNCATE:
                physical_mode = WriteMode.CREATE

        return self._open_notifying(relative_path, physical_mode)

    # Bulk operations

    def copy_from(
        self,
        source: FileSystem,
        progress: ProgressCallback | None = None,
        allow_overwrite: bool = True,
        cancel_token: CancelToken | None = None,
    ) -> CopyResult | None:
        """Copy every directory and file of another FileSystem into this area.

        Directories are created first, then files are copied. The callback
        runs after each unit of work and may return False to stop.

        Returns:
            Directory and file counts, or None if stopped early. Work done
            before stopping or failing is kept.

        Raises:
            AlreadyExistsError: If ``allow_overwrite`` is False and a
                destination file exists; earlier copies are kept.
        """
        return run_units(self._copy_units(source, allow_overwrite), self.location, progress, cancel_token)

    async def copy_from_async(
        self,
        source: FileSystem,
        cancel_token: CancelToken | None = None,
        progress: ProgressCallback | None = None,
        allow_overwrite: bool = True,
    ) -> CopyResult | None:
        """Asynchronous copy_from.

        Each unit runs in a worker thread; the token is checked between units
        so a cancelled copy never stops in the middle of a file.
        """
        units = list(self._copy_units(source, allow_overwrite))
        tracker = CopyTracker.for_units(units)
        for unit in units:
            if cancel_token is not None and cancel_token.is_cancelled:
                return tracker.stopped("cancelled")
            await asyncio.to_thread(unit.run)
            if not tracker.advance(unit, progress):
                return tracker.stopped("stopped by progress callback")
        return tracker.finished(self.location)

    def copy_directory(
        self,
        path: str,
        destination: str,
        progress: ProgressCallback | None = None,
        on_conflict: ConflictCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> CopyResult | None:
        """Copy a directory subtree into another directory.

        ``/a/b`` copied into ``/c`` becomes ``/c/b``. Name conflicts are
        overwritten unless ``on_conflict`` answers otherwise.

        Returns:
            Counts of directories created and files written, or None if the
            token, the callback or a CANCEL answer stopped the copy.

        Raises:
            NotFoundError: If either directory is not in the FileSystem.
            InvalidPathError: If ``path`` is the root.
            AlreadyExistsError: If the conflict callback answers FAIL.
        """
        source = self._require_directory(path)
        if source.parent is None:
            raise InvalidPathError("Cannot copy the root directory")
        target = self._require_directory(destination)
        units = self._subtree_units(source, target, ConflictPolicy(on_conflict), move=False)
        return run_units(units, self.location, progress, cancel_token)

    def move_directory(
        self,
        path: str,
        destination: str,
        progress: ProgressCallback | None = None,
        on_conflict: ConflictCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> CopyResult | None:
        """Move a directory subtree into another directory.

        Files are copied, then removed from their old place; read-only
        sources are only hidden there. Source directories left empty are
        removed once every file has moved. Moving a directory into the
        directory that already holds it does nothing.

        Raises:
            NotFoundError: If either directory is not in the FileSystem.
            InvalidPathError: If ``path`` is the root or ``destination`` is
                inside it.
        """
        source = self._require_directory(path)
        if source.parent is None:
            raise InvalidPathError("Cannot move the root directory")
        target = self._require_directory(destination)
        if target is source or target is source.parent:
            return CopyResult(0, 0)
        if self._is_inside(target, source):
            raise InvalidPathError(f"Cannot move {source.full_path} into {target.full_path}")

        source_paths = [source.full_path]
        source_paths.extend(d.full_path for d in self.filesystem.tree.iter_directories(source))
        units = self._subtree_units(source, target, ConflictPolicy(on_conflict), move=True)
        result = run_units(units, self.location, progress, cancel_token)
        if result is not None:
            self._remove_emptied(source_paths)
        return result

    def copy_files(
        self,
        file_paths: Iterable[str],
        destination: str,
        progress: ProgressCallback | None = None,
        on_conflict: ConflictCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> CopyResult | None:
        """Copy files into a directory.

        Copying a file into its own directory only writes something when the
        conflict answer is RENAME.

        Raises:
            NotFoundError: If a file or the destination does not exist.
        """
        units = self._file_units(file_paths, destination, ConflictPolicy(on_conflict), move=False)
        return run_units(units, self.location, progress, cancel_token)

    def move_files(
        self,
        file_paths: Iterable[str],
        destination: str,
        progress: ProgressCallback | None = None,
        on_conflict: ConflictCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> CopyResult | None:
        """Move files into a directory; arguments as in copy_files."""
        units = self._file_units(file_paths, destination, ConflictPolicy(on_conflict), move=True)
        return run_units(units, self.location, progress, cancel_token)

    def export_directory(
        self,
        path: str,
        destination: str | Path,
        progress: ProgressCallback | None = None,
        on_conflict: ConflictCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> CopyResult | None:
        """Write a directory of the merged view to a directory on disk.

        ``/a/b`` exported to ``out`` becomes ``out/b``; exporting the root
        writes its content directly into ``out``.

        Raises:
            NotFoundError: If the directory or the destination does not exist.
        """
        source = self._require_directory(path)
        root = self._require_export_root(destination)
        policy = ConflictPolicy(on_conflict)
        base = source.parent.full_path if source.parent is not None else source.full_path
        units = []
        for directory in [source, *self.filesystem.tree.iter_directories(source)]:
            relative = paths.relative_to(directory.full_path, base, self.filesystem.resolver)
            target_dir = root.joinpath(*relative.split(paths.SEPARATOR)) if relative else root
            units.append(
                CopyUnit(directory.full_path, True, lambda target_dir=target_dir: self._make_export_directory(target_dir))
            )
            for file in self._sorted_files(directory):
                units.append(
                    CopyUnit(
                        file.full_path,
                        False,
                        lambda source_path=file.full_path, target_dir=target_dir: self._export_file(
                            source_path, target_dir, policy
                        ),
                    )
                )
        return run_units(units, str(root), progress, cancel_token)

    def export_files(
        self,
        file_paths: Iterable[str],
        destination: str | Path,
        progress: ProgressCallback | None = None,
        on_conflict: ConflictCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> CopyResult | None:
        """Write files of the merged view into a directory on disk.

        Raises:
            NotFoundError: If a file or the destination does not exist.
        """
        files = [self._require_file(path) for path in file_paths]
        root = self._require_export_root(destination)
        policy = ConflictPolicy(on_conflict)
        units = [
            CopyUnit(
                file.full_path,
                False,
                lambda source_path=file.full_path: self._export_file(source_path, root, policy),
            )
            for file in files
        ]
        return run_units(units, str(root), progress, cancel_token)

    def import_paths(
        self,
        physical_paths: Iterable[str | Path],
        destination: str = paths.ROOT,
        progress: ProgressCallback | None = None,
        on_conflict: ConflictCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> CopyResult | None:
        """Copy files and directories from the local disk into a directory.

        Files are imported first, then each directory with its whole
        subtree. Paths that do not exist and names that are not valid
        virtual names are skipped with a warning.

        Raises:
            NotFoundError: If the destination is not in the FileSystem.
        """
        target = self._require_directory(destination)
        policy = ConflictPolicy(on_conflict)
        files: list[Path] = []
        folders: list[Path] = []
        for raw in physical_paths:
            physical = Path(raw).expanduser()
            if physical.is_dir():
                folders.append(physical.resolve())
            elif physical.is_file():
                files.append(physical.resolve())
            else:
                logger.warning("Skipping '%s': not found", raw)

        units = [
            CopyUnit(str(file), False, lambda file=file: self._import_file(file, target.full_path, policy))
            for file in files
            if self._importable(file.name, file)
        ]
        for folder in folders:
            units.extend(self._import_folder_units(folder, target.full_path, policy))
        return run_units(units, self.location, progress, cancel_token)

    # Unit planning

    def _copy_units(self, source: FileSystem, allow_overwrite: bool) -> Iterator[CopyUnit]:
        for directory in list(source.tree.iter_directories(source.root)):
            path = directory.full_path
            yield CopyUnit(path, True, lambda path=path: self.create_directory(path))
        for file in list(source.tree.iter_files(source.root)):
            yield CopyUnit(
                file.full_path,
                False,
                lambda file=file: self._copy_file(source, file, allow_overwrite),
            )

    def _subtree_units(
        self, source: VirtualDirectory, target: VirtualDirectory, policy: ConflictPolicy, move: bool
    ) -> list[CopyUnit]:
        base = source.parent.full_path
        units = []
        for directory in [source, *self.filesystem.tree.iter_directories(source)]:
            relative = paths.relative_to(directory.full_path, base, self.filesystem.resolver)
            target_path = paths.normalize_directory(target.full_path + relative)
            units.append(
                CopyUnit(target_path, True, lambda target_path=target_path: self._ensure_directory(target_path))
            )
            for file in self._sorted_files(directory):
                units.append(
                    CopyUnit(
                        file.full_path,
                        False,
                        lambda source_path=file.full_path, target_path=target_path: self._transfer_file(
                            source_path, target_path, policy, move
                        ),
                    )
                )
        return units

    def _file_units(
        self, file_paths: Iterable[str], destination: str, policy: ConflictPolicy, move: bool
    ) -> list[CopyUnit]:
        files = [self._require_file(path) for path in file_paths]
        target = self._require_directory(destination)
        return [
            CopyUnit(
                file.full_path,
                False,
                lambda source_path=file.full_path: self._transfer_file(
                    source_path, target.full_path, policy, move
                ),
            )
            for file in files
        ]

    def _import_folder_units(self, folder: Path, target_path: str, policy: ConflictPolicy) -> list[CopyUnit]:
        units = []
        for current, dirnames, filenames in os.walk(folder):
            current_path = Path(current)
            if not self._importable(current_path.name, current_path):
                dirnames.clear()
                continue
            dirnames.sort()
            relative = current_path.relative_to(folder.parent).as_posix()
            directory_path = paths.normalize_directory(target_path + relative)
            units.append(
                CopyUnit(directory_path, True, lambda directory_path=directory_path: self._ensure_directory(directory_path))
            )
            for name in sorted(filenames):
                physical = current_path / name
                if self._importable(name, physical):
                    units.append(
                        CopyUnit(
                            str(physical),
                            False,
                            lambda physical=physical, directory_path=directory_path: self._import_file(
                                physical, directory_path, policy
                            ),
                        )
                    )
        return units

    # Unit work

    def _ensure_directory(self, path: str) -> None:
        if not paths.is_root(path):
            self.create_directory(path)

    def _copy_file(self, source: FileSystem, file: VirtualFile, allow_overwrite: bool) -> None:
        path = file.full_path
        relative_path = self._relative_path(path)
        if not allow_overwrite and (
            self.writer.exists(relative_path) or self.filesystem.get_file(path) is not None
        ):
            raise AlreadyExistsError(f"File already exists: {path}")
        self._ensure_physical_parent(relative_path)
        with source.open_read(file) as reader, self._open_notifying(relative_path, WriteMode.CREATE) as writer:
            shutil.copyfileobj(reader, writer)

    def _transfer_file(self, source_path: str, directory_path: str, policy: ConflictPolicy, move: bool) -> bool:
        file = self.filesystem.get_file(source_path)
        if file is None:
            logger.debug("Skipping '%s': no longer in the tree", source_path)
            return False
        target_path = self._claim_target(source_path, directory_path, file.name, policy)
        if target_path is None or self.filesystem.resolver.same(target_path, file.full_path):
            return False
        relative_path = self._relative_path(target_path)
        self._ensure_physical_parent(relative_path)
        with self.filesystem.open_read(file) as reader, self._open_notifying(relative_path, WriteMode.CREATE) as writer:
            with translate_os_errors("copy", file.full_path):
                shutil.copyfileobj(reader, writer)
        if move:
            self._delete_file_entry(file)
        logger.debug("%s '%s' to '%s'", "Moved" if move else "Copied", source_path, target_path)
        return True

    def _import_file(self, physical: Path, directory_path: str, policy: ConflictPolicy) -> bool:
        target_path = self._claim_target(str(physical), directory_path, physical.name, policy)
        if target_path is None:
            return False
        relative_path = self._relative_path(target_path)
        self._ensure_physical_parent(relative_path)
        with translate_os_errors("import", str(physical)):
            with open(physical, "rb") as reader, self._open_notifying(relative_path, WriteMode.CREATE) as writer:
                shutil.copyfileobj(reader, writer)
        logger.debug("Imported '%s' as '%s'", physical, target_path)
        return True

    def _export_file(self, source_path: str, target_dir: Path, policy: ConflictPolicy) -> bool:
        file = self.filesystem.get_file(source_path)
        if file is None:
            return False
        target = target_dir / file.name
        if target.exists():
            answer = policy.resolve(source_path, str(target), target.is_dir())
            if answer.skips:
                return False
            if answer.renames:
                target = target_dir / next_free_name(file.name, lambda name: (target_dir / name).exists())
            elif target.is_dir():
                raise NameConflictError(f"{target} is a directory")
        with self.filesystem.open_read(file) as reader, translate_os_errors("export", str(target)):
            with open(target, "wb") as writer:
                shutil.copyfileobj(reader, writer)
        logger.debug("Exported '%s' to '%s'", source_path, target)
        return True

    @staticmethod
    def _make_export_directory(target_dir: Path) -> None:
        with translate_os_errors("create directory", str(target_dir)):
            target_dir.mkdir(parents=True, exist_ok=True)

    def _claim_target(
        self, source: str, directory_path: str, name: str, policy: ConflictPolicy
    ) -> str | None:
        """Virtual path a transferred file is written to; None to skip it.

        Raises:
            TransferCancelled: If the conflict answer is CANCEL.
            AlreadyExistsError: If the conflict answer is FAIL.
            NameConflictError: If a directory is in the way and would be
                overwritten.
        """
        directory_path = paths.normalize_directory(directory_path)
        directory = self.filesystem.get_directory(directory_path)

        def taken(candidate: str) -> bool:
            if directory is not None and directory.contains(candidate):
                return True
            return self.writer.exists(self._relative_path(directory_path + candidate))

        target = directory_path + name
        if not taken(name):
            return target
        in_the_way = (directory is not None and directory.get_directory(name) is not None) or self.writer.is_dir(
            self._relative_path(target)
        )
        answer = policy.resolve(source, target, in_the_way)
        if answer.skips:
            return None
        if answer.renames:
            return directory_path + next_free_name(name, taken)
        if in_the_way:
            raise NameConflictError(f"{target} is a directory")
        return target

    def _remove_emptied(self, directory_paths: list[str]) -> None:
        for path in reversed(directory_paths):
            directory = self.filesystem.get_directory(path)
            if directory is not None and directory.is_empty():
                self._delete_directory_entry(directory)

    # Helpers

    def _open_notifying(self, relative_path: str, mode: WriteMode) -> BinaryIO:
        stream = self.writer.open_write(relative_path, mode)
        if not self.is_mounted:
            return stream
        mount_point = self._mount_point

        def notify() -> None:
            info = self.writer.stat(relative_path)
            self.filesystem.notify_file_write_stream_closed(mount_point, info)

        return _NotifyingStream(stream, notify)

    def _copy_up(self, file: VirtualFile, relative_path: str) -> None:
        logger.debug("Copying '%s' into the write area", file.full_path)
        with self.filesystem.open_read(file) as reader, self.writer.open_write(relative_path, WriteMode.CREATE) as writer:
            with translate_os_errors("copy", file.full_path):
                shutil.copyfileobj(reader, writer)

    def _delete_file_entry(self, file: VirtualFile) -> bool:
        full_path = file.full_path
        relative_path = self._file_relative_path(file)
        physical = self._physically_present(relative_path)
        if physical:
            self.writer.delete_file(relative_path)
        if self.is_mounted:
            self.filesystem.notify_file_deleted(full_path)
        logger.debug("Deleted file '%s' (physical: %s)", full_path, physical)
        return physical

    def _delete_directory_entry(self, directory: VirtualDirectory) -> bool:
        full_path = directory.full_path
        if directory.parent is None:
            physical = bool(self.writer.list_names(""))
            self.writer.delete_directory("", recursive=True)
            self.writer.prepare()
        else:
            relative_path = self._relative_path(full_path)
            physical = self.writer.is_dir(relative_path)
            if physical:
                self.writer.delete_directory(relative_path, recursive=True)
        if self.is_mounted:
            self.filesystem.notify_directory_deleted(full_path)
        logger.debug("Deleted directory '%s' (physical: %s)", full_path, physical)
        return physical

    def _deletion_order(self, directory: VirtualDirectory) -> list[VirtualFile | VirtualDirectory]:
        order: list[VirtualFile | VirtualDirectory] = []
        for child in directory.directories:
            order.extend(self._deletion_order(child))
        order.extend(directory.files)
        order.append(directory)
        return order

    def _owns(self, file: VirtualFile) -> bool:
        return self._mount_point is not None and file.mount_point == self._mount_point

    def _file_relative_path(self, file: VirtualFile) -> str:
        """Relative path of a file, taken from its provider entry when it is ours."""
        if self._owns(file) and file.physical is not None:
            return file.physical.relative_path
        return self._relative_path(file.full_path)

    def _relative_path(self, path: str) -> str:
        """Write-area relative path of a virtual path.

        Names already stored in the write location keep their stored
        spelling; the rest use the tree's spelling, or the given one for
        names the tree does not have yet.
        """
        node = self.filesystem.root
        parts: list[str] = []
        stored = True
        for segment in paths.split(path):
            child = node.get_directory(segment) if node is not None else None
            entry = child if child is not None else (node.get_file(segment) if node is not None else None)
            name = entry.name if entry is not None else segment
            if stored:
                match = self._stored_name(paths.SEPARATOR.join(parts), name)
                if match is None:
                    stored = False
                else:
                    name = match
            parts.append(name)
            node = child
        return paths.SEPARATOR.join(parts)

    def _stored_name(self, parent: str, name: str) -> str | None:
        names = self.writer.list_names(parent)
        if name in names:
            return name
        same = self.filesystem.resolver.same
        return next((stored for stored in names if same(stored, name)), None)

    def _physically_present(self, relative_path: str) -> bool:
        return self.writer.exists(relative_path) and not self.writer.is_dir(relative_path)

    def _ensure_physical_parent(self, relative_path: str) -> None:
        parent = relative_path.rpartition(paths.SEPARATOR)[0]
        if parent and not self.writer.is_dir(parent):
            self.writer.create_directory(parent)

    def _require_directory(self, path: str) -> VirtualDirectory:
        directory = self.filesystem.get_directory(path)
        if directory is None:
            raise NotFoundError(f"Directory not found: {paths.normalize_directory(path)}")
        return directory

    def _require_file(self, path: str) -> VirtualFile:
        file = self.filesystem.get_file(path)
        if file is None:
            raise NotFoundError(f"File not found: {path}")
        return file

    @staticmethod
    def _require_export_root(destination: str | Path) -> Path:
        root = Path(destination).expanduser()
        if not root.is_dir():
            raise NotFoundError(f"Directory not found: {destination}")
        return root

    def _sorted_files(self, directory: VirtualDirectory) -> list[VirtualFile]:
        return sorted(directory.files, key=lambda f: self.filesystem.resolver.key(f.name))

    @staticmethod
    def _is_inside(directory: VirtualDirectory, ancestor: VirtualDirectory) -> bool:
        parent = directory.parent
        while parent is not None:
            if parent is ancestor:
                return True
            parent = parent.parent
        return False

    @staticmethod
    def _importable(name: str, physical: Path) -> bool:
        try:
            valid = paths.split(name) == [name]
        except InvalidPathError as e:
            logger.warning("Skipping '%s': %s", physical, e)
            return False
        if not valid:
            logger.warning("Skipping '%s': invalid name", physical)
        return valid

    def _check_rename_target(self, directory: VirtualDirectory | None, old_name: str, new_name: str) -> None:
        if directory is None or self.filesystem.resolver.same(old_name, new_name):
            return
        if directory.contains(new_name):
            raise NameConflictError(f"'{new_name}' already exists in {directory.full_path}")

    @staticmethod
    def _validate_name(name: str) -> None:
        if not name or paths.SEPARATOR in name or "\\" in name:
            raise InvalidPathError(f"Invalid name: {name!r}")
        if paths.split(name) != [name]:
            raise InvalidPathError(f"Invalid name: {name!r}")

    def __repr__(self) -> str:
        return f"WriteArea({self.location!r}, mounted={self.is_mounted})"
