"""Tests for FileSystem lookups, searches and notifications."""

from __future__ import annotations

import pytest

from layerfs.errors import InvalidPathError, IOConflictError, NameConflictError, NotFoundError
from layerfs.filesystem import FileSystem
from layerfs.protocols import Notifier
from layerfs.types import MountPoint

from conftest import SourceFactory, make_entry


@pytest.fixture
def images(filesystem: FileSystem, make_source: SourceFactory) -> FileSystem:
    """FileSystem with a small image collection mounted at the root."""
    source = make_source(
        "images",
        {
            "img/cat1.png": "1",
            "img/cat2.png": "2",
            "img/dog1.png": "3",
            "img/deep/er/cat9.png": "9",
            "catalog/": "",
        },
    )
    filesystem.mount(str(source))
    return filesystem


class TestFind:
    """Tests for wildcard searches."""

    def test_non_recursive(self, images: FileSystem) -> None:
        """Test a non-recursive search only sees direct children."""
        names = {f.name for f in images.find_files("/img", "cat*", recursive=False)}

        assert names == {"cat1.png", "cat2.png"}

    def test_recursive_from_root(self, images: FileSystem) -> None:
        """Test a recursive search finds matches at any depth."""
        paths = [f.full_path for f in images.find_files("/", "cat*", recursive=True)]

        assert paths == ["/img/cat1.png", "/img/cat2.png", "/img/deep/er/cat9.png"]

    def test_mask_only_defaults_to_root(self, images: FileSystem) -> None:
        """Test passing only a mask searches from the root."""
        assert len(list(images.find_files("*.png"))) == 4

    def test_find_directories(self, images: FileSystem) -> None:
        """Test directory search."""
        paths = [d.full_path for d in images.find_directories("cat*")]

        assert paths == ["/catalog/"]

    def test_mask_with_separator(self, images: FileSystem) -> None:
        """Test masks cannot contain a path."""
        with pytest.raises(InvalidPathError):
            images.find_files("/", "img/cat*")


class TestRead:
    """Tests for reading file content."""

    def test_read_bytes(self, images: FileSystem) -> None:
        """Test reading through the file's provider."""
        assert images.read_bytes("/IMG/cat1.png") == b"1"

    def test_open_read_with_entry(self, images: FileSystem) -> None:
        """Test opening a VirtualFile directly."""
        file = images.get_file("/img/dog1.png")

        with images.open_read(file) as stream:
            assert stream.read() == b"3"

    def test_missing_file(self, images: FileSystem) -> None:
        """Test opening a missing file fails."""
        with pytest.raises(NotFoundError):
            images.open_read("/img/nope.png")

    def test_vanished_physical_file(self, images: FileSystem, make_source: SourceFactory) -> None:
        """Test a physical file deleted behind the tree's back."""
        source = make_source("images", {})
        (source / "img" / "cat1.png").unlink()

        with pytest.raises(IOConflictError):
            images.read_bytes("/img/cat1.png")


class TestNotifier:
    """Tests for the incremental update methods."""

    def test_is_notifier(self, filesystem: FileSystem) -> None:
        """Test FileSystem satisfies the Notifier protocol."""
        assert isinstance(filesystem, Notifier)

    def test_directory_added_idempotent(self, filesystem: FileSystem, mount_point: MountPoint) -> None:
        """Test an existing directory is returned unchanged."""
        other = MountPoint("/", "/physical/b", "folder")
        first = filesystem.notify_directory_added(mount_point, "/a/b")

        second = filesystem.notify_directory_added(other, "/A/B/")

        assert second is first
        assert second.mount_point == mount_point

    def test_deletes_are_idempotent(self, filesystem: FileSystem, mount_point: MountPoint) -> None:
        """Test deleting absent entries is not an error."""
        filesystem.notify_directory_added(mount_point, "/a")
        filesystem.tree.add_file("/a/", make_entry("a/x.txt"), mount_point)

        filesystem.notify_file_deleted("/a/x.txt")
        filesystem.notify_file_deleted("/a/x.txt")
        filesystem.notify_directory_deleted("/a")
        filesystem.notify_directory_deleted("/a")

        assert filesystem.root.is_empty()

    def test_file_deleted_ignores_directories(
        self, filesystem: FileSystem, mount_point: MountPoint
    ) -> None:
        """Test a file notification never removes a directory."""
        filesystem.notify_directory_added(mount_point, "/a")

        filesystem.notify_file_deleted("/a")

        assert filesystem.get_directory("/a") is not None

    def test_directory_deleted_root(self, filesystem: FileSystem, mount_point: MountPoint) -> None:
        """Test deleting the root empties the tree."""
        filesystem.notify_directory_added(mount_point, "/a/b")

        filesystem.notify_directory_deleted("/")

        assert filesystem.root.is_empty()

    def test_write_stream_closed(self, filesystem: FileSystem, mount_point: MountPoint) -> None:
        """Test a closed stream creates the entry, then refreshes it in place."""
        created = filesystem.notify_file_write_stream_closed(mount_point, make_entry("a/x.txt", size=1))
        updated = filesystem.notify_file_write_stream_closed(mount_point, make_entry("a/x.txt", size=5))

        assert updated is created
        assert filesystem.get_file("/a/x.txt").size == 5

    def test_file_renamed(self, filesystem: FileSystem, mount_point: MountPoint) -> None:
        """Test a renamed file replaces the old entry."""
        filesystem.notify_file_write_stream_closed(mount_point, make_entry("a/old.txt", size=3))

        renamed = filesystem.notify_file_renamed(mount_point, "/a/old.txt", make_entry("a/new.txt", size=3))

        assert renamed.full_path == "/a/new.txt"
        assert filesystem.get_file("/a/old.txt") is None
        assert filesystem.notify_file_renamed(mount_point, "/a/old.txt", make_entry("a/new.txt")) is renamed

    def test_directory_renamed(self, filesystem: FileSystem) -> None:
        """Test a renamed directory keeps its descendants and re-reads them."""
        store = filesystem.providers.memory.create_store("ram")
        store.add_directory("old/sub")
        store.write_file("old/sub/x.txt", b"content")
        mount_point = filesystem.mount("mem://ram")
        store.rename("old", "new")

        renamed = filesystem.notify_directory_renamed(mount_point, "/old/", "mem://ram/new", "new")

        assert renamed.full_path == "/new/"
        assert filesystem.get_directory("/old") is None
        assert filesystem.read_bytes("/new/sub/x.txt") == b"content"

    def test_directory_renamed_conflict(self, filesystem: FileSystem, mount_point: MountPoint) -> None:
        """Test renaming onto an existing name fails."""
        filesystem.notify_directory_added(mount_point, "/a")
        filesystem.notify_directory_added(mount_point, "/b")

        with pytest.raises(NameConflictError):
            filesystem.notify_directory_renamed(mount_point, "/a/", "/physical/a/b", "b")

    def test_directory_renamed_missing(self, filesystem: FileSystem, mount_point: MountPoint) -> None:
        """Test renaming an absent directory is a no-op."""
        assert filesystem.notify_directory_renamed(mount_point, "/a/", "/physical/a/b", "b") is None
