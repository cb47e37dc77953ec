"""Tests for mounting, unmounting and refreshing."""

from __future__ import annotations

import shutil
import sys
import zipfile
from pathlib import Path

import pytest

from layerfs.errors import NameConflictError, NotFoundError, UnsupportedSourceError
from layerfs.filesystem import FileSystem
from layerfs.mounts import normalize_physical_path
from layerfs.types import MountPoint
from layerfs.writearea import WriteArea

from conftest import SourceFactory


class TestNormalizePhysicalPath:
    """Tests for normalize_physical_path."""

    def test_relative_path_made_absolute(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test local paths are resolved against the working directory."""
        monkeypatch.chdir(tmp_path)

        assert normalize_physical_path("a/b") == str((tmp_path / "a" / "b").resolve())

    def test_scheme_locations_untouched(self) -> None:
        """Test provider locations are passed through."""
        assert normalize_physical_path("mem://ram") == "mem://ram"
        assert normalize_physical_path("git:repo#main") == "git:repo#main"


class TestMount:
    """Tests for mount and the merge order."""

    def test_last_mount_wins(self, filesystem: FileSystem, make_source: SourceFactory) -> None:
        """Test a later mount overrides the same path from an earlier one."""
        a = make_source("a", {"x.txt": "from a"})
        b = make_source("b", {"x.txt": "from b"})

        filesystem.mount(str(a))
        mount_b = filesystem.mount(str(b))

        file = filesystem.get_file("/x.txt")
        assert file.mount_point == mount_b
        assert filesystem.read_bytes("/x.txt") == b"from b"

    def test_mount_point_fields(self, filesystem: FileSystem, make_source: SourceFactory) -> None:
        """Test the returned mount point describes the mount."""
        a = make_source("a", {"x.txt": "x"})

        mount_point = filesystem.mount(str(a), "mnt/a")

        assert mount_point == MountPoint("/mnt/a/", str(a.resolve()), "folder")
        assert filesystem.mount_points == (mount_point,)

    def test_mount_at_subdirectory(self, filesystem: FileSystem, make_source: SourceFactory) -> None:
        """Test entries are placed below the mount location."""
        a = make_source("a", {"docs/x.txt": "x"})

        mount_point = filesystem.mount(str(a), "/mnt/a")

        assert filesystem.get_file("/mnt/a/docs/x.txt") is not None
        assert filesystem.get_file("/docs/x.txt") is None
        assert filesystem.get_directory("/mnt/a").mount_point == mount_point

    def test_remount_moves_to_end(self, filesystem: FileSystem, make_source: SourceFactory) -> None:
        """Test mounting the same source twice re-stamps instead of failing."""
        a = make_source("a", {"x.txt": "from a"})
        b = make_source("b", {"x.txt": "from b"})

        mount_a = filesystem.mount(str(a))
        mount_b = filesystem.mount(str(b))
        again = filesystem.mount(str(a))

        assert again == mount_a
        assert filesystem.mount_points == (mount_b, mount_a)
        assert filesystem.read_bytes("/x.txt") == b"from a"

    def test_directory_names_merge_case_insensitively(
        self, filesystem: FileSystem, make_source: SourceFactory
    ) -> None:
        """Test differently cased directories become one directory."""
        a = make_source("a", {"Docs/a.txt": "a"})
        b = make_source("b", {"docs/b.txt": "b"})

        filesystem.mount(str(a))
        filesystem.mount(str(b))

        names = [d.name for d in filesystem.root.directories]
        assert names == ["Docs"]
        assert {f.name for f in filesystem.get_directory("/docs").files} == {"a.txt", "b.txt"}

    def test_unsupported_source(self, filesystem: FileSystem, tmp_path: Path) -> None:
        """Test a source no provider claims is rejected."""
        with pytest.raises(UnsupportedSourceError):
            filesystem.mount(str(tmp_path / "missing"))

        assert filesystem.mount_points == ()

    def test_file_over_directory_conflict(
        self, filesystem: FileSystem, write_area: WriteArea, make_source: SourceFactory
    ) -> None:
        """Test a file colliding with a directory leaves the tree unchanged."""
        write_area.create_directory("/a/b")
        conflicting = make_source("conflict", {"a/b": "a file named b", "other.txt": "o"})

        with pytest.raises(NameConflictError):
            filesystem.mount(str(conflicting))

        assert filesystem.get_directory("/a/b") is not None
        assert filesystem.get_file("/other.txt") is None
        assert filesystem.mount_points == (write_area.mount_point,)

    def test_directory_over_file_conflict(
        self, filesystem: FileSystem, make_source: SourceFactory
    ) -> None:
        """Test a directory colliding with a file is rejected up front."""
        a = make_source("a", {"x": "file"})
        b = make_source("b", {"x/inner.txt": "i", "y.txt": "y"})
        filesystem.mount(str(a))

        with pytest.raises(NameConflictError):
            filesystem.mount(str(b))

        assert filesystem.get_file("/x") is not None
        assert filesystem.get_file("/y.txt") is None

    @pytest.mark.skipif(sys.platform == "win32", reason="symlinks need privileges on Windows")
    def test_dangling_link_skipped(self, filesystem: FileSystem, make_source: SourceFactory) -> None:
        """Test a link to a missing target does not stop the mount."""
        a = make_source("a", {"ok.txt": "ok"})
        (a / "broken").symlink_to(a / "nowhere")

        filesystem.mount(str(a))

        assert filesystem.get_file("/broken") is None
        assert filesystem.get_file("/ok.txt") is not None

    @pytest.mark.skipif(sys.platform == "win32", reason="name is invalid on Windows")
    def test_invalid_names_skipped(self, filesystem: FileSystem, make_source: SourceFactory) -> None:
        """Test entries with names invalid in virtual paths are skipped."""
        a = make_source("a", {"ok.txt": "ok", "bad?.txt": "bad"})

        filesystem.mount(str(a))

        assert [f.name for f in filesystem.root.files] == ["ok.txt"]

    def test_mount_zip(self, filesystem: FileSystem, tmp_path: Path) -> None:
        """Test an archive can be mounted like a folder."""
        archive = tmp_path / "bundle.zip"
        with zipfile.ZipFile(archive, "w") as bundle:
            bundle.writestr("docs/readme.txt", "zipped")

        mount_point = filesystem.mount(str(archive), "/z")

        assert mount_point.provider_id == "zip"
        assert filesystem.read_bytes("/z/docs/readme.txt") == b"zipped"

    def test_mount_memory_store(self, filesystem: FileSystem) -> None:
        """Test an in-memory store can be mounted read-only."""
        store = filesystem.providers.memory.create_store("ram")
        store.add_directory("docs")
        store.write_file("docs/x.txt", b"in memory")

        mount_point = filesystem.mount("mem://ram")

        assert mount_point.provider_id == "memory"
        assert filesystem.read_bytes("/docs/x.txt") == b"in memory"

    @pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")
    def test_mount_git_tree(self, filesystem: FileSystem, tmp_path: Path) -> None:
        """Test a commit tree can be mounted."""
        from git import Actor, Repo

        path = tmp_path / "repo"
        repo = Repo.init(path)
        (path / "README").write_text("committed")
        repo.index.add([str(path / "README")])
        author = Actor("Test", "test@example.com")
        repo.index.commit("init", author=author, committer=author)
        (path / "README").write_text("working copy")

        filesystem.mount(f"git:{path}", "/repo")

        assert filesystem.read_bytes("/repo/README") == b"committed"


class TestUnmount:
    """Tests for unmount and unmount_by_physical_path."""

    def test_unmount_does_not_fall_back(self, filesystem: FileSystem, make_source: SourceFactory) -> None:
        """Test unmounting the overriding source removes the entry until refresh."""
        a = make_source("a", {"x.txt": "from a"})
        b = make_source("b", {"x.txt": "from b"})
        mount_a = filesystem.mount(str(a))
        mount_b = filesystem.mount(str(b))

        filesystem.unmount(mount_b)

        assert filesystem.get_file("/x.txt") is None
        filesystem.refresh()
        file = filesystem.get_file("/x.txt")
        assert file is not None
        assert file.mount_point == mount_a
        assert filesystem.read_bytes("/x.txt") == b"from a"

    def test_shared_directory_survives(self, filesystem: FileSystem, make_source: SourceFactory) -> None:
        """Test directories holding other mounts' files are kept."""
        a = make_source("a", {"docs/a.txt": "a"})
        b = make_source("b", {"docs/b.txt": "b", "only/x.txt": "x"})
        mount_a = filesystem.mount(str(a))
        mount_b = filesystem.mount(str(b))
        assert filesystem.get_directory("/docs").mount_point == mount_b

        filesystem.unmount(mount_b)

        docs = filesystem.get_directory("/docs")
        assert docs is not None
        assert docs.mount_point == mount_a
        assert [f.name for f in docs.files] == ["a.txt"]
        assert filesystem.get_directory("/only") is None

    def test_unmount_unknown(self, filesystem: FileSystem) -> None:
        """Test unmounting an unregistered mount point fails."""
        with pytest.raises(NotFoundError):
            filesystem.unmount(MountPoint("/", "/nowhere", "folder"))

    def test_unmount_subdirectory_mount(self, filesystem: FileSystem, make_source: SourceFactory) -> None:
        """Test the mount location created by a mount is removed with it."""
        a = make_source("a", {"x.txt": "x"})
        mount_point = filesystem.mount(str(a), "/mnt/a")

        filesystem.unmount(mount_point)

        assert filesystem.root.is_empty()

    def test_unmount_by_physical_path(self, filesystem: FileSystem, make_source: SourceFactory) -> None:
        """Test filtering by physical path and virtual location."""
        a = make_source("a", {"x.txt": "x"})
        at_root = filesystem.mount(str(a))
        at_copy = filesystem.mount(str(a), "/copy")

        removed = filesystem.unmount_by_physical_path(str(a), "/COPY")

        assert removed == [at_copy]
        assert filesystem.mount_points == (at_root,)
        assert filesystem.get_directory("/copy") is None
        assert filesystem.unmount_by_physical_path(str(a)) == [at_root]
        assert filesystem.mount_points == ()


class TestRefresh:
    """Tests for refresh and refresh_path."""

    def test_refresh_replays_in_order(self, filesystem: FileSystem, make_source: SourceFactory) -> None:
        """Test refresh rebuilds the same tree."""
        a = make_source("a", {"x.txt": "a", "docs/a.txt": "a"})
        b = make_source("b", {"x.txt": "b"})
        filesystem.mount(str(a))
        mount_b = filesystem.mount(str(b))
        filesystem.tree.remove_entry("/docs/")

        filesystem.refresh()

        assert filesystem.get_file("/docs/a.txt") is not None
        assert filesystem.get_file("/x.txt").mount_point == mount_b

    def test_refresh_picks_up_physical_changes(
        self, filesystem: FileSystem, make_source: SourceFactory
    ) -> None:
        """Test new physical files appear after a refresh."""
        a = make_source("a", {"x.txt": "x"})
        filesystem.mount(str(a))
        (a / "y.txt").write_text("y")

        assert filesystem.get_file("/y.txt") is None
        filesystem.refresh()
        assert filesystem.get_file("/y.txt") is not None

    def test_refresh_path(self, filesystem: FileSystem, make_source: SourceFactory) -> None:
        """Test a single directory is re-read from its source."""
        a = make_source("a", {"docs/x.txt": "x", "top.txt": "t"})
        filesystem.mount(str(a))
        (a / "docs" / "new.txt").write_text("new")
        (a / "later.txt").write_text("later")

        filesystem.refresh_path("/docs")

        assert filesystem.get_file("/docs/new.txt") is not None
        assert filesystem.get_file("/docs/x.txt") is not None
        assert filesystem.get_file("/later.txt") is None

    def test_refresh_path_root(self, filesystem: FileSystem, make_source: SourceFactory) -> None:
        """Test refreshing the root rebuilds everything."""
        a = make_source("a", {"x.txt": "x"})
        filesystem.mount(str(a))
        (a / "later.txt").write_text("later")

        filesystem.refresh_path("/")

        assert filesystem.get_file("/later.txt") is not None

    def test_refresh_path_missing(self, filesystem: FileSystem) -> None:
        """Test refreshing a missing directory fails."""
        with pytest.raises(NotFoundError):
            filesystem.refresh_path("/missing")
