"""Tests for layout configuration."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from layerfs.config import (
    LAYOUT_DIR,
    LayoutConfig,
    LayoutManager,
    MountSpec,
    WriteAreaSpec,
    build_filesystem,
    build_write_area,
)
from layerfs.errors import UnsupportedSourceError

from conftest import SourceFactory


@pytest.fixture
def manager(tmp_path: Path) -> LayoutManager:
    """Layout manager writing below tmp_path."""
    return LayoutManager.create(tmp_path / ".layerfs")


class TestModels:
    """Tests for the pydantic models."""

    def test_aliases(self) -> None:
        """Test camelCase keys are accepted and produced."""
        layout = LayoutConfig.model_validate(
            {
                "caseSensitive": True,
                "mounts": [{"physicalPath": "/data"}],
                "writeArea": {"location": "mem://ram"},
            }
        )

        assert layout.case_sensitive is True
        assert layout.mounts[0].virtual_path == "/"
        dumped = layout.model_dump(by_alias=True)
        assert dumped["mounts"][0] == {"physicalPath": "/data", "virtualPath": "/"}
        assert dumped["writeArea"] == {"location": "mem://ram"}

    def test_populate_by_name(self) -> None:
        """Test snake_case field names work too."""
        spec = MountSpec(physical_path="/data", virtual_path="/d/")

        assert spec.virtual_path == "/d/"


class TestLayoutManager:
    """Tests for LayoutManager."""

    def test_default_location(self) -> None:
        """Test the default directory is ~/.layerfs."""
        manager = LayoutManager.create_default()

        assert manager.config_dir == LAYOUT_DIR
        assert manager.layout_file == LAYOUT_DIR / "layout.yaml"

    def test_load_missing(self, manager: LayoutManager) -> None:
        """Test a missing file gives an empty layout."""
        layout = manager.load()

        assert layout.mounts == []
        assert layout.write_area is None

    def test_add_and_list(self, manager: LayoutManager, make_source: SourceFactory) -> None:
        """Test mounts are stored in order with normalized paths."""
        a = make_source("a", {"x.txt": "x"})
        b = make_source("b", {"y.txt": "y"})

        manager.add_mount(str(a))
        manager.add_mount(str(b), "sub")

        mounts = manager.list_mounts()
        assert [m.physical_path for m in mounts] == [str(a.resolve()), str(b.resolve())]
        assert mounts[1].virtual_path == "/sub/"

    def test_saved_as_yaml(self, manager: LayoutManager, make_source: SourceFactory) -> None:
        """Test the file uses camelCase keys."""
        a = make_source("a", {"x.txt": "x"})
        manager.add_mount(str(a))

        data = yaml.safe_load(manager.layout_file.read_text())

        assert data["mounts"] == [{"physicalPath": str(a.resolve()), "virtualPath": "/"}]
        assert data["caseSensitive"] is False

    def test_add_duplicate(self, manager: LayoutManager, make_source: SourceFactory) -> None:
        """Test the same mount cannot be added twice."""
        a = make_source("a", {"x.txt": "x"})
        manager.add_mount(str(a))

        with pytest.raises(ValueError, match="already mounted"):
            manager.add_mount(str(a), "/")

    def test_remove(self, manager: LayoutManager, make_source: SourceFactory) -> None:
        """Test removing mounts by source and location."""
        a = make_source("a", {"x.txt": "x"})
        manager.add_mount(str(a))
        manager.add_mount(str(a), "/copy")

        assert manager.remove_mount(str(a), "/copy") is True
        assert len(manager.list_mounts()) == 1
        assert manager.remove_mount(str(a)) is True
        assert manager.remove_mount(str(a)) is False

    def test_write_area(self, manager: LayoutManager) -> None:
        """Test setting and clearing the write area."""
        assert manager.set_write_area("mem://ram") == WriteAreaSpec(location="mem://ram")
        assert manager.load().write_area.location == "mem://ram"

        assert manager.set_write_area(None) is None
        assert manager.load().write_area is None

    def test_invalid_yaml(self, manager: LayoutManager) -> None:
        """Test a broken file is reported."""
        manager.config_dir.mkdir(parents=True)
        manager.layout_file.write_text("mounts: [unclosed")

        with pytest.raises(ValueError, match="Invalid layout file"):
            manager.load()

    def test_not_a_mapping(self, manager: LayoutManager) -> None:
        """Test a list at the top level is rejected."""
        manager.config_dir.mkdir(parents=True)
        manager.layout_file.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="expected a mapping"):
            manager.load()


class TestBuild:
    """Tests for building a FileSystem from a layout."""

    def test_build_filesystem(self, make_source: SourceFactory) -> None:
        """Test mounts are applied in order."""
        a = make_source("a", {"x.txt": "a"})
        b = make_source("b", {"x.txt": "b"})
        layout = LayoutConfig(mounts=[MountSpec(physical_path=str(a)), MountSpec(physical_path=str(b))])

        filesystem = build_filesystem(layout)

        assert filesystem.read_bytes("/x.txt") == b"b"
        assert len(filesystem.mount_points) == 2

    def test_case_sensitive_layout(self, make_source: SourceFactory) -> None:
        """Test the layout controls name comparison."""
        a = make_source("a", {"Readme.txt": "a"})
        layout = LayoutConfig(case_sensitive=True, mounts=[MountSpec(physical_path=str(a))])

        filesystem = build_filesystem(layout)

        assert filesystem.get_file("/readme.txt") is None
        assert filesystem.get_file("/Readme.txt") is not None

    def test_build_unsupported(self, tmp_path: Path) -> None:
        """Test a missing source fails the build."""
        layout = LayoutConfig(mounts=[MountSpec(physical_path=str(tmp_path / "gone"))])

        with pytest.raises(UnsupportedSourceError):
            build_filesystem(layout)

    def test_build_write_area(self, make_source: SourceFactory, tmp_path: Path) -> None:
        """Test the configured write area is mounted last."""
        a = make_source("a", {"x.txt": "a"})
        layout = LayoutConfig(
            mounts=[MountSpec(physical_path=str(a))],
            write_area=WriteAreaSpec(location=str(tmp_path / "write")),
        )
        filesystem = build_filesystem(layout)

        write_area = build_write_area(layout, filesystem)

        assert write_area.is_mounted is True
        assert filesystem.mount_points[-1] == write_area.mount_point

    def test_no_write_area(self) -> None:
        """Test no write area is built when none is configured."""
        layout = LayoutConfig()

        assert build_write_area(layout, build_filesystem(layout)) is None
