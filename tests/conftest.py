"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

import pytest

from layerfs.filesystem import FileSystem
from layerfs.providers import MemoryStore
from layerfs.types import MountPoint, PhysicalEntry
from layerfs.writearea import WriteArea

SourceFactory = Callable[..., Path]


def write_files(root: Path, files: dict[str, str | bytes]) -> Path:
    """Create files below root; keys ending in "/" create empty directories."""
    root.mkdir(parents=True, exist_ok=True)
    for relative, content in files.items():
        path = root / relative
        if relative.endswith("/"):
            path.mkdir(parents=True, exist_ok=True)
            continue
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content)
    return root


def make_entry(relative_path: str, is_directory: bool = False, size: int = 0) -> PhysicalEntry:
    """Build a provider entry with fixed timestamps."""
    stamp = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return PhysicalEntry(relative_path, is_directory, size, stamp, stamp, None)


@pytest.fixture
def temp_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Override home directory for testing."""
    monkeypatch.setattr(Path, "home", lambda: tmp_path)
    return tmp_path


@pytest.fixture
def make_source(tmp_path: Path) -> SourceFactory:
    """Factory creating a source folder under tmp_path."""

    def _make(name: str, files: dict[str, str | bytes]) -> Path:
        return write_files(tmp_path / "sources" / name, files)

    return _make


@pytest.fixture
def mount_point() -> MountPoint:
    """A mount point for tree level tests."""
    return MountPoint("/", "/physical/a", "folder")


@pytest.fixture
def filesystem() -> FileSystem:
    """An empty FileSystem with the default providers."""
    return FileSystem()


@pytest.fixture
def write_dir(tmp_path: Path) -> Path:
    """Location for an on-disk write area (not created yet)."""
    return tmp_path / "write"


@pytest.fixture
def write_area(filesystem: FileSystem, write_dir: Path) -> WriteArea:
    """A mounted on-disk write area."""
    area = WriteArea.create(filesystem, write_dir)
    area.mount()
    return area


@pytest.fixture
def memory_store(filesystem: FileSystem) -> MemoryStore:
    """A store registered with the filesystem's memory provider."""
    return filesystem.providers.memory.create_store("ram")
