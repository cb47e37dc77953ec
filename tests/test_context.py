"""Tests for context module."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

from layerfs.config import LayoutManager
from layerfs.context import AppContext, create_context
from layerfs.providers import ProviderRegistry

from conftest import SourceFactory


class TestAppContext:
    """Tests for AppContext dataclass."""

    def test_create_with_all_dependencies(self) -> None:
        """Test creating context with all dependencies."""
        layout = MagicMock()
        providers = MagicMock()

        ctx = AppContext(layout=layout, providers=providers)

        assert ctx.layout is layout
        assert ctx.providers is providers

    def test_default_providers(self) -> None:
        """Test context creates the default providers if not provided."""
        ctx = AppContext(layout=MagicMock())

        assert isinstance(ctx.providers, ProviderRegistry)
        assert ctx.providers.names[-1] == "folder"

    def test_open_filesystem(self, tmp_path: Path, make_source: SourceFactory) -> None:
        """Test the configured layout is mounted."""
        source = make_source("a", {"x.txt": "x"})
        layout = LayoutManager.create(tmp_path / "config")
        layout.add_mount(str(source))
        layout.set_write_area(str(tmp_path / "write"))
        ctx = AppContext(layout=layout)

        filesystem, write_area = ctx.open_filesystem()

        assert filesystem.get_file("/x.txt") is not None
        assert write_area is not None
        assert write_area.is_mounted is True


class TestCreateContext:
    """Tests for create_context factory function."""

    def test_create_context_with_dir(self, tmp_path: Path) -> None:
        """Test creating context with a custom directory."""
        ctx = create_context(config_dir=tmp_path)

        assert ctx.layout.config_dir == tmp_path

    def test_create_context_default(self, temp_home: Path) -> None:
        """Test creating context with default parameters."""
        ctx = create_context()

        assert isinstance(ctx.layout, LayoutManager)
        assert isinstance(ctx.providers, ProviderRegistry)
