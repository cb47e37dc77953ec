"""Application context for dependency injection.

CLI commands receive everything they need through an AppContext, so tests
can swap in temporary layout directories or custom provider registries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from layerfs.config import LayoutManager, build_filesystem, build_write_area
from layerfs.filesystem import FileSystem
from layerfs.providers import ProviderRegistry
from layerfs.writearea import WriteArea


@dataclass
class AppContext:
    """Container for application dependencies.

    Attributes:
        layout: Loads and edits the persisted layout.
        providers: Providers used for every FileSystem the CLI opens.
    """

    layout: LayoutManager
    providers: ProviderRegistry = field(default_factory=ProviderRegistry.create_default)

    def open_filesystem(self) -> tuple[FileSystem, WriteArea | None]:
        """Mount the configured layout.

        Returns:
            The FileSystem and its mounted write area, if one is configured.
        """
        layout = self.layout.load()
        filesystem = build_filesystem(layout, self.providers)
        return filesystem, build_write_area(layout, filesystem)


def create_context(config_dir: Path | None = None) -> AppContext:
    """Factory for application dependencies.

    Args:
        config_dir: Override the layout directory (for testing).

    Returns:
        Configured AppContext.
    """
    layout = LayoutManager.create(config_dir) if config_dir else LayoutManager.create_default()
    return AppContext(layout=layout, providers=ProviderRegistry.create_default())
