"""Layout configuration: which sources to mount and where writes go."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field

from layerfs import paths
from layerfs.filesystem import FileSystem
from layerfs.mounts import normalize_physical_path
from layerfs.providers import ProviderRegistry
from layerfs.writearea import WriteArea

# Default layout location
LAYOUT_DIR = Path.home() / ".layerfs"


class MountSpec(BaseModel):
    """A source to mount, in override order."""

    model_config = ConfigDict(populate_by_name=True)

    physical_path: str = Field(alias="physicalPath")
    virtual_path: str = Field(default=paths.ROOT, alias="virtualPath")


class WriteAreaSpec(BaseModel):
    """Location that receives writes (a directory or ``mem://name``)."""

    location: str


class LayoutConfig(BaseModel):
    """Persisted layout of a virtual file system."""

    model_config = ConfigDict(populate_by_name=True)

    version: str = "1.0"
    case_sensitive: bool = Field(default=False, alias="caseSensitive")
    mounts: list[MountSpec] = Field(default_factory=list)
    write_area: WriteAreaSpec | None = Field(default=None, alias="writeArea")


class LayoutManager:
    """Loads and edits the layout file."""

    def __init__(self, config_dir: Path | None = None) -> None:
        """Initialize the layout manager.

        Args:
            config_dir: Directory holding layout.yaml. Defaults to ~/.layerfs.

        Note:
            Prefer using factory methods `create()` or `create_default()` for construction.
        """
        self.config_dir = config_dir or LAYOUT_DIR
        self.layout_file = self.config_dir / "layout.yaml"

    @classmethod
    def create(cls, config_dir: Path) -> LayoutManager:
        """Create a layout manager with a custom directory."""
        return cls(config_dir=config_dir)

    @classmethod
    def create_default(cls) -> LayoutManager:
        """Create a layout manager using ~/.layerfs."""
        return cls()

    def load(self) -> LayoutConfig:
        """Load the layout from disk.

        Returns:
            The stored layout, or an empty one if no file exists.

        Raises:
            ValueError: If the file is not valid YAML or not a mapping.
        """
        if not self.layout_file.exists():
            return LayoutConfig()

        try:
            data = yaml.safe_load(self.layout_file.read_text()) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid layout file {self.layout_file}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Invalid layout file {self.layout_file}: expected a mapping")
        return LayoutConfig.model_validate(data)

    def save(self, layout: LayoutConfig) -> None:
        """Write the layout to disk."""
        self.config_dir.mkdir(parents=True, exist_ok=True)
        data = layout.model_dump(by_alias=True, exclude_none=True)
        self.layout_file.write_text(yaml.safe_dump(data, default_flow_style=False, sort_keys=False))

    def add_mount(self, physical_path: str, virtual_path: str = paths.ROOT) -> MountSpec:
        """Append a source to the mount list.

        Raises:
            ValueError: If the source is already mounted at that location.
        """
        layout = self.load()
        spec = MountSpec(
            physical_path=normalize_physical_path(physical_path),
            virtual_path=paths.normalize_directory(virtual_path),
        )
        for existing in layout.mounts:
            if existing.physical_path == spec.physical_path and existing.virtual_path == spec.virtual_path:
                raise ValueError(f"'{spec.physical_path}' is already mounted at '{spec.virtual_path}'")
        layout.mounts.append(spec)
        self.save(layout)
        return spec

    def remove_mount(self, physical_path: str, virtual_path: str | None = None) -> bool:
        """Remove a source from the mount list.

        Returns:
            True if at least one entry was removed.
        """
        layout = self.load()
        physical = normalize_physical_path(physical_path)
        location = paths.normalize_directory(virtual_path) if virtual_path is not None else None
        original_count = len(layout.mounts)
        layout.mounts = [
            m
            for m in layout.mounts
            if not (m.physical_path == physical and (location is None or m.virtual_path == location))
        ]
        if len(layout.mounts) < original_count:
            self.save(layout)
            return True
        return False

    def set_write_area(self, location: str | None) -> WriteAreaSpec | None:
        """Set or clear the write area location."""
        layout = self.load()
        layout.write_area = (
            WriteAreaSpec(location=normalize_physical_path(location)) if location else None
        )
        self.save(layout)
        return layout.write_area

    def list_mounts(self) -> list[MountSpec]:
        return self.load().mounts


def build_filesystem(layout: LayoutConfig, providers: ProviderRegistry | None = None) -> FileSystem:
    """Mount every configured source in order.

    Raises:
        UnsupportedSourceError: If a configured source cannot be read.
        NameConflictError: If sources disagree about a file/directory name.
    """
    filesystem = FileSystem(providers=providers, case_sensitive=layout.case_sensitive)
    for spec in layout.mounts:
        filesystem.mount(spec.physical_path, spec.virtual_path)
    return filesystem


def build_write_area(layout: LayoutConfig, filesystem: FileSystem) -> WriteArea | None:
    """Create and mount the configured write area, if any."""
    if layout.write_area is None:
        return None
    write_area = WriteArea.create(filesystem, layout.write_area.location)
    write_area.mount()
    return write_area
