"""Layered virtual file system over folders, archives and git trees."""

__version__ = "0.1.0"

from layerfs.errors import (
    AlreadyExistsError,
    InvalidPathError,
    IOConflictError,
    LayerFSError,
    NameConflictError,
    NotFoundError,
    UnsupportedSourceError,
)
from layerfs.filesystem import FileSystem
from layerfs.protocols import Notifier, PhysicalWriter, Provider
from layerfs.providers import ProviderRegistry
from layerfs.tree import VirtualDirectory, VirtualFile
from layerfs.types import (
    CancelToken,
    ConflictResolution,
    CopyProgress,
    CopyResult,
    DeleteResult,
    MountPoint,
    WriteMode,
)
from layerfs.writearea import WriteArea

__all__ = [
    "__version__",
    "AlreadyExistsError",
    "CancelToken",
    "ConflictResolution",
    "CopyProgress",
    "CopyResult",
    "DeleteResult",
    "FileSystem",
    "IOConflictError",
    "InvalidPathError",
    "LayerFSError",
    "MountPoint",
    "NameConflictError",
    "NotFoundError",
    "Notifier",
    "PhysicalWriter",
    "Provider",
    "ProviderRegistry",
    "UnsupportedSourceError",
    "VirtualDirectory",
    "VirtualFile",
    "WriteArea",
    "WriteMode",
]
