"""Provider for plain directories on the local disk."""

from __future__ import annotations

import logging
import os
from collections.abc import Iterator
from pathlib import Path
from typing import BinaryIO

from layerfs.providers.base import BaseProvider, utc_timestamp
from layerfs.types import Locator, PhysicalEntry

logger = logging.getLogger(__name__)


class FolderProvider(BaseProvider):
    """Reads a directory tree from the local file system.

    Always registered last so it acts as the default for any existing
    directory no other provider claims.
    """

    name = "folder"
    description = "Local directory"

    def can_read(self, physical_path: str) -> bool:
        """Claim existing directories."""
        return Path(physical_path).is_dir()

    def _entries(self, physical_path: str) -> Iterator[PhysicalEntry]:
        root = Path(physical_path)
        for current, dirnames, filenames in os.walk(root):
            current_path = Path(current)
            for name in dirnames + filenames:
                entry_path = current_path / name
                try:
                    entry = self.describe(entry_path, entry_path.relative_to(root).as_posix())
                except OSError as e:
                    # Dangling links and entries removed while walking
                    logger.warning("Skipping '%s': %s", entry_path, e.strerror or e)
                    continue
                yield entry

    def describe(self, path: Path, relative_path: str) -> PhysicalEntry:
        """Build an entry for a single existing path."""
        info = path.stat()
        is_directory = path.is_dir()
        return PhysicalEntry(
            relative_path=relative_path,
            is_directory=is_directory,
            size=0 if is_directory else info.st_size,
            create_date=utc_timestamp(info.st_ctime),
            modified_date=utc_timestamp(info.st_mtime),
            locator=str(path),
        )

    def open_read(self, locator: Locator) -> BinaryIO:
        """Open the file at the locator path."""
        return open(locator, "rb")
