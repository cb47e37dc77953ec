"""Provider for zip archives."""

from __future__ import annotations

import io
import zipfile
from collections.abc import Iterator
from datetime import datetime, timezone
from pathlib import Path
from typing import BinaryIO

from layerfs.providers.base import BaseProvider, implied_directories, utc_timestamp
from layerfs.types import Locator, PhysicalEntry


def _zip_datetime(info: zipfile.ZipInfo) -> datetime:
    return datetime(*info.date_time, tzinfo=timezone.utc)


class ZipProvider(BaseProvider):
    """Exposes the members of a zip archive as a directory tree.

    Directories that are only implied by member names are synthesized with
    the archive's own timestamp.
    """

    name = "zip"
    description = "Zip archive"

    def can_read(self, physical_path: str) -> bool:
        """Claim files that are valid zip archives."""
        path = Path(physical_path)
        return path.is_file() and zipfile.is_zipfile(path)

    def _entries(self, physical_path: str) -> Iterator[PhysicalEntry]:
        archive_path = str(Path(physical_path).resolve())
        archive_time = utc_timestamp(Path(archive_path).stat().st_mtime)

        with zipfile.ZipFile(archive_path) as archive:
            infos = archive.infolist()

        explicit_dirs: set[str] = set()
        file_paths = []
        for info in infos:
            member = info.filename.strip("/")
            if not member:
                continue
            if info.is_dir():
                explicit_dirs.add(member)
                stamp = _zip_datetime(info)
                yield PhysicalEntry(member, True, 0, stamp, stamp, None)
                continue
            file_paths.append(member)
            stamp = _zip_datetime(info)
            yield PhysicalEntry(
                relative_path=member,
                is_directory=False,
                size=info.file_size,
                create_date=stamp,
                modified_date=stamp,
                locator=(archive_path, info.filename),
            )

        for directory in implied_directories(file_paths) - explicit_dirs:
            yield PhysicalEntry(directory, True, 0, archive_time, archive_time, None)

    def open_read(self, locator: Locator) -> BinaryIO:
        """Read a member into memory and return it as a stream."""
        archive_path, member = locator
        with zipfile.ZipFile(archive_path) as archive:
            return io.BytesIO(archive.read(member))
