"""Provider that mounts the tree of a git commit.

Locations look like ``git:/path/to/repo`` or ``git:/path/to/repo#ref``;
without a ref the repository's HEAD is used. Content is read straight from
the object database, so the working copy is never touched.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Iterator
from typing import BinaryIO

from git import Repo
from git.exc import BadName, GitCommandError, InvalidGitRepositoryError, NoSuchPathError

from layerfs.providers.base import BaseProvider
from layerfs.types import Locator, PhysicalEntry

logger = logging.getLogger(__name__)

SCHEME = "git:"
DEFAULT_REF = "HEAD"


def parse_location(physical_path: str) -> tuple[str, str]:
    """Split ``git:<repo>#<ref>`` into repository path and ref."""
    if not physical_path.startswith(SCHEME):
        raise ValueError(f"Not a git location: {physical_path}")
    repo_path, _, ref = physical_path[len(SCHEME):].partition("#")
    return repo_path, ref or DEFAULT_REF


class GitTreeProvider(BaseProvider):
    """Read-only view of a commit's tree."""

    name = "git"
    description = "Git commit tree"

    def can_read(self, physical_path: str) -> bool:
        """Claim ``git:`` locations that resolve to a commit."""
        if not physical_path.startswith(SCHEME):
            return False
        repo_path, ref = parse_location(physical_path)
        try:
            Repo(repo_path).commit(ref)
        except (InvalidGitRepositoryError, NoSuchPathError, BadName, GitCommandError, ValueError) as e:
            logger.debug("Cannot read git location %s: %s", physical_path, e)
            return False
        return True

    def _entries(self, physical_path: str) -> Iterator[PhysicalEntry]:
        repo_path, ref = parse_location(physical_path)
        repo = Repo(repo_path)
        commit = repo.commit(ref)
        stamp = commit.committed_datetime
        for item in commit.tree.traverse():
            if item.type == "tree":
                yield PhysicalEntry(item.path, True, 0, stamp, stamp, None)
            elif item.type == "blob":
                yield PhysicalEntry(
                    relative_path=item.path,
                    is_directory=False,
                    size=item.size,
                    create_date=stamp,
                    modified_date=stamp,
                    locator=(repo_path, commit.hexsha, item.path),
                )

    def open_read(self, locator: Locator) -> BinaryIO:
        """Read a blob into memory and return it as a stream."""
        repo_path, sha, blob_path = locator
        blob = Repo(repo_path).commit(sha).tree / blob_path
        return io.BytesIO(blob.data_stream.read())
