"""Bookkeeping shared by the write area's bulk operations.

Copying, moving, exporting and importing are all planned as a list of units
(one directory creation or one file transfer). Units run one at a time so
cancellation and progress callbacks happen between units, never in the
middle of a file.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from pathlib import PurePosixPath
from typing import Optional

from layerfs.errors import AlreadyExistsError
from layerfs.types import CancelToken, ConflictResolution, CopyProgress, CopyResult

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[CopyProgress], Optional[bool]]
ConflictCallback = Callable[[str, str], ConflictResolution]


class TransferCancelled(Exception):
    """Raised by a unit to stop the whole operation without an error."""


class CopyUnit:
    """One directory creation or one file transfer of a bulk operation.

    ``run`` returns False when the unit was skipped.
    """

    __slots__ = ("path", "is_directory", "run")

    def __init__(self, path: str, is_directory: bool, run: Callable[[], Optional[bool]]) -> None:
        self.path = path
        self.is_directory = is_directory
        self.run = run

    def __repr__(self) -> str:
        kind = "directory" if self.is_directory else "file"
        return f"CopyUnit({self.path!r}, {kind})"


class CopyTracker:
    """Cumulative counters for a bulk operation."""

    def __init__(self, total_directories: int, total_files: int) -> None:
        self.total_directories = total_directories
        self.total_files = total_files
        self.directories = 0
        self.files = 0

    @classmethod
    def for_units(cls, units: list[CopyUnit]) -> CopyTracker:
        directories = sum(1 for unit in units if unit.is_directory)
        return cls(directories, len(units) - directories)

    def advance(self, unit: CopyUnit, progress: ProgressCallback | None, done: bool = True) -> bool:
        """Count a finished unit; False when the callback asks to stop."""
        if done and unit.is_directory:
            self.directories += 1
        elif done:
            self.files += 1
        if progress is None:
            return True
        answer = progress(
            CopyProgress(
                current_path=unit.path,
                directories_copied=self.directories,
                files_copied=self.files,
                total_directories=self.total_directories,
                total_files=self.total_files,
            )
        )
        return answer is not False

    def stopped(self, reason: str) -> None:
        logger.info(
            "Copy %s after %d directories and %d files", reason, self.directories, self.files
        )
        return None

    def finished(self, location: str) -> CopyResult:
        logger.info(
            "Copied %d directories and %d files into '%s'", self.directories, self.files, location
        )
        return CopyResult(self.directories, self.files)


def run_units(
    units: Iterable[CopyUnit],
    location: str,
    progress: ProgressCallback | None = None,
    cancel_token: CancelToken | None = None,
) -> CopyResult | None:
    """Run planned units in order.

    Returns:
        Counts of the directories and files actually written, or None if the
        token, the progress callback or a conflict answer stopped the run.
        Work done before stopping is kept.
    """
    units = list(units)
    tracker = CopyTracker.for_units(units)
    for unit in units:
        if cancel_token is not None and cancel_token.is_cancelled:
            return tracker.stopped("cancelled")
        try:
            done = unit.run()
        except TransferCancelled:
            return tracker.stopped("cancelled by conflict callback")
        if not tracker.advance(unit, progress, done is not False):
            return tracker.stopped("stopped by progress callback")
    return tracker.finished(location)


class ConflictPolicy:
    """Asks a conflict callback once per conflict, remembering ``*_ALL`` answers.

    Without a callback every conflict is answered with ``default``.
    """

    def __init__(
        self,
        callback: ConflictCallback | None = None,
        default: ConflictResolution = ConflictResolution.OVERWRITE,
    ) -> None:
        self.callback = callback
        self.default = default
        self._remembered: ConflictResolution | None = None

    def resolve(self, source: str, target: str, target_is_directory: bool = False) -> ConflictResolution:
        """Decide what to do with a source whose target name is taken.

        A directory in the way always asks again, since it cannot be
        overwritten by a file.

        Raises:
            TransferCancelled: If the answer is CANCEL.
            AlreadyExistsError: If the answer is FAIL.
        """
        if self._remembered is not None and not target_is_directory:
            answer = self._remembered
        elif self.callback is None:
            answer = self.default
        else:
            answer = self.callback(source, target)
            if answer.applies_to_all:
                self._remembered = answer
        logger.debug("Conflict on '%s': %s", target, answer.value)
        if answer is ConflictResolution.CANCEL:
            raise TransferCancelled(target)
        if answer is ConflictResolution.FAIL:
            raise AlreadyExistsError(f"File already exists: {target}")
        return answer


def next_free_name(name: str, taken: Callable[[str], bool]) -> str:
    """First of ``name``, ``stem (1).ext``, ``stem (2).ext``... not taken."""
    if not taken(name):
        return name
    pure = PurePosixPath(name)
    stem, suffix = (pure.stem, pure.suffix) if pure.stem else (name, "")
    counter = 1
    while True:
        candidate = f"{stem} ({counter}){suffix}"
        if not taken(candidate):
            return candidate
        counter += 1
