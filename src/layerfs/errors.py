"""Exception hierarchy for layerfs.

Every error raised by the engine derives from LayerFSError so callers can
catch engine failures in one place. The concrete kinds also derive from the
closest builtin exception so generic handlers keep working.
"""

from __future__ import annotations


class LayerFSError(Exception):
    """Base class for all layerfs errors."""

    pass


class InvalidPathError(LayerFSError, ValueError):
    """Malformed virtual path, empty name, or a mask containing a separator."""

    pass


class NotFoundError(LayerFSError, LookupError):
    """A file or directory expected to exist was not found."""

    pass


class AlreadyExistsError(LayerFSError):
    """A destination file exists and overwriting was not allowed."""

    pass


class NameConflictError(LayerFSError):
    """A directory and a file would share a name at the same tree level."""

    pass


class UnsupportedSourceError(LayerFSError):
    """No provider can read the requested physical location."""

    pass


class IOConflictError(LayerFSError, OSError):
    """A physical operation was blocked by the underlying storage."""

    pass
