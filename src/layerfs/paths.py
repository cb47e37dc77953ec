"""Virtual path normalization and name matching.

Virtual paths always start with "/", use "/" as the separator and compare
names case-insensitively unless a resolver is created with
``case_sensitive=True``. A trailing "/" marks a directory path.
"""

from __future__ import annotations

import re
from functools import lru_cache

from layerfs.errors import InvalidPathError

SEPARATOR = "/"
ROOT = "/"

# Characters that may never appear in an entry name. "*" and "?" are
# reserved for search masks.
INVALID_NAME_CHARS = frozenset('"*?<>|')


def _has_control_chars(value: str) -> bool:
    return any(ord(ch) < 32 or ord(ch) == 127 for ch in value)


def split(path: str) -> list[str]:
    """Split a virtual path into validated name segments.

    Args:
        path: Virtual path. Backslashes are accepted as separators.

    Returns:
        Ordered list of segments; empty for the root.

    Raises:
        InvalidPathError: If the path is empty, contains "..", control
            characters, or characters that are invalid in names.
    """
    if path is None or not path.strip():
        raise InvalidPathError("Path cannot be empty")
    if _has_control_chars(path):
        raise InvalidPathError(f"Path contains control characters: {path!r}")

    segments = []
    for segment in path.replace("\\", SEPARATOR).split(SEPARATOR):
        if not segment or segment == ".":
            continue
        if segment == "..":
            raise InvalidPathError(f"Parent directory segments are not allowed: {path}")
        if not segment.strip():
            raise InvalidPathError(f"Path contains a blank name: {path!r}")
        bad = INVALID_NAME_CHARS.intersection(segment)
        if bad:
            raise InvalidPathError(f"Invalid characters {''.join(sorted(bad))!r} in path: {path}")
        segments.append(segment)
    return segments


def is_root(path: str) -> bool:
    """Check whether a path refers to the root directory."""
    return not split(path)


def normalize(path: str) -> str:
    """Normalize a path, keeping its directory or file form.

    A path ending with a separator (or naming the root) stays a directory
    path ending in "/"; anything else becomes a file path.
    """
    segments = split(path)
    if not segments:
        return ROOT
    joined = ROOT + SEPARATOR.join(segments)
    if path.replace("\\", SEPARATOR).endswith(SEPARATOR):
        return joined + SEPARATOR
    return joined


def normalize_directory(path: str) -> str:
    """Normalize a path to directory form ("/a/b/")."""
    segments = split(path)
    if not segments:
        return ROOT
    return ROOT + SEPARATOR.join(segments) + SEPARATOR


def normalize_file(path: str) -> str:
    """Normalize a path to file form ("/a/b.txt").

    Raises:
        InvalidPathError: If the path has no file name component.
    """
    if path is not None and path.replace("\\", SEPARATOR).endswith(SEPARATOR):
        raise InvalidPathError(f"Path has no file name: {path}")
    segments = split(path)
    if not segments:
        raise InvalidPathError(f"Path has no file name: {path}")
    return ROOT + SEPARATOR.join(segments)


def parent_and_name(path: str) -> tuple[str, str]:
    """Split a path into its parent directory path and final name.

    Raises:
        InvalidPathError: If the path is the root.
    """
    segments = split(path)
    if not segments:
        raise InvalidPathError("The root directory has no name")
    parent = normalize_directory(SEPARATOR.join(segments[:-1]) or ROOT)
    return parent, segments[-1]


def join(directory: str, *names: str) -> str:
    """Append names to a directory path, returning a file-form path."""
    return normalize_file(normalize_directory(directory) + SEPARATOR.join(names))


def relative_to(path: str, directory: str, resolver: PathResolver | None = None) -> str:
    """Return ``path`` relative to ``directory`` without a leading separator.

    Names are compared through ``resolver``; without one the comparison is
    case-insensitive.

    Raises:
        InvalidPathError: If ``path`` is not inside ``directory``.
    """
    key = resolver.key if resolver is not None else str.casefold
    segments = split(path)
    base = split(directory)
    if [key(s) for s in segments[: len(base)]] != [key(s) for s in base]:
        raise InvalidPathError(f"{path} is not inside {directory}")
    return SEPARATOR.join(segments[len(base):])


def validate_mask(mask: str) -> str:
    """Validate a name search mask.

    Masks match a single name only: "*" matches any run of characters and
    "?" exactly one.

    Raises:
        InvalidPathError: If the mask is empty or contains a separator.
    """
    if mask is None or not mask.strip():
        raise InvalidPathError("Search mask cannot be empty")
    if SEPARATOR in mask or "\\" in mask:
        raise InvalidPathError(f"Search mask cannot contain a path separator: {mask}")
    return mask


@lru_cache(maxsize=256)
def _compile_mask(mask: str, case_sensitive: bool) -> re.Pattern[str]:
    pattern = re.escape(mask).replace(r"\*", ".*").replace(r"\?", ".")
    flags = re.DOTALL if case_sensitive else re.DOTALL | re.IGNORECASE
    return re.compile(f"{pattern}\\Z", flags)


class PathResolver:
    """Name comparison policy shared by every tree lookup.

    All lookups must key names through the same resolver, otherwise
    "Foo.txt" and "foo.txt" could become two entries.
    """

    __slots__ = ("case_sensitive",)

    def __init__(self, case_sensitive: bool = False) -> None:
        self.case_sensitive = case_sensitive

    def key(self, name: str) -> str:
        """Lookup key for a name."""
        return name if self.case_sensitive else name.casefold()

    def same(self, left: str, right: str) -> bool:
        """Compare two names or paths under this policy."""
        return self.key(left) == self.key(right)

    def match(self, name: str, mask: str) -> bool:
        """Match a name against a validated search mask."""
        if mask == "*":
            return True
        return _compile_mask(mask, self.case_sensitive).match(name) is not None

    def __repr__(self) -> str:
        return f"PathResolver(case_sensitive={self.case_sensitive})"
