"""Path utilities for directory and file operations."""

from __future__ import annotations

import os
import posixpath
from pathlib import Path


def ensure_dir(path: Path) -> Path:
    """Ensure directory exists, creating if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def to_posix(path: str | Path) -> str:
    """Return ``path`` with forward slashes regardless of host separator."""
    return str(path).replace("\\", "/")


def relative_posix(path: str | Path, start: str | Path) -> str:
    """Relativize ``path`` against ``start`` and return it in posix form."""
    return to_posix(os.path.relpath(os.fspath(path), os.fspath(start)))


def normalize_posix(path: str | Path) -> str:
    """Collapse redundant separators and ``.`` / ``x/..`` segments."""
    return posixpath.normpath(to_posix(path))


def collapse_path(path: str | Path) -> str:
    """Return the logical archive location of ``path``.

    Leading ``../`` segments cannot be represented inside an archive, so they
    are stripped after normalization. Two files reached through different
    traversal depths therefore share one logical path.

    Example:
        >>> collapse_path("../node_modules/foo/index.js")
        'node_modules/foo/index.js'
    """
    parts = normalize_posix(path).split("/")
    while parts and parts[0] in ("..", "."):
        parts.pop(0)
    return "/".join(parts)
