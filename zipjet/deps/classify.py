"""Classify relative file paths as application sources or dependency files."""

from __future__ import annotations

from dataclasses import dataclass

from zipjet.utils.paths import to_posix

NODE_MODULES = "node_modules"

_SKIPPED_SEGMENTS = frozenset({"", ".", "..", NODE_MODULES})


@dataclass(frozen=True, slots=True)
class PathParts:
    """Components of a classified path.

    ``parent_name`` is the package name for dependencies and the first
    meaningful directory (or file) for sources. ``prefix_path`` is everything
    before ``parent_name``; ``child_path`` is everything after it.
    """

    parent_name: str
    child_path: str
    prefix_path: str
    is_dependency: bool

    @property
    def package_path(self) -> str:
        """Physical root of the owning package, ``prefix/parent_name``."""
        return f"{self.prefix_path}/{self.parent_name}" if self.prefix_path else self.parent_name


def classify_path(relative_path: str) -> PathParts | None:
    """Split ``relative_path`` into owner and remainder.

    Example:
        >>> classify_path("../node_modules/@scope/pkg/lib/a.js")
        PathParts(parent_name='@scope/pkg', child_path='lib/a.js', prefix_path='../node_modules', is_dependency=True)
    """
    parts = to_posix(relative_path).split("/")

    index = 0
    while index < len(parts) and parts[index] in _SKIPPED_SEGMENTS:
        index += 1
    if index >= len(parts):
        return None

    is_dependency = index > 0 and parts[index - 1] == NODE_MODULES
    width = 2 if is_dependency and parts[index].startswith("@") else 1

    return PathParts(
        parent_name="/".join(parts[index : index + width]),
        child_path="/".join(parts[index + width :]),
        prefix_path="/".join(parts[:index]),
        is_dependency=is_dependency,
    )
