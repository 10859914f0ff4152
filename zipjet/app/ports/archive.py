"""Port for writing bundle archives."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from zipjet.deps.packages import RequestedPackageMap


@dataclass(frozen=True, slots=True)
class ArchiveEntry:
    """One entry of a bundle archive.

    ``mode`` carries the permission and file-type bits. For symlinks, ``data``
    is the link target.
    """

    name: str
    data: bytes
    mode: int
    is_symlink: bool = False


class ArchivePort(Protocol):
    """Port interface for writing a deterministic bundle archive."""

    def create_zip(
        self,
        files: Sequence[str],
        *,
        cwd: Path,
        bundle_path: Path,
        packages: RequestedPackageMap | None = None,
    ) -> None:
        """Write ``files`` (relative to ``cwd``) into the archive at ``bundle_path``."""
        ...
