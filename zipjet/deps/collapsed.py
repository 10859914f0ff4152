"""Detection of files that collapse onto the same archive path."""

from __future__ import annotations

import logging
import posixpath
from collections import defaultdict
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from pydantic import BaseModel, Field

from zipjet.deps.classify import classify_path
from zipjet.deps.installs import ManifestError, read_manifest
from zipjet.utils.paths import collapse_path

logger = logging.getLogger(__name__)


class DupPackage(BaseModel):
    """One physical copy of a collapsed dependency."""

    path: str
    version: str | None = None


class DupGroup(BaseModel):
    """Collapse statistics for one package or source directory."""

    num_unique_paths: int
    num_total_files: int
    packages: list[DupPackage] | None = None


class CollapseReport(BaseModel):
    """Collapsed source directories and dependency packages."""

    srcs: dict[str, DupGroup] = Field(default_factory=dict)
    pkgs: dict[str, DupGroup] = Field(default_factory=dict)

    @property
    def has_collapses(self) -> bool:
        return bool(self.srcs or self.pkgs)


class _Group:
    def __init__(self) -> None:
        self.files: list[str] = []
        self.by_logical: dict[str, set[str]] = defaultdict(set)
        self.roots: dict[str, str] = {}

    def add(self, physical: str, logical: str, root: str) -> None:
        self.files.append(physical)
        self.by_logical[logical].add(physical)
        self.roots[physical] = root

    def collapsed_paths(self) -> set[str]:
        collapsed: set[str] = set()
        for physical in self.by_logical.values():
            if len(physical) > 1:
                collapsed.update(physical)
        return collapsed


def _read_version(cwd: Path, package_root: str) -> str | None:
    try:
        manifest = read_manifest(cwd / package_root)
    except ManifestError as exc:
        logger.debug("No version for %s: %s", package_root, exc)
        return None
    version = (manifest or {}).get("version")
    return version if isinstance(version, str) else None


def find_collapsed(
    files: Iterable[str],
    cwd: Path,
    *,
    max_workers: int | None = None,
) -> CollapseReport:
    """Find files whose logical archive path is shared by another physical file.

    Dependency files are grouped by package name and source files by logical
    directory. A group is reported when at least one logical path in it comes
    from more than one physical path.

    Args:
        files: cwd-relative posix file paths, possibly reaching outside ``cwd``
        cwd: Directory the paths are relative to
        max_workers: Threads used for manifest version lookups

    Returns:
        CollapseReport with groups keyed in sorted order
    """
    pkgs: dict[str, _Group] = defaultdict(_Group)
    srcs: dict[str, _Group] = defaultdict(_Group)

    for physical in files:
        parts = classify_path(physical)
        if parts is None:
            continue
        logical = collapse_path(physical)
        if parts.is_dependency:
            pkgs[parts.parent_name].add(physical, logical, parts.package_path)
        else:
            srcs[posixpath.dirname(logical) or "."].add(physical, logical, parts.package_path)

    report = CollapseReport()
    for key in sorted(srcs):
        collapsed = srcs[key].collapsed_paths()
        if collapsed:
            report.srcs[key] = DupGroup(
                num_unique_paths=len(collapsed),
                num_total_files=len(srcs[key].files),
            )

    package_roots: dict[str, list[str]] = {}
    for key in sorted(pkgs):
        group = pkgs[key]
        collapsed = group.collapsed_paths()
        if collapsed:
            package_roots[key] = sorted({group.roots[path] for path in collapsed})
            report.pkgs[key] = DupGroup(
                num_unique_paths=len(collapsed),
                num_total_files=len(group.files),
            )

    roots = sorted({root for group_roots in package_roots.values() for root in group_roots})
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        versions = dict(zip(roots, executor.map(lambda root: _read_version(cwd, root), roots)))

    for key, group_roots in package_roots.items():
        report.pkgs[key].packages = [
            DupPackage(path=root, version=versions[root]) for root in group_roots
        ]

    if report.has_collapses:
        logger.debug(
            "Found collapsed files in %d source groups and %d packages",
            len(report.srcs),
            len(report.pkgs),
        )
    return report
