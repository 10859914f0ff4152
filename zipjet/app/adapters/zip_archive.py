"""Deterministic zip archive adapter."""

from __future__ import annotations

import logging
import os
import posixpath
import stat
import tempfile
import threading
from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from pathlib import Path
from zipfile import ZIP_DEFLATED, ZIP_STORED, ZipFile, ZipInfo

from zipjet.app.ports import ArchiveEntry, ArchivePort
from zipjet.deps.classify import NODE_MODULES, classify_path
from zipjet.deps.packages import (
    PackageDescriptor,
    PackageType,
    RequestedPackageMap,
    unique_descriptors,
)
from zipjet.utils.deterministic import EPOCH_DATE_TIME
from zipjet.utils.paths import collapse_path, ensure_dir, normalize_posix

logger = logging.getLogger(__name__)

PACKAGES_DIR = "packages"
UNIX_SYSTEM = 3
SYMLINK_MODE = stat.S_IFLNK | 0o777

_destination_locks: dict[str, tuple[threading.Lock, int]] = {}
_destination_locks_guard = threading.Lock()


@contextmanager
def _destination_lock(bundle_path: Path) -> Iterator[None]:
    """Serialize writers of one archive path; the entry is dropped by the last one."""
    key = os.path.abspath(bundle_path)
    with _destination_locks_guard:
        lock, users = _destination_locks.get(key, (threading.Lock(), 0))
        _destination_locks[key] = (lock, users + 1)
    try:
        with lock:
            yield
    finally:
        with _destination_locks_guard:
            lock, users = _destination_locks[key]
            if users == 1:
                del _destination_locks[key]
            else:
                _destination_locks[key] = (lock, users - 1)


def _package_descriptors(packages: RequestedPackageMap | None) -> list[PackageDescriptor]:
    if not packages:
        return []
    return [d for d in unique_descriptors(packages) if d.type is PackageType.PACKAGE]


def archive_name(file_path: str, workspace: Sequence[PackageDescriptor] = ()) -> str:
    """Map a cwd-relative file path to its name inside the archive.

    Files owned by a workspace package are namespaced under
    ``packages/<name>/``; everything else keeps its logical path.
    """
    normalized = normalize_posix(file_path)
    owner: PackageDescriptor | None = None
    for descriptor in workspace:
        rel = descriptor.relative_path
        if normalized.startswith(f"{rel}/") and (
            owner is None or len(rel) > len(owner.relative_path)
        ):
            owner = descriptor
    if owner is not None:
        child = normalized[len(owner.relative_path) + 1 :]
        return f"{PACKAGES_DIR}/{owner.name}/{child}"

    logical = collapse_path(normalized)
    parts = classify_path(logical)
    if parts is not None and parts.is_dependency and parts.prefix_path == NODE_MODULES:
        if any(descriptor.name == parts.parent_name for descriptor in workspace):
            return f"{PACKAGES_DIR}/{parts.parent_name}/{parts.child_path}"
    return logical


def symlink_entries(packages: RequestedPackageMap | None) -> list[ArchiveEntry]:
    """Links from each package's ``node_modules/<dep>`` to ``packages/<dep>``."""
    links: dict[str, str] = {}
    for descriptor in unique_descriptors(packages or {}):
        if not descriptor.deps or not descriptor.deps.packages:
            continue
        if descriptor.type is PackageType.PACKAGE:
            base = f"{PACKAGES_DIR}/{descriptor.name}"
        else:
            base = collapse_path(descriptor.relative_path)
        for dep in sorted(descriptor.deps.packages):
            link = posixpath.join(base, NODE_MODULES, dep)
            links[link] = posixpath.relpath(f"{PACKAGES_DIR}/{dep}", posixpath.dirname(link))

    return [
        ArchiveEntry(name=link, data=target.encode("utf-8"), mode=SYMLINK_MODE, is_symlink=True)
        for link, target in sorted(links.items())
    ]


def _read_entry(cwd: Path, file_path: str, name: str) -> ArchiveEntry:
    full_path = cwd / file_path
    mode = os.stat(full_path).st_mode
    return ArchiveEntry(name=name, data=full_path.read_bytes(), mode=mode)


class DeterministicZipArchiver(ArchivePort):
    """Write byte-reproducible zip archives.

    Entries are written in sorted name order with a fixed timestamp and Unix
    permission bits, so identical inputs give identical archives.
    """

    def __init__(self, *, compression_level: int = 6, max_workers: int | None = None) -> None:
        self._compression_level = compression_level
        self._max_workers = max_workers

    def read_entries(
        self,
        files: Sequence[str],
        *,
        cwd: Path,
        packages: RequestedPackageMap | None = None,
    ) -> list[ArchiveEntry]:
        """Read every file concurrently and return entries sorted by name.

        Raises:
            OSError: If any file cannot be read
        """
        workspace = _package_descriptors(packages)
        ordered = sorted(files)
        names = [archive_name(file_path, workspace) for file_path in ordered]

        with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
            entries = list(
                executor.map(lambda pair: _read_entry(cwd, *pair), zip(ordered, names))
            )

        by_name: dict[str, ArchiveEntry] = {}
        sources: dict[str, str] = {}
        for file_path, entry in zip(ordered, entries):
            if entry.name in by_name:
                logger.warning(
                    "Archive path %s is shared by %s and %s; keeping %s",
                    entry.name,
                    sources[entry.name],
                    file_path,
                    file_path,
                )
            by_name[entry.name] = entry
            sources[entry.name] = file_path
        return [by_name[name] for name in sorted(by_name)]

    def create_zip(
        self,
        files: Sequence[str],
        *,
        cwd: Path,
        bundle_path: Path,
        packages: RequestedPackageMap | None = None,
    ) -> None:
        entries = self.read_entries(files, cwd=cwd, packages=packages)
        entries.extend(symlink_entries(packages))

        logger.debug("Zipping %d entries from %s to %s", len(entries), cwd, bundle_path)
        with _destination_lock(bundle_path):
            self._write(entries, Path(bundle_path))

    def _write(self, entries: Sequence[ArchiveEntry], bundle_path: Path) -> None:
        ensure_dir(bundle_path.parent)
        fd, tmp_name = tempfile.mkstemp(
            dir=bundle_path.parent, prefix=f".{bundle_path.name}.", suffix=".tmp"
        )
        os.close(fd)
        try:
            with ZipFile(tmp_name, "w", compression=ZIP_DEFLATED) as archive:
                for entry in entries:
                    info = ZipInfo(entry.name, date_time=EPOCH_DATE_TIME)
                    info.create_system = UNIX_SYSTEM
                    info.external_attr = (entry.mode & 0xFFFF) << 16
                    if entry.is_symlink:
                        info.compress_type = ZIP_STORED
                        archive.writestr(info, entry.data)
                    else:
                        info.compress_type = ZIP_DEFLATED
                        archive.writestr(info, entry.data, compresslevel=self._compression_level)
            os.replace(tmp_name, bundle_path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
