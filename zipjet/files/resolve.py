"""Candidate file enumeration and pattern-based resolution."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Callable, Iterable, Iterator, Sequence
from pathlib import Path

from wcmatch import glob

from zipjet.files.filter import (
    MATCH_FLAGS,
    ResolvedFileSet,
    escape_path,
    filter_files,
    normalize_pattern,
)
from zipjet.utils.paths import relative_posix

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILES = (
    "serverless.json",
    "serverless.yml",
    "serverless.yaml",
    "serverless.js",
)

_MAGIC_CHARS = frozenset("*?[]{}")
_ESCAPED = re.compile(r"\\(.)")


class NoFilesMatchedError(ValueError):
    """Raised when include / exclude patterns leave nothing to package."""

    def __init__(self) -> None:
        super().__init__("No file matches include / exclude patterns")


def union_patterns(*groups: Iterable[str] | None) -> list[str]:
    """Stable union: keep first occurrences, drop later duplicates."""
    merged: dict[str, None] = {}
    for group in groups:
        for pattern in group or ():
            merged.setdefault(pattern, None)
    return list(merged)


def _literal_segment(segment: str) -> str | None:
    """Return the name ``segment`` stands for, or None if it holds glob magic."""
    if any(char in _MAGIC_CHARS for char in _ESCAPED.sub("", segment)):
        return None
    return _ESCAPED.sub(r"\1", segment)


def _static_base(pattern: str) -> tuple[str, bool]:
    """Split off the leading directories of ``pattern`` without glob magic.

    Returns:
        The unescaped base path and whether the whole pattern is literal
    """
    static: list[str] = []
    for segment in pattern.split("/"):
        literal = _literal_segment(segment)
        if literal is None:
            return "/".join(static), False
        static.append(literal)
    return "/".join(static), True


def _join(parent: str, name: str) -> str:
    return name if parent in ("", ".") else f"{parent}/{name}"


def _walk_files(cwd: Path, base: str, prune: Callable[[str], bool]) -> Iterator[str]:
    """Yield files under ``cwd / base`` as cwd-relative posix paths.

    Symlinked directories are followed; a link pointing back at one of its own
    ancestors is not descended into again.
    """
    root = cwd / base if base else cwd
    if not root.is_dir():
        return

    ancestors: dict[str, frozenset[str]] = {
        os.fspath(root): frozenset({os.path.realpath(root)})
    }
    for dirpath, dirnames, filenames in os.walk(root, followlinks=True):
        rel_dir = relative_posix(dirpath, cwd)
        chain = ancestors.pop(dirpath, frozenset())

        kept: list[str] = []
        for name in sorted(dirnames):
            child = os.path.join(dirpath, name)
            child_real = os.path.realpath(child)
            if child_real in chain or prune(_join(rel_dir, name)):
                continue
            ancestors[child] = chain | {child_real}
            kept.append(name)
        dirnames[:] = kept

        for name in filenames:
            if os.path.isfile(os.path.join(dirpath, name)):
                yield _join(rel_dir, name)


def _glob_pattern(cwd: Path, pattern: str, ignores: Sequence[str]) -> list[str]:
    """Match a single positive ``pattern`` on disk, minus ``ignores``."""
    base, is_literal = _static_base(pattern)
    if is_literal:
        target = cwd / base
        if target.is_file():
            candidates = [base]
        elif target.is_dir():
            pattern = f"{pattern}/**"
            candidates = None
        else:
            return []
    else:
        candidates = None

    dir_ignores = [ignore[:-3] for ignore in ignores if ignore.endswith("/**")]

    def prune(rel_dir: str) -> bool:
        return any(glob.globmatch(rel_dir, ignore, flags=MATCH_FLAGS) for ignore in dir_ignores)

    if candidates is None:
        candidates = glob.globfilter(
            list(_walk_files(cwd, base, prune)), pattern, flags=MATCH_FLAGS
        )
    if not ignores:
        return candidates
    ignored = set(glob.globfilter(candidates, list(ignores), flags=MATCH_FLAGS))
    return [name for name in candidates if name not in ignored]


def glob_files(cwd: Path, patterns: Sequence[str]) -> list[str]:
    """Enumerate files on disk matching ``patterns`` with globby semantics.

    Each positive pattern contributes the files it matches, except those
    matched by a negative pattern appearing *after* it in the list. Only
    files are returned (dotfiles included), sorted, relative to ``cwd``.
    """
    normalized = [normalize_pattern(p) for p in patterns]
    found: set[str] = set()
    for index, pattern in enumerate(normalized):
        if pattern.startswith("!"):
            continue
        ignores = [p[1:] for p in normalized[index + 1 :] if p.startswith("!")]
        found.update(_glob_pattern(cwd, pattern, ignores))
    return sorted(found)


def find_config_file(
    files: Iterable[str],
    *,
    cwd: Path,
    service_path: Path,
    config_files: Sequence[str] = DEFAULT_CONFIG_FILES,
) -> str | None:
    """Return the one service configuration file to drop from the bundle.

    Only the first existing name (in ``config_files`` order) is removed, so a
    ``serverless.js`` next to a ``serverless.yml`` is still packaged.
    """
    present = set(files)
    for name in config_files:
        candidate = relative_posix(service_path / name, cwd)
        if candidate in present:
            return candidate
    return None


def resolve_file_paths_from_patterns(
    cwd: Path,
    *,
    service_path: Path | None = None,
    pre_include: Sequence[str] | None = None,
    dep_include: Sequence[str] | None = None,
    include: Sequence[str] | None = None,
    exclude: Sequence[str] | None = None,
    config_files: Sequence[str] = DEFAULT_CONFIG_FILES,
) -> ResolvedFileSet:
    """Glob and filter the files of one unit like serverless does.

    Everything under ``cwd`` is globbed along with the extra include patterns,
    then the ordered include / exclude filter decides the final set.

    Args:
        cwd: Directory file paths are relative to
        service_path: Service root used to locate the service config file
        pre_include: Early user patterns
        dep_include: Patterns produced by dependency resolution
        include: Explicit include patterns
        exclude: Exclude patterns
        config_files: Service config file names in removal priority order

    Returns:
        ResolvedFileSet of cwd-relative posix paths

    Raises:
        NoFilesMatchedError: If no file survives filtering
    """
    glob_include = ["**", *(pre_include or ()), *(dep_include or ()), *(include or ())]
    files = glob_files(cwd, glob_include)
    logger.debug("Globbed %d candidate files from %s", len(files), cwd)

    excludes = list(exclude or ())
    config_file = find_config_file(
        files,
        cwd=cwd,
        service_path=service_path or cwd,
        config_files=config_files,
    )
    if config_file:
        excludes.append(escape_path(config_file))

    resolved = filter_files(
        files,
        pre_include=pre_include,
        dep_include=dep_include,
        include=include,
        exclude=excludes,
    )
    if not resolved.included:
        raise NoFilesMatchedError()

    return resolved
