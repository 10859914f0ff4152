"""Ordered include/exclude pattern filtering.

Reproduces the serverless packaging rules: every candidate starts included,
patterns are applied in a fixed order and the *last* pattern matching a file
decides whether it is kept. Glob matching follows ``nanomatch`` with
``dot: true`` (globstar, brace groups, dotfiles) and is forced to POSIX
semantics so results never depend on the host OS. A backslash escapes the
next glob character, except on Windows where it is a path separator.
"""

from __future__ import annotations

import os
from collections.abc import Iterable, Sequence
from enum import Enum

from pydantic import BaseModel, Field
from wcmatch import glob

from zipjet.utils.paths import to_posix

MATCH_FLAGS = glob.GLOBSTAR | glob.BRACE | glob.DOTGLOB | glob.FORCEUNIX


class FileState(Enum):
    """Inclusion state tracked per candidate file."""

    INCLUDED = "included"
    EXCLUDED = "excluded"


class ResolvedFileSet(BaseModel):
    """Partition of candidate files after filtering."""

    included: list[str] = Field(default_factory=list)
    excluded: list[str] = Field(default_factory=list)


def normalize_pattern(pattern: str, sep: str = os.sep) -> str:
    """Return ``pattern`` with forward slashes and no leading ``./``.

    Host separators other than ``/`` are rewritten; on POSIX hosts a
    backslash is left alone as a glob escape.
    """
    negated = pattern.startswith("!")
    body = pattern[1:] if negated else pattern
    if sep != "/":
        body = body.replace(sep, "/")
    while body.startswith("./"):
        body = body[2:]
    return f"!{body}" if negated else body


def escape_path(path: str) -> str:
    """Return a pattern that matches exactly the file ``path``."""
    return glob.escape(to_posix(path), unix=True)


def negate_excludes(exclude: Iterable[str] | None) -> list[str]:
    """Turn exclude patterns into ``!``-patterns.

    An exclude that already starts with ``!`` is a re-include, so its bang is
    removed instead.
    """
    return [e[1:] if e.startswith("!") else f"!{e}" for e in exclude or ()]


def ordered_patterns(
    *,
    pre_include: Sequence[str] | None = None,
    dep_include: Sequence[str] | None = None,
    include: Sequence[str] | None = None,
    exclude: Sequence[str] | None = None,
) -> list[str]:
    """Assemble the filter pattern list in precedence order."""
    patterns = [
        *(pre_include or ()),
        *(dep_include or ()),
        *negate_excludes(exclude),
        *(include or ()),
    ]
    return [normalize_pattern(p) for p in patterns]


def match_files(files: Sequence[str], pattern: str) -> list[str]:
    """Return the members of ``files`` matched by the positive ``pattern``."""
    return glob.globfilter(files, pattern, flags=MATCH_FLAGS)


def apply_patterns(files: Iterable[str], patterns: Sequence[str]) -> ResolvedFileSet:
    """Apply ``patterns`` in order to ``files``; the last match wins."""
    candidates = list(dict.fromkeys(to_posix(f) for f in files))
    states = dict.fromkeys(candidates, FileState.INCLUDED)

    for pattern in patterns:
        is_include = not pattern.startswith("!")
        positive = pattern if is_include else pattern[1:]
        state = FileState.INCLUDED if is_include else FileState.EXCLUDED
        for matched in match_files(candidates, positive):
            states[matched] = state

    resolved = ResolvedFileSet()
    for name, state in states.items():
        if state is FileState.INCLUDED:
            resolved.included.append(name)
        else:
            resolved.excluded.append(name)
    return resolved


def filter_files(
    files: Iterable[str],
    *,
    pre_include: Sequence[str] | None = None,
    dep_include: Sequence[str] | None = None,
    include: Sequence[str] | None = None,
    exclude: Sequence[str] | None = None,
) -> ResolvedFileSet:
    """Filter candidate ``files`` like serverless does.

    Args:
        files: Candidate file paths, relative to the build working directory
        pre_include: Patterns applied first (user-configured early overrides)
        dep_include: Dependency-resolution patterns
        include: Explicit include patterns, applied last
        exclude: Exclude patterns, applied between dependency and include patterns

    Returns:
        ResolvedFileSet with included and excluded files in candidate order
    """
    patterns = ordered_patterns(
        pre_include=pre_include,
        dep_include=dep_include,
        include=include,
        exclude=exclude,
    )
    return apply_patterns(files, patterns)
