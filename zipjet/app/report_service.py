"""Report service for trace misses and collapsed files.

Turns the soft diagnostics of a build into log warnings and, when a bail
policy is enabled, into errors.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from zipjet.app.ports import TraceMisses
from zipjet.deps.classify import NODE_MODULES
from zipjet.deps.collapsed import CollapseReport, DupGroup
from zipjet.utils.paths import normalize_posix, to_posix

logger = logging.getLogger(__name__)


class TraceMissesError(RuntimeError):
    """Raised when unresolved trace misses remain and bailing is enabled."""


class CollapsedFilesError(RuntimeError):
    """Raised when collapsed files are found and bailing is enabled."""


class TraceMissOutcome(BaseModel):
    """Misses left after applying resolutions, and the ones resolutions covered."""

    missed: TraceMisses = Field(default_factory=TraceMisses)
    resolved: TraceMisses = Field(default_factory=TraceMisses)


def collapsed_summary(groups: Mapping[str, DupGroup]) -> list[str]:
    """One human-readable line per collapsed group.

    Example:
        ``- smooshed (Packages: 2, Files: 2 unique, 2 total): [node_modules/smooshed@1.0.0, ...]``
    """
    lines = []
    for key, group in groups.items():
        packages_count = f"Packages: {len(group.packages)}, " if group.packages is not None else ""
        packages_list = ""
        if group.packages is not None:
            listed = ", ".join(f"{pkg.path}@{pkg.version}" for pkg in group.packages)
            packages_list = f": [{listed}]"
        lines.append(
            f"- {key} ({packages_count}Files: {group.num_unique_paths} unique, "
            f"{group.num_total_files} total){packages_list}"
        )
    return lines


def trace_misses_report(misses: Mapping[str, Sequence[Mapping[str, Any]]]) -> list[str]:
    """One line per miss: ``- path [line:column]: src``."""
    lines = []
    for rel_path, entries in misses.items():
        if not entries:
            lines.append(f"- {rel_path}")
            continue
        for entry in entries:
            start = entry["loc"]["start"]
            lines.append(f"- {rel_path} [{start['line']}:{start['column']}]: {entry['src']}")
    return lines


def _package_path(rel_path: str) -> str:
    """Abstract ``pkg/path/to/file.js`` form of a path under ``node_modules``."""
    parts = normalize_posix(rel_path).split("/")
    index = len(parts) - 1 - parts[::-1].index(NODE_MODULES) if NODE_MODULES in parts else -1
    return "/".join(parts[index + 1 :])


class ReportService:
    """Apply miss resolutions and bail policies to build diagnostics."""

    def resolve_trace_misses(
        self,
        misses: TraceMisses,
        *,
        resolutions: Mapping[str, Sequence[str]],
        cwd: Path,
        bundle_name: str,
        bail: bool = False,
    ) -> TraceMissOutcome:
        """Drop misses covered by ``resolutions`` and report the rest.

        Args:
            misses: Grouped trace misses of one unit
            resolutions: Absolute source paths or ``pkg/path/file.js`` keys
                whose dynamic imports were resolved by configuration
            cwd: Directory the miss paths are relative to
            bundle_name: Unit name used in messages
            bail: Raise if misses remain

        Returns:
            TraceMissOutcome with remaining and resolved misses

        Raises:
            TraceMissesError: If ``bail`` and unresolved misses remain
        """
        res_srcs = {to_posix(key) for key in resolutions if os.path.isabs(key)}
        res_pkgs = {to_posix(key) for key in resolutions if not os.path.isabs(key)}

        outcome = TraceMissOutcome()
        for rel_path, entries in misses.srcs.items():
            full_path = to_posix(os.path.normpath(cwd / rel_path))
            if full_path in res_srcs:
                outcome.resolved.srcs[rel_path] = []
            else:
                outcome.missed.srcs[rel_path] = list(entries)

        for pkg, pkg_srcs in misses.pkgs.items():
            for rel_path, entries in pkg_srcs.items():
                if _package_path(rel_path) in res_pkgs:
                    outcome.resolved.pkgs.setdefault(pkg, {})[rel_path] = []
                else:
                    outcome.missed.pkgs.setdefault(pkg, {})[rel_path] = list(entries)

        srcs_len = len(outcome.missed.srcs)
        pkgs_len = len(outcome.missed.pkgs)
        if srcs_len:
            report = (
                "\n" + "\n".join(trace_misses_report(outcome.missed.srcs))
                if bail
                else json.dumps(list(outcome.missed.srcs))
            )
            logger.warning(
                "Found %d source files with tracing misses in %s", srcs_len, bundle_name
            )
            logger.info("%s source file tracing misses: %s", bundle_name, report)
        if pkgs_len:
            if bail:
                lines = [
                    line
                    for pkg_misses in outcome.missed.pkgs.values()
                    for line in trace_misses_report(pkg_misses)
                ]
                report = "\n" + "\n".join(lines)
            else:
                report = json.dumps(list(outcome.missed.pkgs))
            logger.warning(
                "Found %d dependency packages with tracing misses in %s", pkgs_len, bundle_name
            )
            logger.info("%s dependency package tracing misses: %s", bundle_name, report)

        if bail and (srcs_len or pkgs_len):
            raise TraceMissesError(
                "Bailing on tracing dynamic import misses. "
                f"Source Files: {srcs_len}, Dependencies: {pkgs_len}."
            )
        return outcome

    def check_collapsed(
        self,
        collapsed: CollapseReport,
        *,
        bundle_name: str,
        bail: bool = False,
    ) -> None:
        """Warn about collapsed files; raise CollapsedFilesError when ``bail``."""
        if not collapsed.has_collapses:
            return

        srcs_len = len(collapsed.srcs)
        pkgs_len = len(collapsed.pkgs)
        if srcs_len:
            logger.warning("Found %d collapsed source files in %s", srcs_len, bundle_name)
            logger.info(
                "%s collapsed source files:\n%s",
                bundle_name,
                "\n".join(collapsed_summary(collapsed.srcs)),
            )
        if pkgs_len:
            logger.warning("Found %d collapsed dependencies in %s", pkgs_len, bundle_name)
            logger.info(
                "%s collapsed dependencies:\n%s",
                bundle_name,
                "\n".join(collapsed_summary(collapsed.pkgs)),
            )

        if bail:
            raise CollapsedFilesError(
                "Bailing on collapsed files. "
                f"Source Files: {srcs_len}, Dependencies: {pkgs_len}."
            )
