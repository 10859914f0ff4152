"""Dependency resolver adapters: import tracing and workspace package graphs."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from pathlib import Path

from zipjet.app.ports import DependencyResolution, DependencyResolverPort, TraceMisses
from zipjet.config import BundleConfig
from zipjet.deps.classify import NODE_MODULES, classify_path
from zipjet.deps.packages import (
    create_dependency_patterns,
    create_package_map,
    resolve_requested_packages,
)
from zipjet.deps.trace import DependencyTracer, TraceMiss, absolutize_keys
from zipjet.files.filter import escape_path
from zipjet.files.resolve import glob_files, union_patterns
from zipjet.utils.paths import relative_posix

logger = logging.getLogger(__name__)


def group_misses(misses: Mapping[Path, Sequence[TraceMiss]], cwd: Path) -> TraceMisses:
    """Split trace misses into application sources and dependency packages."""
    grouped = TraceMisses()
    for path in sorted(misses):
        rel = relative_posix(path, cwd)
        data = [miss.to_dict() for miss in misses[path]]
        parts = classify_path(rel)
        if parts is not None and parts.is_dependency:
            grouped.pkgs.setdefault(parts.parent_name, {})[rel] = data
        else:
            grouped.srcs[rel] = data
    return grouped


class TraceResolver(DependencyResolverPort):
    """Include exactly the files reachable from the unit's entry sources."""

    def resolve(self, config: BundleConfig, *, cwd: Path, root_path: Path) -> DependencyResolution:
        entries = glob_files(cwd, [*(config.trace_include or ()), *config.trace.include])
        service_path = config.resolved_service_path
        tracer = DependencyTracer(
            ignores=config.trace.ignores,
            allow_missing=absolutize_keys(config.trace.allow_missing, service_path),
            allow_missing_packages=config.trace.allow_missing_packages,
            extra_imports=absolutize_keys(config.trace.dynamic.resolutions, service_path),
        )
        logger.debug("Tracing %d entry files for %s", len(entries), config.bundle_name)
        result = tracer.trace(cwd / entry for entry in entries)

        dependencies = sorted(relative_posix(path, cwd) for path in result.dependencies)
        excludes = union_patterns(
            [f"!{NODE_MODULES}/**"],
            [f"!{relative_posix(root_path / NODE_MODULES, cwd)}/**"],
        )
        literals = [escape_path(path) for path in [*entries, *dependencies]]
        return DependencyResolution(
            dep_include=[*excludes, *literals],
            trace_include=entries,
            misses=group_misses(result.misses, cwd),
        )


class PackageGraphResolver(DependencyResolverPort):
    """Include workspace packages and their installed production dependencies."""

    def __init__(self, *, max_workers: int | None = None) -> None:
        self._max_workers = max_workers

    def resolve(self, config: BundleConfig, *, cwd: Path, root_path: Path) -> DependencyResolution:
        graph = config.graph
        package_map = create_package_map(cwd, roots=graph.roots, packages=graph.packages)
        requested = resolve_requested_packages(
            package_map, root_path=root_path, cwd=cwd, max_workers=self._max_workers
        )
        logger.debug("Resolved %d requested packages", len({d.name for d in requested.values()}))
        return DependencyResolution(
            dep_include=create_dependency_patterns(requested),
            packages=requested,
        )
