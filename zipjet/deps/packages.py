"""Workspace package graph and production dependency patterns."""

from __future__ import annotations

import logging
import os
from collections import deque
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from zipjet.deps.classify import NODE_MODULES
from zipjet.deps.installs import BIN_DIR, ManifestError, find_prod_installs, read_manifest
from zipjet.utils.deterministic import sorted_unique
from zipjet.utils.paths import relative_posix

logger = logging.getLogger(__name__)

ROOT_PACKAGE_NAME = "$$root$$"


class PackageType(str, Enum):
    """Role of a descriptor in the workspace."""

    ROOT = "root"
    PACKAGE = "package"


class ProductionDeps(BaseModel):
    """Direct production dependencies of one workspace package."""

    packages: set[str] = Field(default_factory=set, description="Workspace package names")
    external: list[str] = Field(
        default_factory=list, description="cwd-relative dependency paths"
    )


class PackageDescriptor(BaseModel):
    """A unit of code with its own manifest."""

    name: str
    type: PackageType
    scoped: bool = False
    full_path: Path
    relative_path: str
    deps: ProductionDeps | None = None


RequestedPackageMap = dict[str, PackageDescriptor]


def _descriptor(
    cwd: Path, path: str | Path, *, name: str, package_type: PackageType
) -> PackageDescriptor:
    full_path = Path(os.path.abspath(cwd / path))
    return PackageDescriptor(
        name=name,
        type=package_type,
        scoped=name.startswith("@"),
        full_path=full_path,
        relative_path=relative_posix(full_path, cwd),
    )


def create_package_map(
    cwd: Path,
    *,
    roots: Sequence[str] | None = None,
    packages: Sequence[str] | None = None,
) -> dict[str, PackageDescriptor]:
    """Describe the workspace: the cwd root, extra roots and packages.

    Args:
        cwd: Build working directory, always the first root
        roots: Extra entry directories, relative to ``cwd``
        packages: Workspace package directories, relative to ``cwd``

    Returns:
        Descriptors keyed by package name

    Raises:
        ManifestError: If a workspace package has no usable manifest or two
            packages share a name
    """
    cwd = Path(os.path.abspath(cwd))
    package_map = {
        ROOT_PACKAGE_NAME: _descriptor(
            cwd, ".", name=ROOT_PACKAGE_NAME, package_type=PackageType.ROOT
        )
    }

    for root in roots or ():
        descriptor = _descriptor(cwd, root, name=root, package_type=PackageType.ROOT)
        if descriptor.relative_path == ".":
            continue
        manifest = read_manifest(descriptor.full_path) or {}
        name = manifest.get("name") or descriptor.relative_path
        package_map[name] = descriptor.model_copy(
            update={"name": name, "scoped": name.startswith("@")}
        )

    for package in packages or ():
        full_path = Path(os.path.abspath(cwd / package))
        manifest = read_manifest(full_path)
        name = (manifest or {}).get("name")
        if not isinstance(name, str) or not name:
            raise ManifestError(f"Package at {full_path} needs a package.json with a name")
        if name in package_map:
            raise ManifestError(f"Duplicate workspace package name: {name}")
        package_map[name] = _descriptor(cwd, package, name=name, package_type=PackageType.PACKAGE)

    return package_map


def resolve_production_deps(
    package: PackageDescriptor,
    *,
    root_path: Path,
    cwd: Path,
    workspace: dict[str, str] | None = None,
) -> ProductionDeps:
    """Partition the production dependencies of ``package``.

    Dependencies resolving to a workspace package become package edges; the
    rest are recorded as cwd-relative paths.
    """
    installs = find_prod_installs(root_path, package.full_path, workspace=workspace)
    return ProductionDeps(
        packages=installs.packages - {package.name},
        external=sorted_unique(relative_posix(path, cwd) for path in installs.paths),
    )


def resolve_requested_packages(
    package_map: dict[str, PackageDescriptor],
    *,
    root_path: Path,
    cwd: Path,
    max_workers: int | None = None,
) -> RequestedPackageMap:
    """Walk package edges from the root descriptors until every reachable package is resolved.

    Each frontier of the breadth-first walk reads its manifests concurrently.

    Returns:
        Descriptors with ``deps`` attached, keyed by name and by relative path
    """
    workspace = {
        os.path.realpath(descriptor.full_path): name
        for name, descriptor in package_map.items()
        if descriptor.type is PackageType.PACKAGE
    }
    queue = deque(
        name for name, descriptor in package_map.items() if descriptor.type is PackageType.ROOT
    )
    visited: set[str] = set()
    requested: RequestedPackageMap = {}

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        while queue:
            frontier: list[PackageDescriptor] = []
            while queue:
                name = queue.popleft()
                if name in visited:
                    continue
                visited.add(name)
                frontier.append(package_map[name])

            resolved = executor.map(
                lambda descriptor: resolve_production_deps(
                    descriptor, root_path=root_path, cwd=cwd, workspace=workspace
                ),
                frontier,
            )
            for descriptor, deps in zip(frontier, resolved):
                logger.debug(
                    "Resolved %s: %d packages, %d external",
                    descriptor.name,
                    len(deps.packages),
                    len(deps.external),
                )
                with_deps = descriptor.model_copy(update={"deps": deps})
                requested[descriptor.name] = with_deps
                requested[descriptor.relative_path] = with_deps
                queue.extend(sorted(deps.packages - visited))

    return requested


def unique_descriptors(requested: RequestedPackageMap) -> list[PackageDescriptor]:
    """Distinct descriptors of ``requested``, sorted by relative path."""
    by_name = {descriptor.name: descriptor for descriptor in requested.values()}
    return sorted(by_name.values(), key=lambda descriptor: descriptor.relative_path)


def _join(base: str, rest: str) -> str:
    return rest if base == "." else f"{base}/{rest}"


def create_dependency_patterns(requested: RequestedPackageMap) -> list[str]:
    """Build include patterns for the requested packages and their dependencies.

    Each package directory is included, its own ``node_modules`` excluded, and
    every external dependency re-included without its nested ``node_modules``
    (which holds that dependency's dev dependencies). ``.bin`` stubs are
    included verbatim.
    """
    patterns: list[str] = []
    external: list[str] = []
    for descriptor in unique_descriptors(requested):
        if descriptor.type is PackageType.PACKAGE:
            patterns.append(f"{descriptor.relative_path}/**")
        patterns.append(f"!{_join(descriptor.relative_path, NODE_MODULES)}/**")
        if descriptor.deps:
            external.extend(descriptor.deps.external)

    bin_marker = f"{NODE_MODULES}/{BIN_DIR}/"
    for dep in sorted_unique(external):
        if bin_marker in dep:
            patterns.append(dep)
        else:
            patterns.extend([f"{dep}/**", f"!{dep}/{NODE_MODULES}/**"])
    return patterns
