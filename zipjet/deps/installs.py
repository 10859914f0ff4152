"""Manifest reading and production dependency discovery on disk.

Dependencies are located the way Node.js does it: by looking for
``node_modules/<name>`` in the requiring package's directory and then in each
parent directory, never climbing above the configured root path.
"""

from __future__ import annotations

import json
import logging
import os
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from zipjet.deps.classify import NODE_MODULES

logger = logging.getLogger(__name__)

MANIFEST_NAME = "package.json"
BIN_DIR = ".bin"


class ManifestError(ValueError):
    """Raised when a package manifest cannot be read or is invalid."""


def read_manifest(package_dir: Path) -> dict[str, Any] | None:
    """Load ``package.json`` from ``package_dir``.

    Returns:
        Parsed manifest, or None if the directory has no manifest

    Raises:
        ManifestError: If the manifest exists but cannot be read or parsed
    """
    manifest_path = package_dir / MANIFEST_NAME
    if not manifest_path.is_file():
        return None
    try:
        data = json.loads(manifest_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ManifestError(f"Unable to read manifest {manifest_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ManifestError(f"Manifest {manifest_path} is not a JSON object")
    return data


def production_dependency_names(manifest: Mapping[str, Any] | None) -> list[str]:
    """Names from ``dependencies`` and ``optionalDependencies``, sorted."""
    names: set[str] = set()
    for key in ("dependencies", "optionalDependencies"):
        section = (manifest or {}).get(key)
        if isinstance(section, Mapping):
            names.update(section)
    return sorted(names)


def bin_names(package_name: str, manifest: Mapping[str, Any] | None) -> list[str]:
    """Executable stub names a package declares through its ``bin`` field.

    A string ``bin`` installs one stub named after the (unscoped) package.
    """
    declared = (manifest or {}).get("bin")
    if isinstance(declared, str):
        return [package_name.rsplit("/", 1)[-1]]
    if isinstance(declared, Mapping):
        return sorted(declared)
    return []


def find_installed(name: str, start_dir: Path, root_path: Path) -> Path | None:
    """Return the ``node_modules`` directory that holds ``name``.

    The search starts at ``start_dir`` and walks up, stopping at ``root_path``.
    """
    current = start_dir
    while True:
        modules_dir = current / NODE_MODULES
        if (modules_dir / name).is_dir():
            return modules_dir
        if current == root_path or root_path not in current.parents:
            return None
        current = current.parent


@dataclass(slots=True)
class ProductionInstalls:
    """Installed production dependencies of one package.

    ``paths`` holds absolute lookup paths (not symlink-resolved) of dependency
    directories and ``.bin`` stubs. ``packages`` holds names of workspace
    packages reached through a dependency edge.
    """

    paths: list[Path] = field(default_factory=list)
    packages: set[str] = field(default_factory=set)


def find_prod_installs(
    root_path: Path,
    cur_path: Path,
    *,
    workspace: Mapping[str, str] | None = None,
) -> ProductionInstalls:
    """Collect the transitive production dependencies installed for ``cur_path``.

    Args:
        root_path: Highest directory searched for ``node_modules``
        cur_path: Package directory whose manifest starts the walk
        workspace: Real paths of workspace packages mapped to their names;
            a dependency resolving to one of them becomes a package edge and
            is not descended into

    Returns:
        ProductionInstalls with lookup paths in discovery order
    """
    root_path = Path(os.path.abspath(root_path))
    cur_path = Path(os.path.abspath(cur_path))
    workspace = workspace or {}

    installs = ProductionInstalls()
    seen: set[str] = set()
    queue: deque[tuple[Path, dict[str, Any] | None]] = deque(
        [(cur_path, read_manifest(cur_path))]
    )

    while queue:
        package_dir, manifest = queue.popleft()
        for name in production_dependency_names(manifest):
            modules_dir = find_installed(name, package_dir, root_path)
            if modules_dir is None:
                logger.debug("Skipping uninstalled dependency %s of %s", name, package_dir)
                continue

            dep_dir = modules_dir / name
            real = os.path.realpath(dep_dir)
            if real in workspace:
                installs.packages.add(workspace[real])
                continue
            if real in seen:
                continue
            seen.add(real)

            installs.paths.append(dep_dir)
            dep_manifest = read_manifest(dep_dir)
            for stub in bin_names(name, dep_manifest):
                stub_path = modules_dir / BIN_DIR / stub
                if os.path.lexists(stub_path):
                    installs.paths.append(stub_path)
            queue.append((dep_dir, dep_manifest))

    return installs
