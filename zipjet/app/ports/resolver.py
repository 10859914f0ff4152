"""Port for dependency resolution strategies."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field

from zipjet.config import BundleConfig
from zipjet.deps.packages import RequestedPackageMap


class TraceMisses(BaseModel):
    """Trace misses grouped by where the requiring file lives.

    ``srcs`` maps cwd-relative application files to their misses; ``pkgs``
    maps dependency package names to the same kind of mapping.
    """

    srcs: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)
    pkgs: dict[str, dict[str, list[dict[str, Any]]]] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.srcs and not self.pkgs


class DependencyResolution(BaseModel):
    """Patterns and metadata produced by a resolver strategy."""

    dep_include: list[str] = Field(default_factory=list)
    trace_include: list[str] = Field(
        default_factory=list, description="Traced entry files, relative to cwd"
    )
    misses: TraceMisses = Field(default_factory=TraceMisses)
    packages: RequestedPackageMap | None = Field(
        None, description="Requested workspace packages (package-graph mode only)"
    )


class DependencyResolverPort(Protocol):
    """Port interface for a dependency resolution strategy."""

    def resolve(
        self, config: BundleConfig, *, cwd: Path, root_path: Path
    ) -> DependencyResolution:
        """Return the dependency include patterns for one unit."""
        ...
