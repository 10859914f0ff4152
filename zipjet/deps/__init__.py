"""Dependency discovery: path classification, package graphs, tracing and collapses."""

from zipjet.deps.classify import PathParts, classify_path
from zipjet.deps.collapsed import CollapseReport, DupGroup, DupPackage, find_collapsed
from zipjet.deps.installs import ManifestError, find_prod_installs, read_manifest
from zipjet.deps.packages import (
    ROOT_PACKAGE_NAME,
    PackageDescriptor,
    PackageType,
    ProductionDeps,
    RequestedPackageMap,
    create_dependency_patterns,
    create_package_map,
    resolve_production_deps,
    resolve_requested_packages,
)
from zipjet.deps.trace import (
    DependencyTracer,
    HandlerNotFoundError,
    TraceMiss,
    TraceResult,
    absolutize_keys,
    handler_to_pattern,
    resolve_handler_file,
    trace_files,
)

__all__ = [
    "ROOT_PACKAGE_NAME",
    "CollapseReport",
    "DependencyTracer",
    "DupGroup",
    "DupPackage",
    "HandlerNotFoundError",
    "ManifestError",
    "PackageDescriptor",
    "PackageType",
    "PathParts",
    "ProductionDeps",
    "RequestedPackageMap",
    "TraceMiss",
    "TraceResult",
    "absolutize_keys",
    "classify_path",
    "create_dependency_patterns",
    "create_package_map",
    "find_collapsed",
    "find_prod_installs",
    "handler_to_pattern",
    "read_manifest",
    "resolve_handler_file",
    "resolve_production_deps",
    "resolve_requested_packages",
    "trace_files",
]
