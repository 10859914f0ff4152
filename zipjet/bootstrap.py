"""Application bootstrap wiring ports, adapters, and services."""

from __future__ import annotations

from dataclasses import dataclass

from zipjet.app import BundleService, ReportService
from zipjet.app.adapters import DeterministicZipArchiver, PackageGraphResolver, TraceResolver
from zipjet.app.ports import ArchivePort, DependencyResolverPort
from zipjet.config import Settings, get_settings


@dataclass(slots=True)
class ApplicationContainer:
    """Aggregates wired services and adapters for the CLI layer."""

    settings: Settings
    archive_port: ArchivePort
    trace_resolver: DependencyResolverPort
    dependency_resolver: DependencyResolverPort
    report_service: ReportService
    bundle_service: BundleService


def bootstrap_application(
    settings: Settings | None = None,
    *,
    archive_port: ArchivePort | None = None,
) -> ApplicationContainer:
    """Instantiate adapters and services.

    Args:
        settings: Settings to use (defaults to the global settings)
        archive_port: Archive writer override, e.g. a recording test double
    """
    active_settings = settings or get_settings()

    archive = archive_port or DeterministicZipArchiver(
        compression_level=active_settings.compression_level,
        max_workers=active_settings.max_workers,
    )
    trace_resolver = TraceResolver()
    dependency_resolver = PackageGraphResolver(max_workers=active_settings.max_workers)
    report_service = ReportService()

    bundle_service = BundleService(
        archive,
        trace_resolver=trace_resolver,
        dependency_resolver=dependency_resolver,
        report_service=report_service,
        settings=active_settings,
    )

    return ApplicationContainer(
        settings=active_settings,
        archive_port=archive,
        trace_resolver=trace_resolver,
        dependency_resolver=dependency_resolver,
        report_service=report_service,
        bundle_service=bundle_service,
    )
