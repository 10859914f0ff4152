"""Bundle service: resolve, filter, check and archive one packaging unit."""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from zipjet.app.ports import ArchivePort, DependencyResolverPort, TraceMisses
from zipjet.app.report_service import ReportService
from zipjet.config import BundleConfig, BundleMode, Settings
from zipjet.deps.collapsed import CollapseReport, find_collapsed
from zipjet.deps.trace import absolutize_keys
from zipjet.files.filter import ResolvedFileSet
from zipjet.files.resolve import resolve_file_paths_from_patterns, union_patterns
from zipjet.utils.deterministic import compute_sha256_file

logger = logging.getLogger(__name__)


class TraceReport(BaseModel):
    """Trace diagnostics of a unit."""

    misses: TraceMisses = Field(default_factory=TraceMisses)
    missed: TraceMisses | None = None
    resolved: TraceMisses | None = None


class BundlePatterns(BaseModel):
    """Full pattern sets used to filter a unit's files."""

    pre_include: list[str]
    dep_include: list[str]
    trace_include: list[str] = Field(default_factory=list)
    include: list[str]
    exclude: list[str]


class BundleResult(BaseModel):
    """Outcome of packaging one unit.

    ``roots``, ``patterns``, ``files`` and ``bundle_sha256`` are only filled
    when a report is requested.
    """

    num_files: int
    bundle_path: Path
    mode: BundleMode
    build_time_ms: float
    collapsed: CollapseReport
    trace: TraceReport = Field(default_factory=TraceReport)
    roots: list[str] | None = None
    patterns: BundlePatterns | None = None
    files: ResolvedFileSet | None = None
    bundle_sha256: str | None = None


class UnitOutcome(BaseModel):
    """Result or error of one unit built by ``package_all``."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    config: BundleConfig
    result: BundleResult | None = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BundleService:
    """Orchestrates bundle creation for packaging units.

    Dependency resolution and archive writing are delegated to ports so the
    archive can be replaced by a test double.
    """

    def __init__(
        self,
        archive_port: ArchivePort,
        *,
        trace_resolver: DependencyResolverPort,
        dependency_resolver: DependencyResolverPort,
        report_service: ReportService,
        settings: Settings,
    ) -> None:
        """Initialize bundle service.

        Args:
            archive_port: Archive writer
            trace_resolver: Strategy used when trace entries are configured
            dependency_resolver: Package-graph strategy used otherwise
            report_service: Miss and collapse policy handling
            settings: Process-wide settings
        """
        self.archive = archive_port
        self.trace_resolver = trace_resolver
        self.dependency_resolver = dependency_resolver
        self.reports = report_service
        self.settings = settings

    def resolver_for(self, config: BundleConfig) -> DependencyResolverPort:
        if config.mode is BundleMode.TRACE:
            return self.trace_resolver
        return self.dependency_resolver

    def glob_and_zip(self, config: BundleConfig, *, report: bool = False) -> BundleResult:
        """Build the archive for one unit.

        Args:
            config: Unit configuration
            report: Also return patterns, file lists, roots and archive digest

        Returns:
            BundleResult describing the archive

        Raises:
            NoFilesMatchedError: If no file survives filtering
            ManifestError: If a workspace package manifest is invalid
            OSError: If a file cannot be read while archiving
        """
        start = time.perf_counter()
        cwd = Path(os.path.abspath(config.cwd))
        bundle_path = config.bundle_path
        logger.debug("Start packaging %s in mode: %s", config.bundle_name, config.mode.value)

        resolution = self.resolver_for(config).resolve(config, cwd=cwd, root_path=config.root_path)
        exclude = union_patterns(self.settings.default_excludes, config.exclude)
        files = resolve_file_paths_from_patterns(
            cwd,
            service_path=config.resolved_service_path,
            pre_include=config.pre_include,
            dep_include=resolution.dep_include,
            include=config.include,
            exclude=exclude,
            config_files=self.settings.service_config_files,
        )
        collapsed = find_collapsed(files.included, cwd, max_workers=self.settings.max_workers)

        self.archive.create_zip(
            files.included,
            cwd=cwd,
            bundle_path=bundle_path,
            packages=resolution.packages,
        )

        result = BundleResult(
            num_files=len(files.included),
            bundle_path=bundle_path,
            mode=config.mode,
            build_time_ms=(time.perf_counter() - start) * 1000,
            collapsed=collapsed,
            trace=TraceReport(misses=resolution.misses),
        )
        logger.debug(
            "Zipped %d sources from %s to artifact location: %s",
            result.num_files,
            cwd,
            bundle_path,
        )

        if report:
            result.roots = list(config.roots)
            result.patterns = BundlePatterns(
                pre_include=list(config.pre_include),
                dep_include=resolution.dep_include,
                trace_include=resolution.trace_include,
                include=list(config.include),
                exclude=exclude,
            )
            result.files = files
            if bundle_path.is_file():
                result.bundle_sha256 = compute_sha256_file(bundle_path)

        return result

    def package(self, config: BundleConfig, *, report: bool = False) -> BundleResult:
        """Build one unit and apply the trace-miss and collapse policies."""
        result = self.glob_and_zip(config, report=report)

        if result.mode is BundleMode.TRACE:
            dynamic = config.trace.dynamic
            outcome = self.reports.resolve_trace_misses(
                result.trace.misses,
                resolutions=absolutize_keys(dynamic.resolutions, config.resolved_service_path),
                cwd=Path(os.path.abspath(config.cwd)),
                bundle_name=config.bundle_name,
                bail=dynamic.bail or self.settings.dynamic_bail,
            )
            result.trace.missed = outcome.missed
            result.trace.resolved = outcome.resolved

        self.reports.check_collapsed(
            result.collapsed,
            bundle_name=config.bundle_name,
            bail=self.settings.collapsed_bail,
        )

        logger.info(
            "Packaged %s (%s mode): %s (%.2fs)",
            config.bundle_name,
            result.mode.value,
            result.bundle_path,
            result.build_time_ms / 1000,
        )
        return result

    def package_all(
        self, configs: Sequence[BundleConfig], *, report: bool = False
    ) -> list[UnitOutcome]:
        """Package units concurrently; one unit failing never stops the others."""
        with ThreadPoolExecutor(max_workers=self.settings.concurrency) as executor:
            futures = [executor.submit(self.package, config, report=report) for config in configs]

        outcomes: list[UnitOutcome] = []
        for config, future in zip(configs, futures):
            error = future.exception()
            if error is not None:
                logger.error("Packaging %s failed: %s", config.bundle_name, error)
                outcomes.append(UnitOutcome(config=config, error=error))
            else:
                outcomes.append(UnitOutcome(config=config, result=future.result()))
        return outcomes
