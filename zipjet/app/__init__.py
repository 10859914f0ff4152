"""Application layer: services orchestrating ports."""

from zipjet.app.bundle_service import BundleResult, BundleService, UnitOutcome
from zipjet.app.report_service import CollapsedFilesError, ReportService, TraceMissesError

__all__ = [
    "BundleResult",
    "BundleService",
    "CollapsedFilesError",
    "ReportService",
    "TraceMissesError",
    "UnitOutcome",
]
