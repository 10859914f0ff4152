"""Port interfaces for the zipjet application layer.

Services depend on these protocols, never on concrete adapters.
"""

__all__ = [
    "ArchiveEntry",
    "ArchivePort",
    "DependencyResolution",
    "DependencyResolverPort",
    "TraceMisses",
]

from zipjet.app.ports.archive import ArchiveEntry, ArchivePort
from zipjet.app.ports.resolver import DependencyResolution, DependencyResolverPort, TraceMisses
