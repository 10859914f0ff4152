"""Adapters implementing zipjet ports."""

from zipjet.app.adapters.resolvers import PackageGraphResolver, TraceResolver
from zipjet.app.adapters.zip_archive import DeterministicZipArchiver

__all__ = [
    "DeterministicZipArchiver",
    "PackageGraphResolver",
    "TraceResolver",
]
