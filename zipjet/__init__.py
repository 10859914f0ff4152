"""zipjet - deterministic zip bundles for Node.js deployable units.

Resolves the minimal set of source and dependency files a unit needs and
writes them into a byte-reproducible archive.
"""

__version__ = "0.1.0"
__author__ = "zipjet Contributors"

from zipjet.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
