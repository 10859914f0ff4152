"""Utility modules for common operations."""

from zipjet.utils.deterministic import (
    EPOCH_DATE_TIME,
    compute_sha256_file,
    sorted_unique,
)
from zipjet.utils.paths import (
    collapse_path,
    ensure_dir,
    normalize_posix,
    relative_posix,
    to_posix,
)

__all__ = [
    "EPOCH_DATE_TIME",
    "collapse_path",
    "compute_sha256_file",
    "ensure_dir",
    "normalize_posix",
    "relative_posix",
    "sorted_unique",
    "to_posix",
]
