"""File-set resolution: on-disk globbing and ordered pattern filtering."""

from zipjet.files.filter import FileState, ResolvedFileSet, escape_path, filter_files
from zipjet.files.resolve import (
    NoFilesMatchedError,
    glob_files,
    resolve_file_paths_from_patterns,
    union_patterns,
)

__all__ = [
    "FileState",
    "NoFilesMatchedError",
    "ResolvedFileSet",
    "escape_path",
    "filter_files",
    "glob_files",
    "resolve_file_paths_from_patterns",
    "union_patterns",
]
