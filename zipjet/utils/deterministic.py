"""Deterministic ordering utilities for reproducible bundles."""

import hashlib
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import TypeVar

T = TypeVar("T")

# Zip timestamps are stored as DOS dates, which cannot express anything
# earlier than 1980. The Unix epoch clamps to this value.
EPOCH_DATE_TIME = (1980, 1, 1, 0, 0, 0)


def sorted_unique(*groups: Iterable[str] | None) -> list[str]:
    """Concatenate ``groups`` and return sorted, unique values.

    Example:
        >>> sorted_unique(["b", "a"], None, ["a", "c"])
        ['a', 'b', 'c']
    """
    values: set[str] = set()
    for group in groups:
        values.update(group or ())
    return sorted(values)


def compute_sha256_file(file_path: Path) -> str:
    """Return the hex SHA-256 digest of ``file_path``."""
    with open(file_path, "rb") as handle:
        return hashlib.file_digest(handle, "sha256").hexdigest()


def verify_determinism(func: Callable[[T], object], inputs: T, runs: int = 3) -> bool:
    """Verify function produces deterministic output.

    Useful for testing that repeated bundle builds are byte-identical.

    Args:
        func: Function to test
        inputs: Input data
        runs: Number of runs to verify (default: 3)

    Returns:
        True if all runs produce identical output
    """
    results = [func(inputs) for _ in range(runs)]
    first_result = results[0]
    return all(r == first_result for r in results)
