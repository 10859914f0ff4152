"""Pytest configuration and fixtures."""

import gc
import json
import os
import shutil
import tempfile
import time
from collections.abc import Callable, Generator, Mapping
from pathlib import Path
from typing import Any

import pytest

from zipjet.config import Settings

Tree = Mapping[str, Any]


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmpdir = os.path.realpath(tempfile.mkdtemp())
    try:
        yield Path(tmpdir)
    finally:
        # Force garbage collection to release any file handles
        gc.collect()
        # Small delay to allow OS to release file locks
        time.sleep(0.1)
        shutil.rmtree(tmpdir, ignore_errors=True)


def write_tree(root: Path, tree: Tree) -> Path:
    """Materialize ``tree`` under ``root``.

    String values become text files, dicts whose key ends in ``.json`` become
    JSON files, other dicts become directories.
    """
    root.mkdir(parents=True, exist_ok=True)
    for name, value in tree.items():
        path = root / name
        if isinstance(value, Mapping) and not name.endswith(".json"):
            write_tree(path, value)
        elif isinstance(value, Mapping):
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(value), encoding="utf-8")
        else:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(value, encoding="utf-8")
    return root


@pytest.fixture
def make_tree(temp_dir: Path) -> Callable[..., Path]:
    """Build a file tree inside ``temp_dir`` (or a subdirectory of it)."""

    def _make(tree: Tree, subdir: str = "") -> Path:
        return write_tree(temp_dir / subdir if subdir else temp_dir, tree)

    return _make


@pytest.fixture
def override_settings() -> Generator[Settings, None, None]:
    """Provide isolated zipjet settings scoped to tests."""

    import zipjet.config as config_module

    original_settings = getattr(config_module, "_settings", None)

    settings = config_module.Settings(concurrency=2)
    config_module._settings = settings

    try:
        yield settings
    finally:
        config_module._settings = original_settings
