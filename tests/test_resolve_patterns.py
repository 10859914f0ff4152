"""Tests for on-disk file enumeration and pattern resolution."""

import os
from pathlib import Path

import pytest

from zipjet.files import (
    NoFilesMatchedError,
    escape_path,
    glob_files,
    resolve_file_paths_from_patterns,
)
from zipjet.files.resolve import find_config_file, union_patterns

SERVICE_TREE = {
    "serverless.yml": "service: demo\n",
    "serverless.js": "module.exports = {};\n",
    "index.js": "exports.handler = () => 1;\n",
    ".env": "SECRET=1\n",
    "lib": {"util.js": "module.exports = 1;\n"},
    "node_modules": {
        "a": {
            "index.js": "module.exports = 'a';\n",
            "node_modules": {"b": {"index.js": "module.exports = 'b';\n"}},
        },
    },
}


class TestGlobFiles:
    """Globby-style enumeration."""

    def test_double_star_returns_all_files_including_dotfiles(self, make_tree) -> None:
        """`**` yields every file, dotfiles and node_modules included."""
        cwd = make_tree(SERVICE_TREE)
        files = glob_files(cwd, ["**"])
        assert ".env" in files
        assert "node_modules/a/node_modules/b/index.js" in files
        assert files == sorted(files)

    def test_later_negations_prune_earlier_positives(self, make_tree) -> None:
        """A negative pattern only removes matches of patterns before it."""
        cwd = make_tree(SERVICE_TREE)
        files = glob_files(
            cwd,
            ["**", "!node_modules/**", "node_modules/a/**", "!node_modules/a/node_modules/**"],
        )
        assert files == [
            ".env",
            "index.js",
            "lib/util.js",
            "node_modules/a/index.js",
            "serverless.js",
            "serverless.yml",
        ]

    def test_literal_file_pattern(self, make_tree) -> None:
        """A pattern without magic matches the file itself."""
        cwd = make_tree(SERVICE_TREE)
        files = glob_files(cwd, ["node_modules/a/node_modules/b/index.js"])
        assert files == ["node_modules/a/node_modules/b/index.js"]

    def test_escaped_pattern_matches_only_the_named_file(self, make_tree) -> None:
        """Escaped glob characters are matched literally on disk."""
        cwd = make_tree({"my-routes": {"[id].js": "1\n", "i.js": "2\n"}})
        assert glob_files(cwd, [escape_path("my-routes/[id].js")]) == ["my-routes/[id].js"]
        assert glob_files(cwd, [escape_path("my-routes/i.js")]) == ["my-routes/i.js"]
        assert glob_files(cwd, ["my-routes/[id].js"]) == ["my-routes/i.js"]

    def test_literal_directory_pattern_expands(self, make_tree) -> None:
        """A directory pattern expands to everything below it."""
        cwd = make_tree(SERVICE_TREE)
        assert glob_files(cwd, ["lib"]) == ["lib/util.js"]

    def test_patterns_reach_outside_cwd(self, make_tree, temp_dir: Path) -> None:
        """`../` patterns enumerate files beside the working directory."""
        make_tree({"shared": {"helper.js": "module.exports = 2;\n"}})
        cwd = make_tree({"index.js": "1\n"}, subdir="app")
        files = glob_files(cwd, ["**", "../shared/**"])
        assert files == ["../shared/helper.js", "index.js"]

    def test_symlinked_directories_are_followed(self, make_tree, temp_dir: Path) -> None:
        """Links to directories are traversed like real directories."""
        cwd = make_tree({"real": {"a.js": "1\n"}, "app": {"index.js": "1\n"}})
        os.symlink(temp_dir / "real", temp_dir / "app" / "linked")
        files = glob_files(cwd / "app", ["**"])
        assert files == ["index.js", "linked/a.js"]

    def test_symlink_cycles_terminate(self, make_tree, temp_dir: Path) -> None:
        """A link back to an ancestor is not walked again."""
        cwd = make_tree({"lib": {"util.js": "1\n"}})
        os.symlink(temp_dir / "lib", temp_dir / "lib" / "loop")
        files = glob_files(cwd, ["**"])
        assert "lib/util.js" in files
        assert not any("loop/loop" in name for name in files)

    def test_broken_symlinks_are_skipped(self, make_tree, temp_dir: Path) -> None:
        """Only existing files are returned."""
        cwd = make_tree({"index.js": "1\n"})
        os.symlink(temp_dir / "missing.js", temp_dir / "dangling.js")
        assert glob_files(cwd, ["**"]) == ["index.js"]


class TestResolveFilePaths:
    """Glob, config file removal and filtering together."""

    def test_first_service_config_file_is_removed(self, make_tree) -> None:
        """Only the highest-priority existing config file is excluded."""
        cwd = make_tree(SERVICE_TREE)
        resolved = resolve_file_paths_from_patterns(
            cwd,
            dep_include=["!node_modules/**"],
        )
        assert "serverless.yml" in resolved.excluded
        assert "serverless.js" in resolved.included

    def test_dependency_patterns_select_production_files(self, make_tree) -> None:
        """Nested node_modules of a dependency stay out."""
        cwd = make_tree(SERVICE_TREE)
        resolved = resolve_file_paths_from_patterns(
            cwd,
            dep_include=[
                "!node_modules/**",
                "node_modules/a/**",
                "!node_modules/a/node_modules/**",
            ],
            exclude=[".env"],
        )
        assert resolved.included == [
            "index.js",
            "lib/util.js",
            "node_modules/a/index.js",
            "serverless.js",
        ]

    def test_empty_result_is_fatal(self, make_tree) -> None:
        """Excluding everything raises instead of producing an empty bundle."""
        cwd = make_tree(SERVICE_TREE)
        with pytest.raises(NoFilesMatchedError, match="No file matches include / exclude patterns"):
            resolve_file_paths_from_patterns(cwd, exclude=["**"])

    def test_config_file_is_located_from_service_path(self, make_tree, temp_dir: Path) -> None:
        """The config file is looked up in the service root, relative to cwd."""
        make_tree({"serverless.yml": "service: demo\n"})
        cwd = make_tree({"index.js": "1\n"}, subdir="layer")
        found = find_config_file(
            ["../serverless.yml", "index.js"],
            cwd=cwd,
            service_path=temp_dir,
        )
        assert found == "../serverless.yml"


def test_union_patterns_is_stable() -> None:
    """First occurrence wins; order is otherwise kept."""
    assert union_patterns(["a", "b"], None, ["b", "c", "a"]) == ["a", "b", "c"]
