"""Tests for the bundle orchestration service."""

import os
import zipfile
from pathlib import Path

import pytest

from zipjet.app import BundleService, CollapsedFilesError, TraceMissesError
from zipjet.bootstrap import bootstrap_application
from zipjet.config import BundleConfig, BundleMode, Settings, TraceConfig
from zipjet.files import NoFilesMatchedError
from zipjet.utils.deterministic import compute_sha256_file


class RecordingArchive:
    """Archive double that records what would be zipped."""

    def __init__(self) -> None:
        self.calls: list[dict] = []

    def create_zip(self, files, *, cwd, bundle_path, packages=None) -> None:
        self.calls.append(
            {"files": list(files), "cwd": cwd, "bundle_path": bundle_path, "packages": packages}
        )


@pytest.fixture
def recorder() -> RecordingArchive:
    return RecordingArchive()


@pytest.fixture
def service(recorder: RecordingArchive) -> BundleService:
    return bootstrap_application(Settings(), archive_port=recorder).bundle_service


TRACED_SERVICE = {
    "serverless.yml": "service: sls-mocked\n",
    "one.js": "exports.handler = async () => ({ body: require('one-pkg') });\n",
    "two.js": "exports.handler = async () => 2;\n",
    "node_modules": {
        "one-pkg": {"package.json": {"main": "index.js"}, "index.js": "module.exports = 'one';\n"},
        "two-pkg": {"package.json": {"main": "index.js"}, "index.js": "module.exports = 'two';\n"},
    },
}


class TestTraceMode:
    """Packaging units by tracing their entry files."""

    def test_only_traced_files_are_packaged(
        self, make_tree, service: BundleService, recorder: RecordingArchive
    ) -> None:
        """Unrelated packages stay out; entry and traced files go in."""
        cwd = make_tree(TRACED_SERVICE)
        config = BundleConfig(
            cwd=cwd,
            bundle_name=".serverless/one.zip",
            trace_include=["one.js"],
            pre_include=["!**"],
        )
        result = service.glob_and_zip(config, report=True)

        assert recorder.calls[0]["files"] == [
            "node_modules/one-pkg/index.js",
            "node_modules/one-pkg/package.json",
            "one.js",
        ]
        assert result.mode is BundleMode.TRACE
        assert result.num_files == 3
        assert result.bundle_path == cwd / ".serverless" / "one.zip"
        assert result.trace.misses.is_empty
        assert recorder.calls[0]["packages"] is None
        assert result.patterns.trace_include == ["one.js"]
        assert result.bundle_sha256 is None

    def test_traced_names_with_glob_characters_are_literal(
        self, make_tree, service: BundleService, recorder: RecordingArchive
    ) -> None:
        """A traced `[id].js` route is packaged, not a sibling its name would match."""
        cwd = make_tree(
            {
                "h.js": "require('./routes/[id].js');\n",
                "routes": {"[id].js": "module.exports = 1;\n", "i.js": "2\n", "d.js": "3\n"},
            }
        )
        config = BundleConfig(
            cwd=cwd, bundle_name="out.zip", trace_include=["h.js"], pre_include=["!**"]
        )
        result = service.glob_and_zip(config, report=True)

        assert recorder.calls[0]["files"] == ["h.js", "routes/[id].js"]
        assert result.files.included == ["h.js", "routes/[id].js"]
        assert "routes/i.js" in result.files.excluded

    def test_misses_are_reported_not_fatal(
        self, make_tree, service: BundleService, recorder: RecordingArchive
    ) -> None:
        """Dynamic requires show up in the result and the archive is still built."""
        cwd = make_tree(
            {
                "fn.js": "const n = 'x';\nrequire(n);\nrequire('dyn');\n",
                "node_modules": {
                    "dyn": {
                        "package.json": {"main": "index.js"},
                        "index.js": "require(process.env.X);\n",
                    },
                },
            }
        )
        config = BundleConfig(cwd=cwd, bundle_name="out.zip", trace_include=["fn.js"])
        result = service.package(config)

        assert list(result.trace.misses.srcs) == ["fn.js"]
        assert list(result.trace.misses.pkgs) == ["dyn"]
        assert result.trace.missed.srcs["fn.js"][0]["loc"]["start"] == {"line": 2, "column": 0}
        assert len(recorder.calls) == 1

    def test_dynamic_bail_raises_after_build(self, make_tree, service: BundleService) -> None:
        """With bail enabled, remaining misses fail the unit."""
        cwd = make_tree({"fn.js": "require(name);\n"})
        config = BundleConfig(
            cwd=cwd,
            bundle_name="out.zip",
            trace_include=["fn.js"],
            trace=TraceConfig(dynamic={"bail": True}),
        )
        with pytest.raises(TraceMissesError, match="Source Files: 1, Dependencies: 0"):
            service.package(config)

    def test_resolutions_silence_misses(self, make_tree, service: BundleService) -> None:
        """A resolved source no longer counts as missed, even when bailing."""
        cwd = make_tree(
            {"fn.js": "require(`./l/${x}`);\n", "l": {"en.js": "1\n", "fr.js": "2\n"}}
        )
        config = BundleConfig(
            cwd=cwd,
            bundle_name="out.zip",
            trace_include=["fn.js"],
            pre_include=["!**"],
            trace=TraceConfig(
                dynamic={"bail": True, "resolutions": {"./fn.js": ["./l/en.js"]}}
            ),
        )
        result = service.package(config)
        assert result.trace.missed.is_empty
        assert result.trace.resolved.srcs == {"fn.js": []}
        assert result.num_files == 2


class TestDependencyMode:
    """Packaging units from installed production dependencies."""

    def test_dev_dependencies_are_excluded(
        self, make_tree, service: BundleService, recorder: RecordingArchive
    ) -> None:
        """Only production dependencies and application files are included."""
        cwd = make_tree(
            {
                "serverless.yml": "service: svc\n",
                "package.json": {"name": "svc", "dependencies": {"a": "1"}},
                "index.js": "require('a');\n",
                ".git": {"HEAD": "ref\n"},
                "node_modules": {
                    "a": {
                        "package.json": {"name": "a"},
                        "index.js": "1\n",
                        "node_modules": {"a-dev": {"index.js": "1\n"}},
                    },
                    "jest": {"package.json": {"name": "jest"}, "index.js": "1\n"},
                },
            }
        )
        config = BundleConfig(cwd=cwd, bundle_name=".serverless/svc.zip")
        result = service.glob_and_zip(config)

        assert recorder.calls[0]["files"] == [
            "index.js",
            "node_modules/a/index.js",
            "node_modules/a/package.json",
            "package.json",
        ]
        assert result.mode is BundleMode.DEPENDENCY

    def test_report_echoes_patterns_and_files(self, make_tree, temp_dir: Path) -> None:
        """Report data is added without changing the archive."""
        cwd = make_tree({"package.json": {"name": "svc"}, "index.js": "1\n", "README.md": "x\n"})
        service = bootstrap_application(Settings()).bundle_service
        config = BundleConfig(cwd=cwd, bundle_name=".serverless/svc.zip", exclude=["*.md"])

        plain = service.glob_and_zip(config)
        plain_sha256 = compute_sha256_file(plain.bundle_path)
        with zipfile.ZipFile(plain.bundle_path) as archive:
            plain_names = archive.namelist()
        reported = service.glob_and_zip(config, report=True)

        assert plain.patterns is None and plain.files is None
        assert reported.files.included == ["index.js", "package.json"]
        assert "README.md" in reported.files.excluded
        assert reported.patterns.dep_include == ["!node_modules/**"]
        assert reported.patterns.exclude[-1] == "*.md"
        assert reported.roots == []
        assert reported.bundle_sha256 == plain_sha256
        with zipfile.ZipFile(reported.bundle_path) as archive:
            assert archive.namelist() == plain_names

    def test_monorepo_packages_are_namespaced(self, make_tree, temp_dir: Path) -> None:
        """Workspace packages end up under packages/ with links to them."""
        cwd = make_tree(
            {
                "package.json": {"name": "app", "dependencies": {"foo": "*"}},
                "index.js": "require('foo');\n",
                "packages": {
                    "foo": {"package.json": {"name": "foo"}, "src": {"x.js": "1\n"}},
                },
                "node_modules": {},
            }
        )
        os.symlink("../packages/foo", cwd / "node_modules" / "foo")
        service = bootstrap_application(Settings()).bundle_service
        config = BundleConfig(
            cwd=cwd, bundle_name=".serverless/app.zip", packages=["packages/foo"]
        )
        result = service.glob_and_zip(config)

        with zipfile.ZipFile(result.bundle_path) as archive:
            names = archive.namelist()
        assert "packages/foo/src/x.js" in names
        assert "node_modules/foo" in names

    def test_no_files_is_fatal(self, make_tree, service: BundleService) -> None:
        """Excluding everything propagates the no-files error."""
        cwd = make_tree({"index.js": "1\n"})
        config = BundleConfig(cwd=cwd, bundle_name="out.zip", exclude=["**"])
        with pytest.raises(NoFilesMatchedError):
            service.glob_and_zip(config)

    def test_collapsed_bail(self, make_tree, recorder: RecordingArchive) -> None:
        """Collapsed files fail the unit only when bailing is configured."""
        make_tree({"node_modules": {"dup": {"index.js": "outer\n"}}})
        cwd = make_tree(
            {"index.js": "1\n", "node_modules": {"dup": {"index.js": "inner\n"}}},
            subdir="app",
        )
        config = BundleConfig(
            cwd=cwd,
            bundle_name="out.zip",
            include=["node_modules/dup/**", "../node_modules/dup/**"],
        )

        lenient = bootstrap_application(Settings(), archive_port=recorder).bundle_service
        result = lenient.package(config)
        assert result.collapsed.pkgs["dup"].num_unique_paths == 2

        strict = bootstrap_application(Settings(collapsed_bail=True), archive_port=recorder)
        with pytest.raises(CollapsedFilesError, match="Dependencies: 1"):
            strict.bundle_service.package(config)


class TestPackageAll:
    """Concurrent packaging of several units."""

    def test_failures_are_isolated(self, make_tree, temp_dir: Path) -> None:
        """One failing unit does not stop the others."""
        good = make_tree({"index.js": "1\n"}, subdir="good")
        bad = make_tree({"index.js": "1\n"}, subdir="bad")
        service = bootstrap_application(Settings(concurrency=2)).bundle_service
        configs = [
            BundleConfig(cwd=good, bundle_name=str(temp_dir / "good.zip")),
            BundleConfig(cwd=bad, bundle_name=str(temp_dir / "bad.zip"), exclude=["**"]),
        ]
        outcomes = service.package_all(configs)

        assert [outcome.ok for outcome in outcomes] == [True, False]
        assert outcomes[0].result.num_files == 1
        assert isinstance(outcomes[1].error, NoFilesMatchedError)
        assert (temp_dir / "good.zip").is_file()
        assert not (temp_dir / "bad.zip").exists()
