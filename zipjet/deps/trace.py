"""Static import tracing of JavaScript sources.

Entry files are parsed with tree-sitter; every ``require()``, ``import``,
``export ... from`` and ``import()`` with a literal specifier is resolved the
way Node.js resolves it and traced recursively. Specifiers that are not
string literals cannot be followed and are reported as misses.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any

from tree_sitter_language_pack import get_parser

from zipjet.deps.classify import NODE_MODULES
from zipjet.deps.installs import MANIFEST_NAME, ManifestError, read_manifest
from zipjet.files.resolve import glob_files

logger = logging.getLogger(__name__)

SOURCE_SUFFIXES = (".js", ".mjs", ".cjs")
RESOLVE_EXTENSIONS = ("", ".js", ".mjs", ".cjs", ".json")
EXPORT_CONDITIONS = ("require", "node", "default", "import")

NODE_BUILTINS = frozenset(
    {
        "assert", "assert/strict", "async_hooks", "buffer", "child_process",
        "cluster", "console", "constants", "crypto", "dgram",
        "diagnostics_channel", "dns", "dns/promises", "domain", "events", "fs",
        "fs/promises", "http", "http2", "https", "inspector", "module", "net",
        "os", "path", "path/posix", "path/win32", "perf_hooks", "process",
        "punycode", "querystring", "readline", "readline/promises", "repl",
        "stream", "stream/consumers", "stream/promises", "stream/web",
        "string_decoder", "sys", "timers", "timers/promises", "tls",
        "trace_events", "tty", "url", "util", "util/types", "v8", "vm",
        "wasi", "worker_threads", "zlib",
    }
)

MISS_DYNAMIC = "dynamic"
MISS_MISSING = "missing"


class HandlerNotFoundError(FileNotFoundError):
    """Raised when a function handler has no matching source file."""


@dataclass(frozen=True, slots=True)
class TraceMiss:
    """An import that could not be followed.

    ``line`` is 1-based and ``column`` 0-based; both are 0 for imports that
    came from configured extra imports rather than from source text.
    """

    src: str
    line: int
    column: int
    kind: str = MISS_DYNAMIC

    def to_dict(self) -> dict[str, Any]:
        return {
            "src": self.src,
            "loc": {"start": {"line": self.line, "column": self.column}},
            "kind": self.kind,
        }


@dataclass(slots=True)
class TraceResult:
    """Files reached from the traced sources and the imports that were not."""

    dependencies: set[Path] = field(default_factory=set)
    misses: dict[Path, list[TraceMiss]] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class _ImportRef:
    specifier: str | None
    src: str
    line: int
    column: int


@lru_cache(maxsize=1)
def _load_parser():
    """Load the tree-sitter JavaScript parser once per process."""
    return get_parser("javascript")


def _node_text(source: bytes, node) -> str:
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def _literal_value(source: bytes, node) -> str | None:
    """Return the string value of a literal node, or None if it is not static."""
    if node.type == "string":
        return _node_text(source, node)[1:-1]
    if node.type == "template_string":
        if any(child.type == "template_substitution" for child in node.named_children):
            return None
        return _node_text(source, node)[1:-1]
    return None


def _ref(source: bytes, node, specifier: str | None) -> _ImportRef:
    row, column = node.start_point
    return _ImportRef(
        specifier=specifier, src=_node_text(source, node), line=row + 1, column=column
    )


def collect_imports(source: bytes) -> list[_ImportRef]:
    """Find every import site in JavaScript ``source``, ordered by position."""
    tree = _load_parser().parse(source)
    refs: list[_ImportRef] = []

    stack = [tree.root_node]
    while stack:
        node = stack.pop()
        if node.type == "call_expression":
            callee = node.child_by_field_name("function")
            is_require = callee is not None and (
                callee.type == "import"
                or (callee.type == "identifier" and _node_text(source, callee) == "require")
            )
            arguments = node.child_by_field_name("arguments")
            if is_require and arguments is not None and arguments.named_children:
                first = arguments.named_children[0]
                refs.append(_ref(source, node, _literal_value(source, first)))
        elif node.type in ("import_statement", "export_statement"):
            target = node.child_by_field_name("source")
            if target is not None:
                refs.append(_ref(source, node, _literal_value(source, target)))
        stack.extend(reversed(node.children))

    refs.sort(key=lambda ref: (ref.line, ref.column))
    return refs


def package_name_of(specifier: str) -> str:
    """Package portion of a bare specifier (``@scope/name`` or ``name``)."""
    parts = specifier.split("/")
    width = 2 if specifier.startswith("@") else 1
    return "/".join(parts[:width])


def owning_package(path: Path) -> tuple[str, str] | None:
    """Return ``(package name, path within package)`` for a file under ``node_modules``."""
    parts = Path(path).parts
    if NODE_MODULES not in parts:
        return None
    index = len(parts) - 1 - parts[::-1].index(NODE_MODULES)
    rest = parts[index + 1 :]
    if not rest:
        return None
    width = 2 if rest[0].startswith("@") else 1
    return "/".join(rest[:width]), "/".join(rest[width:])


def _is_builtin(specifier: str) -> bool:
    return specifier.startswith("node:") or specifier in NODE_BUILTINS


def _normalize(path: str | Path) -> Path:
    return Path(os.path.normpath(path))


def _resolve_file(path: Path) -> Path | None:
    for extension in RESOLVE_EXTENSIONS:
        candidate = Path(f"{path}{extension}")
        if candidate.is_file():
            return _normalize(candidate)
    return None


def _read_manifest_quietly(package_dir: Path) -> dict[str, Any] | None:
    try:
        return read_manifest(package_dir)
    except ManifestError as exc:
        logger.debug("Ignoring unreadable manifest while tracing: %s", exc)
        return None


def _resolve_directory(path: Path) -> Path | None:
    if not path.is_dir():
        return None
    main = (_read_manifest_quietly(path) or {}).get("main")
    if isinstance(main, str) and main:
        found = _resolve_file(path / main) or _resolve_file(path / main / "index")
        if found:
            return found
    return _resolve_file(path / "index")


def _pick_condition(entry: Any) -> str | None:
    if isinstance(entry, str):
        return entry
    if isinstance(entry, list):
        for item in entry:
            picked = _pick_condition(item)
            if picked:
                return picked
        return None
    if isinstance(entry, Mapping):
        for condition in EXPORT_CONDITIONS:
            if condition in entry:
                picked = _pick_condition(entry[condition])
                if picked:
                    return picked
    return None


def exports_target(exports: Any, subpath: str) -> str | None:
    """Resolve ``subpath`` (``"."`` or ``"./x"``) through a manifest ``exports`` field."""
    if isinstance(exports, (str, list)):
        return _pick_condition(exports) if subpath == "." else None
    if not isinstance(exports, Mapping) or not exports:
        return None
    if not all(str(key).startswith(".") for key in exports):
        return _pick_condition(exports) if subpath == "." else None
    if subpath in exports:
        return _pick_condition(exports[subpath])
    for key, value in exports.items():
        if key.endswith("*") and subpath.startswith(key[:-1]):
            target = _pick_condition(value)
            if target:
                return target.replace("*", subpath[len(key) - 1 :])
    return None


class DependencyTracer:
    """Trace the module graph reachable from JavaScript source files.

    Args:
        ignores: Package names treated as already satisfied
        allow_missing: Source key (requiring package name, or absolute source
            path) mapped to module names allowed to be missing from it
        allow_missing_packages: Module names allowed to be missing anywhere
        extra_imports: Source key (absolute path, or ``pkg/path/file.js``)
            mapped to specifiers traced as if that file imported them
    """

    def __init__(
        self,
        *,
        ignores: Iterable[str] | None = None,
        allow_missing: Mapping[str, Sequence[str]] | None = None,
        allow_missing_packages: Iterable[str] | None = None,
        extra_imports: Mapping[str, Sequence[str]] | None = None,
    ) -> None:
        self.ignores = frozenset(ignores or ())
        self.allow_missing = {key: frozenset(names) for key, names in (allow_missing or {}).items()}
        self.allow_missing_packages = frozenset(allow_missing_packages or ())
        self.extra_imports = {key: list(values) for key, values in (extra_imports or {}).items()}

    def trace(self, src_paths: Iterable[str | Path]) -> TraceResult:
        """Trace ``src_paths`` and everything they import.

        The sources themselves are not part of the returned dependencies.
        """
        sources = {_normalize(os.path.abspath(src)) for src in src_paths}
        result = TraceResult()
        visited: set[Path] = set()
        pending = sorted(sources)

        while pending:
            current = pending.pop()
            if current in visited:
                continue
            visited.add(current)

            for resolved in self._dependencies_of(current, result):
                if resolved not in sources:
                    result.dependencies.add(resolved)
                if resolved.suffix in SOURCE_SUFFIXES and resolved not in visited:
                    pending.append(resolved)

        logger.debug(
            "Traced %d sources: %d dependencies, %d files with misses",
            len(sources),
            len(result.dependencies),
            len(result.misses),
        )
        return result

    def _source_keys(self, path: Path) -> list[str]:
        keys = [str(path)]
        owner = owning_package(path)
        if owner:
            name, child = owner
            keys.extend([name, f"{name}/{child}"])
        return keys

    def _is_allowed_missing(self, path: Path, specifier: str) -> bool:
        names = {specifier, package_name_of(specifier)}
        if names & self.allow_missing_packages:
            return True
        return any(names & self.allow_missing.get(key, frozenset()) for key in self._source_keys(path))

    def _record_miss(self, result: TraceResult, path: Path, miss: TraceMiss) -> None:
        result.misses.setdefault(path, []).append(miss)

    def _dependencies_of(self, path: Path, result: TraceResult) -> list[Path]:
        if path.suffix not in SOURCE_SUFFIXES:
            return []
        refs = collect_imports(path.read_bytes())
        for key in self._source_keys(path):
            for specifier in self.extra_imports.get(key, ()):
                refs.append(_ImportRef(specifier=specifier, src=specifier, line=0, column=0))

        found: list[Path] = []
        for ref in refs:
            if ref.specifier is None:
                self._record_miss(result, path, TraceMiss(ref.src, ref.line, ref.column))
                continue
            specifier = ref.specifier
            if _is_builtin(specifier) or package_name_of(specifier) in self.ignores:
                continue

            resolved = self.resolve(specifier, path.parent)
            if not resolved:
                if not self._is_allowed_missing(path, specifier):
                    self._record_miss(
                        result, path, TraceMiss(ref.src, ref.line, ref.column, MISS_MISSING)
                    )
                continue
            found.extend(resolved)
        return found

    def resolve(self, specifier: str, from_dir: Path) -> list[Path]:
        """Resolve ``specifier`` imported from ``from_dir``.

        Returns:
            The resolved file, preceded by the package manifest for bare
            specifiers; empty if nothing resolves
        """
        if specifier.startswith(("./", "../", "/")) or specifier in (".", ".."):
            target = _normalize(from_dir / specifier)
            found = _resolve_file(target) or _resolve_directory(target)
            return [found] if found else []

        name = package_name_of(specifier)
        subpath = specifier[len(name) :].lstrip("/")
        for directory in [from_dir, *from_dir.parents]:
            if directory.name == NODE_MODULES:
                continue
            package_dir = directory / NODE_MODULES / name
            if package_dir.is_dir():
                return self._resolve_package(_normalize(package_dir), subpath)
        return []

    def _resolve_package(self, package_dir: Path, subpath: str) -> list[Path]:
        manifest = _read_manifest_quietly(package_dir) or {}
        files: list[Path] = []
        if (package_dir / MANIFEST_NAME).is_file():
            files.append(package_dir / MANIFEST_NAME)

        target = exports_target(manifest.get("exports"), f"./{subpath}" if subpath else ".")
        if target:
            found = _resolve_file(package_dir / target)
        elif subpath:
            found = _resolve_file(package_dir / subpath) or _resolve_directory(package_dir / subpath)
        else:
            found = _resolve_directory(package_dir)

        if found is None:
            return []
        files.append(found)
        return files


def trace_files(
    src_paths: Iterable[str | Path],
    *,
    ignores: Iterable[str] | None = None,
    allow_missing: Mapping[str, Sequence[str]] | None = None,
    allow_missing_packages: Iterable[str] | None = None,
    extra_imports: Mapping[str, Sequence[str]] | None = None,
) -> TraceResult:
    """Functional wrapper around :class:`DependencyTracer`."""
    tracer = DependencyTracer(
        ignores=ignores,
        allow_missing=allow_missing,
        allow_missing_packages=allow_missing_packages,
        extra_imports=extra_imports,
    )
    return tracer.trace(src_paths)


def handler_to_pattern(handler: str) -> str:
    """Turn a ``file.export`` handler reference into a source file glob.

    Example:
        >>> handler_to_pattern("src/fn.handler")
        'src/fn.{js,mjs}'
    """
    base, dot, _ = handler.rpartition(".")
    pattern = base if dot else handler
    if not pattern.endswith((".js", ".mjs")):
        pattern += ".{js,mjs}"
    return pattern


def resolve_handler_file(cwd: Path, handler: str) -> str:
    """Find the source file for ``handler`` relative to ``cwd``, preferring ``.js``.

    Raises:
        HandlerNotFoundError: If no file matches the handler pattern
    """
    pattern = handler_to_pattern(handler)
    matched = glob_files(cwd, [pattern])
    if not matched:
        raise HandlerNotFoundError(
            f"Could not find file for handler: {handler} with pattern: {pattern}"
        )
    return next((name for name in matched if name.endswith(".js")), matched[0])


def absolutize_keys(
    mapping: Mapping[str, Sequence[str]], service_path: Path
) -> dict[str, list[str]]:
    """Make ``.``-relative source keys absolute against ``service_path``.

    Package names and package paths (``pkg/path/file.js``) are kept as-is.
    """
    return {
        (os.path.normpath(service_path / key) if key.startswith(".") else key): list(values)
        for key, values in mapping.items()
    }
