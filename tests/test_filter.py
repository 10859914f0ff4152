"""Tests for ordered include/exclude pattern filtering."""

from zipjet.files.filter import (
    FileState,
    escape_path,
    filter_files,
    negate_excludes,
    normalize_pattern,
    ordered_patterns,
)


class TestPatternOrdering:
    """Pattern assembly and normalization."""

    def test_excludes_are_negated_and_bang_excludes_become_includes(self) -> None:
        """An exclude `X` becomes `!X` while `!X` becomes a plain include."""
        assert negate_excludes(["a/**", "!a/keep.js"]) == ["!a/**", "a/keep.js"]

    def test_pattern_groups_apply_in_fixed_order(self) -> None:
        """pre_include, dep_include, negated excludes, then include."""
        patterns = ordered_patterns(
            pre_include=["pre"],
            dep_include=["dep"],
            include=["inc"],
            exclude=["exc"],
        )
        assert patterns == ["pre", "dep", "!exc", "inc"]

    def test_normalize_pattern_strips_dot_slash_and_backslashes(self) -> None:
        """Patterns are matched in posix form without a leading `./`."""
        assert normalize_pattern("./src\\lib\\*.js", sep="\\") == "src/lib/*.js"
        assert normalize_pattern("!./node_modules/**") == "!node_modules/**"

    def test_normalize_pattern_keeps_escapes_on_posix(self) -> None:
        """A backslash is a glob escape when the host separator is `/`."""
        assert normalize_pattern("./routes/\\[id\\].js", sep="/") == "routes/\\[id\\].js"

    def test_escaped_paths_match_literally(self) -> None:
        """Escaped file names with glob characters only match themselves."""
        files = ["routes/[id].js", "routes/i.js", "routes/{a,b}.js", "routes/a.js", "!x.js"]
        for name in ["routes/[id].js", "routes/{a,b}.js", "!x.js"]:
            result = filter_files(files, pre_include=["!**"], dep_include=[escape_path(name)])
            assert result.included == [name]


class TestFilterFiles:
    """Last-match-wins filtering semantics."""

    def test_last_match_wins(self) -> None:
        """The final matching pattern decides each file's state."""
        result = filter_files(
            ["a/keep.js", "a/drop.js"],
            include=["a/*.js", "!a/*.js", "a/keep.js"],
        )
        assert result.included == ["a/keep.js"]
        assert result.excluded == ["a/drop.js"]

    def test_unmatched_files_stay_included(self) -> None:
        """Every candidate starts out included."""
        result = filter_files(["one.js", "two.js"], exclude=["two.js"])
        assert result.included == ["one.js"]

    def test_include_overrides_earlier_exclude(self) -> None:
        """Explicit includes come after excludes."""
        result = filter_files(
            ["node_modules/a/index.js", "node_modules/b/index.js"],
            include=["node_modules/a/**"],
            exclude=["node_modules/**"],
        )
        assert result.included == ["node_modules/a/index.js"]

    def test_exclude_overrides_dep_include(self) -> None:
        """Dependency patterns lose against user excludes."""
        result = filter_files(
            ["node_modules/a/index.js", "node_modules/a/README.md"],
            dep_include=["!node_modules/**", "node_modules/a/**"],
            exclude=["**/*.md"],
        )
        assert result.included == ["node_modules/a/index.js"]

    def test_partition_is_complete_and_disjoint(self) -> None:
        """Included and excluded together cover every candidate exactly once."""
        files = ["a.js", "b.md", "c/d.js", ".env"]
        result = filter_files(files, exclude=["*.md", ".env"])
        assert set(result.included) | set(result.excluded) == set(files)
        assert not set(result.included) & set(result.excluded)

    def test_candidate_order_is_preserved(self) -> None:
        """Results keep the order of the candidate list."""
        result = filter_files(["z.js", "a.js", "m.js"])
        assert result.included == ["z.js", "a.js", "m.js"]

    def test_filter_is_idempotent(self) -> None:
        """Filtering twice with the same inputs yields the same result."""
        files = ["a/keep.js", "a/drop.js", "b/x.json", ".hidden/y.js"]
        kwargs = {"include": ["a/keep.js"], "exclude": ["a/**", "**/*.json"]}
        first = filter_files(files, **kwargs)
        second = filter_files(first.included + first.excluded, **kwargs)
        assert sorted(first.included) == sorted(second.included)


class TestGlobSemantics:
    """Glob features honored by the matcher."""

    def test_globstar_matches_nested_and_top_level(self) -> None:
        """`**/` also matches zero directories."""
        result = filter_files(["x.md", "a/b/y.md", "a/z.js"], exclude=["**/*.md"])
        assert result.included == ["a/z.js"]

    def test_brace_groups(self) -> None:
        """`{a,b}` expands to alternatives."""
        result = filter_files(
            ["fn.js", "fn.mjs", "fn.ts"],
            pre_include=["!**"],
            include=["fn.{js,mjs}"],
        )
        assert result.included == ["fn.js", "fn.mjs"]

    def test_dotfiles_are_matched(self) -> None:
        """Wildcards match dot-prefixed names."""
        result = filter_files([".env", ".config/app.json", "app.js"], exclude=["**"])
        assert result.included == []
        assert ".env" in result.excluded
        assert ".config/app.json" in result.excluded

    def test_backslash_candidates_are_normalized(self) -> None:
        """Windows-style candidate paths are matched in posix form."""
        result = filter_files(["src\\app.js"], exclude=["src/*.js"])
        assert result.excluded == ["src/app.js"]

    def test_file_state_values(self) -> None:
        """The state enum exposes the two states only."""
        assert {state.value for state in FileState} == {"included", "excluded"}
