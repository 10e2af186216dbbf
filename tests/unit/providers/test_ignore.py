"""Tests for gitignore-style path filtering."""

from __future__ import annotations

import pytest

from strata.providers.ignore import IgnoreFilter


def _filter(*lines):
    f = IgnoreFilter(patterns=())
    f.extend(lines)
    return f


@pytest.mark.parametrize(
    "path",
    ["node_modules/left-pad/index.js", ".git/config", "a/b/c.png", "poetry.lock", "pkg/__pycache__/m.pyc"],
)
def test_default_patterns_ignore(path):
    assert IgnoreFilter().is_ignored(path)


@pytest.mark.parametrize("path", ["src/app.py", "README.md", "docs/build.md"])
def test_default_patterns_keep(path):
    assert not IgnoreFilter().is_ignored(path)


def test_directory_pattern_matches_contents_not_files():
    f = _filter("build/")
    assert f.is_ignored("build/out.js")
    assert f.is_ignored("pkg/build/out.js")
    assert not f.is_ignored("build")
    assert f.is_ignored_dir("build")


def test_basename_glob_matches_at_any_depth():
    f = _filter("*.log")
    assert f.is_ignored("debug.log")
    assert f.is_ignored("var/log/app.log")


def test_anchored_pattern():
    f = _filter("/docs/draft.md")
    assert f.is_ignored("docs/draft.md")
    assert not f.is_ignored("other/docs/draft.md")


def test_anchored_glob_covers_subtree():
    f = _filter("src/gen/*")
    assert f.is_ignored("src/gen/a.py")
    assert f.is_ignored("src/gen/sub/b.py")
    assert not f.is_ignored("src/app.py")


def test_negation_last_match_wins():
    f = _filter("*.log", "!keep.log")
    assert f.is_ignored("debug.log")
    assert not f.is_ignored("keep.log")
    assert _filter("!keep.log", "*.log").is_ignored("keep.log")


def test_comments_and_blank_lines_skipped():
    f = _filter("# *.md", "", "   ")
    assert not f.is_ignored("README.md")


def test_for_directory_reads_ignore_files(tmp_path):
    (tmp_path / ".gitignore").write_text("*.tmp\n")
    (tmp_path / ".strataignore").write_text("fixtures/\n!important.tmp\n")
    f = IgnoreFilter.for_directory(tmp_path)
    assert f.is_ignored("x.tmp")
    assert not f.is_ignored("important.tmp")
    assert f.is_ignored("tests/fixtures/big.json")
    assert f.is_ignored("node_modules/a.js")


def test_anchored_star_stays_within_one_segment():
    f = _filter("docs/*.md")
    assert f.is_ignored("docs/a.md")
    assert not f.is_ignored("docs/sub/a.md")
    assert not f.is_ignored("docs/a.txt")


def test_double_star_spans_directories():
    f = _filter("docs/**/*.md")
    assert f.is_ignored("docs/a.md")
    assert f.is_ignored("docs/sub/deep/a.md")
    assert not f.is_ignored("other/docs/a.md")
    assert _filter("**/fixtures/").is_ignored("tests/unit/fixtures/data.json")
