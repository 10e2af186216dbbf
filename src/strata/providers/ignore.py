"""Ignore rules: built-in defaults plus ``.gitignore`` and ``.strataignore``.

Supports the common gitignore forms: basename globs (``*.lock``),
directory patterns (``build/``), root-anchored paths (``/docs/draft.md``,
``src/gen/*``, ``docs/**/*.md``), comments and ``!`` negation (last match
wins). Nested ignore files are not read; only the ones at the source root
are.
"""

from __future__ import annotations

import fnmatch
from collections.abc import Iterable
from pathlib import Path

IGNORE_FILES = (".gitignore", ".strataignore")

DEFAULT_PATTERNS: tuple[str, ...] = (
    ".git/",
    ".hg/",
    ".svn/",
    "node_modules/",
    "vendor/",
    "__pycache__/",
    ".venv/",
    "venv/",
    ".tox/",
    ".mypy_cache/",
    ".pytest_cache/",
    "dist/",
    "build/",
    "*.min.js",
    "*.min.css",
    "*.lock",
    "*.pyc",
    "*.so",
    "*.dylib",
    "*.dll",
    "*.exe",
    "*.bin",
    "*.png",
    "*.jpg",
    "*.jpeg",
    "*.gif",
    "*.ico",
    "*.pdf",
    "*.zip",
    "*.gz",
    "*.tar",
    "*.woff",
    "*.woff2",
    "*.ttf",
    "*.db",
    ".strata/",
    ".strata.db*",
)


class IgnoreFilter:
    """Ordered gitignore-style pattern matcher over ``/``-separated paths."""

    def __init__(self, patterns: Iterable[str] = DEFAULT_PATTERNS) -> None:
        self._rules: list[tuple[bool, str]] = []
        self.extend(patterns)

    def extend(self, lines: Iterable[str]) -> None:
        """Append rules from ignore-file *lines* (comments and blanks skipped)."""
        for raw in lines:
            line = raw.strip()
            if not line or line.startswith("#"):
                continue
            negated = line.startswith("!")
            if negated:
                line = line[1:]
            if line:
                self._rules.append((negated, line))

    @classmethod
    def for_directory(cls, root: Path) -> IgnoreFilter:
        """Defaults plus the ignore files found directly in *root*."""
        f = cls()
        for name in IGNORE_FILES:
            path = root / name
            if path.is_file():
                f.extend(path.read_text(encoding="utf-8", errors="replace").splitlines())
        return f

    def is_ignored(self, path: str) -> bool:
        ignored = False
        for negated, pattern in self._rules:
            if _matches(pattern, path):
                ignored = not negated
        return ignored

    def is_ignored_dir(self, path: str) -> bool:
        """Return True if everything below directory *path* is ignored."""
        return self.is_ignored(path.rstrip("/") + "/")


def _matches(pattern: str, path: str) -> bool:
    dir_only = pattern.endswith("/")
    pat = pattern.rstrip("/")
    anchored = "/" in pat
    pat = pat.lstrip("/")
    parts = [p for p in path.split("/") if p]
    if not parts:
        return False
    # A trailing slash on *path* marks it as a directory.
    is_dir = path.endswith("/")

    if anchored:
        # Any leading run of segments may match; ignoring a directory
        # ignores everything below it.
        pat_parts = pat.split("/")
        ends = range(1, len(parts) + 1)
        if dir_only and not is_dir:
            ends = range(1, len(parts))
        return any(_match_segments(pat_parts, parts[:end]) for end in ends)

    names = parts if (is_dir or not dir_only) else parts[:-1]
    return any(fnmatch.fnmatchcase(name, pat) for name in names)


def _match_segments(pat_parts: list[str], parts: list[str]) -> bool:
    """Match segment by segment; ``*`` never crosses ``/``, ``**`` spans any depth."""
    if not pat_parts:
        return not parts
    head, rest = pat_parts[0], pat_parts[1:]
    if head == "**":
        return any(_match_segments(rest, parts[i:]) for i in range(len(parts) + 1))
    if not parts:
        return False
    return fnmatch.fnmatchcase(parts[0], head) and _match_segments(rest, parts[1:])
