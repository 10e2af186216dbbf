"""Path-based content detection: language, MIME-style content type, domain."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath

_LANGUAGES: dict[str, str] = {
    ".py": "python",
    ".pyi": "python",
    ".md": "markdown",
    ".markdown": "markdown",
    ".go": "go",
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".java": "java",
    ".rs": "rust",
    ".rb": "ruby",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".hpp": "cpp",
    ".sh": "shell",
    ".bash": "shell",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".json": "json",
    ".toml": "toml",
    ".sql": "sql",
    ".txt": "text",
    ".rst": "text",
}

_CONTENT_TYPES: dict[str, str] = {
    "python": "text/x-python",
    "markdown": "text/markdown",
    "go": "text/x-go",
    "javascript": "text/javascript",
    "typescript": "text/typescript",
    "yaml": "application/yaml",
    "json": "application/json",
    "shell": "text/x-shellscript",
}


@dataclass(frozen=True)
class ContentInfo:
    """What the pipeline knows about a file from its path alone."""

    language: str | None
    content_type: str
    domain: str


def detect_language(path: str) -> str | None:
    """Return the language for *path*, or None when unknown."""
    p = PurePosixPath(path)
    if p.name.lower() == "dockerfile" or p.name.lower().startswith("dockerfile."):
        return "dockerfile"
    return _LANGUAGES.get(p.suffix.lower())


def detect_content_type(path: str) -> str:
    """Return a MIME-style content type for *path* (``text/plain`` by default)."""
    language = detect_language(path)
    return _CONTENT_TYPES.get(language or "", "text/plain")


def classify_domain(path: str) -> str:
    """Bucket *path* into ``tests``, ``architecture``, ``ops``, ``infra`` or ``code``.

    Rules are checked in that order, so ``docs/test/plan.md`` is ``tests``.
    """
    lower = "/" + path.lower()
    name = PurePosixPath(lower).name
    if (
        "_test." in lower
        or "/test/" in lower
        or "/tests/" in lower
        or (name.startswith("test_") and name.endswith(".py"))
    ):
        return "tests"
    if "/docs/" in lower or lower.endswith(".md"):
        return "architecture"
    if "/scripts/" in lower or lower.endswith(".sh"):
        return "ops"
    if "dockerfile" in name or lower.endswith((".yml", ".yaml")):
        return "infra"
    return "code"


class ContentDetector:
    """Bundle the three path classifiers behind one call."""

    def detect(self, path: str) -> ContentInfo:
        return ContentInfo(
            language=detect_language(path),
            content_type=detect_content_type(path),
            domain=classify_domain(path),
        )
