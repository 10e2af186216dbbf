"""Strata ingest layer — chunkers, content detection, embedder."""

from __future__ import annotations

from strata.config import ChunkersCfg
from strata.ingest.base import BaseChunker
from strata.ingest.detector import ContentDetector, ContentInfo
from strata.ingest.markdown import MarkdownChunker
from strata.ingest.plaintext import PlainTextChunker
from strata.ingest.python_chunker import PythonChunker


class ChunkerRegistry:
    """Chunker per language, built once from config.

    Languages without a structure-aware chunker share the plain text one.
    """

    def __init__(self, cfg: ChunkersCfg | None = None) -> None:
        cfg = cfg or ChunkersCfg()
        self._default = PlainTextChunker(cfg.default.chunk_size, cfg.default.overlap)
        self._by_language: dict[str, BaseChunker] = {
            "markdown": MarkdownChunker(cfg.markdown.chunk_size, cfg.markdown.overlap),
            "python": PythonChunker(cfg.python.chunk_size, cfg.python.overlap),
        }

    def for_language(self, language: str | None) -> BaseChunker:
        return self._by_language.get(language or "", self._default)


__all__ = [
    "BaseChunker",
    "ChunkerRegistry",
    "ContentDetector",
    "ContentInfo",
    "MarkdownChunker",
    "PlainTextChunker",
    "PythonChunker",
]
