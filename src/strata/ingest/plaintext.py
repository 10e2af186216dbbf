"""Plain text chunker — fixed line windows with overlap."""

from __future__ import annotations

from strata.db.models import Chunk
from strata.ingest.base import BaseChunker


class PlainTextChunker(BaseChunker):
    """Split any text file into line windows of ``chunk_size`` tokens.

    Default: 512 tokens / 10 % overlap. Used for every language without a
    structure-aware chunker.
    """

    def chunk(self, path: str, content: str) -> list[Chunk]:
        if not content.strip():
            return []
        return self._make_chunks(self._split_line_window(content.splitlines()))
