"""Base chunker interface for all strata content types."""

from __future__ import annotations

import hashlib
import json
from abc import ABC, abstractmethod

from strata.db.models import Chunk

# (start_line, end_line, text), 1-based and inclusive
Span = tuple[int, int, str]


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Chunks are contiguous line ranges of the source document so that every
    chunk can be addressed as ``path#L{start}-L{end}``. Subclasses implement
    ``chunk()`` and may use ``_split_line_window()`` and ``_make_chunks()``
    for the fixed-window fallback path.

    Token counting uses a 4-chars-per-token approximation; no external
    tokenizer dependency is required.
    """

    def __init__(self, chunk_size: int = 512, overlap: float = 0.10) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be >= 1")
        if not 0.0 <= overlap < 1.0:
            raise ValueError("overlap must be in [0.0, 1.0)")
        self.chunk_size = chunk_size
        self.overlap = overlap

    @abstractmethod
    def chunk(self, path: str, content: str) -> list[Chunk]:
        """Split *content* into unsaved Chunk objects.

        Args:
            path: Repository-relative file path (for metadata / error messages).
            content: Full decoded text of the document.

        Returns:
            Chunks ordered by ``start_line`` with sequential ``ordinal``.

        Raises:
            ChunkingError: If the document cannot be split.
        """

    @staticmethod
    def count_tokens(text: str) -> int:
        """Approximate token count: 4 characters ≈ 1 token."""
        return max(1, len(text) // 4)

    @property
    def char_budget(self) -> int:
        return self.chunk_size * 4

    def _split_line_window(self, lines: list[str], first_line: int = 1) -> list[Span]:
        """Split *lines* into windows of at most ``chunk_size`` tokens.

        A window always holds at least one line, so a single overlong line
        becomes its own chunk. Consecutive windows share ``overlap`` of the
        previous window's lines. Leading and trailing blank lines are
        trimmed from each window; blank windows are omitted.

        Args:
            lines: Lines of the region to split (no trailing newlines).
            first_line: 1-based line number of ``lines[0]`` in the document.
        """
        spans: list[Span] = []
        n = len(lines)
        start = 0

        while start < n:
            end = start
            size = 0
            while end < n and (end == start or size + len(lines[end]) + 1 <= self.char_budget):
                size += len(lines[end]) + 1
                end += 1

            span = trimmed_span(lines, start, end, first_line)
            if span is not None:
                spans.append(span)
            if end >= n:
                break
            back = int((end - start) * self.overlap)
            start = max(start + 1, end - back)

        return spans

    def _make_chunks(self, spans: list[Span], metadata: list[dict] | None = None) -> list[Chunk]:
        """Convert spans into sequentially numbered Chunks.

        Args:
            spans: ``(start_line, end_line, text)`` tuples in document order.
            metadata: Optional structural metadata per span (same length).
        """
        chunks: list[Chunk] = []
        for i, (start, end, text) in enumerate(spans):
            meta = metadata[i] if metadata is not None else {}
            chunks.append(
                Chunk(
                    start_line=start,
                    end_line=end,
                    content=text,
                    ordinal=i,
                    token_count=self.count_tokens(text),
                    metadata=json.dumps(meta, sort_keys=True),
                    content_hash=hashlib.sha256(text.encode("utf-8")).hexdigest(),
                )
            )
        return chunks


def trimmed_span(lines: list[str], start: int, end: int, first_line: int) -> Span | None:
    """Return the span of lines[start:end] without blank edges, or None if blank."""
    while start < end and not lines[start].strip():
        start += 1
    while end > start and not lines[end - 1].strip():
        end -= 1
    if start >= end:
        return None
    return (first_line + start, first_line + end - 1, "\n".join(lines[start:end]))
