"""Markdown chunker — heading-aware splits with line-window fallback."""

from __future__ import annotations

import re

from strata.db.models import Chunk
from strata.ingest.base import BaseChunker, Span, trimmed_span

# Matches H1, H2, H3 headings.
_HEADING_RE = re.compile(r"^(#{1,3}) (.+)$")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")


class MarkdownChunker(BaseChunker):
    """Split Markdown on H1/H2/H3 heading boundaries.

    Strategy:
    - Each heading + its following lines is a *section*; headings inside
      fenced code blocks are ignored.
    - Lines before the first heading (preamble) become their own section.
    - Sections that exceed ``chunk_size`` tokens are further split with
      ``_split_line_window()``; every piece keeps the section heading.
    - A document without headings falls back to plain line windows.
    """

    def chunk(self, path: str, content: str) -> list[Chunk]:
        if not content.strip():
            return []

        lines = content.splitlines()
        sections = self._sections(lines)
        if not sections:
            return self._make_chunks(self._split_line_window(lines))

        spans: list[Span] = []
        metadata: list[dict] = []
        for start, end, heading, level in sections:
            section_lines = lines[start:end]
            text = "\n".join(section_lines)
            if self.count_tokens(text) <= self.chunk_size:
                span = trimmed_span(lines, start, end, 1)
                pieces = [span] if span is not None else []
            else:
                pieces = self._split_line_window(section_lines, first_line=start + 1)
            for piece in pieces:
                spans.append(piece)
                meta: dict = {"symbol_type": "section"}
                if heading:
                    meta["name"] = heading
                    meta["level"] = level
                metadata.append(meta)

        return self._make_chunks(spans, metadata)

    @staticmethod
    def _sections(lines: list[str]) -> list[tuple[int, int, str, int]]:
        """Return ``(start, end, heading, level)`` line ranges (0-based, end exclusive).

        Returns an empty list if no headings are found (signals fallback).
        """
        heads: list[tuple[int, str, int]] = []
        in_fence = False
        for i, line in enumerate(lines):
            if _FENCE_RE.match(line):
                in_fence = not in_fence
                continue
            if in_fence:
                continue
            match = _HEADING_RE.match(line)
            if match:
                heads.append((i, match.group(2).strip(), len(match.group(1))))

        if not heads:
            return []

        sections: list[tuple[int, int, str, int]] = []
        if heads[0][0] > 0:
            sections.append((0, heads[0][0], "", 0))
        for n, (start, heading, level) in enumerate(heads):
            end = heads[n + 1][0] if n + 1 < len(heads) else len(lines)
            sections.append((start, end, heading, level))
        return sections
