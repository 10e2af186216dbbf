"""Tests for MarkdownChunker."""

from __future__ import annotations

from strata.ingest.markdown import MarkdownChunker

_DOC = """\
Intro paragraph.

# Overview

Strata indexes repositories.

## Install

pip install strata

```bash
# not a heading
strata index .
```

### Details

More text.
"""


def test_empty_content():
    assert MarkdownChunker().chunk("README.md", "") == []


def test_splits_on_headings_with_preamble():
    chunks = MarkdownChunker().chunk("README.md", _DOC)
    names = [c.metadata_dict.get("name") for c in chunks]
    assert names == [None, "Overview", "Install", "Details"]
    assert chunks[0].content == "Intro paragraph."
    assert all(c.symbol_type == "section" for c in chunks)


def test_heading_levels_recorded():
    chunks = MarkdownChunker().chunk("README.md", _DOC)
    levels = {c.metadata_dict["name"]: c.metadata_dict["level"] for c in chunks[1:]}
    assert levels == {"Overview": 1, "Install": 2, "Details": 3}


def test_fenced_hash_lines_are_not_headings():
    chunks = MarkdownChunker().chunk("README.md", _DOC)
    install = next(c for c in chunks if c.symbol_name == "Install")
    assert "# not a heading" in install.content


def test_line_numbers_address_source():
    lines = _DOC.splitlines()
    for chunk in MarkdownChunker().chunk("README.md", _DOC):
        assert "\n".join(lines[chunk.start_line - 1 : chunk.end_line]) == chunk.content


def test_no_headings_falls_back_to_windows():
    chunks = MarkdownChunker().chunk("notes.md", "just\nsome\nlines")
    assert len(chunks) == 1
    assert chunks[0].metadata_dict == {}


def test_oversize_section_split_keeps_heading():
    body = "\n".join(f"paragraph line {i} " + "w" * 50 for i in range(100))
    doc = f"# Big\n{body}\n"
    chunks = MarkdownChunker(chunk_size=200, overlap=0.0).chunk("big.md", doc)
    assert len(chunks) > 1
    assert all(c.symbol_name == "Big" for c in chunks)
    assert [c.ordinal for c in chunks] == list(range(len(chunks)))
