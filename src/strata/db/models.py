"""Domain models for the strata database layer."""

from __future__ import annotations

import json
from dataclasses import dataclass, field

# snapshot_files.status values
STATUS_INDEXED = "indexed"
STATUS_UNCHANGED = "unchanged"
STATUS_IGNORED = "ignored"
STATUS_SKIPPED = "skipped"


@dataclass
class Product:
    id: str
    name: str
    created_at: str | None = None


@dataclass
class Source:
    id: str
    product_id: str
    name: str
    source_type: str
    metadata: str = field(default_factory=lambda: "{}")
    created_at: str | None = None

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata)


@dataclass
class Snapshot:
    id: str
    source_id: str
    version_identifier: str
    indexed: bool = False
    indexed_at: str | None = None
    created_at: str | None = None


@dataclass
class File:
    id: str
    snapshot_id: str
    path: str
    size: int
    content_type: str
    content_hash: str
    language: str | None = None
    domain: str | None = None
    is_latest: bool = True
    created_at: str | None = None


@dataclass
class Chunk:
    """A contiguous line range of one file.

    Chunkers produce unsaved chunks (``id`` and ``file_id`` are None); the
    commit stage fills in identity and trace fields before persisting.
    ``file_path`` is populated on reads that join the owning file.
    """

    start_line: int
    end_line: int
    content: str
    ordinal: int = 0
    token_count: int = 0
    metadata: str = field(default_factory=lambda: "{}")
    content_hash: str = ""
    file_id: str | None = None
    chunk_key: str = ""
    snapshot_id: str = ""
    commit_hash: str = ""
    author: str = ""
    updated_at: str | None = None
    is_latest: bool = True
    importance_score: float | None = None
    id: int | None = None  # set after insert; also the vec table rowid
    file_path: str = ""

    @property
    def metadata_dict(self) -> dict:
        return json.loads(self.metadata)

    @property
    def symbol_name(self) -> str | None:
        return self.metadata_dict.get("name") or None

    @property
    def symbol_type(self) -> str | None:
        return self.metadata_dict.get("symbol_type") or None

    @property
    def calls(self) -> list[str]:
        return list(self.metadata_dict.get("calls") or [])


@dataclass
class Embedding:
    chunk_id: int
    model: str
    dimensions: int
    created_at: str | None = None


@dataclass
class Dependency:
    from_chunk_id: int
    to_chunk_id: int
    relation_type: str = "calls"
    symbol: str = ""
    weight: int = 1
    id: int | None = None


@dataclass
class SnapshotFile:
    snapshot_id: str
    path: str
    size: int
    domain: str | None
    status: str
    skip_reason: str | None = None
