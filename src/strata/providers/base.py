"""Document provider interface.

A provider turns a source identifier (repository URL, directory path) into
the full list of documents at one version, plus that version's identifier.
"""

from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import ClassVar

from strata.providers.ignore import IgnoreFilter


@dataclass
class Document:
    """One file of a source at the fetched version.

    Ignored documents carry their path and size only (``content`` and
    ``content_hash`` are empty); they are recorded but never indexed.
    """

    path: str
    content: str
    size: int
    content_hash: str
    commit_hash: str = ""
    author: str = ""
    updated_at: datetime | None = None


@dataclass
class IndexParams:
    """Per-invocation parameters of an index run.

    Attributes:
        product_name: Product grouping the source belongs to.
        identifier: Provider-specific source identifier (URL or path).
        ref: Branch, tag or commit to index (provider default when None).
        force_init: Ignore previously indexed state and re-index everything.
        options: Provider-specific extras.
    """

    product_name: str
    identifier: str
    ref: str | None = None
    force_init: bool = False
    options: dict[str, str] = field(default_factory=dict)


@dataclass
class FetchResult:
    documents: list[Document]
    version_identifier: str


def hash_content(data: str | bytes) -> str:
    """Return the sha256 hex digest used as a document's content hash."""
    raw = data.encode("utf-8") if isinstance(data, str) else data
    return hashlib.sha256(raw).hexdigest()


class DocumentProvider(ABC):
    """Fetch documents for one source type."""

    source_type: ClassVar[str]

    def __init__(self) -> None:
        self._filter = IgnoreFilter()

    @abstractmethod
    def fetch_documents(self, params: IndexParams) -> FetchResult:
        """Return every document of the source plus the version identifier.

        Raises:
            ProviderError: If the source cannot be reached or listed.
        """

    @abstractmethod
    def extract_source_name(self, identifier: str) -> str:
        """Derive a stable, human-readable source name from *identifier*."""

    @abstractmethod
    def create_metadata(self, params: IndexParams) -> dict[str, str]:
        """Return type-specific metadata stored on the source at creation."""

    def should_ignore(self, path: str) -> bool:
        """Return True if *path* is excluded by the source's ignore rules.

        Reflects the rules loaded by the last ``fetch_documents()`` call.
        """
        return self._filter.is_ignored(path)

    def repository_path(self, params: IndexParams) -> Path | None:
        """Return a local repository with history for *params*, if any."""
        return None
