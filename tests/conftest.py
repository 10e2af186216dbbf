"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib
from collections.abc import Sequence

import pytest

from strata.db.connection import Database
from strata.db.schema import initialize
from strata.errors import EmbeddingError
from strata.providers.base import Document, DocumentProvider, FetchResult, IndexParams, hash_content


class FakeEmbedder:
    """Deterministic 3-dimensional vectors derived from the text hash."""

    model_name = "fake/embed-3"
    dimensions = 3

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[list[str]] = []

    def embed(self, text: str) -> list[float]:
        return self.batch_embed([text])[0]

    def batch_embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise EmbeddingError("embedding backend unavailable")
        vectors = []
        for text in texts:
            digest = hashlib.sha256(text.encode("utf-8")).digest()
            vectors.append([digest[0] / 255, digest[1] / 255, digest[2] / 255])
        return vectors


class StaticProvider(DocumentProvider):
    """In-memory provider returning a fixed document set."""

    source_type = "static"

    def __init__(
        self, files: dict[str, str], version: str = "v1", ignored: Sequence[str] = ()
    ) -> None:
        super().__init__()
        self.files = dict(files)
        self.version = version
        self.ignored = set(ignored)

    def fetch_documents(self, params: IndexParams) -> FetchResult:
        docs = []
        for path, content in sorted(self.files.items()):
            if path in self.ignored:
                docs.append(Document(path=path, content="", size=len(content), content_hash=""))
            else:
                docs.append(
                    Document(
                        path=path,
                        content=content,
                        size=len(content.encode("utf-8")),
                        content_hash=hash_content(content),
                        author="Ada",
                    )
                )
        return FetchResult(documents=docs, version_identifier=self.version)

    def extract_source_name(self, identifier: str) -> str:
        return identifier

    def create_metadata(self, params: IndexParams) -> dict[str, str]:
        return {"identifier": params.identifier}

    def should_ignore(self, path: str) -> bool:
        return path in self.ignored


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".strata.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def failing_embedder():
    return FakeEmbedder(fail=True)


@pytest.fixture
def make_provider():
    """Factory: ``make_provider({"a.py": "..."}, version="v2")``."""
    return StaticProvider
