"""Preparation stage: chunk and embed documents before anything is written.

Chunking fans out over a bounded thread pool; a chunker failure skips only
that document. Embedding runs in fixed-size batches over all chunks, and
any embedding failure aborts the run, so a partially embedded set never
reaches the commit stage.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from strata.db.models import Chunk
from strata.errors import EmbeddingError
from strata.ingest import ChunkerRegistry
from strata.ingest.detector import ContentDetector, ContentInfo
from strata.ingest.embedder import Embedder
from strata.providers.base import Document

logger = logging.getLogger(__name__)


@dataclass
class PreparedFile:
    """A document ready to persist: its chunks and one vector per chunk."""

    document: Document
    info: ContentInfo
    chunks: list[Chunk]
    vectors: list[list[float]] = field(default_factory=list)


@dataclass
class SkippedDocument:
    path: str
    size: int
    domain: str
    reason: str


@dataclass
class PreparationStats:
    documents: int = 0
    prepared: int = 0
    skipped: int = 0
    chunks: int = 0

    def merge(self, other: PreparationStats) -> PreparationStats:
        return PreparationStats(
            documents=self.documents + other.documents,
            prepared=self.prepared + other.prepared,
            skipped=self.skipped + other.skipped,
            chunks=self.chunks + other.chunks,
        )


@dataclass
class Preparation:
    files: list[PreparedFile] = field(default_factory=list)
    skipped: list[SkippedDocument] = field(default_factory=list)
    stats: PreparationStats = field(default_factory=PreparationStats)


@dataclass
class _Outcome:
    prepared: PreparedFile | None
    skipped: SkippedDocument | None
    stats: PreparationStats


class Preparer:
    """Turn documents into chunks with embeddings.

    Args:
        chunkers: Chunker lookup by language.
        embedder: Embedding backend.
        detector: Path classifier (language, content type, domain).
        batch_size: Texts per embedding request.
        workers: Maximum concurrent chunking workers.
    """

    def __init__(
        self,
        chunkers: ChunkerRegistry,
        embedder: Embedder,
        detector: ContentDetector | None = None,
        batch_size: int = 100,
        workers: int = 4,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self._chunkers = chunkers
        self._embedder = embedder
        self._detector = detector or ContentDetector()
        self._batch_size = batch_size
        self._workers = workers

    @property
    def embedder(self) -> Embedder:
        return self._embedder

    @property
    def detector(self) -> ContentDetector:
        return self._detector

    def prepare(self, documents: Sequence[Document]) -> Preparation:
        """Chunk and embed *documents*.

        Returns:
            Prepared files in input order, skipped documents with reasons,
            and merged counters.

        Raises:
            EmbeddingError: If any batch fails; nothing is returned.
        """
        if not documents:
            return Preparation()

        workers = min(self._workers, len(documents))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="strata-chunk") as pool:
            outcomes = list(pool.map(self._chunk_one, documents))

        result = Preparation()
        for outcome in outcomes:
            result.stats = result.stats.merge(outcome.stats)
            if outcome.prepared is not None:
                result.files.append(outcome.prepared)
            if outcome.skipped is not None:
                result.skipped.append(outcome.skipped)

        self._embed(result.files)
        logger.info(
            "Prepared %d documents (%d chunks), skipped %d",
            result.stats.prepared,
            result.stats.chunks,
            result.stats.skipped,
        )
        return result

    def _chunk_one(self, document: Document) -> _Outcome:
        info = self._detector.detect(document.path)
        chunker = self._chunkers.for_language(info.language)
        try:
            chunks = chunker.chunk(document.path, document.content)
        except Exception as exc:
            # One unparseable document must not fail the run.
            logger.warning("Chunking failed for %s: %s", document.path, exc)
            skipped = SkippedDocument(
                path=document.path,
                size=document.size,
                domain=info.domain,
                reason=f"chunking failed: {exc}",
            )
            return _Outcome(None, skipped, PreparationStats(documents=1, skipped=1))

        prepared = PreparedFile(document=document, info=info, chunks=chunks)
        return _Outcome(prepared, None, PreparationStats(documents=1, prepared=1, chunks=len(chunks)))

    def _embed(self, files: list[PreparedFile]) -> None:
        texts = [chunk.content for f in files for chunk in f.chunks]
        if not texts:
            return

        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            batch = texts[start : start + self._batch_size]
            batch_vectors = self._embedder.batch_embed(batch)
            if len(batch_vectors) != len(batch):
                raise EmbeddingError(
                    f"Embedder returned {len(batch_vectors)} vectors for {len(batch)} texts"
                )
            vectors.extend(batch_vectors)
            logger.debug("Embedded %d/%d chunks", len(vectors), len(texts))

        pos = 0
        for f in files:
            f.vectors = vectors[pos : pos + len(f.chunks)]
            pos += len(f.chunks)
