"""Exception taxonomy for the indexing pipeline.

Terminal errors abort an index run before or during the commit transaction;
``ChunkingError`` is the only per-document, recoverable failure.
Configuration errors live in :mod:`strata.config` as ``ConfigError``.
"""

from __future__ import annotations


class StrataError(Exception):
    """Base class for all pipeline errors."""


class ProviderError(StrataError):
    """Raised when a document provider cannot fetch or list documents."""


class ChunkingError(StrataError):
    """Raised by a chunker for a single document it cannot split.

    The preparation stage logs it, records the document as skipped, and
    continues with the remaining documents.
    """


class EmbeddingError(StrataError):
    """Raised when embeddings cannot be produced for a batch.

    Covers exhausted retries as well as malformed provider responses
    (vector count or dimension mismatch). Aborts the run before any write.
    """


class LockError(StrataError):
    """Raised when the per-source advisory lock cannot be acquired."""


class CommitError(StrataError):
    """Raised when the commit transaction fails; the transaction is rolled back."""


class GraphError(StrataError):
    """Raised for invalid operations on a dependency graph."""


class GraphCycleError(GraphError):
    """Raised by topological ordering when the graph contains a cycle."""


class InvalidWeightsError(StrataError, ValueError):
    """Raised when importance weights do not sum to 1.0."""
