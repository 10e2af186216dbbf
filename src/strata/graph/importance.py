"""Chunk importance: reference count, centrality and edit frequency.

Each signal is normalised by its maximum over the chunk set and the three
are combined with weights that must sum to 1.0, so every final score lies
in [0, 1].
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from strata.config import WeightsCfg
from strata.db.connection import transaction
from strata.db.models import Dependency
from strata.db.repository import Repository
from strata.errors import GraphError, InvalidWeightsError, ProviderError
from strata.graph.builder import build_call_graph
from strata.graph.dependency import DependencyGraph
from strata.providers.history import FileEditHistory, HistoryProvider

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 0.001


@dataclass
class ScoreWeights:
    reference_count: float = 0.4
    centrality: float = 0.3
    edit_frequency: float = 0.3

    @classmethod
    def from_config(cls, cfg: WeightsCfg) -> ScoreWeights:
        return cls(cfg.reference_count, cfg.centrality, cfg.edit_frequency)

    def validate(self) -> None:
        """Raise InvalidWeightsError unless the weights sum to 1.0 (±0.001)."""
        total = self.reference_count + self.centrality + self.edit_frequency
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise InvalidWeightsError(f"Importance weights must sum to 1.0, got {total:.3f}")


@dataclass
class ChunkScore:
    chunk_id: int
    reference_count: int
    centrality: float
    edit_frequency: int
    normalized_reference_count: float
    normalized_centrality: float
    normalized_edit_frequency: float
    final_score: float


def normalize(values: Sequence[float]) -> list[float]:
    """Divide each value by the maximum, clamped to [0, 1].

    A non-positive maximum maps every value to 0.0.
    """
    peak = max(values, default=0)
    if peak <= 0:
        return [0.0 for _ in values]
    return [min(max(v / peak, 0.0), 1.0) for v in values]


class ImportanceCalculator:
    """Score every node of a dependency graph.

    Args:
        graph: Call graph whose node names carry the chunk's file path.
        edit_history: Edit counts per file path; missing paths count zero.
        weights: Signal weights (validated before each calculation).
    """

    def __init__(
        self,
        graph: DependencyGraph,
        edit_history: Mapping[str, FileEditHistory] | None = None,
        weights: ScoreWeights | None = None,
    ) -> None:
        self._graph = graph
        self._history = edit_history or {}
        self._weights = weights or ScoreWeights()

    def calculate_all(self) -> dict[int, ChunkScore]:
        """Return ``{chunk_id: ChunkScore}`` for every node.

        Raises:
            InvalidWeightsError: If the weights do not sum to 1.0.
        """
        self._weights.validate()
        ids = [node.id for node in self._graph.nodes]
        refs = [self._graph.reference_count(i) for i in ids]
        cents = [self._graph.centrality(i) for i in ids]
        edits = [self._edit_count(i) for i in ids]

        scores: dict[int, ChunkScore] = {}
        for pos, (n_ref, n_cent, n_edit) in enumerate(
            zip(normalize(refs), normalize(cents), normalize(edits))
        ):
            final = (
                self._weights.reference_count * n_ref
                + self._weights.centrality * n_cent
                + self._weights.edit_frequency * n_edit
            )
            scores[ids[pos]] = ChunkScore(
                chunk_id=ids[pos],
                reference_count=refs[pos],
                centrality=cents[pos],
                edit_frequency=edits[pos],
                normalized_reference_count=n_ref,
                normalized_centrality=n_cent,
                normalized_edit_frequency=n_edit,
                final_score=min(max(final, 0.0), 1.0),
            )
        return scores

    def calculate(self, chunk_id: int) -> ChunkScore:
        """Score one chunk, normalised against the whole graph.

        Raises:
            GraphError: If *chunk_id* is not in the graph.
            InvalidWeightsError: If the weights do not sum to 1.0.
        """
        if chunk_id not in self._graph:
            raise GraphError(f"Unknown node {chunk_id}")
        return self.calculate_all()[chunk_id]

    def _edit_count(self, chunk_id: int) -> int:
        entry = self._history.get(self._graph.get_node(chunk_id).file_path)
        return entry.count if entry else 0


class ImportanceService:
    """Recompute call edges and importance scores for a source's live chunks.

    Args:
        conn: Autocommit connection.
        weights: Signal weights.
        history: Edit history backend; None scores edit frequency as zero.
        edit_frequency_days: Look-back window for edit counts.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        weights: ScoreWeights | None = None,
        history: HistoryProvider | None = None,
        edit_frequency_days: int = 90,
    ) -> None:
        self._conn = conn
        self._weights = weights or ScoreWeights()
        self._history = history
        self._days = edit_frequency_days

    def score_source(
        self,
        source_id: str,
        repo_path: Path | None = None,
        ref: str | None = None,
        now: datetime | None = None,
    ) -> dict[int, float]:
        """Rebuild the call graph of *source_id* and store final scores.

        Outgoing dependency edges of every live chunk are replaced and each
        live chunk's ``importance_score`` is written in one transaction.

        Returns:
            ``{chunk_id: final_score}``.

        Raises:
            InvalidWeightsError: If the weights do not sum to 1.0.
        """
        self._weights.validate()
        repo = Repository(self._conn)
        chunks = repo.list_live_chunks(source_id)
        if not chunks:
            return {}

        graph, _ = build_call_graph(chunks)
        history = self._edit_history(repo_path, ref, now)
        scores = ImportanceCalculator(graph, history, self._weights).calculate_all()

        edges = [
            Dependency(
                from_chunk_id=e.from_id,
                to_chunk_id=e.to_id,
                relation_type=e.relation_type.value,
                symbol=graph.get_node(e.to_id).name,
                weight=e.weight,
            )
            for e in graph.edges
        ]
        with transaction(self._conn):
            repo.replace_dependencies([c.id for c in chunks if c.id is not None], edges)
            repo.update_importance_scores({i: s.final_score for i, s in scores.items()})

        logger.info("Scored %d chunks (%d call edges)", len(scores), len(edges))
        return {i: s.final_score for i, s in scores.items()}

    def _edit_history(
        self, repo_path: Path | None, ref: str | None, now: datetime | None
    ) -> dict[str, FileEditHistory]:
        if self._history is None or repo_path is None:
            return {}
        since = (now or datetime.now(timezone.utc)) - timedelta(days=self._days)
        try:
            return self._history.get_file_edit_frequencies(repo_path, ref or "HEAD", since)
        except ProviderError as exc:
            logger.warning("Edit history unavailable, scoring without it: %s", exc)
            return {}
