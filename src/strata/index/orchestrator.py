"""Index orchestrator: fetch, diff, prepare, commit, score.

One call to :meth:`Indexer.index_source` indexes one version of one
source. Network and model work happen before the source lock is taken;
the lock is held only while the snapshot is written.
"""

from __future__ import annotations

import logging
import sqlite3
import time

from strata.db.connection import transaction
from strata.db.models import Source
from strata.db.repository import Repository
from strata.db.vectors import ensure_vec_table, model_to_slug
from strata.graph.importance import ImportanceService
from strata.index.commit import CommitPlan, CommitStage, IndexResult
from strata.index.differ import compute_diff
from strata.index.lock import LockManager
from strata.index.preparation import Preparer
from strata.providers.base import DocumentProvider, IndexParams

logger = logging.getLogger(__name__)


class Indexer:
    """Run the indexing pipeline against one database.

    Args:
        conn: Autocommit connection with the schema initialised.
        preparer: Chunking and embedding stage.
        locks: Lock manager serialising commits per source.
        importance: Scoring pass run after a successful commit; None skips it.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        preparer: Preparer,
        locks: LockManager,
        importance: ImportanceService | None = None,
    ) -> None:
        self._conn = conn
        self._preparer = preparer
        self._locks = locks
        self._importance = importance

    def index_source(self, provider: DocumentProvider, params: IndexParams) -> IndexResult:
        """Index the version of ``params.identifier`` the provider resolves.

        Raises:
            ProviderError: If documents cannot be fetched.
            EmbeddingError: If embedding fails; nothing is written.
            LockError: If the source lock cannot be acquired.
            CommitError: If persisting fails; all writes are rolled back.
        """
        started = time.monotonic()
        logger.info("Indexing %s source %s", provider.source_type, params.identifier)

        fetched = provider.fetch_documents(params)
        version = fetched.version_identifier
        source = self._ensure_source(provider, params)
        repo = Repository(self._conn)

        existing = repo.get_snapshot(source.id, version)
        if existing is not None:
            logger.info("%s@%s already indexed, nothing to do", source.name, version)
            return IndexResult(
                snapshot_id=existing.id,
                version_identifier=version,
                already_indexed=True,
                duration=time.monotonic() - started,
            )

        ignored = [d for d in fetched.documents if provider.should_ignore(d.path)]
        candidates = [d for d in fetched.documents if not provider.should_ignore(d.path)]
        previous = {} if params.force_init else repo.get_live_file_hashes(source.id)
        diff = compute_diff({d.path: d.content_hash for d in candidates}, previous)
        logger.info("%s@%s: %s", source.name, version, diff.summary)

        to_process = set(diff.to_process)
        unchanged = set(diff.unchanged)
        plan_unchanged = [d for d in candidates if d.path in unchanged]
        preparation = self._preparer.prepare([d for d in candidates if d.path in to_process])

        embedder = self._preparer.embedder
        vec_table = ensure_vec_table(
            self._conn, model_to_slug(embedder.model_name), embedder.dimensions
        )
        detector = self._preparer.detector
        plan = CommitPlan(
            source=source,
            product_name=params.product_name,
            lock_key=(provider.source_type, source.name),
            version_identifier=version,
            vec_table=vec_table,
            model=embedder.model_name,
            prepared=preparation.files,
            skipped=preparation.skipped,
            unchanged=plan_unchanged,
            ignored=ignored,
            deleted=diff.deleted,
            domains={
                d.path: detector.detect(d.path).domain
                for d in ignored + plan_unchanged
            },
            force_init=params.force_init,
        )
        result = CommitStage(self._conn, self._locks).commit(plan)

        if not result.already_indexed:
            self._score(source, provider, params, version)

        result.duration = time.monotonic() - started
        logger.info(
            "Indexed %s@%s in %.1fs: %d files, %d chunks",
            source.name,
            version,
            result.duration,
            result.processed_files,
            result.total_chunks,
        )
        return result

    def _ensure_source(self, provider: DocumentProvider, params: IndexParams) -> Source:
        with transaction(self._conn):
            repo = Repository(self._conn)
            product = repo.get_or_create_product(params.product_name)
            return repo.upsert_source(
                product.id,
                provider.extract_source_name(params.identifier),
                provider.source_type,
                provider.create_metadata(params),
            )

    def _score(
        self, source: Source, provider: DocumentProvider, params: IndexParams, version: str
    ) -> None:
        if self._importance is None:
            return
        try:
            self._importance.score_source(
                source.id, repo_path=provider.repository_path(params), ref=version
            )
        except Exception as exc:
            # Scores are derived data; a failed pass leaves the committed snapshot intact.
            logger.warning("Importance scoring failed for %s: %s", source.name, exc)
