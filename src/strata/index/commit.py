"""Commit stage: persist one prepared snapshot atomically.

The stage walks a fixed sequence of states under the source lock. Every
write happens inside a single transaction, so a failure at any point
leaves the database exactly as it was before the run.
"""

from __future__ import annotations

import enum
import logging
import sqlite3
import uuid
from dataclasses import dataclass, field

from strata.db.connection import transaction
from strata.db.models import (
    STATUS_IGNORED,
    STATUS_INDEXED,
    STATUS_SKIPPED,
    STATUS_UNCHANGED,
    File,
    Snapshot,
    SnapshotFile,
    Source,
)
from strata.db.repository import Repository
from strata.errors import CommitError
from strata.index.lock import LockManager, generate_lock_id
from strata.index.preparation import PreparedFile, SkippedDocument
from strata.providers.base import Document

logger = logging.getLogger(__name__)


class CommitState(enum.Enum):
    NOT_STARTED = "not_started"
    LOCK_ACQUIRED = "lock_acquired"
    IDEMPOTENCY_CHECKED = "idempotency_checked"
    SNAPSHOT_CREATED = "snapshot_created"
    FILES_PERSISTED = "files_persisted"
    FINALIZED = "finalized"


@dataclass
class IndexResult:
    """Outcome of one index run."""

    snapshot_id: str
    version_identifier: str
    processed_files: int = 0
    total_chunks: int = 0
    deleted_files: int = 0
    unchanged_files: int = 0
    skipped_files: int = 0
    ignored_files: int = 0
    already_indexed: bool = False
    duration: float = 0.0


@dataclass
class CommitPlan:
    """Everything the commit stage writes for one snapshot.

    Attributes:
        source: The persisted source being indexed.
        product_name: Product name, part of every chunk key.
        lock_key: Parts hashed into the source lock id.
        version_identifier: Version the snapshot records.
        prepared: Documents with chunks and vectors to persist.
        skipped: Documents that could not be chunked.
        unchanged: Documents identical to the live version.
        ignored: Documents excluded by ignore rules.
        deleted: Live paths absent from this version.
        domains: Domain per path for unchanged and ignored records.
        force_init: Demote every live file instead of only replaced ones.
        vec_table: Vector table for this run's embedding model.
        model: Embedding model name recorded per vector.
    """

    source: Source
    product_name: str
    lock_key: tuple[str, ...]
    version_identifier: str
    vec_table: str
    model: str
    prepared: list[PreparedFile] = field(default_factory=list)
    skipped: list[SkippedDocument] = field(default_factory=list)
    unchanged: list[Document] = field(default_factory=list)
    ignored: list[Document] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    domains: dict[str, str] = field(default_factory=dict)
    force_init: bool = False


def build_chunk_key(
    product: str, source: str, path: str, start_line: int, end_line: int, commit_hash: str
) -> str:
    """Return the stable key ``product/source/path#Lstart-Lend@commit``."""
    return f"{product}/{source}/{path}#L{start_line}-L{end_line}@{commit_hash}"


class CommitStage:
    """Persist a :class:`CommitPlan` under the source lock.

    Args:
        conn: Autocommit connection (see :class:`strata.db.Database`).
        locks: Lock manager serialising commits per source.
    """

    def __init__(self, conn: sqlite3.Connection, locks: LockManager) -> None:
        self._conn = conn
        self._locks = locks
        self.state = CommitState.NOT_STARTED

    def commit(self, plan: CommitPlan) -> IndexResult:
        """Write the snapshot described by *plan*.

        If a snapshot for the same version already exists nothing is written
        and the result has ``already_indexed`` set.

        Raises:
            LockError: If the source lock cannot be acquired.
            CommitError: If any database write fails (all writes rolled back).
        """
        self.state = CommitState.NOT_STARTED
        lock = self._locks.acquire(generate_lock_id(*plan.lock_key))
        try:
            self._advance(CommitState.LOCK_ACQUIRED)
            try:
                result = self._write(plan)
            except sqlite3.Error as exc:
                raise CommitError(
                    f"Commit of {plan.source.name}@{plan.version_identifier} failed: {exc}"
                ) from exc
            self._advance(CommitState.FINALIZED)
            return result
        finally:
            lock.release()

    def _write(self, plan: CommitPlan) -> IndexResult:
        with transaction(self._conn):
            repo = Repository(self._conn)
            existing = repo.get_snapshot(plan.source.id, plan.version_identifier)
            self._advance(CommitState.IDEMPOTENCY_CHECKED)
            if existing is not None:
                logger.info(
                    "%s@%s already indexed (snapshot %s)",
                    plan.source.name,
                    plan.version_identifier,
                    existing.id,
                )
                return IndexResult(
                    snapshot_id=existing.id,
                    version_identifier=plan.version_identifier,
                    already_indexed=True,
                )

            snapshot = repo.create_snapshot(plan.source.id, plan.version_identifier)
            self._advance(CommitState.SNAPSHOT_CREATED)

            deleted = repo.delete_live_files(plan.source.id, plan.deleted)
            if plan.force_init:
                # Files that failed to chunk keep their previous live version.
                skipped = {s.path for s in plan.skipped}
                live = repo.get_live_file_hashes(plan.source.id)
                repo.retire_files(plan.source.id, [p for p in live if p not in skipped])
            else:
                repo.retire_files(plan.source.id, [p.document.path for p in plan.prepared])

            repo.add_snapshot_files(self._snapshot_files(snapshot, plan))
            total_chunks = sum(self._persist_file(repo, snapshot, plan, p) for p in plan.prepared)
            self._advance(CommitState.FILES_PERSISTED)

            repo.mark_snapshot_indexed(snapshot.id)

        logger.info(
            "Committed snapshot %s: %d files, %d chunks, %d deleted",
            snapshot.id,
            len(plan.prepared),
            total_chunks,
            deleted,
        )
        return IndexResult(
            snapshot_id=snapshot.id,
            version_identifier=plan.version_identifier,
            processed_files=len(plan.prepared),
            total_chunks=total_chunks,
            deleted_files=deleted,
            unchanged_files=len(plan.unchanged),
            skipped_files=len(plan.skipped),
            ignored_files=len(plan.ignored),
        )

    def _persist_file(
        self, repo: Repository, snapshot: Snapshot, plan: CommitPlan, prepared: PreparedFile
    ) -> int:
        doc = prepared.document
        if len(prepared.vectors) != len(prepared.chunks):
            raise CommitError(
                f"{doc.path}: {len(prepared.chunks)} chunks but {len(prepared.vectors)} vectors"
            )

        file = File(
            id=str(uuid.uuid4()),
            snapshot_id=snapshot.id,
            path=doc.path,
            size=doc.size,
            content_type=prepared.info.content_type,
            content_hash=doc.content_hash,
            language=prepared.info.language,
            domain=prepared.info.domain,
        )
        repo.add_file(file)

        commit_hash = doc.commit_hash or plan.version_identifier
        updated_at = doc.updated_at.isoformat() if doc.updated_at else None
        for chunk, vector in zip(prepared.chunks, prepared.vectors):
            chunk.file_id = file.id
            chunk.snapshot_id = snapshot.id
            chunk.commit_hash = commit_hash
            chunk.author = doc.author
            chunk.updated_at = updated_at
            chunk.chunk_key = build_chunk_key(
                plan.product_name,
                plan.source.name,
                doc.path,
                chunk.start_line,
                chunk.end_line,
                commit_hash,
            )
            chunk_id = repo.add_chunk(chunk)
            repo.add_embedding(plan.vec_table, chunk_id, vector, plan.model)
        return len(prepared.chunks)

    def _snapshot_files(self, snapshot: Snapshot, plan: CommitPlan) -> list[SnapshotFile]:
        records = [
            SnapshotFile(
                snapshot_id=snapshot.id,
                path=p.document.path,
                size=p.document.size,
                domain=p.info.domain,
                status=STATUS_INDEXED,
            )
            for p in plan.prepared
        ]
        records += [
            SnapshotFile(
                snapshot_id=snapshot.id,
                path=s.path,
                size=s.size,
                domain=s.domain,
                status=STATUS_SKIPPED,
                skip_reason=s.reason,
            )
            for s in plan.skipped
        ]
        for status, docs in ((STATUS_UNCHANGED, plan.unchanged), (STATUS_IGNORED, plan.ignored)):
            records += [
                SnapshotFile(
                    snapshot_id=snapshot.id,
                    path=d.path,
                    size=d.size,
                    domain=plan.domains.get(d.path),
                    status=status,
                )
                for d in docs
            ]
        return records

    def _advance(self, state: CommitState) -> None:
        logger.debug("Commit state %s -> %s", self.state.value, state.value)
        self.state = state
