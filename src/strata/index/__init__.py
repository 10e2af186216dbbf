"""Strata index pipeline — diff, preparation, commit, orchestration."""

from __future__ import annotations

from strata.index.commit import CommitPlan, CommitStage, CommitState, IndexResult, build_chunk_key
from strata.index.differ import DiffResult, compute_diff
from strata.index.lock import FileLockManager, LockManager, SourceLock, generate_lock_id
from strata.index.orchestrator import Indexer
from strata.index.preparation import Preparation, PreparedFile, Preparer, SkippedDocument

__all__ = [
    "CommitPlan",
    "CommitStage",
    "CommitState",
    "DiffResult",
    "FileLockManager",
    "IndexResult",
    "Indexer",
    "LockManager",
    "Preparation",
    "PreparedFile",
    "Preparer",
    "SkippedDocument",
    "SourceLock",
    "build_chunk_key",
    "compute_diff",
    "generate_lock_id",
]
