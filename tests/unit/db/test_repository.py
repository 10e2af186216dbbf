"""Tests for the Repository."""

from __future__ import annotations

import json
import sqlite3
import uuid

import pytest

from strata.db.connection import transaction
from strata.db.models import Chunk, Dependency, File, SnapshotFile
from strata.db.repository import Repository
from strata.db.vectors import ensure_vec_table


@pytest.fixture
def repo(tmp_db):
    return Repository(tmp_db)


@pytest.fixture
def source(repo):
    product = repo.get_or_create_product("acme")
    return repo.upsert_source(product.id, "github.com/acme/api", "git", {"url": "https://x"})


def _file(snapshot_id, path="a.py", content_hash="h1"):
    return File(
        id=str(uuid.uuid4()),
        snapshot_id=snapshot_id,
        path=path,
        size=10,
        content_type="text/x-python",
        content_hash=content_hash,
        language="python",
        domain="code",
    )


def _chunk(file_id, snapshot_id, text="def f():\n    pass", meta=None):
    return Chunk(
        start_line=1,
        end_line=2,
        content=text,
        file_id=file_id,
        snapshot_id=snapshot_id,
        chunk_key=f"acme/api/a.py#L1-L2@{snapshot_id}",
        metadata=json.dumps(meta or {}),
    )


def _indexed_snapshot(repo, source, version, files):
    """Create an indexed snapshot persisting *files* = {path: hash}."""
    snap = repo.create_snapshot(source.id, version)
    repo.retire_files(source.id, list(files))
    for path, content_hash in files.items():
        f = _file(snap.id, path, content_hash)
        repo.add_file(f)
        repo.add_chunk(_chunk(f.id, snap.id))
    repo.mark_snapshot_indexed(snap.id)
    return snap


# ------------------------------------------------------------------
# Products + sources
# ------------------------------------------------------------------

def test_get_or_create_product_is_stable(repo):
    first = repo.get_or_create_product("acme")
    second = repo.get_or_create_product("acme")
    assert first.id == second.id


def test_upsert_source_keeps_original_metadata(repo, source):
    again = repo.upsert_source(source.product_id, source.name, "git", {"url": "https://other"})
    assert again.id == source.id
    assert again.metadata_dict == {"url": "https://x"}


def test_same_source_name_in_two_products(repo, source):
    other = repo.get_or_create_product("other")
    twin = repo.upsert_source(other.id, source.name, "git")
    assert twin.id != source.id


def test_upsert_source_rejected_row_raises(repo):
    product = repo.get_or_create_product("acme")
    with pytest.raises(sqlite3.IntegrityError, match="Could not create source"):
        repo.upsert_source(product.id, "api", None)
    assert repo.list_sources() == []


def test_list_sources_includes_product_name(repo, source):
    assert repo.list_sources() == [("acme", source)]


def test_get_source_not_found(repo):
    assert repo.get_source("nonexistent") is None


# ------------------------------------------------------------------
# Snapshots
# ------------------------------------------------------------------

def test_get_snapshot_by_version(repo, source):
    snap = repo.create_snapshot(source.id, "abc123")
    found = repo.get_snapshot(source.id, "abc123")
    assert found is not None
    assert found.id == snap.id
    assert found.indexed is False


def test_mark_snapshot_indexed(repo, source):
    snap = repo.create_snapshot(source.id, "abc123")
    repo.mark_snapshot_indexed(snap.id)
    latest = repo.latest_indexed_snapshot(source.id)
    assert latest.id == snap.id
    assert latest.indexed_at is not None


def test_latest_indexed_snapshot_ignores_unindexed(repo, source):
    repo.create_snapshot(source.id, "pending")
    assert repo.latest_indexed_snapshot(source.id) is None


# ------------------------------------------------------------------
# Files: live map, retire, delete
# ------------------------------------------------------------------

def test_live_file_hashes_span_snapshots(repo, source):
    _indexed_snapshot(repo, source, "v1", {"a.py": "h1", "b.py": "h2"})
    _indexed_snapshot(repo, source, "v2", {"a.py": "h1-new"})
    assert repo.get_live_file_hashes(source.id) == {"a.py": "h1-new", "b.py": "h2"}


def test_retire_files_demotes_chunks(repo, source, tmp_db):
    snap = _indexed_snapshot(repo, source, "v1", {"a.py": "h1"})
    assert repo.retire_files(source.id, ["a.py"]) == 1
    assert repo.get_live_file_hashes(source.id) == {}
    assert repo.list_live_chunks(source.id) == []
    assert repo.count_chunks(snap.id) == 1


def test_retire_all_files(repo, source):
    _indexed_snapshot(repo, source, "v1", {"a.py": "h1", "b.py": "h2"})
    assert repo.retire_files(source.id) == 2


def test_retire_files_empty_paths_is_noop(repo, source):
    _indexed_snapshot(repo, source, "v1", {"a.py": "h1"})
    assert repo.retire_files(source.id, []) == 0


def test_delete_live_files_removes_fts_and_vectors(repo, source, tmp_db):
    table = ensure_vec_table(tmp_db, "fake_embed_3", 3)
    snap = repo.create_snapshot(source.id, "v1")
    f = _file(snap.id)
    repo.add_file(f)
    chunk_id = repo.add_chunk(_chunk(f.id, snap.id))
    repo.add_embedding(table, chunk_id, [0.1, 0.2, 0.3], "fake/embed-3")
    repo.mark_snapshot_indexed(snap.id)

    assert repo.delete_live_files(source.id, ["a.py"]) == 1
    assert repo.get_chunk(chunk_id) is None
    assert repo.get_embedding(table, chunk_id) is None
    assert tmp_db.execute("SELECT COUNT(*) FROM chunks_fts").fetchone()[0] == 0
    assert tmp_db.execute("SELECT COUNT(*) FROM embeddings").fetchone()[0] == 0


# ------------------------------------------------------------------
# Chunks + embeddings
# ------------------------------------------------------------------

def test_add_chunk_sets_id_and_fts(repo, source, tmp_db):
    snap = repo.create_snapshot(source.id, "v1")
    f = _file(snap.id)
    repo.add_file(f)
    chunk = _chunk(f.id, snap.id, text="tokenize the input stream")
    chunk_id = repo.add_chunk(chunk)
    assert chunk.id == chunk_id
    row = tmp_db.execute(
        "SELECT rowid FROM chunks_fts WHERE chunks_fts MATCH 'stream'"
    ).fetchone()
    assert row[0] == chunk_id


def test_get_chunk_joins_file_path(repo, source):
    snap = repo.create_snapshot(source.id, "v1")
    f = _file(snap.id, path="pkg/mod.py")
    repo.add_file(f)
    chunk_id = repo.add_chunk(_chunk(f.id, snap.id, meta={"name": "f", "symbol_type": "function"}))
    chunk = repo.get_chunk(chunk_id)
    assert chunk.file_path == "pkg/mod.py"
    assert chunk.symbol_name == "f"
    assert chunk.symbol_type == "function"


def test_embedding_roundtrip_and_count(repo, source, tmp_db):
    table = ensure_vec_table(tmp_db, "fake_embed_3", 3)
    snap = repo.create_snapshot(source.id, "v1")
    f = _file(snap.id)
    repo.add_file(f)
    chunk_id = repo.add_chunk(_chunk(f.id, snap.id))
    repo.add_embedding(table, chunk_id, [0.25, 0.5, 0.75], "fake/embed-3")
    assert repo.get_embedding(table, chunk_id) == pytest.approx([0.25, 0.5, 0.75])
    assert repo.count_embeddings(snap.id) == 1


def test_update_importance_scores(repo, source):
    _indexed_snapshot(repo, source, "v1", {"a.py": "h1"})
    chunk = repo.list_live_chunks(source.id)[0]
    repo.update_importance_scores({chunk.id: 0.75})
    assert repo.get_chunk(chunk.id).importance_score == pytest.approx(0.75)


def test_count_live_chunks(repo, source):
    _indexed_snapshot(repo, source, "v1", {"a.py": "h1", "b.py": "h2"})
    assert repo.count_live_chunks(source.id) == 2


# ------------------------------------------------------------------
# Dependencies + snapshot files
# ------------------------------------------------------------------

def test_replace_dependencies(repo, source):
    _indexed_snapshot(repo, source, "v1", {"a.py": "h1", "b.py": "h2"})
    a, b = (c.id for c in repo.list_live_chunks(source.id))
    repo.replace_dependencies([a, b], [Dependency(a, b, symbol="g")])
    repo.replace_dependencies([a, b], [Dependency(b, a, symbol="f")])
    deps = repo.list_dependencies()
    assert [(d.from_chunk_id, d.to_chunk_id, d.symbol) for d in deps] == [(b, a, "f")]
    assert repo.list_dependencies(from_chunk_id=a) == []


def test_snapshot_files_roundtrip(repo, source):
    snap = repo.create_snapshot(source.id, "v1")
    repo.add_snapshot_files([
        SnapshotFile(snap.id, "b.bin", 4, None, "ignored"),
        SnapshotFile(snap.id, "a.py", 10, "code", "skipped", "chunking failed: bad"),
    ])
    records = repo.list_snapshot_files(snap.id)
    assert [r.path for r in records] == ["a.py", "b.bin"]
    assert records[0].skip_reason == "chunking failed: bad"


def test_writes_inside_failed_transaction_are_discarded(repo, source, tmp_db):
    with pytest.raises(RuntimeError):
        with transaction(tmp_db):
            repo.create_snapshot(source.id, "v1")
            raise RuntimeError("abort")
    assert repo.get_snapshot(source.id, "v1") is None
