"""Tests for database schema initialization."""

from __future__ import annotations

from strata.db.schema import CURRENT_VERSION, initialize


def _table_columns(conn, table: str) -> set[str]:
    rows = conn.execute(f"PRAGMA table_info({table})").fetchall()
    return {row["name"] for row in rows}


def test_sources_columns(tmp_db):
    cols = _table_columns(tmp_db, "sources")
    assert cols == {"id", "product_id", "name", "source_type", "metadata", "created_at"}


def test_snapshots_columns(tmp_db):
    cols = _table_columns(tmp_db, "snapshots")
    assert cols == {"id", "source_id", "version_identifier", "indexed", "indexed_at", "created_at"}


def test_chunks_trace_columns(tmp_db):
    cols = _table_columns(tmp_db, "chunks")
    assert {
        "chunk_key",
        "snapshot_id",
        "commit_hash",
        "author",
        "updated_at",
        "is_latest",
        "importance_score",
    } <= cols


def test_files_columns(tmp_db):
    cols = _table_columns(tmp_db, "files")
    assert {"path", "content_hash", "language", "domain", "is_latest"} <= cols


def test_initialize_is_idempotent(tmp_db):
    initialize(tmp_db)
    version = tmp_db.execute("SELECT MAX(version) FROM schema_version").fetchone()[0]
    assert version == CURRENT_VERSION


def test_fts_accepts_rows(tmp_db):
    tmp_db.execute("INSERT INTO chunks_fts(rowid, text) VALUES (7, 'parse the config file')")
    row = tmp_db.execute(
        "SELECT rowid FROM chunks_fts WHERE chunks_fts MATCH 'config'"
    ).fetchone()
    assert row[0] == 7
