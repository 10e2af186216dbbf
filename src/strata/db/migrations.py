"""Forward-only migration runner for the strata database schema.

Vec tables (vec_chunks_*) are NOT migration-managed — use ensure_vec_table().
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS products (
    id          TEXT PRIMARY KEY,
    name        TEXT NOT NULL UNIQUE,
    created_at  DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS sources (
    id          TEXT PRIMARY KEY,
    product_id  TEXT NOT NULL REFERENCES products(id) ON DELETE CASCADE,
    name        TEXT NOT NULL,
    source_type TEXT NOT NULL,
    metadata    TEXT NOT NULL DEFAULT '{}',
    created_at  DATETIME NOT NULL DEFAULT (datetime('now')),
    UNIQUE (product_id, name)
);

CREATE TABLE IF NOT EXISTS snapshots (
    id                  TEXT PRIMARY KEY,
    source_id           TEXT NOT NULL REFERENCES sources(id) ON DELETE CASCADE,
    version_identifier  TEXT NOT NULL,
    indexed             INTEGER NOT NULL DEFAULT 0,
    indexed_at          DATETIME,
    created_at          DATETIME NOT NULL DEFAULT (datetime('now')),
    UNIQUE (source_id, version_identifier)
);

CREATE TABLE IF NOT EXISTS files (
    id              TEXT PRIMARY KEY,
    snapshot_id     TEXT NOT NULL REFERENCES snapshots(id) ON DELETE CASCADE,
    path            TEXT NOT NULL,
    size            INTEGER NOT NULL,
    content_type    TEXT NOT NULL,
    content_hash    TEXT NOT NULL,
    language        TEXT,
    domain          TEXT,
    is_latest       INTEGER NOT NULL DEFAULT 1,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    UNIQUE (snapshot_id, path)
);

CREATE INDEX IF NOT EXISTS idx_files_path_latest ON files(path, is_latest);

CREATE TABLE IF NOT EXISTS chunks (
    id                  INTEGER PRIMARY KEY,
    file_id             TEXT NOT NULL REFERENCES files(id) ON DELETE CASCADE,
    ordinal             INTEGER NOT NULL,
    start_line          INTEGER NOT NULL,
    end_line            INTEGER NOT NULL,
    content             TEXT NOT NULL,
    content_hash        TEXT NOT NULL,
    token_count         INTEGER NOT NULL,
    metadata            TEXT NOT NULL DEFAULT '{}',
    chunk_key           TEXT NOT NULL,
    snapshot_id         TEXT NOT NULL,
    commit_hash         TEXT NOT NULL DEFAULT '',
    author              TEXT NOT NULL DEFAULT '',
    updated_at          TEXT,
    is_latest           INTEGER NOT NULL DEFAULT 1,
    importance_score    REAL,
    created_at          DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_chunks_file ON chunks(file_id);
CREATE INDEX IF NOT EXISTS idx_chunks_key ON chunks(chunk_key);

CREATE VIRTUAL TABLE IF NOT EXISTS chunks_fts USING fts5(text, tokenize='porter ascii');

CREATE TABLE IF NOT EXISTS embeddings (
    chunk_id    INTEGER PRIMARY KEY REFERENCES chunks(id) ON DELETE CASCADE,
    model       TEXT NOT NULL,
    dimensions  INTEGER NOT NULL,
    created_at  DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS chunk_dependencies (
    id              INTEGER PRIMARY KEY,
    from_chunk_id   INTEGER NOT NULL REFERENCES chunks(id) ON DELETE CASCADE,
    to_chunk_id     INTEGER NOT NULL REFERENCES chunks(id) ON DELETE CASCADE,
    relation_type   TEXT NOT NULL,
    symbol          TEXT NOT NULL DEFAULT '',
    weight          INTEGER NOT NULL DEFAULT 1,
    created_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_dependencies_from ON chunk_dependencies(from_chunk_id);
CREATE INDEX IF NOT EXISTS idx_dependencies_to ON chunk_dependencies(to_chunk_id);

CREATE TABLE IF NOT EXISTS snapshot_files (
    snapshot_id TEXT NOT NULL REFERENCES snapshots(id) ON DELETE CASCADE,
    path        TEXT NOT NULL,
    size        INTEGER NOT NULL,
    domain      TEXT,
    status      TEXT NOT NULL,
    skip_reason TEXT,
    PRIMARY KEY (snapshot_id, path)
);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    Vec tables are NOT managed here — use ensure_vec_table() instead.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)

    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    current = row[0] if row[0] is not None else 0

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )


def current_version(conn: sqlite3.Connection) -> int:
    """Return the applied schema version (0 for an empty database)."""
    conn.execute(_CREATE_SCHEMA_VERSION)
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] if row[0] is not None else 0
