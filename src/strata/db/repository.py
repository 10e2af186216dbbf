"""Repository pattern for all strata database operations.

Single interface for: products, sources, snapshots, files, chunks (+FTS5),
vec embeddings, dependency edges, and snapshot file records.

Methods never commit. Writes run inside the caller's
:func:`strata.db.connection.transaction` block, so one index run is
persisted, or discarded, as a unit.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from collections.abc import Iterable, Mapping

from strata.db.models import (
    Chunk,
    Dependency,
    File,
    Product,
    Snapshot,
    SnapshotFile,
    Source,
)
from strata.db.vectors import vec_table_for_model

_CHUNK_COLUMNS = """
    c.id, c.file_id, c.ordinal, c.start_line, c.end_line, c.content, c.content_hash,
    c.token_count, c.metadata, c.chunk_key, c.snapshot_id, c.commit_hash, c.author,
    c.updated_at, c.is_latest, c.importance_score, f.path AS file_path
"""

_FILE_COLUMNS = """
    f.id, f.snapshot_id, f.path, f.size, f.content_type, f.content_hash,
    f.language, f.domain, f.is_latest, f.created_at
"""


class Repository:
    """Data access layer for all strata database entities.

    Wraps an open sqlite3.Connection. The connection is owned by the caller
    and must be closed after use.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with sqlite-vec loaded and schema
                initialised (see strata.db.schema.initialize).
        """
        self._conn = conn

    # ------------------------------------------------------------------
    # Products + sources
    # ------------------------------------------------------------------

    def get_or_create_product(self, name: str) -> Product:
        """Return the product called *name*, creating it on first use."""
        self._conn.execute(
            "INSERT OR IGNORE INTO products (id, name) VALUES (?, ?)",
            (str(uuid.uuid4()), name),
        )
        row = self._conn.execute(
            "SELECT id, name, created_at FROM products WHERE name = ?", (name,)
        ).fetchone()
        return Product(id=row["id"], name=row["name"], created_at=row["created_at"])

    def upsert_source(
        self,
        product_id: str,
        name: str,
        source_type: str,
        metadata: Mapping[str, object] | None = None,
    ) -> Source:
        """Return the source *name* under *product_id*, creating it if missing.

        An existing source keeps its original type and metadata; source
        identity is immutable once created.

        Args:
            product_id: Owning product.
            name: Provider-derived source name (e.g. ``github.com/org/repo``).
            source_type: Provider key (``git``, ``local``).
            metadata: Type-specific metadata stored as JSON on first insert.

        Returns:
            The persisted Source.
        """
        self._conn.execute(
            """
            INSERT OR IGNORE INTO sources (id, product_id, name, source_type, metadata)
            VALUES (?, ?, ?, ?, ?)
            """,
            (
                str(uuid.uuid4()),
                product_id,
                name,
                source_type,
                json.dumps(dict(metadata or {}), sort_keys=True),
            ),
        )
        source = self.get_source_by_name(product_id, name)
        if source is None:
            # OR IGNORE also swallows NOT NULL violations.
            raise sqlite3.IntegrityError(f"Could not create source {name!r} in product {product_id}")
        return source

    def get_source(self, source_id: str) -> Source | None:
        """Return a source by ID, or None if not found."""
        row = self._conn.execute(
            "SELECT id, product_id, name, source_type, metadata, created_at FROM sources WHERE id = ?",
            (source_id,),
        ).fetchone()
        return _row_to_source(row) if row else None

    def get_source_by_name(self, product_id: str, name: str) -> Source | None:
        """Return the source *name* within *product_id*, or None if not found."""
        row = self._conn.execute(
            """
            SELECT id, product_id, name, source_type, metadata, created_at
            FROM sources WHERE product_id = ? AND name = ?
            """,
            (product_id, name),
        ).fetchone()
        return _row_to_source(row) if row else None

    def list_sources(self) -> list[tuple[str, Source]]:
        """Return ``[(product_name, source), ...]`` ordered by product then name."""
        rows = self._conn.execute(
            """
            SELECT p.name AS product_name, s.id, s.product_id, s.name, s.source_type,
                   s.metadata, s.created_at
            FROM sources s JOIN products p ON p.id = s.product_id
            ORDER BY p.name, s.name
            """
        ).fetchall()
        return [(r["product_name"], _row_to_source(r)) for r in rows]

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def get_snapshot(self, source_id: str, version_identifier: str) -> Snapshot | None:
        """Return the snapshot of *source_id* at *version_identifier*, or None.

        Args:
            source_id: Owning source.
            version_identifier: Commit hash or other provider version.

        Returns:
            Snapshot instance or None.
        """
        row = self._conn.execute(
            """
            SELECT id, source_id, version_identifier, indexed, indexed_at, created_at
            FROM snapshots WHERE source_id = ? AND version_identifier = ?
            """,
            (source_id, version_identifier),
        ).fetchone()
        return _row_to_snapshot(row) if row else None

    def create_snapshot(self, source_id: str, version_identifier: str) -> Snapshot:
        """Insert a new, not yet indexed, snapshot row.

        Raises:
            sqlite3.IntegrityError: If a snapshot for this version exists.
        """
        snapshot_id = str(uuid.uuid4())
        self._conn.execute(
            "INSERT INTO snapshots (id, source_id, version_identifier) VALUES (?, ?, ?)",
            (snapshot_id, source_id, version_identifier),
        )
        return Snapshot(id=snapshot_id, source_id=source_id, version_identifier=version_identifier)

    def mark_snapshot_indexed(self, snapshot_id: str) -> None:
        """Flag a snapshot as fully indexed."""
        self._conn.execute(
            "UPDATE snapshots SET indexed = 1, indexed_at = datetime('now') WHERE id = ?",
            (snapshot_id,),
        )

    def list_snapshots(self, source_id: str) -> list[Snapshot]:
        """Return all snapshots of *source_id*, oldest first."""
        rows = self._conn.execute(
            """
            SELECT id, source_id, version_identifier, indexed, indexed_at, created_at
            FROM snapshots WHERE source_id = ? ORDER BY created_at, rowid
            """,
            (source_id,),
        ).fetchall()
        return [_row_to_snapshot(r) for r in rows]

    def latest_indexed_snapshot(self, source_id: str) -> Snapshot | None:
        """Return the most recently indexed snapshot of *source_id*, or None."""
        row = self._conn.execute(
            """
            SELECT id, source_id, version_identifier, indexed, indexed_at, created_at
            FROM snapshots WHERE source_id = ? AND indexed = 1
            ORDER BY indexed_at DESC, rowid DESC LIMIT 1
            """,
            (source_id,),
        ).fetchone()
        return _row_to_snapshot(row) if row else None

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def add_file(self, file: File) -> None:
        """Insert a file row. The file becomes the live version of its path."""
        self._conn.execute(
            """
            INSERT INTO files
                (id, snapshot_id, path, size, content_type, content_hash, language, domain, is_latest)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                file.id,
                file.snapshot_id,
                file.path,
                file.size,
                file.content_type,
                file.content_hash,
                file.language,
                file.domain,
                int(file.is_latest),
            ),
        )

    def get_live_file_hashes(self, source_id: str) -> dict[str, str]:
        """Return ``{path: content_hash}`` for the live files of *source_id*.

        A path's live file is the newest version persisted by any indexed
        snapshot of the source; unchanged files are not re-persisted, so
        this is the content the source's latest snapshot represents.
        """
        rows = self._conn.execute(
            """
            SELECT f.path, f.content_hash
            FROM files f JOIN snapshots s ON s.id = f.snapshot_id
            WHERE s.source_id = ? AND s.indexed = 1 AND f.is_latest = 1
            """,
            (source_id,),
        ).fetchall()
        return {r["path"]: r["content_hash"] for r in rows}

    def list_live_files(self, source_id: str) -> list[File]:
        """Return the live files of *source_id* ordered by path."""
        rows = self._conn.execute(
            f"""
            SELECT {_FILE_COLUMNS}
            FROM files f JOIN snapshots s ON s.id = f.snapshot_id
            WHERE s.source_id = ? AND s.indexed = 1 AND f.is_latest = 1
            ORDER BY f.path
            """,
            (source_id,),
        ).fetchall()
        return [_row_to_file(r) for r in rows]

    def list_files(self, snapshot_id: str) -> list[File]:
        """Return files persisted by *snapshot_id* ordered by path."""
        rows = self._conn.execute(
            f"SELECT {_FILE_COLUMNS} FROM files f WHERE f.snapshot_id = ? ORDER BY f.path",
            (snapshot_id,),
        ).fetchall()
        return [_row_to_file(r) for r in rows]

    def retire_files(self, source_id: str, paths: Iterable[str] | None = None) -> int:
        """Demote live files (and their chunks) of *source_id* to history.

        Args:
            source_id: Owning source.
            paths: Paths to demote; None demotes every live file.

        Returns:
            Number of file rows demoted.
        """
        file_ids = self._live_file_ids(source_id, paths)
        if not file_ids:
            return 0
        placeholders = ",".join("?" * len(file_ids))
        self._conn.execute(
            f"UPDATE chunks SET is_latest = 0 WHERE file_id IN ({placeholders})", file_ids
        )
        cur = self._conn.execute(
            f"UPDATE files SET is_latest = 0 WHERE id IN ({placeholders})", file_ids
        )
        return cur.rowcount

    def delete_live_files(self, source_id: str, paths: Iterable[str]) -> int:
        """Delete the live files at *paths* with their chunks and vectors.

        Returns the number of file rows deleted.
        """
        file_ids = self._live_file_ids(source_id, paths)
        if not file_ids:
            return 0
        placeholders = ",".join("?" * len(file_ids))
        chunk_ids = [
            r[0]
            for r in self._conn.execute(
                f"SELECT id FROM chunks WHERE file_id IN ({placeholders})", file_ids
            ).fetchall()
        ]
        self._delete_chunk_side_tables(chunk_ids)
        cur = self._conn.execute(f"DELETE FROM files WHERE id IN ({placeholders})", file_ids)
        return cur.rowcount

    def count_files(self, snapshot_id: str) -> int:
        """Return the number of files persisted by *snapshot_id*."""
        return self._conn.execute(
            "SELECT COUNT(*) FROM files WHERE snapshot_id = ?", (snapshot_id,)
        ).fetchone()[0]

    def _live_file_ids(self, source_id: str, paths: Iterable[str] | None) -> list[str]:
        sql = """
            SELECT f.id FROM files f JOIN snapshots s ON s.id = f.snapshot_id
            WHERE s.source_id = ? AND f.is_latest = 1
        """
        params: list[object] = [source_id]
        if paths is not None:
            path_list = list(paths)
            if not path_list:
                return []
            sql += f" AND f.path IN ({','.join('?' * len(path_list))})"
            params.extend(path_list)
        return [r[0] for r in self._conn.execute(sql, params).fetchall()]

    # ------------------------------------------------------------------
    # Snapshot files
    # ------------------------------------------------------------------

    def add_snapshot_files(self, records: Iterable[SnapshotFile]) -> None:
        """Insert one outcome record per fetched document."""
        self._conn.executemany(
            """
            INSERT INTO snapshot_files (snapshot_id, path, size, domain, status, skip_reason)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (r.snapshot_id, r.path, r.size, r.domain, r.status, r.skip_reason)
                for r in records
            ],
        )

    def list_snapshot_files(self, snapshot_id: str) -> list[SnapshotFile]:
        """Return the outcome records of *snapshot_id* ordered by path."""
        rows = self._conn.execute(
            """
            SELECT snapshot_id, path, size, domain, status, skip_reason
            FROM snapshot_files WHERE snapshot_id = ? ORDER BY path
            """,
            (snapshot_id,),
        ).fetchall()
        return [
            SnapshotFile(
                snapshot_id=r["snapshot_id"],
                path=r["path"],
                size=r["size"],
                domain=r["domain"],
                status=r["status"],
                skip_reason=r["skip_reason"],
            )
            for r in rows
        ]

    # ------------------------------------------------------------------
    # Chunks
    # ------------------------------------------------------------------

    def add_chunk(self, chunk: Chunk) -> int:
        """Insert chunk + sync FTS5 index. Returns the new chunk id."""
        cur = self._conn.execute(
            """
            INSERT INTO chunks
                (file_id, ordinal, start_line, end_line, content, content_hash, token_count,
                 metadata, chunk_key, snapshot_id, commit_hash, author, updated_at, is_latest)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                chunk.file_id,
                chunk.ordinal,
                chunk.start_line,
                chunk.end_line,
                chunk.content,
                chunk.content_hash,
                chunk.token_count,
                chunk.metadata,
                chunk.chunk_key,
                chunk.snapshot_id,
                chunk.commit_hash,
                chunk.author,
                chunk.updated_at,
                int(chunk.is_latest),
            ),
        )
        chunk_id = cur.lastrowid
        # Keep FTS5 in sync with explicit rowid mapping
        self._conn.execute(
            "INSERT INTO chunks_fts(rowid, text) VALUES (?, ?)", (chunk_id, chunk.content)
        )
        chunk.id = chunk_id
        return chunk_id

    def get_chunk(self, chunk_id: int) -> Chunk | None:
        """Return a chunk by id, or None if not found."""
        row = self._conn.execute(
            f"SELECT {_CHUNK_COLUMNS} FROM chunks c JOIN files f ON f.id = c.file_id WHERE c.id = ?",
            (chunk_id,),
        ).fetchone()
        return _row_to_chunk(row) if row else None

    def list_chunks(self, snapshot_id: str) -> list[Chunk]:
        """Return the chunks written by *snapshot_id* in file/ordinal order."""
        rows = self._conn.execute(
            f"""
            SELECT {_CHUNK_COLUMNS} FROM chunks c JOIN files f ON f.id = c.file_id
            WHERE c.snapshot_id = ? ORDER BY f.path, c.ordinal
            """,
            (snapshot_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def list_live_chunks(self, source_id: str) -> list[Chunk]:
        """Return the live chunks of *source_id* in file/ordinal order."""
        rows = self._conn.execute(
            f"""
            SELECT {_CHUNK_COLUMNS}
            FROM chunks c
            JOIN files f ON f.id = c.file_id
            JOIN snapshots s ON s.id = f.snapshot_id
            WHERE s.source_id = ? AND s.indexed = 1 AND c.is_latest = 1
            ORDER BY f.path, c.ordinal
            """,
            (source_id,),
        ).fetchall()
        return [_row_to_chunk(r) for r in rows]

    def count_chunks(self, snapshot_id: str) -> int:
        """Return the number of chunks written by *snapshot_id*."""
        return self._conn.execute(
            "SELECT COUNT(*) FROM chunks WHERE snapshot_id = ?", (snapshot_id,)
        ).fetchone()[0]

    def count_live_chunks(self, source_id: str) -> int:
        """Return the number of live chunks of *source_id*."""
        return self._conn.execute(
            """
            SELECT COUNT(*) FROM chunks c
            JOIN files f ON f.id = c.file_id
            JOIN snapshots s ON s.id = f.snapshot_id
            WHERE s.source_id = ? AND s.indexed = 1 AND c.is_latest = 1
            """,
            (source_id,),
        ).fetchone()[0]

    def update_importance_scores(self, scores: Mapping[int, float]) -> None:
        """Write ``importance_score`` for each chunk id in *scores*."""
        self._conn.executemany(
            "UPDATE chunks SET importance_score = ? WHERE id = ?",
            [(score, chunk_id) for chunk_id, score in scores.items()],
        )

    def _delete_chunk_side_tables(self, chunk_ids: list[int]) -> None:
        """Remove FTS and vec rows (no FK cascade on virtual tables)."""
        if not chunk_ids:
            return
        placeholders = ",".join("?" * len(chunk_ids))
        self._conn.execute(f"DELETE FROM chunks_fts WHERE rowid IN ({placeholders})", chunk_ids)
        models = [
            r[0]
            for r in self._conn.execute(
                f"SELECT DISTINCT model FROM embeddings WHERE chunk_id IN ({placeholders})",
                chunk_ids,
            ).fetchall()
        ]
        for model in models:
            table = vec_table_for_model(model)
            self._conn.execute(
                f"DELETE FROM [{table}] WHERE rowid IN ({placeholders})",  # noqa: S608
                chunk_ids,
            )

    # ------------------------------------------------------------------
    # Vec embeddings
    # ------------------------------------------------------------------

    def add_embedding(self, table: str, chunk_id: int, embedding: list[float], model: str) -> None:
        """Insert a vector with rowid = chunk id and tag it with *model*."""
        self._conn.execute(
            f"INSERT INTO {table}(rowid, embedding) VALUES (?, ?)",
            (chunk_id, json.dumps(embedding)),
        )
        self._conn.execute(
            "INSERT INTO embeddings (chunk_id, model, dimensions) VALUES (?, ?, ?)",
            (chunk_id, model, len(embedding)),
        )

    def get_embedding(self, table: str, chunk_id: int) -> list[float] | None:
        """Return the stored vector for *chunk_id*, or None."""
        row = self._conn.execute(
            f"SELECT vec_to_json(embedding) FROM {table} WHERE rowid = ?", (chunk_id,)
        ).fetchone()
        return json.loads(row[0]) if row else None

    def count_embeddings(self, snapshot_id: str) -> int:
        """Return the number of embeddings attached to chunks of *snapshot_id*."""
        return self._conn.execute(
            """
            SELECT COUNT(*) FROM embeddings e JOIN chunks c ON c.id = e.chunk_id
            WHERE c.snapshot_id = ?
            """,
            (snapshot_id,),
        ).fetchone()[0]

    # ------------------------------------------------------------------
    # Dependencies
    # ------------------------------------------------------------------

    def replace_dependencies(self, chunk_ids: Iterable[int], edges: Iterable[Dependency]) -> None:
        """Drop outgoing edges of *chunk_ids* and insert *edges* in their place."""
        ids = list(chunk_ids)
        for start in range(0, len(ids), 500):
            batch = ids[start : start + 500]
            self._conn.execute(
                f"DELETE FROM chunk_dependencies WHERE from_chunk_id IN ({','.join('?' * len(batch))})",
                batch,
            )
        self._conn.executemany(
            """
            INSERT INTO chunk_dependencies (from_chunk_id, to_chunk_id, relation_type, symbol, weight)
            VALUES (?, ?, ?, ?, ?)
            """,
            [(e.from_chunk_id, e.to_chunk_id, e.relation_type, e.symbol, e.weight) for e in edges],
        )

    def list_dependencies(self, from_chunk_id: int | None = None) -> list[Dependency]:
        """Return dependency edges, optionally only those leaving *from_chunk_id*."""
        sql = (
            "SELECT id, from_chunk_id, to_chunk_id, relation_type, symbol, weight "
            "FROM chunk_dependencies"
        )
        params: tuple = ()
        if from_chunk_id is not None:
            sql += " WHERE from_chunk_id = ?"
            params = (from_chunk_id,)
        rows = self._conn.execute(sql + " ORDER BY id", params).fetchall()
        return [
            Dependency(
                id=r["id"],
                from_chunk_id=r["from_chunk_id"],
                to_chunk_id=r["to_chunk_id"],
                relation_type=r["relation_type"],
                symbol=r["symbol"],
                weight=r["weight"],
            )
            for r in rows
        ]


# ------------------------------------------------------------------
# Row → model helpers
# ------------------------------------------------------------------

def _row_to_source(row: sqlite3.Row) -> Source:
    return Source(
        id=row["id"],
        product_id=row["product_id"],
        name=row["name"],
        source_type=row["source_type"],
        metadata=row["metadata"],
        created_at=row["created_at"],
    )


def _row_to_snapshot(row: sqlite3.Row) -> Snapshot:
    return Snapshot(
        id=row["id"],
        source_id=row["source_id"],
        version_identifier=row["version_identifier"],
        indexed=bool(row["indexed"]),
        indexed_at=row["indexed_at"],
        created_at=row["created_at"],
    )


def _row_to_file(row: sqlite3.Row) -> File:
    return File(
        id=row["id"],
        snapshot_id=row["snapshot_id"],
        path=row["path"],
        size=row["size"],
        content_type=row["content_type"],
        content_hash=row["content_hash"],
        language=row["language"],
        domain=row["domain"],
        is_latest=bool(row["is_latest"]),
        created_at=row["created_at"],
    )


def _row_to_chunk(row: sqlite3.Row) -> Chunk:
    return Chunk(
        id=row["id"],
        file_id=row["file_id"],
        ordinal=row["ordinal"],
        start_line=row["start_line"],
        end_line=row["end_line"],
        content=row["content"],
        content_hash=row["content_hash"],
        token_count=row["token_count"],
        metadata=row["metadata"],
        chunk_key=row["chunk_key"],
        snapshot_id=row["snapshot_id"],
        commit_hash=row["commit_hash"],
        author=row["author"],
        updated_at=row["updated_at"],
        is_latest=bool(row["is_latest"]),
        importance_score=row["importance_score"],
        file_path=row["file_path"],
    )
