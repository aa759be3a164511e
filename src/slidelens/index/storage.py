"""SQLite + sqlite-vec vector store.

The ``slide_vectors`` virtual table is keyed by the raw slide id and has no
foreign key to ``slides``. This store is the only writer of both tables and
removes every slide's vector before the slide rows themselves on each
deletion path.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Sequence

import numpy as np
import sqlite_vec

from slidelens.errors import DimensionMismatchError, InvalidSlideIdError, ZeroVectorError
from slidelens.models import DocumentRecord, SearchResult, SlideRecord, StoreStats

LOGGER = logging.getLogger(__name__)


def _serialize(vector: Sequence[float] | np.ndarray) -> bytes:
    return np.asarray(vector, dtype="float32").tobytes()


def _document_from_row(row: sqlite3.Row) -> DocumentRecord:
    return DocumentRecord(
        id=row["id"],
        path=row["path"],
        fingerprint=row["fingerprint"],
        title=row["title"],
        indexed_at=row["indexed_at"],
    )


def _slide_from_row(row: sqlite3.Row) -> SlideRecord:
    return SlideRecord(
        id=row["id"],
        document_id=row["document_id"],
        slide_index=row["slide_index"],
        heading=row["heading"],
        content=row["content"],
        text_only=row["text_only"],
        speaker_notes=row["speaker_notes"],
        image_descriptions=row["image_descriptions"],
    )


class SQLiteVectorStore:
    """Persistence layer for documents, slides and slide vectors."""

    def __init__(self, db_path: Path, *, dimension: int) -> None:
        if dimension <= 0:
            raise ValueError("dimension must be positive")
        self.db_path = Path(db_path)
        self.dimension = dimension
        self._depth = 0
        self._conn = sqlite3.connect(self.db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.enable_load_extension(True)
        sqlite_vec.load(self._conn)
        self._conn.enable_load_extension(False)
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._conn.execute("PRAGMA foreign_keys=ON;")
        try:
            self._ensure_schema()
        except Exception:
            self._conn.close()
            raise

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SQLiteVectorStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Group writes into one unit; nested blocks join the outermost one."""
        self._depth += 1
        try:
            yield self._conn
        except Exception:
            self._depth -= 1
            if self._depth == 0:
                self._conn.rollback()
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                self._conn.commit()

    def _ensure_schema(self) -> None:
        with self.transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    path TEXT NOT NULL UNIQUE,
                    fingerprint TEXT NOT NULL,
                    title TEXT,
                    indexed_at INTEGER NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS slides (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    document_id INTEGER NOT NULL REFERENCES documents(id),
                    slide_index INTEGER NOT NULL,
                    heading TEXT,
                    content TEXT NOT NULL,
                    text_only TEXT NOT NULL,
                    speaker_notes TEXT NOT NULL DEFAULT '',
                    image_descriptions TEXT NOT NULL DEFAULT '',
                    UNIQUE(document_id, slide_index)
                )
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_slides_document_id ON slides(document_id)"
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS metadata (
                    key TEXT PRIMARY KEY,
                    value TEXT
                )
                """
            )

            stored = conn.execute(
                "SELECT value FROM metadata WHERE key = 'dimension'"
            ).fetchone()
            if stored is not None and int(stored["value"]) != self.dimension:
                raise DimensionMismatchError(int(stored["value"]), self.dimension)

            conn.execute(
                f"""
                CREATE VIRTUAL TABLE IF NOT EXISTS slide_vectors USING vec0(
                    embedding float[{int(self.dimension)}]
                )
                """
            )
            if stored is None:
                conn.execute(
                    "INSERT INTO metadata(key, value) VALUES ('dimension', ?)",
                    (str(self.dimension),),
                )

    def get_document(self, path: str) -> DocumentRecord | None:
        row = self._conn.execute(
            "SELECT * FROM documents WHERE path = ?", (str(path),)
        ).fetchone()
        return _document_from_row(row) if row else None

    def _delete_document_slides(self, document_id: int) -> None:
        # Vectors first: slide_vectors has no foreign key back to slides.
        slide_ids = [
            row["id"]
            for row in self._conn.execute(
                "SELECT id FROM slides WHERE document_id = ?", (document_id,)
            )
        ]
        for slide_id in slide_ids:
            self._conn.execute("DELETE FROM slide_vectors WHERE rowid = ?", (slide_id,))
        self._conn.execute("DELETE FROM slides WHERE document_id = ?", (document_id,))

    def upsert_document(self, document: DocumentRecord) -> int:
        """Insert or update a document, dropping any slides it had before."""
        with self.transaction() as conn:
            existing = self.get_document(document.path)
            if existing is not None:
                self._delete_document_slides(existing.id)
                conn.execute(
                    "UPDATE documents SET fingerprint = ?, title = ?, indexed_at = ? WHERE id = ?",
                    (document.fingerprint, document.title, document.indexed_at, existing.id),
                )
                return existing.id

            return conn.execute(
                "INSERT INTO documents(path, fingerprint, title, indexed_at) VALUES (?, ?, ?, ?)",
                (str(document.path), document.fingerprint, document.title, document.indexed_at),
            ).lastrowid

    def delete_document(self, path: str) -> bool:
        with self.transaction() as conn:
            existing = self.get_document(path)
            if existing is None:
                return False
            self._delete_document_slides(existing.id)
            conn.execute("DELETE FROM documents WHERE id = ?", (existing.id,))
        LOGGER.debug("Deleted document %s", path)
        return True

    def insert_slide(self, slide: SlideRecord) -> int:
        with self.transaction() as conn:
            return conn.execute(
                """
                INSERT INTO slides(
                    document_id, slide_index, heading, content,
                    text_only, speaker_notes, image_descriptions
                )
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    slide.document_id,
                    slide.slide_index,
                    slide.heading,
                    slide.content,
                    slide.text_only,
                    slide.speaker_notes,
                    slide.image_descriptions,
                ),
            ).lastrowid

    def _check_vector(self, vector: Sequence[float] | np.ndarray) -> np.ndarray:
        array = np.asarray(vector, dtype="float32")
        if array.ndim != 1 or array.shape[0] != self.dimension:
            raise DimensionMismatchError(self.dimension, int(array.size))
        if not np.any(array):
            raise ZeroVectorError("Vectors must have a non-zero norm")
        return array

    def insert_vector(self, slide_id: int, vector: Sequence[float] | np.ndarray) -> None:
        if isinstance(slide_id, bool) or not isinstance(slide_id, (int, np.integer)):
            raise InvalidSlideIdError(f"Invalid slide id: {slide_id!r}")
        if slide_id < 0:
            raise InvalidSlideIdError(f"Invalid slide id: {slide_id!r}")
        array = self._check_vector(vector)
        with self.transaction() as conn:
            conn.execute(
                "INSERT INTO slide_vectors(rowid, embedding) VALUES (?, ?)",
                (int(slide_id), _serialize(array)),
            )

    def insert_slide_with_vector(
        self, slide: SlideRecord, vector: Sequence[float] | np.ndarray
    ) -> int:
        self._check_vector(vector)
        with self.transaction():
            slide_id = self.insert_slide(slide)
            self.insert_vector(slide_id, vector)
        return slide_id

    def search(self, embedding: Sequence[float] | np.ndarray, *, limit: int = 10) -> List[SearchResult]:
        query = self._check_vector(embedding)
        if limit <= 0:
            return []

        rows = self._conn.execute(
            """
            SELECT
                s.id AS slide_id,
                s.slide_index AS slide_index,
                s.heading AS heading,
                s.content AS content,
                s.text_only AS text_only,
                d.path AS path,
                d.title AS title,
                vec_distance_cosine(v.embedding, ?) AS distance
            FROM slide_vectors v
            JOIN slides s ON s.id = v.rowid
            JOIN documents d ON d.id = s.document_id
            ORDER BY distance ASC, s.id ASC
            LIMIT ?
            """,
            (_serialize(query), int(limit)),
        ).fetchall()

        return [
            SearchResult(
                slide_id=row["slide_id"],
                document_path=row["path"],
                document_title=row["title"],
                slide_index=row["slide_index"],
                heading=row["heading"],
                content=row["content"],
                text_only=row["text_only"],
                similarity=1.0 - float(row["distance"]),
            )
            for row in rows
        ]

    def get_slide(self, path_fragment: str, slide_index: int) -> SlideRecord | None:
        """Find a slide by exact document path, else by path suffix.

        Suffixes match whole path components and are case-sensitive, so
        ``deck.md`` finds ``talks/deck.md`` but not ``mydeck.md``. Several
        documents can end with the same fragment; the shortest path wins, then
        the lexicographically smallest.
        """
        row = self._conn.execute(
            """
            SELECT s.* FROM slides s
            JOIN documents d ON d.id = s.document_id
            WHERE d.path = ? AND s.slide_index = ?
            """,
            (path_fragment, slide_index),
        ).fetchone()
        if row is None:
            row = self._conn.execute(
                """
                SELECT s.* FROM slides s
                JOIN documents d ON d.id = s.document_id
                WHERE substr(d.path, -length(:suffix)) = :suffix AND s.slide_index = :index
                ORDER BY length(d.path) ASC, d.path ASC
                LIMIT 1
                """,
                {"suffix": "/" + path_fragment.lstrip("/"), "index": slide_index},
            ).fetchone()
        return _slide_from_row(row) if row else None

    def list_documents(self) -> List[DocumentRecord]:
        rows = self._conn.execute("SELECT * FROM documents ORDER BY path").fetchall()
        return [_document_from_row(row) for row in rows]

    def _count(self, table: str) -> int:
        return self._conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]

    def stats(self) -> StoreStats:
        size = 0
        for candidate in (self.db_path, self.db_path.with_name(self.db_path.name + "-wal")):
            if candidate.exists():
                size += candidate.stat().st_size
        return StoreStats(
            document_count=self._count("documents"),
            slide_count=self._count("slides"),
            vector_count=self._count("slide_vectors"),
            storage_size_bytes=size,
        )

    def clear(self) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM slide_vectors")
            conn.execute("DELETE FROM slides")
            conn.execute("DELETE FROM documents")

    def remove_missing_documents(self, base_dir: Path | None = None) -> int:
        """Remove documents whose files no longer exist."""
        removed = 0
        with self.transaction() as conn:
            for document in self.list_documents():
                source = Path(document.path)
                if not source.is_absolute() and base_dir is not None:
                    source = Path(base_dir) / source
                if source.exists():
                    continue
                self._delete_document_slides(document.id)
                conn.execute("DELETE FROM documents WHERE id = ?", (document.id,))
                removed += 1
        return removed
