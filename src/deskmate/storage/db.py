from __future__ import annotations

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from deskmate.bridge.contracts import Document, SearchResult
from deskmate.storage.fts import (
    create_fts_schema,
    delete_document_fts,
    insert_document_fts,
    rank_to_relevance,
    search_fts,
)


class KnowledgeBaseDB:
    """SQLite-backed document store with an FTS5 index over name and content."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _session(self):
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def initialize(self) -> None:
        with self._session() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    category TEXT NOT NULL,
                    content TEXT NOT NULL,
                    source_path TEXT,
                    backup_path TEXT,
                    file_type TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )
            columns = {row["name"] for row in conn.execute("PRAGMA table_info(documents)")}
            if "backup_path" not in columns:
                conn.execute("ALTER TABLE documents ADD COLUMN backup_path TEXT")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_documents_created ON documents(created_at)")
            try:
                create_fts_schema(conn)
            except sqlite3.OperationalError as exc:
                raise RuntimeError(
                    "SQLite FTS5 with the trigram tokenizer is unavailable in this Python build. "
                    "Install a Python/SQLite build with FTS5 support (SQLite 3.34 or newer)."
                ) from exc

    @staticmethod
    def _now_iso() -> str:
        return datetime.now(tz=timezone.utc).replace(microsecond=0).isoformat()

    @staticmethod
    def _row_to_document(row: sqlite3.Row) -> Document:
        return Document(
            id=str(row["id"]),
            name=str(row["name"]),
            category=str(row["category"]),
            content=str(row["content"]),
            source_path=str(row["source_path"]) if row["source_path"] is not None else None,
            backup_path=str(row["backup_path"]) if row["backup_path"] is not None else None,
            file_type=str(row["file_type"]),
            created_at=str(row["created_at"]),
        )

    def add_document(
        self,
        *,
        name: str,
        category: str,
        content: str,
        source_path: str | None,
        file_type: str,
        backup_path: str | None = None,
        document_id: str | None = None,
    ) -> Document:
        document = Document(
            id=document_id or str(uuid.uuid4()),
            name=name,
            category=category,
            content=content,
            source_path=source_path,
            backup_path=backup_path,
            file_type=file_type,
            created_at=self._now_iso(),
        )
        with self._session() as conn:
            conn.execute(
                """
                INSERT INTO documents(id, name, category, content, source_path, backup_path, file_type, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    document.id,
                    document.name,
                    document.category,
                    document.content,
                    document.source_path,
                    document.backup_path,
                    document.file_type,
                    document.created_at,
                ),
            )
            insert_document_fts(conn, document.id, document.name, document.content)
        return document

    def get_document(self, document_id: str) -> Document | None:
        with self._session() as conn:
            row = conn.execute("SELECT * FROM documents WHERE id = ?", (document_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_document(row)

    def list_documents(self) -> list[Document]:
        with self._session() as conn:
            rows = conn.execute("SELECT * FROM documents ORDER BY created_at ASC, rowid ASC").fetchall()
        return [self._row_to_document(row) for row in rows]

    def delete_document(self, document_id: str) -> None:
        with self._session() as conn:
            cursor = conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
            if cursor.rowcount == 0:
                raise ValueError(f"Document not found: {document_id}")
            delete_document_fts(conn, document_id)

    def search(self, query: str, limit: int = 5) -> list[SearchResult]:
        with self._session() as conn:
            rows = search_fts(conn, query, limit=limit)
        return [
            SearchResult(
                document=self._row_to_document(row),
                relevance=rank_to_relevance(float(row["rank"])),
                snippet=str(row["snippet"]),
            )
            for row in rows
        ]
