from __future__ import annotations

import re
import sqlite3

_TOKEN = re.compile(r"\w+", re.UNICODE)
# The trigram tokenizer cannot match terms shorter than this.
MIN_MATCH_CHARS = 3


def create_fts_schema(conn: sqlite3.Connection) -> None:
    """Create the trigram FTS5 index, rebuilding one made with another tokenizer.

    Trigrams let a query match inside runs of CJK text, which word tokenizers
    treat as a single token.
    """
    row = conn.execute("SELECT sql FROM sqlite_master WHERE name = 'documents_fts'").fetchone()
    if row is not None and "trigram" not in str(row[0]):
        conn.execute("DROP TABLE documents_fts")
        row = None
    if row is not None:
        return
    conn.execute(
        """
        CREATE VIRTUAL TABLE documents_fts
        USING fts5(
            document_id UNINDEXED,
            name,
            content,
            tokenize = 'trigram'
        )
        """
    )
    conn.execute("INSERT INTO documents_fts(document_id, name, content) SELECT id, name, content FROM documents")


def insert_document_fts(conn: sqlite3.Connection, document_id: str, name: str, content: str) -> None:
    conn.execute(
        "INSERT INTO documents_fts(document_id, name, content) VALUES (?, ?, ?)",
        (document_id, name, content),
    )


def delete_document_fts(conn: sqlite3.Connection, document_id: str) -> None:
    conn.execute("DELETE FROM documents_fts WHERE document_id = ?", (document_id,))


def build_match_query(query: str) -> str | None:
    """Turn free text into an FTS5 OR-query of quoted terms.

    Quoting keeps user punctuation from being read as FTS5 syntax. Terms too
    short for the trigram index are left out.
    """
    tokens = [token for token in _TOKEN.findall(query) if len(token) >= MIN_MATCH_CHARS]
    if not tokens:
        return None
    return " OR ".join(f'"{token}"' for token in tokens)


def rank_to_relevance(rank: float) -> float:
    # FTS5 bm25 ranks are <= 0 with more negative meaning a better match.
    score = max(-rank, 0.0)
    return score / (1.0 + score)


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _search_short_terms(conn: sqlite3.Connection, terms: list[str], limit: int) -> list[sqlite3.Row]:
    # Unranked substring scan for queries made only of one or two character terms.
    clauses = " OR ".join(["d.name LIKE ? ESCAPE '\\' OR d.content LIKE ? ESCAPE '\\'"] * len(terms))
    params: list[object] = []
    for term in terms:
        pattern = f"%{_escape_like(term)}%"
        params.extend([pattern, pattern])
    sql = f"""
        SELECT d.*, 0.0 AS rank, substr(d.content, 1, 64) AS snippet
        FROM documents d
        WHERE {clauses}
        ORDER BY d.created_at ASC, d.rowid ASC
        LIMIT ?
    """
    return conn.execute(sql, (*params, limit)).fetchall()


def search_fts(conn: sqlite3.Connection, query: str, limit: int = 5) -> list[sqlite3.Row]:
    match = build_match_query(query)
    if match is None:
        terms = _TOKEN.findall(query)
        return _search_short_terms(conn, terms, limit) if terms else []
    sql = """
        SELECT
            d.*,
            documents_fts.rank AS rank,
            snippet(documents_fts, 2, '[', ']', ' ... ', 16) AS snippet
        FROM documents_fts
        JOIN documents d ON d.id = documents_fts.document_id
        WHERE documents_fts MATCH ?
        ORDER BY rank
        LIMIT ?
    """
    return conn.execute(sql, (match, limit)).fetchall()
