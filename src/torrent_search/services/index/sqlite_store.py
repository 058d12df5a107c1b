from __future__ import annotations

from pathlib import Path
import re
import sqlite3
import threading

from torrent_search.services.index.errors import (
    StoreError,
    StoreQueryError,
    StoreReadError,
    StoreWriteError,
)
from torrent_search.services.index.types import Record, SearchResult

DEFAULT_SEARCH_LIMIT = 10

_TOKEN_PATTERN = re.compile(r"\w+", re.UNICODE)


def _ensure_schema(connection: sqlite3.Connection) -> None:
    connection.executescript(
        """
        CREATE TABLE IF NOT EXISTS torrents (
            id INTEGER PRIMARY KEY,
            content_id TEXT NOT NULL UNIQUE,
            title TEXT NOT NULL,
            size INTEGER NOT NULL,
            created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
        );

        CREATE VIRTUAL TABLE IF NOT EXISTS torrents_fts USING fts5(
            title,
            content='torrents',
            content_rowid='id',
            tokenize='unicode61 remove_diacritics 2'
        );

        CREATE TRIGGER IF NOT EXISTS torrents_ai AFTER INSERT ON torrents BEGIN
            INSERT INTO torrents_fts(rowid, title) VALUES (new.id, new.title);
        END;

        CREATE TRIGGER IF NOT EXISTS torrents_au AFTER UPDATE ON torrents BEGIN
            INSERT INTO torrents_fts(torrents_fts, rowid, title)
            VALUES ('delete', old.id, old.title);
            INSERT INTO torrents_fts(rowid, title) VALUES (new.id, new.title);
        END;
        """
    )


def build_match_expression(query_text: str) -> str | None:
    """Turn free text into an FTS5 expression that matches any of its words.

    Every token is quoted, so operators and punctuation typed by a user are
    searched as plain words instead of being parsed as query syntax.
    Returns ``None`` when the text has no searchable words.
    """
    tokens: list[str] = []
    for token in _TOKEN_PATTERN.findall(query_text):
        if token not in tokens:
            tokens.append(token)
    if not tokens:
        return None
    return " OR ".join(f'"{token}"' for token in tokens)


class TorrentStore:
    """Full-text index of torrent records keyed by content id.

    Writes go through one connection guarded by a lock. Searches use a
    connection per thread so readers never wait on each other.
    """

    def __init__(self, db_path: Path, connection: sqlite3.Connection) -> None:
        self._db_path = db_path
        self._writer = connection
        self._write_lock = threading.Lock()
        self._local = threading.local()
        self._readers: list[sqlite3.Connection] = []
        self._readers_lock = threading.Lock()

    @classmethod
    def open(cls, db_path: Path) -> TorrentStore:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            connection = sqlite3.connect(db_path, check_same_thread=False)
            connection.execute("PRAGMA journal_mode = WAL")
            _ensure_schema(connection)
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to open torrent index {db_path}: {exc}") from exc
        return cls(db_path, connection)

    @property
    def path(self) -> Path:
        return self._db_path

    def put(self, record: Record) -> None:
        try:
            with self._write_lock, self._writer:
                self._writer.execute(
                    """
                    INSERT INTO torrents (content_id, title, size) VALUES (?, ?, ?)
                    ON CONFLICT(content_id) DO UPDATE
                    SET title = excluded.title,
                        size = excluded.size
                    """,
                    (record.content_id, record.title, record.size),
                )
        except sqlite3.Error as exc:
            raise StoreWriteError(f"Failed to index {record.content_id}: {exc}") from exc

    def exists(self, content_id: str) -> bool:
        try:
            with self._write_lock:
                row = self._writer.execute(
                    "SELECT 1 FROM torrents WHERE content_id = ? LIMIT 1",
                    (content_id,),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreReadError(f"Failed to look up {content_id}: {exc}") from exc
        return row is not None

    def search(self, query_text: str, limit: int = DEFAULT_SEARCH_LIMIT) -> list[SearchResult]:
        expression = build_match_expression(query_text)
        if expression is None:
            return []

        try:
            rows = self._reader().execute(
                """
                SELECT t.title, t.content_id, t.size
                FROM (
                    SELECT rowid, bm25(torrents_fts) AS score
                    FROM torrents_fts
                    WHERE torrents_fts MATCH ?
                ) AS hits
                JOIN torrents AS t ON t.id = hits.rowid
                ORDER BY hits.score ASC, t.title ASC
                LIMIT ?
                """,
                (expression, max(1, limit)),
            ).fetchall()
        except sqlite3.Error as exc:
            raise StoreQueryError(f"Search failed for {query_text!r}: {exc}") from exc

        return [
            SearchResult(title=title, content_id=content_id, size=int(size))
            for title, content_id, size in rows
        ]

    def count(self) -> int:
        try:
            row = self._reader().execute("SELECT COUNT(*) FROM torrents").fetchone()
        except sqlite3.Error as exc:
            raise StoreReadError(f"Failed to count torrents: {exc}") from exc
        return int(row[0])

    def close(self) -> None:
        with self._readers_lock:
            readers, self._readers = self._readers, []
        for connection in readers:
            connection.close()
        with self._write_lock:
            self._writer.close()

    def _reader(self) -> sqlite3.Connection:
        connection = getattr(self._local, "connection", None)
        if connection is None:
            connection = sqlite3.connect(self._db_path, check_same_thread=False)
            self._local.connection = connection
            with self._readers_lock:
                self._readers.append(connection)
        return connection
