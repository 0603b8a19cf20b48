"""SQLite-backed store for archives, messages, wisdom and their vectors.

Messages are keyed by their stable ``message_id`` across the whole database,
so re-ingesting an mbox updates rows in place. Vectors are stored as JSON
arrays next to the text they were computed from.
"""

from __future__ import annotations

import json
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

import structlog

from archive_wisdom.models import Archive, ArchiveStats, Message, ParsedMessage, Wisdom

logger = structlog.get_logger()


_SCHEMA_VERSION = 1


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _fts_query(text: str) -> str:
    # Quote every term so user input can't trip FTS5 query syntax.
    terms = [t.replace('"', "") for t in text.split()]
    return " ".join(f'"{t}"' for t in terms if t)


class ArchiveRepository:
    """Repository for archives, messages and embedding vectors."""

    def __init__(self, db_path: Path) -> None:
        """Create a repository.

        Args:
            db_path: Path to the SQLite database file.
        """

        self._db_path = Path(db_path)

    def initialize(self) -> None:
        """Create or upgrade the schema."""

        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL;")

            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS _schema_meta (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )

            current_version = self._get_schema_version(conn)
            if current_version is None:
                self._create_schema_v1(conn)
                self._set_schema_version(conn, _SCHEMA_VERSION)
                conn.commit()
                logger.info("archive_schema_created", version=_SCHEMA_VERSION)
                return

            if current_version != _SCHEMA_VERSION:
                raise RuntimeError(
                    f"Unsupported schema version {current_version}; expected {_SCHEMA_VERSION}"
                )

    # Archives

    def create_archive(self, name: str, url: str, description: str | None = None) -> Archive:
        archive = Archive(id=uuid.uuid4().hex, name=name, url=url, description=description)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO archives (id, name, url, description, last_synced_at_iso, created_at_iso)
                VALUES (?, ?, ?, ?, NULL, ?);
                """,
                (archive.id, archive.name, archive.url, archive.description, _to_iso(archive.created_at)),
            )
            conn.commit()
        logger.info("archive_created", archive_id=archive.id, name=name, url=url)
        return archive

    def get_archive(self, archive_id: str) -> Archive | None:
        return self._fetch_archive("SELECT * FROM archives WHERE id = ?", (archive_id,))

    def find_archive_by_url(self, url: str) -> Archive | None:
        return self._fetch_archive("SELECT * FROM archives WHERE url = ?", (url,))

    def find_archive_by_name(self, name: str) -> Archive | None:
        return self._fetch_archive("SELECT * FROM archives WHERE name = ?", (name,))

    def list_archives(self) -> list[Archive]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM archives ORDER BY created_at_iso ASC").fetchall()
        return [self._row_to_archive(row) for row in rows]

    def mark_archive_synced(self, archive_id: str, at: datetime | None = None) -> None:
        synced_at = _to_iso(at) if at else _now_iso()
        with self._connect() as conn:
            conn.execute(
                "UPDATE archives SET last_synced_at_iso = ? WHERE id = ?",
                (synced_at, archive_id),
            )
            conn.commit()

    def delete_archive(self, archive_id: str) -> bool:
        """Delete an archive with its messages and vectors.

        Returns:
            False when the archive did not exist.
        """

        with self._connect() as conn:
            conn.execute("DELETE FROM message_vectors WHERE archive_id = ?", (archive_id,))
            deleted_messages = conn.execute(
                "DELETE FROM messages WHERE archive_id = ?", (archive_id,)
            ).rowcount
            deleted = conn.execute("DELETE FROM archives WHERE id = ?", (archive_id,)).rowcount
            conn.commit()

        if deleted:
            logger.info("archive_deleted", archive_id=archive_id, messages=deleted_messages)
        return bool(deleted)

    # Messages

    def upsert_message(self, message: ParsedMessage, archive_id: str) -> Message:
        """Insert or update a message keyed by its stable identity."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO messages (
                    message_id,
                    archive_id,
                    subject,
                    author,
                    content,
                    date_iso,
                    thread_id,
                    updated_at_iso
                )
                VALUES (
                    :message_id,
                    :archive_id,
                    :subject,
                    :author,
                    :content,
                    :date_iso,
                    :thread_id,
                    :updated_at_iso
                )
                ON CONFLICT(message_id) DO UPDATE SET
                    archive_id=excluded.archive_id,
                    subject=excluded.subject,
                    author=excluded.author,
                    content=excluded.content,
                    date_iso=excluded.date_iso,
                    thread_id=excluded.thread_id,
                    updated_at_iso=excluded.updated_at_iso
                """,
                {
                    "message_id": message.message_id,
                    "archive_id": archive_id,
                    "subject": message.subject,
                    "author": message.author,
                    "content": message.content,
                    "date_iso": _to_iso(message.date),
                    "thread_id": message.thread_id,
                    "updated_at_iso": _now_iso(),
                },
            )
            row = conn.execute(
                "SELECT * FROM messages WHERE message_id = ?", (message.message_id,)
            ).fetchone()
            conn.commit()

        return self._row_to_message(row)

    def get_message(self, row_id: int) -> Message | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM messages WHERE rowid = ?", (row_id,)).fetchone()
        return self._row_to_message(row) if row else None

    def get_message_by_message_id(self, message_id: str) -> Message | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM messages WHERE message_id = ?", (message_id,)
            ).fetchone()
        return self._row_to_message(row) if row else None

    def get_messages(self, row_ids: list[int]) -> list[Message]:
        if not row_ids:
            return []
        placeholders = ",".join("?" for _ in row_ids)
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT * FROM messages WHERE rowid IN ({placeholders})",  # noqa: S608
                list(row_ids),
            ).fetchall()
        return [self._row_to_message(row) for row in rows]

    def list_messages(self, archive_id: str | None = None, limit: int = 50) -> list[Message]:
        """Most recent messages first, optionally for one archive."""

        with self._connect() as conn:
            if archive_id is None:
                rows = conn.execute(
                    "SELECT * FROM messages ORDER BY date_iso DESC LIMIT ?", (limit,)
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM messages WHERE archive_id = ? ORDER BY date_iso DESC LIMIT ?",
                    (archive_id, limit),
                ).fetchall()
        return [self._row_to_message(row) for row in rows]

    def count_messages(self, archive_id: str | None = None) -> int:
        with self._connect() as conn:
            if archive_id is None:
                (count,) = conn.execute("SELECT COUNT(*) FROM messages").fetchone()
            else:
                (count,) = conn.execute(
                    "SELECT COUNT(*) FROM messages WHERE archive_id = ?", (archive_id,)
                ).fetchone()
        return int(count or 0)

    def keyword_search(self, query: str, limit: int = 10) -> list[Message]:
        """Full-text search over subject, author and body."""

        match = _fts_query(query)
        if not match:
            return []
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT m.*
                FROM messages_fts
                JOIN messages m ON m.rowid = messages_fts.rowid
                WHERE messages_fts MATCH ?
                ORDER BY bm25(messages_fts)
                LIMIT ?;
                """,
                (match, limit),
            ).fetchall()
        return [self._row_to_message(row) for row in rows]

    def messages_without_vectors(self, limit: int) -> list[Message]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT m.*
                FROM messages m
                LEFT JOIN message_vectors v ON v.message_id = m.message_id
                WHERE v.message_id IS NULL
                ORDER BY m.rowid ASC
                LIMIT ?;
                """,
                (limit,),
            ).fetchall()
        return [self._row_to_message(row) for row in rows]

    def count_messages_without_vectors(self) -> int:
        with self._connect() as conn:
            (count,) = conn.execute(
                """
                SELECT COUNT(*)
                FROM messages m
                LEFT JOIN message_vectors v ON v.message_id = m.message_id
                WHERE v.message_id IS NULL;
                """
            ).fetchone()
        return int(count or 0)

    # Message vectors

    def upsert_message_vector(
        self,
        message_id: str,
        archive_id: str,
        embedding: list[float],
        content: str,
    ) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO message_vectors (message_id, archive_id, embedding_json, content, updated_at_iso)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(message_id) DO UPDATE SET
                    archive_id=excluded.archive_id,
                    embedding_json=excluded.embedding_json,
                    content=excluded.content,
                    updated_at_iso=excluded.updated_at_iso
                """,
                (message_id, archive_id, json.dumps(embedding), content, _now_iso()),
            )
            conn.commit()

    def get_message_vector(self, message_id: str) -> list[float] | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT embedding_json FROM message_vectors WHERE message_id = ?", (message_id,)
            ).fetchone()
        return json.loads(row["embedding_json"]) if row else None

    def load_message_vectors(self, limit: int) -> list[tuple[Message, list[float], str]]:
        """Load up to ``limit`` vectors with their message, oldest vectors first."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT m.*, v.embedding_json AS v_embedding_json, v.content AS v_content
                FROM message_vectors v
                JOIN messages m ON m.message_id = v.message_id
                ORDER BY v.rowid ASC
                LIMIT ?;
                """,
                (limit,),
            ).fetchall()

        loaded: list[tuple[Message, list[float], str]] = []
        for row in rows:
            try:
                embedding = json.loads(row["v_embedding_json"])
            except (TypeError, ValueError) as exc:
                logger.warning("message_vector_corrupt", message_id=row["message_id"], error=str(exc))
                continue
            loaded.append((self._row_to_message(row), embedding, row["v_content"]))
        return loaded

    def count_message_vectors(self, archive_id: str | None = None) -> int:
        with self._connect() as conn:
            if archive_id is None:
                (count,) = conn.execute("SELECT COUNT(*) FROM message_vectors").fetchone()
            else:
                (count,) = conn.execute(
                    "SELECT COUNT(*) FROM message_vectors WHERE archive_id = ?", (archive_id,)
                ).fetchone()
        return int(count or 0)

    def delete_message_vectors_for_archive(self, archive_id: str) -> int:
        with self._connect() as conn:
            deleted = conn.execute(
                "DELETE FROM message_vectors WHERE archive_id = ?", (archive_id,)
            ).rowcount
            conn.commit()
        return int(deleted)

    # Wisdom

    def create_wisdom(self, content: str, prompt: str, message_ids: list[int]) -> Wisdom:
        wisdom = Wisdom(id=uuid.uuid4().hex, content=content, prompt=prompt, message_ids=message_ids)
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO wisdom (id, content, prompt, message_ids_json, votes, created_at_iso)
                VALUES (?, ?, ?, ?, 0, ?);
                """,
                (
                    wisdom.id,
                    wisdom.content,
                    wisdom.prompt,
                    json.dumps(wisdom.message_ids),
                    _to_iso(wisdom.created_at),
                ),
            )
            conn.commit()
        return wisdom

    def get_wisdom(self, wisdom_id: str) -> Wisdom | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM wisdom WHERE id = ?", (wisdom_id,)).fetchone()
        return self._row_to_wisdom(row) if row else None

    def list_wisdom(self, limit: int = 50) -> list[Wisdom]:
        """List wisdom entries, newest first."""
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM wisdom ORDER BY created_at_iso DESC, rowid DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._row_to_wisdom(row) for row in rows]

    def upsert_wisdom_vector(self, wisdom_id: str, embedding: list[float], content: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO wisdom_vectors (wisdom_id, embedding_json, content, updated_at_iso)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(wisdom_id) DO UPDATE SET
                    embedding_json=excluded.embedding_json,
                    content=excluded.content,
                    updated_at_iso=excluded.updated_at_iso
                """,
                (wisdom_id, json.dumps(embedding), content, _now_iso()),
            )
            conn.commit()

    def load_wisdom_vectors(self) -> list[tuple[Wisdom, list[float], str]]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT w.*, v.embedding_json AS v_embedding_json, v.content AS v_content
                FROM wisdom_vectors v
                JOIN wisdom w ON w.id = v.wisdom_id
                ORDER BY v.rowid ASC;
                """
            ).fetchall()
        return [
            (self._row_to_wisdom(row), json.loads(row["v_embedding_json"]), row["v_content"])
            for row in rows
        ]

    def count_wisdom_vectors(self) -> int:
        with self._connect() as conn:
            (count,) = conn.execute("SELECT COUNT(*) FROM wisdom_vectors").fetchone()
        return int(count or 0)

    # Stats

    def archive_stats(self, archive_id: str) -> ArchiveStats:
        with self._connect() as conn:
            count, min_iso, max_iso = conn.execute(
                """
                SELECT COUNT(*), MIN(date_iso), MAX(date_iso)
                FROM messages
                WHERE archive_id = ?;
                """,
                (archive_id,),
            ).fetchone()

        return ArchiveStats(
            archive_id=archive_id,
            message_count=int(count or 0),
            vector_count=self.count_message_vectors(archive_id),
            min_date=_from_iso(min_iso),
            max_date=_from_iso(max_iso),
        )

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._db_path)
        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys=ON;")
            yield conn
        finally:
            conn.close()

    def _fetch_archive(self, query: str, params: tuple) -> Archive | None:
        with self._connect() as conn:
            row = conn.execute(query, params).fetchone()
        return self._row_to_archive(row) if row else None

    def _get_schema_version(self, conn: sqlite3.Connection) -> int | None:
        row = conn.execute(
            "SELECT value FROM _schema_meta WHERE key = 'schema_version'"
        ).fetchone()
        if row is None:
            return None
        return int(row[0])

    def _set_schema_version(self, conn: sqlite3.Connection, version: int) -> None:
        conn.execute(
            "INSERT OR REPLACE INTO _schema_meta(key, value) VALUES('schema_version', ?) ",
            (str(version),),
        )

    def _create_schema_v1(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS archives (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                url TEXT NOT NULL UNIQUE,
                description TEXT,
                last_synced_at_iso TEXT,
                created_at_iso TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS messages (
                rowid INTEGER PRIMARY KEY,
                message_id TEXT NOT NULL UNIQUE,
                archive_id TEXT NOT NULL REFERENCES archives(id) ON DELETE CASCADE,
                subject TEXT NOT NULL,
                author TEXT NOT NULL,
                content TEXT NOT NULL,
                date_iso TEXT NOT NULL,
                thread_id TEXT,
                updated_at_iso TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_messages_archive_id
                ON messages(archive_id);

            CREATE INDEX IF NOT EXISTS idx_messages_thread_id
                ON messages(thread_id);

            CREATE INDEX IF NOT EXISTS idx_messages_date
                ON messages(date_iso);

            CREATE TABLE IF NOT EXISTS message_vectors (
                rowid INTEGER PRIMARY KEY,
                message_id TEXT NOT NULL UNIQUE
                    REFERENCES messages(message_id) ON DELETE CASCADE,
                archive_id TEXT NOT NULL,
                embedding_json TEXT NOT NULL,
                content TEXT NOT NULL,
                updated_at_iso TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_message_vectors_archive_id
                ON message_vectors(archive_id);

            CREATE TABLE IF NOT EXISTS wisdom (
                id TEXT PRIMARY KEY,
                content TEXT NOT NULL,
                prompt TEXT NOT NULL,
                message_ids_json TEXT NOT NULL,
                votes INTEGER NOT NULL DEFAULT 0,
                created_at_iso TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS wisdom_vectors (
                rowid INTEGER PRIMARY KEY,
                wisdom_id TEXT NOT NULL UNIQUE REFERENCES wisdom(id) ON DELETE CASCADE,
                embedding_json TEXT NOT NULL,
                content TEXT NOT NULL,
                updated_at_iso TEXT NOT NULL
            );

            CREATE VIRTUAL TABLE IF NOT EXISTS messages_fts USING fts5(
                subject,
                author,
                content,
                content='messages',
                content_rowid='rowid'
            );

            CREATE TRIGGER IF NOT EXISTS messages_ai
            AFTER INSERT ON messages
            BEGIN
                INSERT INTO messages_fts(rowid, subject, author, content)
                VALUES (new.rowid, new.subject, new.author, new.content);
            END;

            CREATE TRIGGER IF NOT EXISTS messages_ad
            AFTER DELETE ON messages
            BEGIN
                INSERT INTO messages_fts(messages_fts, rowid, subject, author, content)
                VALUES ('delete', old.rowid, old.subject, old.author, old.content);
            END;

            CREATE TRIGGER IF NOT EXISTS messages_au
            AFTER UPDATE ON messages
            BEGIN
                INSERT INTO messages_fts(messages_fts, rowid, subject, author, content)
                VALUES ('delete', old.rowid, old.subject, old.author, old.content);

                INSERT INTO messages_fts(rowid, subject, author, content)
                VALUES (new.rowid, new.subject, new.author, new.content);
            END;
            """
        )

    def _row_to_archive(self, row: sqlite3.Row) -> Archive:
        return Archive(
            id=row["id"],
            name=row["name"],
            url=row["url"],
            description=row["description"],
            last_synced_at=_from_iso(row["last_synced_at_iso"]),
            created_at=_from_iso(row["created_at_iso"]),
        )

    def _row_to_message(self, row: sqlite3.Row) -> Message:
        return Message(
            id=row["rowid"],
            message_id=row["message_id"],
            archive_id=row["archive_id"],
            subject=row["subject"],
            author=row["author"],
            content=row["content"],
            date=_from_iso(row["date_iso"]),
            thread_id=row["thread_id"],
        )

    def _row_to_wisdom(self, row: sqlite3.Row) -> Wisdom:
        return Wisdom(
            id=row["id"],
            content=row["content"],
            prompt=row["prompt"],
            message_ids=json.loads(row["message_ids_json"]),
            votes=int(row["votes"] or 0),
            created_at=_from_iso(row["created_at_iso"]),
        )
