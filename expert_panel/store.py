"""SQLite-backed discussion store.

The core never caches discussion or message state; every operation re-reads
from here. ``append_message`` and ``append_turn`` assign the per-round
response order inside the same write transaction as the insert so that two
concurrent writers cannot hand out the same number.
"""

import json
import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from expert_panel.errors import NotFoundError, PersistenceError
from expert_panel.models import (
    USER_AUTHOR,
    Contribution,
    ContributionMetadata,
    Discussion,
    Message,
    MessageRef,
)

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS discussions (
    id TEXT PRIMARY KEY,
    topic TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    status TEXT NOT NULL DEFAULT 'active',
    participant_ids TEXT NOT NULL,
    mode TEXT NOT NULL DEFAULT 'sequential',
    current_round INTEGER NOT NULL DEFAULT 1,
    metadata TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    discussion_id TEXT NOT NULL REFERENCES discussions(id) ON DELETE CASCADE,
    author TEXT NOT NULL,
    content TEXT NOT NULL,
    round INTEGER NOT NULL,
    response_order INTEGER NOT NULL,
    refs TEXT NOT NULL DEFAULT '[]',
    metadata TEXT,
    created_at TEXT NOT NULL,
    UNIQUE (discussion_id, round, response_order)
);
CREATE INDEX IF NOT EXISTS idx_messages_discussion
    ON messages (discussion_id, created_at);
"""


class DiscussionStore(Protocol):
    """Narrow repository interface consumed by the core."""

    def get_discussion(self, discussion_id: str) -> Discussion: ...

    def get_recent_messages(self, discussion_id: str, limit: int) -> list[Message]: ...

    def get_messages(self, discussion_id: str) -> list[Message]: ...

    def get_round_messages(self, discussion_id: str, round_number: int) -> list[Message]: ...

    def get_next_response_order(self, discussion_id: str, round_number: int) -> int: ...

    def append_message(
        self,
        discussion_id: str,
        author: str,
        content: str,
        round_number: int,
        refs: list[MessageRef] | None = None,
        metadata: ContributionMetadata | None = None,
    ) -> Message: ...

    def append_turn(
        self,
        discussion_id: str,
        round_number: int,
        user_text: str,
        contribution: Contribution,
    ) -> Message: ...

    def update_round(self, discussion_id: str, round_number: int) -> None: ...

    def update_status(self, discussion_id: str, status: str) -> None: ...


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _row_to_discussion(row: sqlite3.Row) -> Discussion:
    return Discussion(
        id=row["id"],
        topic=row["topic"],
        description=row["description"],
        participant_ids=list(json.loads(row["participant_ids"])),
        mode=row["mode"] or "sequential",
        status=row["status"],
        current_round=row["current_round"] or 1,
        metadata=json.loads(row["metadata"] or "{}"),
        created_at=_parse_ts(row["created_at"]),
    )


def _row_to_message(row: sqlite3.Row) -> Message:
    refs = [MessageRef(**r) for r in json.loads(row["refs"] or "[]")]
    # Rows written without analysis metadata (e.g. user messages) get the defaults
    meta_raw = json.loads(row["metadata"]) if row["metadata"] else {}
    return Message(
        id=row["id"],
        discussion_id=row["discussion_id"],
        author=row["author"],
        content=row["content"],
        round=row["round"],
        response_order=row["response_order"],
        refs=refs,
        metadata=ContributionMetadata(**meta_raw),
        created_at=_parse_ts(row["created_at"]),
    )


class SQLiteDiscussionStore:
    """Discussion and message persistence on a single SQLite file."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self) -> None:
        with self._get_connection() as conn:
            conn.executescript(_SCHEMA)
        logger.info("Discussion store initialized at %s", self.db_path)

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection; commit on success, roll back and wrap sqlite errors."""
        conn = None
        try:
            conn = sqlite3.connect(self.db_path, isolation_level=None)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
        except sqlite3.Error as e:
            if conn is not None and conn.in_transaction:
                conn.rollback()
            logger.error("Database error: %s", e)
            raise PersistenceError(f"Database error: {e}") from e
        finally:
            if conn is not None:
                conn.close()

    # --- discussions ---

    def create_discussion(
        self,
        topic: str,
        description: str,
        participant_ids: list[str],
        mode: str = "sequential",
        metadata: dict[str, Any] | None = None,
    ) -> Discussion:
        discussion_id = str(uuid.uuid4())
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO discussions (
                    id, topic, description, status, participant_ids, mode,
                    current_round, metadata, created_at
                ) VALUES (?, ?, ?, 'active', ?, ?, 1, ?, ?)
                """,
                (
                    discussion_id,
                    topic,
                    description,
                    json.dumps(participant_ids),
                    mode,
                    json.dumps(metadata or {}),
                    _now(),
                ),
            )
        logger.info("Created discussion %s (%s, %d experts)", discussion_id, mode, len(participant_ids))
        return self.get_discussion(discussion_id)

    def get_discussion(self, discussion_id: str) -> Discussion:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM discussions WHERE id = ?", (discussion_id,)
            ).fetchone()
        if row is None:
            raise NotFoundError(f"Discussion not found: {discussion_id}")
        return _row_to_discussion(row)

    def list_discussions(self) -> list[Discussion]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM discussions ORDER BY created_at DESC"
            ).fetchall()
        return [_row_to_discussion(r) for r in rows]

    def update_round(self, discussion_id: str, round_number: int) -> None:
        self._update_discussion(discussion_id, "current_round", round_number)

    def update_status(self, discussion_id: str, status: str) -> None:
        self._update_discussion(discussion_id, "status", status)

    def _update_discussion(self, discussion_id: str, column: str, value: Any) -> None:
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE discussions SET {column} = ? WHERE id = ?",
                (value, discussion_id),
            )
        if cursor.rowcount == 0:
            raise NotFoundError(f"Discussion not found: {discussion_id}")

    def delete_discussion(self, discussion_id: str) -> None:
        with self._get_connection() as conn:
            conn.execute("BEGIN")
            conn.execute("DELETE FROM messages WHERE discussion_id = ?", (discussion_id,))
            cursor = conn.execute("DELETE FROM discussions WHERE id = ?", (discussion_id,))
            if cursor.rowcount == 0:
                conn.rollback()
                raise NotFoundError(f"Discussion not found: {discussion_id}")
            conn.commit()
        logger.info("Deleted discussion %s", discussion_id)

    # --- messages ---

    def get_messages(self, discussion_id: str) -> list[Message]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM messages WHERE discussion_id = ? ORDER BY rowid",
                (discussion_id,),
            ).fetchall()
        return [_row_to_message(r) for r in rows]

    def get_recent_messages(self, discussion_id: str, limit: int) -> list[Message]:
        """Return up to ``limit`` messages, newest first."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM messages WHERE discussion_id = ? ORDER BY rowid DESC LIMIT ?",
                (discussion_id, limit),
            ).fetchall()
        return [_row_to_message(r) for r in rows]

    def get_round_messages(self, discussion_id: str, round_number: int) -> list[Message]:
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM messages WHERE discussion_id = ? AND round = ?
                ORDER BY response_order
                """,
                (discussion_id, round_number),
            ).fetchall()
        return [_row_to_message(r) for r in rows]

    def get_next_response_order(self, discussion_id: str, round_number: int) -> int:
        with self._get_connection() as conn:
            return self._next_order(conn, discussion_id, round_number)

    @staticmethod
    def _next_order(conn: sqlite3.Connection, discussion_id: str, round_number: int) -> int:
        row = conn.execute(
            "SELECT MAX(response_order) FROM messages WHERE discussion_id = ? AND round = ?",
            (discussion_id, round_number),
        ).fetchone()
        return (row[0] or 0) + 1

    def _insert_message(
        self,
        conn: sqlite3.Connection,
        discussion_id: str,
        author: str,
        content: str,
        round_number: int,
        refs: list[MessageRef] | None = None,
        metadata: ContributionMetadata | None = None,
    ) -> str:
        """Insert one row with the next response order; caller owns the transaction."""
        message_id = str(uuid.uuid4())
        order = self._next_order(conn, discussion_id, round_number)
        conn.execute(
            """
            INSERT INTO messages (
                id, discussion_id, author, content, round, response_order,
                refs, metadata, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message_id,
                discussion_id,
                author,
                content,
                round_number,
                order,
                json.dumps([asdict(r) for r in refs or []]),
                json.dumps(asdict(metadata)) if metadata else None,
                _now(),
            ),
        )
        logger.debug(
            "Inserted message %s into %s (round %d, order %d, author %s)",
            message_id, discussion_id, round_number, order, author,
        )
        return message_id

    @staticmethod
    def _lock_discussion(conn: sqlite3.Connection, discussion_id: str) -> None:
        conn.execute("BEGIN IMMEDIATE")
        exists = conn.execute(
            "SELECT 1 FROM discussions WHERE id = ?", (discussion_id,)
        ).fetchone()
        if exists is None:
            conn.rollback()
            raise NotFoundError(f"Discussion not found: {discussion_id}")

    def append_message(
        self,
        discussion_id: str,
        author: str,
        content: str,
        round_number: int,
        refs: list[MessageRef] | None = None,
        metadata: ContributionMetadata | None = None,
    ) -> Message:
        """Insert a message with the next response order for its round."""
        with self._get_connection() as conn:
            self._lock_discussion(conn, discussion_id)
            message_id = self._insert_message(
                conn, discussion_id, author, content, round_number, refs, metadata
            )
            conn.commit()
            row = conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone()
        return _row_to_message(row)

    def append_turn(
        self,
        discussion_id: str,
        round_number: int,
        user_text: str,
        contribution: Contribution,
    ) -> Message:
        """Store the user's message (if any) and the expert's reply atomically.

        Both rows are written in one transaction: either both are stored with
        consecutive response orders or neither is. Returns the expert message.
        """
        with self._get_connection() as conn:
            self._lock_discussion(conn, discussion_id)
            if user_text:
                self._insert_message(conn, discussion_id, USER_AUTHOR, user_text, round_number)
            message_id = self._insert_message(
                conn,
                discussion_id,
                contribution.expert_id,
                contribution.content,
                round_number,
                contribution.refs,
                contribution.metadata,
            )
            conn.commit()
            row = conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone()
        return _row_to_message(row)
