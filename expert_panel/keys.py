"""Stored provider credentials and the key-provider interface used by the synthesizer."""

import logging
import sqlite3
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from expert_panel.errors import NotFoundError, PersistenceError
from expert_panel.models import Credential

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS: tuple[str, ...] = ("openai", "claude", "gemini")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS api_keys (
    id TEXT PRIMARY KEY,
    provider TEXT NOT NULL,
    key TEXT NOT NULL,
    name TEXT NOT NULL DEFAULT '',
    is_active INTEGER NOT NULL DEFAULT 1,
    last_used TEXT,
    created_at TEXT NOT NULL
);
"""


class KeyProvider(Protocol):
    def get_active_credential(self) -> Credential: ...

    def touch_last_used(self, credential_id: str) -> None: ...


def _row_to_credential(row: sqlite3.Row) -> Credential:
    return Credential(
        id=row["id"],
        provider=row["provider"],
        secret=row["key"],
        name=row["name"],
        is_active=bool(row["is_active"]),
        last_used=datetime.fromisoformat(row["last_used"]) if row["last_used"] else None,
        created_at=datetime.fromisoformat(row["created_at"]),
    )


class SQLiteKeyStore:
    """API keys kept in the ``api_keys`` table of the panel database."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._get_connection() as conn:
            conn.executescript(_SCHEMA)

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        conn = None
        try:
            conn = sqlite3.connect(self.db_path, isolation_level=None)
            conn.row_factory = sqlite3.Row
            yield conn
        except sqlite3.Error as e:
            logger.error("Key store error: %s", e)
            raise PersistenceError(f"Key store error: {e}") from e
        finally:
            if conn is not None:
                conn.close()

    def add(self, provider: str, secret: str, name: str = "", active: bool = True) -> Credential:
        if provider not in SUPPORTED_PROVIDERS:
            raise ValueError(f"Unsupported provider: {provider}")
        if not secret.strip():
            raise ValueError("API key must not be empty")
        credential_id = str(uuid.uuid4())
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO api_keys (id, provider, key, name, is_active, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    credential_id,
                    provider,
                    secret.strip(),
                    name,
                    int(active),
                    datetime.now(timezone.utc).isoformat(),
                ),
            )
        logger.info("Stored %s credential %s", provider, credential_id)
        return self.get(credential_id)

    def get(self, credential_id: str) -> Credential:
        with self._get_connection() as conn:
            row = conn.execute("SELECT * FROM api_keys WHERE id = ?", (credential_id,)).fetchone()
        if row is None:
            raise NotFoundError(f"API key not found: {credential_id}")
        return _row_to_credential(row)

    def list_credentials(self) -> list[Credential]:
        with self._get_connection() as conn:
            rows = conn.execute("SELECT * FROM api_keys ORDER BY created_at, rowid").fetchall()
        return [_row_to_credential(r) for r in rows]

    def set_active(self, credential_id: str, active: bool) -> None:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "UPDATE api_keys SET is_active = ? WHERE id = ?",
                (int(active), credential_id),
            )
        if cursor.rowcount == 0:
            raise NotFoundError(f"API key not found: {credential_id}")

    def delete(self, credential_id: str) -> None:
        with self._get_connection() as conn:
            cursor = conn.execute("DELETE FROM api_keys WHERE id = ?", (credential_id,))
        if cursor.rowcount == 0:
            raise NotFoundError(f"API key not found: {credential_id}")

    def get_active_credential(self) -> Credential:
        """Return the first active credential, oldest first."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM api_keys WHERE is_active = 1 ORDER BY created_at, rowid LIMIT 1"
            ).fetchone()
        if row is None:
            raise NotFoundError("No active API key found")
        return _row_to_credential(row)

    def has_active_credential(self) -> bool:
        try:
            self.get_active_credential()
        except NotFoundError:
            return False
        return True

    def touch_last_used(self, credential_id: str) -> None:
        with self._get_connection() as conn:
            conn.execute(
                "UPDATE api_keys SET last_used = ? WHERE id = ?",
                (datetime.now(timezone.utc).isoformat(), credential_id),
            )
