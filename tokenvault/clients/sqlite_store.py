"""SQLite-backed substitute for DynamoDB-style token item storage."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path
from typing import Any, Dict, Optional

from tokenvault.clients.base import ConditionalWriteError


class SQLiteStore:
    """Key-value store using a table keyed by (pk, sk) with a revision column."""

    def __init__(self, db_path: str) -> None:
        self._db_path = Path(db_path)
        if self._db_path.parent and not self._db_path.parent.exists():
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, check_same_thread=False, timeout=10.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_schema(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS token_items (
                    pk TEXT NOT NULL,
                    sk TEXT NOT NULL,
                    revision INTEGER NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (pk, sk)
                )
                """
            )

    def put_item(
        self, item: Dict[str, Any], *, expected_revision: Optional[int] = None
    ) -> None:
        """Upsert ``item``.

        With ``expected_revision`` the write only lands if the stored revision
        matches; ``0`` means the item must not exist yet.
        """
        pk = item.get("pk")
        sk = item.get("sk")
        if not pk or not sk:
            raise ValueError("Item must include 'pk' and 'sk' keys")

        data_json = json.dumps(item)
        revision = int(item.get("revision", 0))
        conn = self._connect()
        conn.isolation_level = None
        try:
            # BEGIN IMMEDIATE takes the write lock before the revision check.
            conn.execute("BEGIN IMMEDIATE")
            if expected_revision is not None:
                row = conn.execute(
                    "SELECT revision FROM token_items WHERE pk = ? AND sk = ?",
                    (pk, sk),
                ).fetchone()
                current = row["revision"] if row else 0
                if current != expected_revision:
                    conn.execute("ROLLBACK")
                    raise ConditionalWriteError(
                        f"Expected revision {expected_revision}, found {current}."
                    )
            conn.execute(
                """
                INSERT INTO token_items (pk, sk, revision, data)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(pk, sk) DO UPDATE SET
                    revision = excluded.revision,
                    data = excluded.data
                """,
                (pk, sk, revision, data_json),
            )
            conn.execute("COMMIT")
        finally:
            conn.close()

    def get_item(
        self, *, partition_key: str, sort_key: str
    ) -> Optional[Dict[str, Any]]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT data FROM token_items WHERE pk = ? AND sk = ?",
                (partition_key, sort_key),
            ).fetchone()
        finally:
            conn.close()
        if not row:
            return None
        return json.loads(row["data"])

    def delete_item(self, *, partition_key: str, sort_key: str) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    "DELETE FROM token_items WHERE pk = ? AND sk = ?",
                    (partition_key, sort_key),
                )
        finally:
            conn.close()

    def list_items_with_prefix(
        self, *, partition_key: str, sort_key_prefix: str
    ) -> list[Dict[str, Any]]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT data FROM token_items WHERE pk = ? AND substr(sk, 1, ?) = ? "
                "ORDER BY sk",
                (partition_key, len(sort_key_prefix), sort_key_prefix),
            ).fetchall()
        finally:
            conn.close()
        return [json.loads(row["data"]) for row in rows]


__all__ = ["SQLiteStore"]
