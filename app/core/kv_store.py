from __future__ import annotations

import json
import os
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

T = TypeVar("T")

# mutator(current value or None) -> (new value or None to delete, result for the caller)
Mutator = Callable[[dict[str, Any] | None], tuple[dict[str, Any] | None, T]]


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SqliteKeyValueStore:
    """Namespaced JSON document store backing rate-limit windows and suggestion caches.

    Every read-modify-write runs inside ``BEGIN IMMEDIATE`` under a process lock, so
    increments and merges are atomic for all threads and processes sharing the file.
    """

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._conn_lock = threading.Lock()

    @property
    def db_path(self) -> str:
        return self._db_path

    def _get_connection(self) -> sqlite3.Connection:
        with self._conn_lock:
            if self._conn is not None:
                return self._conn

            directory = os.path.dirname(self._db_path)
            if directory:
                os.makedirs(directory, exist_ok=True)

            conn = sqlite3.connect(
                self._db_path,
                check_same_thread=False,
                timeout=5,
                isolation_level=None,
            )
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA busy_timeout=5000;")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_items (
                    namespace TEXT NOT NULL,
                    item_key TEXT NOT NULL,
                    value_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (namespace, item_key)
                );
                """
            )
            self._conn = conn
            return conn

    def get(self, namespace: str, key: str) -> dict[str, Any] | None:
        conn = self._get_connection()
        with self._conn_lock:
            cur = conn.execute(
                "SELECT value_json FROM kv_items WHERE namespace = ? AND item_key = ?",
                (namespace, key),
            )
            row = cur.fetchone()
        if not row:
            return None
        return json.loads(row[0])

    def put(self, namespace: str, key: str, value: dict[str, Any]) -> None:
        conn = self._get_connection()
        payload = json.dumps(value, ensure_ascii=False)
        with self._conn_lock:
            conn.execute(
                """
                INSERT INTO kv_items (namespace, item_key, value_json, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (namespace, item_key)
                DO UPDATE SET value_json = excluded.value_json, updated_at = excluded.updated_at
                """,
                (namespace, key, payload, _utc_now()),
            )

    def delete(self, namespace: str, key: str) -> None:
        conn = self._get_connection()
        with self._conn_lock:
            conn.execute("DELETE FROM kv_items WHERE namespace = ? AND item_key = ?", (namespace, key))

    def update(self, namespace: str, key: str, mutator: Mutator[T]) -> T:
        conn = self._get_connection()
        with self._conn_lock:
            cursor = conn.cursor()
            cursor.execute("BEGIN IMMEDIATE")
            try:
                cursor.execute(
                    "SELECT value_json FROM kv_items WHERE namespace = ? AND item_key = ?",
                    (namespace, key),
                )
                row = cursor.fetchone()
                current = json.loads(row[0]) if row else None
                new_value, result = mutator(current)
                if new_value is None:
                    cursor.execute(
                        "DELETE FROM kv_items WHERE namespace = ? AND item_key = ?",
                        (namespace, key),
                    )
                else:
                    cursor.execute(
                        """
                        INSERT INTO kv_items (namespace, item_key, value_json, updated_at)
                        VALUES (?, ?, ?, ?)
                        ON CONFLICT (namespace, item_key)
                        DO UPDATE SET value_json = excluded.value_json, updated_at = excluded.updated_at
                        """,
                        (namespace, key, json.dumps(new_value, ensure_ascii=False), _utc_now()),
                    )
                conn.commit()
            except Exception:
                conn.rollback()
                raise
        return result

    def increment(self, namespace: str, key: str, field: str, delta: int = 1, *, floor: int | None = None) -> int:
        def _apply(current: dict[str, Any] | None) -> tuple[dict[str, Any], int]:
            value = dict(current or {})
            count = int(value.get(field, 0)) + delta
            if floor is not None:
                count = max(floor, count)
            value[field] = count
            return value, count

        return self.update(namespace, key, _apply)

    def merge(self, namespace: str, key: str, patch: dict[str, Any]) -> dict[str, Any]:
        def _apply(current: dict[str, Any] | None) -> tuple[dict[str, Any], dict[str, Any]]:
            merged = {**(current or {}), **patch}
            return merged, merged

        return self.update(namespace, key, _apply)

    def clear(self, namespace: str | None = None) -> None:
        conn = self._get_connection()
        with self._conn_lock:
            if namespace is None:
                conn.execute("DELETE FROM kv_items")
            else:
                conn.execute("DELETE FROM kv_items WHERE namespace = ?", (namespace,))

    def close(self) -> None:
        with self._conn_lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
