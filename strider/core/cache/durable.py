from __future__ import annotations

import json
import os
import sqlite3
import threading
import time
from typing import Any, Dict, Iterable, List

from strider.core.cache.kinds import DataKind, coerce_kind

# owner id of the device-wide namespace
DEVICE_OWNER = ""


class DurableCacheStore:
    """
    Per-owner cache namespaces in SQLite.

    Rows are keyed by ``(owner_id, data_kind)``. Dropping a namespace is a
    keyed delete on ``owner_id``; no string-prefix matching is involved.
    """

    def __init__(self, *, db_path: str):
        self.db_path = str(db_path)
        self._lock = threading.Lock()
        os.makedirs(os.path.dirname(self.db_path) or ".", exist_ok=True)
        self._init_db()

    # ---- sqlite helpers ----
    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
        except sqlite3.DatabaseError:
            pass
        return conn

    def _init_db(self) -> None:
        with self._lock:
            conn = self._conn()
            try:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS cache_entries (
                      owner_id TEXT NOT NULL,
                      data_kind TEXT NOT NULL,
                      payload_json TEXT NOT NULL,
                      updated_at TEXT,
                      PRIMARY KEY (owner_id, data_kind)
                    )
                    """
                )
                conn.execute("CREATE INDEX IF NOT EXISTS idx_cache_entries_owner ON cache_entries(owner_id)")
                conn.commit()
            finally:
                conn.close()

    # ---- reads ----
    def read_namespace(self, owner_id: str) -> Dict[DataKind, Any]:
        with self._lock:
            conn = self._conn()
            try:
                rows = conn.execute("SELECT data_kind, payload_json FROM cache_entries WHERE owner_id = ?", (str(owner_id),)).fetchall()
            finally:
                conn.close()
        out: Dict[DataKind, Any] = {}
        for r in rows:
            try:
                kind = DataKind(r["data_kind"])
            except ValueError:
                # written by a newer build; not ours to interpret
                continue
            try:
                out[kind] = json.loads(r["payload_json"])
            except json.JSONDecodeError:
                continue
        return out

    def owners(self) -> List[str]:
        with self._lock:
            conn = self._conn()
            try:
                rows = conn.execute("SELECT DISTINCT owner_id FROM cache_entries ORDER BY owner_id").fetchall()
            finally:
                conn.close()
        return [str(r["owner_id"]) for r in rows]

    def count(self, owner_id: str) -> int:
        with self._lock:
            conn = self._conn()
            try:
                row = conn.execute("SELECT COUNT(*) AS n FROM cache_entries WHERE owner_id = ?", (str(owner_id),)).fetchone()
            finally:
                conn.close()
        return int(row["n"] if row else 0)

    # ---- writes ----
    def write(self, owner_id: str, kind: DataKind, value: Any) -> None:
        kind = coerce_kind(kind)
        payload = json.dumps(value, ensure_ascii=False, sort_keys=True)
        now = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        with self._lock:
            conn = self._conn()
            try:
                conn.execute(
                    """
                    INSERT INTO cache_entries(owner_id, data_kind, payload_json, updated_at) VALUES(?,?,?,?)
                    ON CONFLICT(owner_id, data_kind) DO UPDATE SET payload_json = excluded.payload_json, updated_at = excluded.updated_at
                    """,
                    (str(owner_id), kind.value, payload, now),
                )
                conn.commit()
            finally:
                conn.close()

    def drop_namespace(self, owner_id: str) -> int:
        return self._delete("DELETE FROM cache_entries WHERE owner_id = ?", (str(owner_id),))

    def drop_all(self) -> int:
        return self._delete("DELETE FROM cache_entries", ())

    def delete_kinds(self, owner_id: str, kinds: Iterable[DataKind]) -> int:
        values = [coerce_kind(k).value for k in kinds]
        if not values:
            return 0
        marks = ",".join("?" for _ in values)
        return self._delete(f"DELETE FROM cache_entries WHERE owner_id = ? AND data_kind IN ({marks})", (str(owner_id), *values))

    def _delete(self, sql: str, params: tuple) -> int:
        with self._lock:
            conn = self._conn()
            try:
                cur = conn.execute(sql, params)
                conn.commit()
                return int(cur.rowcount or 0)
            finally:
                conn.close()
