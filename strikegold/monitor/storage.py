from __future__ import annotations

import json
import os
import sqlite3
import threading
import time
from pathlib import Path
from typing import Any, List, Optional


def _expand(path: str) -> str:
    return os.path.expandvars(os.path.expanduser(path))


class StorageManager:
    """Lightweight SQLite-backed key-value storage.

    Keys in use:
      - saved_orders_v1          (order ledger, JSON list)
      - order_monitor_last_tick  (monitor heartbeat, epoch seconds)
      - manual_underlyings_v1    (manual provider prices, JSON object)
      - manual_option_chains_v1  (manual provider chains, JSON object)

    ``path=":memory:"`` keeps everything in-process.
    """

    def __init__(self, db_path: str = "~/.strikegold/strikegold.db") -> None:
        if db_path == ":memory:":
            self.db_path = db_path
        else:
            self.db_path = _expand(db_path)
            Path(os.path.dirname(self.db_path) or ".").mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        if self.db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._init_schema()

    def _init_schema(self) -> None:
        with self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT,
                    updated_at REAL
                );
                """
            )

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            row = self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        return None if row is None else row[0]

    def set(self, key: str, value: str) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at
                """,
                (key, value, float(time.time())),
            )

    def delete(self, key: str) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))

    def keys(self) -> List[str]:
        with self._lock:
            rows = self._conn.execute("SELECT key FROM kv_store ORDER BY key").fetchall()
        return [str(r[0]) for r in rows]

    def get_json(self, key: str, default: Any = None) -> Any:
        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value))

    def close(self) -> None:
        with self._lock:
            self._conn.close()
