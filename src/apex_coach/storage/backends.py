"""Key-value media for :class:`~apex_coach.storage.store.AnalysisStore`.

A backend only stores opaque string values under string keys; all key
naming and identity scoping lives in the store.  Backends signal an
unusable medium (disabled, full, I/O failure) by raising
:class:`BackendError`.
"""

from __future__ import annotations

import sqlite3
import threading
from typing import Protocol


class BackendError(Exception):
    """Raised when the storage medium cannot be read or written."""


class KeyValueBackend(Protocol):
    """The port the result store talks to."""

    location: str
    """Identifies the medium; stores sharing a location share identity locks."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryBackend:
    """In-process dict backend, for tests and ephemeral sessions.

    Parameters
    ----------
    quota_bytes:
        Optional cap on the total size of stored keys and values (UTF-8).
        A write that would exceed it raises :class:`BackendError`.
    enabled:
        When False every operation raises, simulating a disabled medium.
    """

    def __init__(self, quota_bytes: int | None = None, enabled: bool = True) -> None:
        self._data: dict[str, str] = {}
        self._quota = quota_bytes
        self.enabled = enabled
        self.location = f"memory:{id(self):x}"

    def get(self, key: str) -> str | None:
        self._check_enabled()
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._check_enabled()
        if self._quota is not None:
            current = self._used_bytes() - self._entry_bytes(key, self._data.get(key))
            if current + self._entry_bytes(key, value) > self._quota:
                raise BackendError(f"Quota exceeded ({self._quota} bytes)")
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._check_enabled()
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        self._check_enabled()
        return list(self._data)

    def _check_enabled(self) -> None:
        if not self.enabled:
            raise BackendError("Storage is disabled")

    @staticmethod
    def _entry_bytes(key: str, value: str | None) -> int:
        if value is None:
            return 0
        return len(key.encode("utf-8")) + len(value.encode("utf-8"))

    def _used_bytes(self) -> int:
        return sum(self._entry_bytes(k, v) for k, v in self._data.items())


_DDL = """
PRAGMA journal_mode = WAL;
PRAGMA synchronous  = NORMAL;

CREATE TABLE IF NOT EXISTS kv (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
) WITHOUT ROWID;
"""


class SqliteBackend:
    """Stores key-value pairs in a single SQLite table.

    Parameters
    ----------
    db_path:
        Path to the SQLite file.  Pass ``":memory:"`` for in-process testing.
    """

    def __init__(self, db_path: str = "apex_store.db") -> None:
        self.location = f"sqlite:{db_path}"
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            for stmt in _DDL.strip().split(";"):
                stmt = stmt.strip()
                if stmt:
                    self._conn.execute(stmt)
            self._conn.commit()
        except sqlite3.Error as exc:
            raise BackendError(f"Cannot open {db_path!r}: {exc}") from exc

    def get(self, key: str) -> str | None:
        rows = self._query("SELECT value FROM kv WHERE key = ?", (key,))
        return rows[0][0] if rows else None

    def set(self, key: str, value: str) -> None:
        self._write(
            "INSERT INTO kv (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )

    def remove(self, key: str) -> None:
        self._write("DELETE FROM kv WHERE key = ?", (key,))

    def keys(self) -> list[str]:
        return [row[0] for row in self._query("SELECT key FROM kv ORDER BY key")]

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _query(self, sql: str, params: tuple = ()) -> list[tuple]:
        with self._lock:
            try:
                return self._conn.execute(sql, params).fetchall()
            except sqlite3.Error as exc:
                raise BackendError(str(exc)) from exc

    def _write(self, sql: str, params: tuple) -> None:
        with self._lock:
            try:
                self._conn.execute(sql, params)
                self._conn.commit()
            except sqlite3.Error as exc:
                raise BackendError(str(exc)) from exc
