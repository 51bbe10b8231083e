"""
sentinel_sync/core/storage.py

Persisted "current state" collection for canonical hazard events.

The sync only needs a narrow document-store contract:
  - get_all()            full-collection read, keyed by document id
  - set(id, doc)         upsert (full overwrite)
  - delete(id)
  - batch()              staged set/delete operations, committed atomically

`SqliteEventStore` implements it on a single SQLite table; documents are
stored as orjson blobs so any HazardEvent-shaped dict round-trips.
"""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import orjson

from sentinel_sync.core.contracts import HazardEvent
from sentinel_sync.core.errors import StorageError
from sentinel_sync.core.time import utc_now_iso


# ──────────────────────────────────────────────────────────────
# Connections
# ──────────────────────────────────────────────────────────────

def connect_sqlite(path: str) -> sqlite3.Connection:
    """
    Open a RW SQLite connection with sane pragmas.

    IMPORTANT:
    - SQLite will NOT create parent directories.
    - WAL mode requires the directory to be writable (creates -wal/-shm).
    """
    if path != ":memory:":
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path, check_same_thread=False)
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


# ──────────────────────────────────────────────────────────────
# Schema
# ──────────────────────────────────────────────────────────────

def ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS documents (
            collection TEXT NOT NULL,
            doc_id TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            doc_json BLOB NOT NULL,
            PRIMARY KEY (collection, doc_id)
        );
        """
    )
    conn.commit()


# ──────────────────────────────────────────────────────────────
# Abstract interface
# ──────────────────────────────────────────────────────────────

class WriteBatch(ABC):
    """Staged writes; nothing is visible until commit() succeeds."""

    @abstractmethod
    def set(self, doc_id: str, doc: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def delete(self, doc_id: str) -> None:
        ...

    @abstractmethod
    def commit(self) -> None:
        ...

    @property
    @abstractmethod
    def size(self) -> int:
        ...


class EventStore(ABC):
    """Document collection keyed by event id."""

    @abstractmethod
    def get_all(self) -> Dict[str, Dict[str, Any]]:
        ...

    @abstractmethod
    def set(self, doc_id: str, doc: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def delete(self, doc_id: str) -> None:
        ...

    @abstractmethod
    def batch(self) -> WriteBatch:
        ...

    def list_events(self, *, source: Optional[str] = None) -> List[HazardEvent]:
        out: List[HazardEvent] = []
        for doc in self.get_all().values():
            if source and doc.get("source") != source:
                continue
            out.append(HazardEvent.model_validate(doc))
        out.sort(key=lambda ev: ev.timestamp, reverse=True)
        return out


# ── SQLite backend ───────────────────────────────────────────────────

_Op = Tuple[str, str, Optional[bytes]]  # ("set"|"delete", doc_id, blob)


class SqliteWriteBatch(WriteBatch):
    def __init__(self, store: "SqliteEventStore"):
        self._store = store
        self._ops: List[_Op] = []

    def set(self, doc_id: str, doc: Dict[str, Any]) -> None:
        self._ops.append(("set", doc_id, orjson.dumps(doc)))

    def delete(self, doc_id: str) -> None:
        self._ops.append(("delete", doc_id, None))

    @property
    def size(self) -> int:
        return len(self._ops)

    def commit(self) -> None:
        self._store._apply(self._ops)
        self._ops = []


class SqliteEventStore(EventStore):
    def __init__(self, conn: sqlite3.Connection, *, collection: str):
        self.conn = conn
        self.collection = collection

    def ensure_schema(self) -> None:
        ensure_schema(self.conn)

    def get_all(self) -> Dict[str, Dict[str, Any]]:
        try:
            cur = self.conn.execute(
                "SELECT doc_id, doc_json FROM documents WHERE collection=?;",
                (self.collection,),
            )
            rows = cur.fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"read {self.collection} failed: {e}") from e
        try:
            return {str(doc_id): orjson.loads(blob) for doc_id, blob in rows}
        except orjson.JSONDecodeError as e:
            raise StorageError(f"corrupt document in {self.collection}: {e}") from e

    def get(self, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            cur = self.conn.execute(
                "SELECT doc_json FROM documents WHERE collection=? AND doc_id=?;",
                (self.collection, doc_id),
            )
            row = cur.fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"read {self.collection}/{doc_id} failed: {e}") from e
        if not row:
            return None
        try:
            return orjson.loads(row[0])
        except orjson.JSONDecodeError as e:
            raise StorageError(f"corrupt document {self.collection}/{doc_id}: {e}") from e

    def set(self, doc_id: str, doc: Dict[str, Any]) -> None:
        self._apply([("set", doc_id, orjson.dumps(doc))])

    def delete(self, doc_id: str) -> None:
        self._apply([("delete", doc_id, None)])

    def batch(self) -> SqliteWriteBatch:
        return SqliteWriteBatch(self)

    def count(self) -> int:
        cur = self.conn.execute(
            "SELECT COUNT(*) FROM documents WHERE collection=?;", (self.collection,)
        )
        return int(cur.fetchone()[0])

    def _apply(self, ops: List[_Op]) -> None:
        """All ops in one transaction; any failure rolls every op back."""
        now = utc_now_iso()
        try:
            with self.conn:
                for kind, doc_id, blob in ops:
                    if kind == "set":
                        self.conn.execute(
                            """
                            INSERT OR REPLACE INTO documents (collection, doc_id, updated_at, doc_json)
                            VALUES (?, ?, ?, ?);
                            """,
                            (self.collection, doc_id, now, blob),
                        )
                    else:
                        self.conn.execute(
                            "DELETE FROM documents WHERE collection=? AND doc_id=?;",
                            (self.collection, doc_id),
                        )
        except sqlite3.Error as e:
            raise StorageError(f"commit to {self.collection} failed: {e}") from e


def open_event_store(path: str, *, collection: str) -> SqliteEventStore:
    store = SqliteEventStore(connect_sqlite(path), collection=collection)
    store.ensure_schema()
    return store
