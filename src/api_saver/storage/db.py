"""SQLite document store for traffic records and the settings document."""

from __future__ import annotations

import asyncio
import json
import sqlite3
import threading
import uuid
from pathlib import Path
from typing import Any, Mapping, Sequence

from api_saver.utils.serialization import json_default
from api_saver.utils.time import utc_now_iso

TRAFFIC = "traffic"
SETTINGS = "settings"

COLLECTIONS = frozenset({TRAFFIC, SETTINGS})

_SqlValue = str | bytes | int | float | None
_SqlParams = Sequence[_SqlValue] | Mapping[str, _SqlValue]


def _check_collection(collection: str) -> str:
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection: {collection!r}")
    return collection


class DocumentStore:
    """Thread-safe JSON document store, one table per collection.

    Documents keep storage bookkeeping (``_id``, ``createdAt``,
    ``updatedAt``) alongside the caller's fields, in the same way a document
    database would.
    """

    def __init__(self, path: str, wal: bool = True) -> None:
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._closed = False
        if wal and path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS traffic (
                doc_id TEXT PRIMARY KEY,
                body TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS settings (
                doc_id TEXT PRIMARY KEY,
                body TEXT NOT NULL,
                created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_traffic_created_at ON traffic(created_at);
            """
        )
        self._conn.commit()

    def execute(self, query: str, params: _SqlParams) -> None:
        with self._lock:
            self._conn.execute(query, params)
            self._conn.commit()

    def fetch_one(self, query: str, params: _SqlParams) -> sqlite3.Row | None:
        with self._lock:
            cur = self._conn.execute(query, params)
            return cur.fetchone()

    def fetch_all(self, query: str, params: _SqlParams) -> list[sqlite3.Row]:
        with self._lock:
            cur = self._conn.execute(query, params)
            return cur.fetchall()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._conn.close()
            self._closed = True

    @staticmethod
    def _encode(doc: Mapping[str, Any]) -> str:
        return json.dumps(dict(doc), ensure_ascii=False, default=json_default)

    @staticmethod
    def _decode(row: sqlite3.Row) -> dict[str, Any]:
        return json.loads(row["body"])

    def insert(self, collection: str, doc: Mapping[str, Any]) -> str:
        table = _check_collection(collection)
        doc_id = uuid.uuid4().hex
        now = utc_now_iso()
        body = {**doc, "_id": doc_id, "createdAt": now, "updatedAt": now}
        self.execute(
            f"INSERT INTO {table} (doc_id, body, created_at) VALUES (?, ?, ?)",
            (doc_id, self._encode(body), now),
        )
        return doc_id

    def find_one(self, collection: str) -> dict[str, Any] | None:
        table = _check_collection(collection)
        row = self.fetch_one(
            f"SELECT body FROM {table} ORDER BY created_at ASC LIMIT 1", ()
        )
        if row is None:
            return None
        return self._decode(row)

    def upsert_one(self, collection: str, fields: Mapping[str, Any]) -> str:
        """Create the first document if absent, otherwise shallow-merge ``fields`` into it."""
        table = _check_collection(collection)
        now = utc_now_iso()
        clean = {k: v for k, v in fields.items() if k != "_id"}
        with self._lock:
            row = self._conn.execute(
                f"SELECT doc_id, body FROM {table} ORDER BY created_at ASC LIMIT 1"
            ).fetchone()
            if row is None:
                doc_id = uuid.uuid4().hex
                body = {**clean, "_id": doc_id, "createdAt": now, "updatedAt": now}
                self._conn.execute(
                    f"INSERT INTO {table} (doc_id, body, created_at) VALUES (?, ?, ?)",
                    (doc_id, self._encode(body), now),
                )
            else:
                doc_id = row["doc_id"]
                body = {**json.loads(row["body"]), **clean, "updatedAt": now}
                self._conn.execute(
                    f"UPDATE {table} SET body = ? WHERE doc_id = ?",
                    (self._encode(body), doc_id),
                )
            self._conn.commit()
        return doc_id

    def find(self, collection: str, limit: int = 20, skip: int = 0) -> list[dict[str, Any]]:
        """Newest-first page of documents."""
        table = _check_collection(collection)
        rows = self.fetch_all(
            f"SELECT body FROM {table} ORDER BY created_at DESC, rowid DESC LIMIT ? OFFSET ?",
            (limit, skip),
        )
        return [self._decode(row) for row in rows]

    def count(self, collection: str) -> int:
        table = _check_collection(collection)
        row = self.fetch_one(f"SELECT COUNT(*) AS n FROM {table}", ())
        return int(row["n"]) if row is not None else 0


class AsyncDocumentStore:
    """Runs every :class:`DocumentStore` call off the event loop."""

    def __init__(self, store: DocumentStore) -> None:
        self.sync = store

    async def insert(self, collection: str, doc: Mapping[str, Any]) -> str:
        return await asyncio.to_thread(self.sync.insert, collection, doc)

    async def find_one(self, collection: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self.sync.find_one, collection)

    async def upsert_one(self, collection: str, fields: Mapping[str, Any]) -> str:
        return await asyncio.to_thread(self.sync.upsert_one, collection, fields)

    async def find(
        self, collection: str, limit: int = 20, skip: int = 0
    ) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self.sync.find, collection, limit, skip)

    async def count(self, collection: str) -> int:
        return await asyncio.to_thread(self.sync.count, collection)

    def close(self) -> None:
        self.sync.close()
