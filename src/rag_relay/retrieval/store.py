"""Chunk store contract and concrete key-value adapters."""

from __future__ import annotations

import asyncio
import bisect
import json
import sqlite3
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol


@dataclass(slots=True)
class KeyPage:
    """One page of key names; ``cursor`` is ``None`` once the listing is exhausted."""

    keys: list[str] = field(default_factory=list)
    cursor: str | None = None


class ChunkStore(Protocol):
    """Minimal read contract the retriever needs from a key-value namespace."""

    async def list(self, prefix: str, cursor: str | None = None) -> KeyPage:
        """Return the next page of keys starting with ``prefix``."""

    async def get(self, key: str) -> str | None:
        """Return the raw value for ``key``, or ``None`` when absent."""


class InMemoryChunkStore:
    """Deterministic store used for tests, local prototyping and bulk files."""

    def __init__(self, items: dict[str, str] | None = None, *, page_size: int = 100) -> None:
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.page_size = page_size
        self._values: dict[str, str] = {}
        self._keys: list[str] = []
        for key, value in (items or {}).items():
            self.put(key, value)

    @classmethod
    def from_bulk_file(cls, path: str | Path, *, page_size: int = 100) -> "InMemoryChunkStore":
        """Load the ``[{"key": ..., "value": ...}]`` file written by ingestion."""

        store = cls(page_size=page_size)
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        store.load_bulk(payload)
        return store

    def load_bulk(self, items: Iterable[dict[str, str]]) -> None:
        for item in items:
            self.put(item["key"], item["value"])

    def put(self, key: str, value: str) -> None:
        if key not in self._values:
            bisect.insort(self._keys, key)
        self._values[key] = value

    async def list(self, prefix: str, cursor: str | None = None) -> KeyPage:
        start = bisect.bisect_right(self._keys, cursor) if cursor else bisect.bisect_left(self._keys, prefix)
        keys: list[str] = []
        index = start
        while index < len(self._keys) and len(keys) < self.page_size:
            key = self._keys[index]
            if not key.startswith(prefix):
                break
            keys.append(key)
            index += 1

        more = index < len(self._keys) and self._keys[index].startswith(prefix)
        return KeyPage(keys=keys, cursor=keys[-1] if more and keys else None)

    async def get(self, key: str) -> str | None:
        return self._values.get(key)

    def __len__(self) -> int:
        return len(self._keys)


class SqliteChunkStore:
    """SQLite-backed key-value store with keyset pagination.

    Blocking sqlite calls run in a worker thread so they never stall the
    event loop serving other requests.
    """

    def __init__(self, path: str | Path, *, page_size: int = 100) -> None:
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.path = Path(path)
        self.page_size = page_size
        _ensure_kv_table(self.path)

    async def list(self, prefix: str, cursor: str | None = None) -> KeyPage:
        return await asyncio.to_thread(self._list, prefix, cursor)

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._get, key)

    def put_many(self, items: Iterable[tuple[str, str]]) -> int:
        rows = list(items)
        with sqlite3.connect(self.path) as conn:
            conn.executemany(
                "INSERT INTO kv(key, value) VALUES(?, ?) ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                rows,
            )
            conn.commit()
        return len(rows)

    def _list(self, prefix: str, cursor: str | None) -> KeyPage:
        lower = cursor if cursor is not None else prefix
        op = ">" if cursor is not None else ">="
        with sqlite3.connect(self.path) as conn:
            rows = conn.execute(
                f"SELECT key FROM kv WHERE key {op} ? AND substr(key, 1, ?) = ? ORDER BY key LIMIT ?",
                (lower, len(prefix), prefix, self.page_size + 1),
            ).fetchall()
        keys = [row[0] for row in rows[: self.page_size]]
        more = len(rows) > self.page_size
        return KeyPage(keys=keys, cursor=keys[-1] if more else None)

    def _get(self, key: str) -> str | None:
        with sqlite3.connect(self.path) as conn:
            row = conn.execute("SELECT value FROM kv WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None


def _ensure_kv_table(db_path: Path) -> None:
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "CREATE TABLE IF NOT EXISTS kv (key TEXT PRIMARY KEY, value TEXT NOT NULL)"
        )
        conn.commit()
