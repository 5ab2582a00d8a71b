from __future__ import annotations

import hashlib
import sqlite3
import threading
import time
from collections import OrderedDict
from pathlib import Path
from typing import Mapping, Optional

from .log import get_logger
from .model import CachedResponse

log = get_logger(__name__)

SCHEMA_VERSION = 1

# Header names that make two requests distinct for caching purposes.
KEYED_HEADERS = ("accept", "user-agent")


def request_key(method: str, url: str, headers: Mapping[str, str]) -> str:
    lowered = {k.lower(): v for k, v in headers.items()}
    parts = [method.upper(), url]
    for name in KEYED_HEADERS:
        parts.append(f"{name}:{lowered.get(name, '')}")
    return hashlib.sha256("\n".join(parts).encode("utf-8")).hexdigest()


def init_cache(db_path: Path, *, recreate: bool = False) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    if recreate and db_path.exists():
        db_path.unlink()

    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS response_cache (
                request_key TEXT PRIMARY KEY,
                url TEXT NOT NULL,
                content_type TEXT NOT NULL DEFAULT '',
                body BLOB NOT NULL,
                size INTEGER NOT NULL,
                stored_at REAL NOT NULL,
                accessed_at REAL NOT NULL
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_response_cache_accessed ON response_cache(accessed_at)")
        conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")


class ResolutionCache:
    """Two-tier response cache: an in-memory LRU in front of a SQLite file.

    Both tiers are bounded by total body bytes and evict least recently used
    entries first. Pass `db_path=None` for a memory-only cache. All methods
    are safe to call from any thread.
    """

    def __init__(
        self,
        db_path: Path | str | None,
        *,
        memory_capacity: int = 50 * 1024 * 1024,
        disk_capacity: int = 50 * 1024 * 1024,
        recreate: bool = False,
    ):
        self.db_path = Path(db_path) if db_path is not None else None
        self.memory_capacity = max(0, int(memory_capacity))
        self.disk_capacity = max(0, int(disk_capacity))
        self._memory: "OrderedDict[str, CachedResponse]" = OrderedDict()
        self._memory_bytes = 0
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = None
        if self.db_path is not None:
            init_cache(self.db_path, recreate=recreate)
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)

    def __enter__(self) -> "ResolutionCache":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def memory_bytes(self) -> int:
        return self._memory_bytes

    def get(self, key: str) -> Optional[CachedResponse]:
        with self._lock:
            entry = self._memory.get(key)
            if entry is not None:
                self._memory.move_to_end(key)
                return entry
            entry = self._disk_get(key)
            if entry is not None:
                self._memory_put(entry)
            return entry

    def put(self, entry: CachedResponse) -> None:
        if not entry.body:
            return
        with self._lock:
            self._memory_put(entry)
            self._disk_put(entry)

    def clear(self) -> None:
        with self._lock:
            self._memory.clear()
            self._memory_bytes = 0
            if self._conn is not None:
                self._conn.execute("DELETE FROM response_cache")
                self._conn.commit()

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    def __len__(self) -> int:
        with self._lock:
            if self._conn is None:
                return len(self._memory)
            return int(self._conn.execute("SELECT COUNT(*) FROM response_cache").fetchone()[0])

    def _memory_put(self, entry: CachedResponse) -> None:
        if entry.size > self.memory_capacity:
            return
        old = self._memory.pop(entry.request_key, None)
        if old is not None:
            self._memory_bytes -= old.size
        self._memory[entry.request_key] = entry
        self._memory_bytes += entry.size
        while self._memory_bytes > self.memory_capacity and self._memory:
            _key, evicted = self._memory.popitem(last=False)
            self._memory_bytes -= evicted.size

    def _disk_get(self, key: str) -> Optional[CachedResponse]:
        if self._conn is None:
            return None
        row = self._conn.execute(
            "SELECT request_key, url, body, content_type, stored_at FROM response_cache WHERE request_key = ?",
            (key,),
        ).fetchone()
        if row is None:
            return None
        self._conn.execute("UPDATE response_cache SET accessed_at = ? WHERE request_key = ?", (time.time(), key))
        self._conn.commit()
        return CachedResponse(
            request_key=row[0],
            url=row[1],
            body=bytes(row[2]),
            content_type=row[3],
            stored_at=float(row[4]),
        )

    def _disk_put(self, entry: CachedResponse) -> None:
        if self._conn is None or entry.size > self.disk_capacity:
            return
        try:
            self._conn.execute(
                """
                INSERT INTO response_cache (request_key, url, content_type, body, size, stored_at, accessed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(request_key) DO UPDATE SET
                    url=excluded.url,
                    content_type=excluded.content_type,
                    body=excluded.body,
                    size=excluded.size,
                    stored_at=excluded.stored_at,
                    accessed_at=excluded.accessed_at
                """,
                (
                    entry.request_key,
                    entry.url,
                    entry.content_type,
                    sqlite3.Binary(entry.body),
                    entry.size,
                    entry.stored_at,
                    time.time(),
                ),
            )
            self._evict_disk()
            self._conn.commit()
        except sqlite3.Error as e:
            # A broken disk tier degrades to memory-only; the fetch itself succeeded.
            log.warning("Failed to store %s in disk cache: %s", entry.url, e)

    def _evict_disk(self) -> None:
        assert self._conn is not None
        total = int(self._conn.execute("SELECT COALESCE(SUM(size), 0) FROM response_cache").fetchone()[0])
        if total <= self.disk_capacity:
            return
        rows = self._conn.execute(
            "SELECT request_key, size FROM response_cache ORDER BY accessed_at ASC, rowid ASC"
        ).fetchall()
        doomed = []
        for key, size in rows:
            if total <= self.disk_capacity:
                break
            doomed.append((key,))
            total -= int(size)
        self._conn.executemany("DELETE FROM response_cache WHERE request_key = ?", doomed)
        log.debug("Evicted %d entries from disk cache", len(doomed))
