"""Cache layer for resolved variable values.

The layer is a generic string-keyed cache with two write modes:
    - put(key, value, ttl_seconds): expires after ttl_seconds
    - forever(key, value): never expires

It knows nothing about variables; the resolver derives the cache key
("variable:<key>") and picks the write mode from the variable's cache_ttl.

Backends:
    - MemoryCache: process-local dict with expiry timestamps
    - SqliteCache: embedded cache in a SQLite file, shared between processes

Reads return the MISSING sentinel on a miss so that None stays cacheable.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import sqlite3
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Final

logger = logging.getLogger(__name__)


class _Missing:
    """Sentinel type for cache misses."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "MISSING"

    def __bool__(self) -> bool:
        return False


MISSING: Final = _Missing()


class CacheBackend(ABC):
    """Abstract cache store.

    Implementations must be safe for concurrent use from one event loop.
    ``ttl_seconds=None`` means the entry never expires.
    """

    @abstractmethod
    async def get(self, key: str) -> Any:
        """Return the cached value or MISSING."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove an entry. Returns True if it existed."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        pass

    async def close(self) -> None:
        """Release backend resources. Safe to call multiple times."""
        return None


class MemoryCache(CacheBackend):
    """In-memory cache with TTL support.

    Expired entries are dropped lazily on read and swept periodically on
    write (every ``cleanup_interval`` seconds). Values are deep-copied in and
    out, so callers never share a mutable object with the cache.
    """

    def __init__(self, cleanup_interval: float = 60.0) -> None:
        self._entries: dict[str, tuple[Any, float | None]] = {}
        self._lock = asyncio.Lock()
        self._cleanup_interval = cleanup_interval
        self._last_cleanup = time.monotonic()

    def _cleanup_expired(self, now: float) -> None:
        if now - self._last_cleanup < self._cleanup_interval:
            return

        expired_keys = [
            key
            for key, (_, expires_at) in self._entries.items()
            if expires_at is not None and now > expires_at
        ]
        for key in expired_keys:
            self._entries.pop(key, None)

        self._last_cleanup = now
        if expired_keys:
            logger.debug(f"Cleaned up {len(expired_keys)} expired cache entries")

    async def get(self, key: str) -> Any:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return MISSING

            value, expires_at = entry
            if expires_at is not None and time.monotonic() > expires_at:
                self._entries.pop(key, None)
                return MISSING
            return copy.deepcopy(value)

    async def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        async with self._lock:
            now = time.monotonic()
            self._cleanup_expired(now)
            expires_at = None if ttl_seconds is None else now + ttl_seconds
            self._entries[key] = (copy.deepcopy(value), expires_at)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class SqliteCache(CacheBackend):
    """Embedded cache persisted in a SQLite file.

    Values are stored as JSON text, so only JSON-serializable values can be
    cached. Several processes pointing at the same file share entries (WAL
    mode). Each operation opens its own connection in the default executor.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        if not self._initialized:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self._path, timeout=30)
        if not self._initialized:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS cache_entries (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    expires_at REAL
                )
            """)
            conn.commit()
            self._initialized = True
        return conn

    async def _run(self, func: Any, *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    def _get(self, key: str) -> Any:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT value, expires_at FROM cache_entries WHERE key = ?", (key,)
            ).fetchone()
            if row is None:
                return MISSING
            value, expires_at = row
            if expires_at is not None and time.time() > expires_at:
                conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
                conn.commit()
                return MISSING
            return json.loads(value)
        finally:
            conn.close()

    def _set(self, key: str, value: Any, ttl_seconds: float | None) -> None:
        expires_at = None if ttl_seconds is None else time.time() + ttl_seconds
        payload = json.dumps(value, ensure_ascii=False, default=str)
        conn = self._connect()
        try:
            conn.execute(
                """
                INSERT INTO cache_entries (key, value, expires_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value,
                                               expires_at = excluded.expires_at
                """,
                (key, payload, expires_at),
            )
            conn.commit()
        finally:
            conn.close()

    def _delete(self, key: str) -> bool:
        conn = self._connect()
        try:
            cursor = conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def _clear(self) -> None:
        conn = self._connect()
        try:
            conn.execute("DELETE FROM cache_entries")
            conn.commit()
        finally:
            conn.close()

    async def get(self, key: str) -> Any:
        return await self._run(self._get, key)

    async def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        await self._run(self._set, key, value, ttl_seconds)

    async def delete(self, key: str) -> bool:
        return bool(await self._run(self._delete, key))

    async def clear(self) -> None:
        await self._run(self._clear)


class CacheLayer:
    """Variable-agnostic facade over a CacheBackend.

    Example:
        cache = CacheLayer(MemoryCache())
        await cache.store_value("variable:site.name", "Acme", ttl_seconds=None)
        value = await cache.get("variable:site.name")
    """

    def __init__(self, backend: CacheBackend | None = None) -> None:
        self.backend = backend or MemoryCache()

    async def get(self, key: str) -> Any:
        """Return the cached value or MISSING."""
        value = await self.backend.get(key)
        if value is not MISSING:
            logger.debug(f"Cache hit: {key}")
        return value

    async def has(self, key: str) -> bool:
        return await self.get(key) is not MISSING

    async def put(self, key: str, value: Any, ttl_seconds: int | float) -> None:
        """Cache ``value`` for ``ttl_seconds``."""
        await self.backend.set(key, value, ttl_seconds)

    async def forever(self, key: str, value: Any) -> None:
        """Cache ``value`` with no expiry."""
        await self.backend.set(key, value, None)

    async def store_value(self, key: str, value: Any, ttl_seconds: int | None) -> None:
        """Write through with the variable TTL: None caches forever."""
        if ttl_seconds is None:
            await self.forever(key, value)
        else:
            await self.put(key, value, ttl_seconds)

    async def forget(self, key: str) -> bool:
        return await self.backend.delete(key)

    async def flush(self) -> None:
        await self.backend.clear()

    async def close(self) -> None:
        await self.backend.close()


__all__ = [
    "MISSING",
    "CacheBackend",
    "MemoryCache",
    "SqliteCache",
    "CacheLayer",
]
