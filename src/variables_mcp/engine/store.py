"""Variable persistence.

VariableStore is the storage contract the engine relies on: upsert keyed by
``key``, reads, filtered listing, logical deletion through ``is_active`` and
the needs-refresh scan used by batch refresh. SqliteVariableStore implements
it on top of the SQLite backend.

Schema (table ``variables``):
    key TEXT UNIQUE, value TEXT, type, category, description, cache_ttl,
    refresh_strategy, config (JSON), is_active, last_refreshed_at,
    last_error, created_by, updated_by, created_at, updated_at
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from typing import Any

from .models import (
    Variable,
    VariableInput,
    VariableType,
    ensure_valid_key,
    utcnow,
)
from .sql import ConnectionConfig, DatabaseBackend, SqliteBackend

logger = logging.getLogger(__name__)


class VariableStore(ABC):
    """Abstract keyed record store for variables."""

    @abstractmethod
    async def upsert(self, data: VariableInput, user: str | None = None) -> Variable:
        """Create or update the variable identified by ``data.key``.

        Raises:
            InvalidKeyFormatError: If the key is malformed (nothing is written)
        """
        pass

    @abstractmethod
    async def get(self, key: str) -> Variable | None:
        pass

    @abstractmethod
    async def list_variables(
        self,
        *,
        keys: Sequence[str] | None = None,
        category: str | None = None,
        variable_type: VariableType | None = None,
        search: str | None = None,
        active_only: bool = False,
    ) -> list[Variable]:
        """List variables ordered by category then key."""
        pass

    @abstractmethod
    async def set_active(self, key: str, active: bool, user: str | None = None) -> bool:
        """Flip is_active. Returns False if the key does not exist."""
        pass

    @abstractmethod
    async def record_success(self, key: str, refreshed_at: datetime) -> None:
        """Stamp last_refreshed_at and clear last_error."""
        pass

    @abstractmethod
    async def record_failure(self, key: str, error: str) -> None:
        """Store last_error, leaving last_refreshed_at untouched."""
        pass

    @abstractmethod
    async def category_counts(self) -> dict[str, int]:
        pass

    async def list_active(self, keys: Sequence[str] | None = None) -> list[Variable]:
        return await self.list_variables(keys=keys, active_only=True)

    async def list_needing_refresh(self, now: datetime | None = None) -> list[Variable]:
        """Active variables with a TTL that were never refreshed or are stale."""
        now = now or utcnow()
        candidates = await self.list_variables(active_only=True)
        return [v for v in candidates if v.cache_ttl is not None and v.is_expired(now)]

    async def close(self) -> None:
        return None


_COLUMNS = (
    "id",
    "key",
    "value",
    "type",
    "category",
    "description",
    "cache_ttl",
    "refresh_strategy",
    "config",
    "is_active",
    "last_refreshed_at",
    "last_error",
    "created_by",
    "updated_by",
    "created_at",
    "updated_at",
)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS variables (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    key TEXT NOT NULL UNIQUE,
    value TEXT,
    type TEXT NOT NULL DEFAULT 'static',
    category TEXT NOT NULL DEFAULT 'custom',
    description TEXT,
    cache_ttl INTEGER,
    refresh_strategy TEXT NOT NULL DEFAULT 'manual',
    config TEXT,
    is_active INTEGER NOT NULL DEFAULT 1,
    last_refreshed_at TEXT,
    last_error TEXT,
    created_by TEXT,
    updated_by TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_variables_category_active ON variables(category, is_active);
CREATE INDEX IF NOT EXISTS idx_variables_type_active ON variables(type, is_active);
CREATE INDEX IF NOT EXISTS idx_variables_last_refreshed ON variables(last_refreshed_at);
"""


class SqliteVariableStore(VariableStore):
    """VariableStore backed by a SQLite database.

    Example:
        store = SqliteVariableStore("/data/variables.db")
        await store.init()
        await store.upsert(VariableInput(key="site.name", value="Acme"))
        variable = await store.get("site.name")
    """

    def __init__(
        self,
        path: str = ":memory:",
        backend: DatabaseBackend | None = None,
        timeout: int = 30,
    ) -> None:
        """
        Args:
            path: Database file path (ignored when backend is given)
            backend: Already-connected backend to reuse
            timeout: Lock wait timeout in seconds
        """
        self._path = path
        self._timeout = timeout
        self._backend: DatabaseBackend | None = backend
        self._owns_backend = backend is None

    @property
    def backend(self) -> DatabaseBackend:
        if self._backend is None:
            raise RuntimeError("SqliteVariableStore not initialized. Call init() first.")
        return self._backend

    async def init(self) -> None:
        """Connect (if needed) and create the schema."""
        if self._backend is None:
            backend = SqliteBackend()
            await backend.connect(ConnectionConfig(path=self._path, timeout=self._timeout))
            self._backend = backend
        await self.backend.execute_script(_SCHEMA)
        logger.info(f"Variable store initialized: {self._path}")

    async def close(self) -> None:
        if self._backend is not None and self._owns_backend:
            await self._backend.disconnect()
            self._backend = None

    async def upsert(self, data: VariableInput, user: str | None = None) -> Variable:
        ensure_valid_key(data.key)
        now = utcnow().isoformat()
        # Validate through the record model so value encoding happens once
        record = Variable(**data.model_dump())

        await self.backend.execute(
            """
            INSERT INTO variables (
                key, value, type, category, description, cache_ttl, refresh_strategy,
                config, is_active, created_by, updated_by, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value = excluded.value,
                type = excluded.type,
                category = excluded.category,
                description = excluded.description,
                cache_ttl = excluded.cache_ttl,
                refresh_strategy = excluded.refresh_strategy,
                config = excluded.config,
                is_active = excluded.is_active,
                updated_by = excluded.updated_by,
                updated_at = excluded.updated_at
            """,
            (
                record.key,
                record.value,
                record.type.value,
                record.category,
                record.description,
                record.cache_ttl,
                record.refresh_strategy.value,
                json.dumps(record.config) if record.config is not None else None,
                int(record.is_active),
                user,
                user,
                now,
                now,
            ),
        )

        stored = await self.get(record.key)
        assert stored is not None
        logger.debug(f"Upserted variable '{record.key}'")
        return stored

    async def get(self, key: str) -> Variable | None:
        result = await self.backend.query(
            f"SELECT {', '.join(_COLUMNS)} FROM variables WHERE key = ?", (key,)
        )
        if not result.rows:
            return None
        return self._row_to_variable(result.rows[0])

    async def list_variables(
        self,
        *,
        keys: Sequence[str] | None = None,
        category: str | None = None,
        variable_type: VariableType | None = None,
        search: str | None = None,
        active_only: bool = False,
    ) -> list[Variable]:
        clauses: list[str] = []
        params: list[Any] = []

        if keys is not None:
            if not keys:
                return []
            clauses.append(f"key IN ({', '.join('?' for _ in keys)})")
            params.extend(keys)
        if category:
            clauses.append("category = ?")
            params.append(category)
        if variable_type is not None:
            clauses.append("type = ?")
            params.append(variable_type.value)
        if search:
            clauses.append("(key LIKE ? OR description LIKE ?)")
            params.extend([f"%{search}%", f"%{search}%"])
        if active_only:
            clauses.append("is_active = 1")

        sql = f"SELECT {', '.join(_COLUMNS)} FROM variables"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY category, key"

        result = await self.backend.query(sql, params)
        return [self._row_to_variable(row) for row in result.rows]

    async def set_active(self, key: str, active: bool, user: str | None = None) -> bool:
        result = await self.backend.execute(
            """
            UPDATE variables
            SET is_active = ?, updated_by = COALESCE(?, updated_by), updated_at = ?
            WHERE key = ?
            """,
            (int(active), user, utcnow().isoformat(), key),
        )
        return result.affected_rows > 0

    async def record_success(self, key: str, refreshed_at: datetime) -> None:
        await self.backend.execute(
            "UPDATE variables SET last_refreshed_at = ?, last_error = NULL WHERE key = ?",
            (refreshed_at.isoformat(), key),
        )

    async def record_failure(self, key: str, error: str) -> None:
        await self.backend.execute(
            "UPDATE variables SET last_error = ? WHERE key = ?",
            (error, key),
        )

    async def category_counts(self) -> dict[str, int]:
        result = await self.backend.query(
            "SELECT category, COUNT(*) AS count FROM variables GROUP BY category"
        )
        return {row["category"]: row["count"] for row in result.rows}

    @staticmethod
    def _row_to_variable(row: dict[str, Any]) -> Variable:
        data = dict(row)
        if data.get("config") is not None:
            data["config"] = json.loads(data["config"])
        data["is_active"] = bool(data["is_active"])
        return Variable.model_validate(data)


__all__ = ["VariableStore", "SqliteVariableStore"]
