"""SQLite database backend.

Wraps the stdlib sqlite3 module in asyncio's run_in_executor to provide async
operation. Calls are serialized through an asyncio.Lock because a single
connection is shared by all callers.

Features:
    - WAL mode by default for concurrent reads
    - busy_timeout for lock contention handling
    - Read-only mode (mode=ro + query_only) for dynamic variable databases
    - query() runs under an authorizer that only permits reads
    - PRAGMA configuration via options
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from .backend import (
    ConnectionConfig,
    DatabaseBackendBase,
    Params,
    QueryResult,
    SqlConnectionError,
    SqlQueryError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

READ_ACTIONS = frozenset(
    {sqlite3.SQLITE_SELECT, sqlite3.SQLITE_READ, sqlite3.SQLITE_FUNCTION, sqlite3.SQLITE_RECURSIVE}
)


class SqliteBackend(DatabaseBackendBase):
    """SQLite backend using stdlib sqlite3 with async executor.

    Example:
        backend = SqliteBackend()
        await backend.connect(ConnectionConfig(path="/data/app.db"))
        result = await backend.query("SELECT * FROM users WHERE id = ?", (42,))
        await backend.disconnect()
    """

    DEFAULT_PRAGMAS: dict[str, str | int] = {
        "journal_mode": "WAL",
        "busy_timeout": 30000,
        "synchronous": "NORMAL",
        "foreign_keys": "ON",
    }

    def __init__(self) -> None:
        self._conn: sqlite3.Connection | None = None
        self._config: ConnectionConfig | None = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    @property
    def path(self) -> str | None:
        return self._config.path if self._config else None

    async def connect(self, config: ConnectionConfig) -> None:
        """Connect to the SQLite database.

        Creates parent directories for file databases. Applies PRAGMA settings
        from config.options["sqlite_pragmas"] over the defaults.

        Raises:
            SqlConnectionError: If connection fails
        """
        self._config = config

        def _connect() -> sqlite3.Connection:
            path = config.path
            in_memory = path == ":memory:" or path.startswith("file::memory:")

            if config.read_only and not in_memory:
                target = f"file:{Path(path).as_posix()}?mode=ro"
                conn = sqlite3.connect(target, uri=True, check_same_thread=False)
            else:
                if not in_memory:
                    Path(path).parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(path, check_same_thread=False)
            conn.row_factory = sqlite3.Row

            pragmas = {**self.DEFAULT_PRAGMAS}
            if config.read_only:
                pragmas.pop("journal_mode", None)
                pragmas["query_only"] = "ON"
            if config.options.get("sqlite_pragmas"):
                pragmas.update(config.options["sqlite_pragmas"])
            if config.timeout:
                pragmas["busy_timeout"] = config.timeout * 1000

            for pragma, value in pragmas.items():
                try:
                    conn.execute(f"PRAGMA {pragma}={value}")
                except sqlite3.Error as e:
                    logger.warning(f"Failed to set PRAGMA {pragma}={value}: {e}")

            logger.debug(f"Connected to SQLite database: {path}")
            return conn

        loop = asyncio.get_running_loop()
        try:
            self._conn = await loop.run_in_executor(None, _connect)
        except sqlite3.Error as e:
            raise SqlConnectionError(f"Failed to connect to {config.path}: {e}") from e

    async def disconnect(self) -> None:
        """Close the connection. Safe to call if not connected."""
        if self._conn is None:
            return

        conn = self._conn
        self._conn = None
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, conn.close)
        logger.debug("Disconnected from SQLite database")

    async def query(self, sql: str, params: Params = None) -> QueryResult:
        """Execute a read-only query and return rows as dicts.

        The statement is compiled under an authorizer that denies every action
        except reads, so writes behind a CTE or RETURNING clause are refused.

        Raises:
            SqlQueryError: If the statement fails or tries to write
        """

        def _query(conn: sqlite3.Connection) -> QueryResult:
            denied: list[int] = []

            def _authorize(action: int, *_args: Any) -> int:
                if action in READ_ACTIONS:
                    return sqlite3.SQLITE_OK
                denied.append(action)
                return sqlite3.SQLITE_DENY

            conn.set_authorizer(_authorize)
            try:
                cursor = conn.execute(sql, self._normalize_params(params))
                rows = [dict(row) for row in cursor.fetchall()]
            except sqlite3.DatabaseError as e:
                if denied:
                    raise SqlQueryError(f"Only read-only statements are allowed: {e}") from e
                raise
            finally:
                conn.set_authorizer(None)

            columns = [desc[0] for desc in cursor.description] if cursor.description else []
            return QueryResult(rows=rows, row_count=len(rows), columns=columns)

        return await self._run(_query)

    async def execute(self, sql: str, params: Params = None) -> QueryResult:
        """Execute INSERT/UPDATE/DELETE and commit.

        Rows are returned when the statement has a RETURNING clause.
        """

        def _execute(conn: sqlite3.Connection) -> QueryResult:
            cursor = conn.execute(sql, self._normalize_params(params))
            if cursor.description:
                rows = [dict(row) for row in cursor.fetchall()]
                columns = [desc[0] for desc in cursor.description]
            else:
                rows = []
                columns = []
            conn.commit()
            return QueryResult(
                rows=rows,
                row_count=len(rows) if rows else cursor.rowcount,
                columns=columns,
                last_insert_id=cursor.lastrowid,
                affected_rows=cursor.rowcount,
            )

        return await self._run(_execute)

    async def execute_script(self, sql: str) -> None:
        """Execute a multi-statement SQL script (implicitly commits)."""

        def _execute_script(conn: sqlite3.Connection) -> None:
            conn.executescript(sql)

        await self._run(_execute_script)
        logger.debug("Executed SQL script")

    async def _run(self, func: Callable[[sqlite3.Connection], T]) -> T:
        conn = self._ensure_connected()
        loop = asyncio.get_running_loop()
        async with self._lock:
            try:
                return await loop.run_in_executor(None, func, conn)
            except sqlite3.Error as e:
                raise SqlQueryError(str(e)) from e

    def _ensure_connected(self) -> sqlite3.Connection:
        """Return the open connection.

        Raises:
            RuntimeError: If not connected
        """
        if self._conn is None:
            raise RuntimeError("Not connected to database. Call connect() first.")
        return self._conn

    @staticmethod
    def _normalize_params(params: Params) -> tuple[Any, ...] | dict[str, Any]:
        """Normalize parameters to a sqlite3-compatible tuple or dict."""
        if params is None:
            return ()
        if isinstance(params, dict):
            return params
        if isinstance(params, list):
            return tuple(params)
        return params
