"""Database backend protocol and data classes.

Defines the interface used by the variable store (persistence of Variable
records) and by the dynamic strategy (read-only queries), together with the
shared configuration and result types.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


class SqlError(Exception):
    """Base exception for database backend errors."""

    pass


class SqlConnectionError(SqlError):
    """Failed to establish database connection."""

    pass


class SqlQueryError(SqlError):
    """SQL execution failed."""

    pass


@dataclass
class ConnectionConfig:
    """Database connection configuration.

    Attributes:
        path: SQLite database file path (or ":memory:" for in-memory)
        timeout: Lock wait timeout in seconds
        read_only: Open the database read-only (file paths only)
        options: Backend-specific options (e.g., sqlite_pragmas)
    """

    path: str
    timeout: int = 30
    read_only: bool = False
    options: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.path:
            raise ValueError("SQLite requires 'path' parameter")


@dataclass
class QueryResult:
    """Unified query result.

    Attributes:
        rows: Result rows as list of dicts (for SELECT queries)
        row_count: Number of rows returned (SELECT) or affected (INSERT/UPDATE/DELETE)
        columns: Column names from result set
        last_insert_id: Last inserted row ID (for INSERT operations)
        affected_rows: Number of rows affected by INSERT/UPDATE/DELETE
    """

    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    columns: list[str] = field(default_factory=list)
    last_insert_id: int | None = None
    affected_rows: int = 0


# Type alias for query parameters
Params = tuple[Any, ...] | list[Any] | dict[str, Any] | None


@runtime_checkable
class DatabaseBackend(Protocol):
    """Interface for database backends.

    Backends are stateful (hold a connection) and async.

    Example implementation:
        class SqliteBackend:
            async def connect(self, config: ConnectionConfig) -> None:
                self._conn = sqlite3.connect(config.path)

            async def query(self, sql: str, params: Params) -> QueryResult:
                cursor = self._conn.execute(sql, params or ())
                rows = [dict(row) for row in cursor.fetchall()]
                return QueryResult(rows=rows, row_count=len(rows))
    """

    async def connect(self, config: ConnectionConfig) -> None:
        """Establish the database connection.

        Raises:
            SqlConnectionError: If connection fails
        """
        ...

    async def disconnect(self) -> None:
        """Close the connection. Safe to call multiple times."""
        ...

    async def query(self, sql: str, params: Params = None) -> QueryResult:
        """Execute a read-only query and return rows. Writes must be refused.

        Raises:
            SqlQueryError: If query execution fails or the statement writes
        """
        ...

    async def execute(self, sql: str, params: Params = None) -> QueryResult:
        """Execute an INSERT/UPDATE/DELETE statement (auto-committed).

        Raises:
            SqlQueryError: If execution fails
        """
        ...

    async def execute_script(self, sql: str) -> None:
        """Execute a multi-statement script (schema creation)."""
        ...


class DatabaseBackendBase(ABC):
    """Abstract base class for database backends."""

    @abstractmethod
    async def connect(self, config: ConnectionConfig) -> None:
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        pass

    @abstractmethod
    async def query(self, sql: str, params: Params = None) -> QueryResult:
        pass

    @abstractmethod
    async def execute(self, sql: str, params: Params = None) -> QueryResult:
        pass

    @abstractmethod
    async def execute_script(self, sql: str) -> None:
        pass

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        pass
