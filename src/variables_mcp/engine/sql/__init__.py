"""SQL database backend module for the variable engine.

Usage:
    from variables_mcp.engine.sql import ConnectionConfig, SqliteBackend

    backend = SqliteBackend()
    await backend.connect(ConnectionConfig(path="/data/app.db"))
    result = await backend.query("SELECT COUNT(*) AS count FROM users")
"""

from .backend import (
    ConnectionConfig,
    DatabaseBackend,
    DatabaseBackendBase,
    Params,
    QueryResult,
    SqlConnectionError,
    SqlError,
    SqlQueryError,
)
from .sqlite_backend import SqliteBackend

__all__ = [
    "ConnectionConfig",
    "DatabaseBackend",
    "DatabaseBackendBase",
    "Params",
    "QueryResult",
    "SqlError",
    "SqlConnectionError",
    "SqlQueryError",
    "SqliteBackend",
]
