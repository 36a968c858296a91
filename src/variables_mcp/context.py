"""Shared context types for MCP server.

This module contains context types used across server and tools modules,
separated to avoid circular imports.
"""

from dataclasses import dataclass

from mcp.server.fastmcp import Context
from mcp.server.session import ServerSession

from .engine import CacheLayer, ServiceRegistry, VariablesConfig, VariableService, VariableStore
from .engine.sql import DatabaseBackend


@dataclass
class AppContext:
    """Application context containing shared resources for MCP tools.

    Created during server startup and made available to all tools through
    the Context parameter.
    """

    config: VariablesConfig
    store: VariableStore
    cache: CacheLayer
    services: ServiceRegistry
    service: VariableService
    query_database: DatabaseBackend | None = None


# Type alias for MCP tool context parameter
AppContextType = Context[ServerSession, AppContext]


__all__ = ["AppContext", "AppContextType"]
