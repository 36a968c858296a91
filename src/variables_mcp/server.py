"""FastMCP server initialization for variables-mcp.

This module initializes the MCP server and manages shared resources via lifespan context.
All tool implementations are in the tools module.

Following the official MCP Python SDK patterns:
- Lifespan context manager for resource initialization and cleanup
- Context injection for tool access to shared resources
- FastMCP server with stdio transport
"""

import logging
import os
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from mcp.server.fastmcp import FastMCP

from .context import AppContext, AppContextType
from .engine import (
    CacheLayer,
    MemoryCache,
    ServiceRegistry,
    SqliteCache,
    SqliteVariableStore,
    StrategyContext,
    VariableResolver,
    VariablesConfig,
    VariablesConfigLoader,
    VariableService,
    create_default_strategies,
    seed_from_paths,
)
from .engine.sql import ConnectionConfig, DatabaseBackend, SqliteBackend

logger = logging.getLogger(__name__)

# =============================================================================
# Shared Resources and Lifespan Management
# =============================================================================


def get_seed_paths() -> list[Path]:
    """Parse VARIABLES_SEED_PATHS (comma-separated files or directories).

    Paths can use ~ for home directory. Missing paths are skipped with a warning.

    Example:
        VARIABLES_SEED_PATHS="~/site/variables.yml,/opt/company/seeds"
    """
    env_paths_str = os.getenv("VARIABLES_SEED_PATHS", "")
    seed_paths: list[Path] = []

    for path_str in env_paths_str.split(","):
        path_str = path_str.strip()
        if not path_str:
            continue
        expanded_path = Path(path_str).expanduser()
        if not expanded_path.exists():
            logger.warning(f"Seed path does not exist, skipping: {expanded_path}")
            continue
        seed_paths.append(expanded_path)

    return seed_paths


def create_cache(config: VariablesConfig) -> CacheLayer:
    """Build the cache layer for the configured backend."""
    if config.cache.backend == "sqlite":
        path = config.cache_path()
        logger.info(f"Cache backend: sqlite ({path})")
        return CacheLayer(SqliteCache(path))

    logger.info("Cache backend: memory")
    return CacheLayer(MemoryCache())


async def open_query_database(config: VariablesConfig) -> DatabaseBackend:
    """Open the backend for dynamic query variables.

    Always a connection of its own (read-only unless configured otherwise),
    even when it points at the store database.
    """
    query_config = config.query_database
    path = config.query_database_path()

    backend = SqliteBackend()
    await backend.connect(
        ConnectionConfig(path=path, timeout=query_config.timeout, read_only=query_config.read_only)
    )
    logger.info(f"Query database: {path} (read_only={query_config.read_only})")
    return backend


@asynccontextmanager
async def app_lifespan(_server: FastMCP) -> AsyncIterator[AppContext]:
    """Manage application lifecycle with resource initialization and cleanup.

    This lifespan context manager:
    1. Loads configuration (VARIABLES_CONFIG or ~/.variables/config.yml)
    2. Opens the variable store, the cache and the query database
    3. Seeds variables from VARIABLES_SEED_PATHS
    4. Yields context to make resources available to tools
    5. Closes connections on shutdown

    Args:
        _server: FastMCP server instance (unused, required by FastMCP signature)

    Yields:
        AppContext with initialized resources
    """
    logger.info("Initializing MCP server resources...")

    config = VariablesConfigLoader().load_config()

    store = SqliteVariableStore(config.store_path(), timeout=config.database.timeout)
    await store.init()

    cache = create_cache(config)
    query_database = await open_query_database(config)

    # Host applications register service handlers on this registry
    services = ServiceRegistry()
    resolver = VariableResolver(
        strategies=create_default_strategies(),
        cache=cache,
        context=StrategyContext(
            services=services,
            database=query_database,
            http_timeout=config.http.default_timeout,
        ),
        store=store,
    )
    service = VariableService(store, resolver, config=config)

    seed_paths = get_seed_paths()
    if seed_paths:
        seeded = await seed_from_paths(store, list(seed_paths))
        logger.info(f"Seeded {seeded} variable(s) from {len(seed_paths)} path(s)")

    app_context = AppContext(
        config=config,
        store=store,
        cache=cache,
        services=services,
        service=service,
        query_database=query_database,
    )

    try:
        yield app_context
    finally:
        logger.info("Shutting down MCP server...")

        await query_database.disconnect()
        await cache.close()
        await store.close()


# Initialize MCP server with lifespan management
# Following Python MCP naming convention: {service}_mcp
mcp = FastMCP("variables_mcp", lifespan=app_lifespan)


# =============================================================================
# Server Entry Point
# =============================================================================


def main() -> None:
    """Entry point for running the MCP server.

    This function is called when the server is run directly via:
    - python -m variables_mcp
    - variables-mcp (console entry point)

    Defaults to stdio transport for MCP protocol communication.
    """
    valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    log_level_str = os.getenv("VARIABLES_LOG_LEVEL", "INFO").upper()

    if log_level_str not in valid_log_levels:
        print(
            f"Warning: Invalid VARIABLES_LOG_LEVEL '{log_level_str}'. "
            f"Valid levels: {', '.join(sorted(valid_log_levels))}. "
            "Using INFO.",
            file=sys.stderr,
        )
        log_level_str = "INFO"

    log_level = getattr(logging, log_level_str)

    # Configure logging to stderr (MCP requirement)
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    logger.info("Starting MCP server (press Ctrl+C to stop)...")

    try:
        mcp.run()
    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down gracefully...")
    except Exception as e:
        logger.exception(f"Server error: {e}")
        sys.exit(1)

    logger.info("Server shutdown complete")


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "mcp",
    "main",
    "AppContext",
    "AppContextType",
    "get_seed_paths",
    "create_cache",
    "open_query_database",
]
