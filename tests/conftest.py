"""Shared test configuration for variables-mcp tests.

Provides:
- In-memory variable store, cache and service registry
- A query database with a populated users table
- A local JSON API server (pytest-httpserver) for external variables
- A controllable clock for expiry tests
"""

import json
from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta

import pytest
from pytest_httpserver import HTTPServer
from werkzeug.wrappers import Request, Response

from variables_mcp.engine import (
    CacheLayer,
    MemoryCache,
    ServiceRegistry,
    SqliteVariableStore,
    StrategyContext,
    VariableResolver,
)
from variables_mcp.engine.sql import ConnectionConfig, SqliteBackend

USER_NAMES = ["ana", "ben", "carla", "dan", "eva", "finn", "gia"]


class FakeClock:
    """Settable UTC clock passed to the resolver."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2025, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def store() -> AsyncIterator[SqliteVariableStore]:
    """Initialized in-memory variable store."""
    variable_store = SqliteVariableStore(":memory:")
    await variable_store.init()
    yield variable_store
    await variable_store.close()


@pytest.fixture
def cache() -> CacheLayer:
    return CacheLayer(MemoryCache())


@pytest.fixture
def services() -> ServiceRegistry:
    return ServiceRegistry()


@pytest.fixture
async def users_db() -> AsyncIterator[SqliteBackend]:
    """Query database with a users table of seven rows."""
    backend = SqliteBackend()
    await backend.connect(ConnectionConfig(path=":memory:"))
    await backend.execute_script(
        "CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT NOT NULL, active INTEGER);"
    )
    for index, name in enumerate(USER_NAMES):
        await backend.execute(
            "INSERT INTO users (name, active) VALUES (?, ?)", (name, int(index % 2 == 0))
        )
    yield backend
    await backend.disconnect()


@pytest.fixture
def strategy_context(services: ServiceRegistry, users_db: SqliteBackend) -> StrategyContext:
    return StrategyContext(services=services, database=users_db, http_timeout=5.0)


@pytest.fixture
def resolver(
    store: SqliteVariableStore,
    cache: CacheLayer,
    strategy_context: StrategyContext,
    clock: FakeClock,
) -> VariableResolver:
    return VariableResolver(cache=cache, context=strategy_context, store=store, clock=clock)


@pytest.fixture
def json_api(httpserver: HTTPServer) -> HTTPServer:
    """
    Local JSON API used by external variable tests.

    Endpoints:
    - GET /price: nested price payload ({"bpi": {"EUR": {"rate": ...}}})
    - GET /echo: echoes query args and headers
    - POST /echo: echoes the JSON body and headers
    - GET /broken: 503
    - GET /text: 200 with a non-JSON body
    """
    httpserver.expect_request("/price").respond_with_json(
        {"bpi": {"EUR": {"code": "EUR", "rate": "123.45"}}, "disclaimer": "test"}
    )

    def echo_handler(request: Request) -> Response:
        data = {
            "args": dict(request.args),
            "json": request.get_json(silent=True),
            "headers": {k: v for k, v in request.headers},
        }
        return Response(json.dumps(data), content_type="application/json")

    httpserver.expect_request("/echo").respond_with_handler(echo_handler)
    httpserver.expect_request("/broken").respond_with_data("unavailable", status=503)
    httpserver.expect_request("/text").respond_with_data("plain text", content_type="text/plain")

    return httpserver
