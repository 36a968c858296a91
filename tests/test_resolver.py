"""Tests for cache-first resolution, write-through and degradation."""

from typing import Any

import pytest
from conftest import FakeClock

from variables_mcp.engine import (
    MISSING,
    CacheLayer,
    RemoteRequestError,
    ServiceRegistry,
    SqliteVariableStore,
    StrategyContext,
    StrategyExecutionError,
    Variable,
    VariableInput,
    VariableResolver,
    VariableType,
)


class Counter:
    """Service handler that counts its invocations."""

    def __init__(self, result: Any = 1) -> None:
        self.calls = 0
        self.result = result
        self.fail = False

    async def __call__(self) -> Any:
        self.calls += 1
        if self.fail:
            raise RuntimeError("upstream down")
        return self.result


@pytest.fixture
def counter(services: ServiceRegistry) -> Counter:
    handler = Counter(result=42)
    services.register("metrics", "answer", handler)
    return handler


async def stored(store: SqliteVariableStore, **fields: Any) -> Variable:
    variable = await store.upsert(VariableInput(**fields))
    return variable


class TestResolve:
    @pytest.mark.asyncio
    async def test_static_value_is_cached_forever(
        self, resolver: VariableResolver, store: SqliteVariableStore, cache: CacheLayer
    ) -> None:
        variable = await stored(store, key="site.company_name", value="Page Builder Pro")

        assert await resolver.resolve(variable) == "Page Builder Pro"
        assert await cache.get("variable:site.company_name") == "Page Builder Pro"
        assert not variable.is_expired()

        persisted = await store.get("site.company_name")
        assert persisted is not None
        assert persisted.last_refreshed_at is not None
        assert persisted.last_error is None

    @pytest.mark.asyncio
    async def test_cache_hit_skips_strategy(
        self, resolver: VariableResolver, store: SqliteVariableStore, counter: Counter
    ) -> None:
        variable = await stored(
            store,
            key="metrics.answer",
            type=VariableType.COMPUTED,
            cache_ttl=300,
            config={"class": "metrics", "method": "answer"},
        )

        assert await resolver.resolve(variable) == 42
        assert await resolver.resolve(variable) == 42
        assert counter.calls == 1

    @pytest.mark.asyncio
    async def test_force_bypasses_cache(
        self, resolver: VariableResolver, store: SqliteVariableStore, counter: Counter
    ) -> None:
        variable = await stored(
            store,
            key="metrics.answer",
            type=VariableType.COMPUTED,
            cache_ttl=300,
            config={"class": "metrics", "method": "answer"},
        )

        await resolver.resolve(variable)
        counter.result = 43
        assert await resolver.resolve(variable, force=True) == 43
        assert counter.calls == 2

    @pytest.mark.asyncio
    async def test_expired_variable_is_re_resolved(
        self,
        resolver: VariableResolver,
        store: SqliteVariableStore,
        counter: Counter,
        clock: FakeClock,
    ) -> None:
        variable = await stored(
            store,
            key="metrics.answer",
            type=VariableType.COMPUTED,
            cache_ttl=300,
            config={"class": "metrics", "method": "answer"},
        )

        await resolver.resolve(variable)
        clock.advance(301)
        await resolver.resolve(variable)
        assert counter.calls == 2
        assert variable.last_refreshed_at == clock.now

    @pytest.mark.asyncio
    async def test_cached_none_is_served(
        self, resolver: VariableResolver, store: SqliteVariableStore, services: ServiceRegistry
    ) -> None:
        calls: list[int] = []

        def nothing() -> None:
            calls.append(1)
            return None

        services.register("svc", "nothing", nothing)
        variable = await stored(
            store,
            key="svc.nothing",
            type=VariableType.COMPUTED,
            config={"class": "svc", "method": "nothing"},
        )

        assert await resolver.resolve(variable) is None
        assert await resolver.resolve(variable) is None
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_dynamic_count(
        self, resolver: VariableResolver, store: SqliteVariableStore, cache: CacheLayer
    ) -> None:
        variable = await stored(
            store,
            key="stats.total_users",
            type=VariableType.DYNAMIC,
            cache_ttl=300,
            config={"query": "SELECT COUNT(*) as count FROM users", "transform": "count"},
        )

        assert await resolver.resolve(variable) == 7
        assert await cache.get("variable:stats.total_users") == 7


class TestDegradation:
    @pytest.mark.asyncio
    async def test_failure_serves_cached_value(
        self,
        resolver: VariableResolver,
        store: SqliteVariableStore,
        counter: Counter,
    ) -> None:
        variable = await stored(
            store,
            key="metrics.answer",
            type=VariableType.COMPUTED,
            cache_ttl=300,
            config={"class": "metrics", "method": "answer"},
        )
        await resolver.resolve(variable)
        refreshed_at = variable.last_refreshed_at

        counter.fail = True
        assert await resolver.resolve(variable, force=True) == 42
        assert variable.last_error == "metrics.answer failed: upstream down"
        assert variable.last_refreshed_at == refreshed_at

        persisted = await store.get("metrics.answer")
        assert persisted is not None
        assert persisted.last_error == "metrics.answer failed: upstream down"
        assert persisted.last_refreshed_at == refreshed_at

    @pytest.mark.asyncio
    async def test_failure_without_cache_raises(
        self, resolver: VariableResolver, store: SqliteVariableStore, counter: Counter
    ) -> None:
        counter.fail = True
        variable = await stored(
            store,
            key="metrics.answer",
            type=VariableType.COMPUTED,
            config={"class": "metrics", "method": "answer"},
        )

        with pytest.raises(StrategyExecutionError):
            await resolver.resolve(variable)

        persisted = await store.get("metrics.answer")
        assert persisted is not None
        assert persisted.last_error == "metrics.answer failed: upstream down"
        assert persisted.last_refreshed_at is None

    @pytest.mark.asyncio
    async def test_success_clears_previous_error(
        self, resolver: VariableResolver, store: SqliteVariableStore, counter: Counter
    ) -> None:
        counter.fail = True
        variable = await stored(
            store,
            key="metrics.answer",
            type=VariableType.COMPUTED,
            config={"class": "metrics", "method": "answer"},
        )
        with pytest.raises(StrategyExecutionError):
            await resolver.resolve(variable)

        counter.fail = False
        assert await resolver.resolve(variable) == 42
        assert variable.last_error is None
        persisted = await store.get("metrics.answer")
        assert persisted is not None
        assert persisted.last_error is None

    @pytest.mark.asyncio
    async def test_external_status_error_without_cache(self, cache: CacheLayer) -> None:
        resolver = VariableResolver(cache=cache)
        variable = Variable(
            key="api.down",
            type=VariableType.EXTERNAL,
            config={"url": "http://127.0.0.1:9/down", "timeout": 2},
        )

        with pytest.raises(RemoteRequestError):
            await resolver.resolve(variable)
        assert variable.last_error is not None


class TestEvaluate:
    @pytest.mark.asyncio
    async def test_evaluate_has_no_side_effects(
        self, resolver: VariableResolver, cache: CacheLayer
    ) -> None:
        variable = Variable(key="test.variable", value={"a": 1})

        assert await resolver.evaluate(variable) == {"a": 1}
        assert await cache.get(variable.cache_key) is MISSING
        assert variable.last_refreshed_at is None

    @pytest.mark.asyncio
    async def test_forget_drops_cached_value(
        self, resolver: VariableResolver, cache: CacheLayer
    ) -> None:
        variable = Variable(key="site.name", value="Acme")
        await resolver.resolve(variable)

        assert await resolver.forget(variable)
        assert await cache.get(variable.cache_key) is MISSING


class TestIsolation:
    @pytest.mark.asyncio
    async def test_query_on_store_connection_cannot_delete(
        self, store: SqliteVariableStore, cache: CacheLayer
    ) -> None:
        await stored(store, key="site.name", value="Acme")
        variable = await stored(
            store,
            key="stats.wipe",
            type=VariableType.DYNAMIC,
            config={"query": "WITH t AS (SELECT 1) DELETE FROM variables RETURNING key"},
        )
        resolver = VariableResolver(
            cache=cache, context=StrategyContext(database=store.backend), store=store
        )

        with pytest.raises(StrategyExecutionError, match="read-only"):
            await resolver.resolve(variable)

        keys = [v.key for v in await store.list_variables()]
        assert keys == ["site.name", "stats.wipe"]

    @pytest.mark.asyncio
    async def test_mutating_result_does_not_change_cache(
        self, resolver: VariableResolver, store: SqliteVariableStore, services: ServiceRegistry
    ) -> None:
        services.register("catalog", "items", lambda: {"items": [1, 2]})
        variable = await stored(
            store,
            key="catalog.items",
            type=VariableType.COMPUTED,
            config={"class": "catalog", "method": "items"},
        )

        first = await resolver.resolve(variable)
        first["items"].append(99)

        assert await resolver.resolve(variable) == {"items": [1, 2]}
