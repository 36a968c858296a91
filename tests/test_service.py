"""Tests for the VariableService facade."""

import pytest

from variables_mcp.engine import (
    CacheLayer,
    InvalidKeyFormatError,
    MissingConfigError,
    SqliteVariableStore,
    VariableInput,
    VariableNotFoundError,
    VariableResolver,
    VariablesConfig,
    VariableService,
    VariableType,
)
from variables_mcp.engine.service import CACHE_KEY_ALL_RESOLVED


@pytest.fixture
def service(store: SqliteVariableStore, resolver: VariableResolver) -> VariableService:
    return VariableService(store, resolver, config=VariablesConfig())


class TestUpsert:
    @pytest.mark.asyncio
    async def test_category_default_ttl_for_non_static(self, service: VariableService) -> None:
        variable = await service.upsert(
            VariableInput(
                key="api.rate",
                type=VariableType.EXTERNAL,
                category="api",
                config={"url": "https://example.com"},
            )
        )
        assert variable.cache_ttl == 1800

    @pytest.mark.asyncio
    async def test_static_variables_keep_no_ttl(self, service: VariableService) -> None:
        variable = await service.upsert(
            VariableInput(key="contact.email", value="a@b.c", category="contact")
        )
        assert variable.cache_ttl is None

    @pytest.mark.asyncio
    async def test_explicit_ttl_wins(self, service: VariableService) -> None:
        variable = await service.upsert(
            VariableInput(
                key="api.rate",
                type=VariableType.EXTERNAL,
                category="api",
                cache_ttl=60,
                config={"url": "https://example.com"},
            )
        )
        assert variable.cache_ttl == 60

    @pytest.mark.asyncio
    async def test_update_drops_cached_value(self, service: VariableService) -> None:
        await service.upsert(VariableInput(key="site.name", value="Old"))
        assert await service.resolve("site.name") == "Old"

        await service.upsert(VariableInput(key="site.name", value="New"))
        assert await service.resolve("site.name") == "New"

    @pytest.mark.asyncio
    async def test_invalid_key(self, service: VariableService, store: SqliteVariableStore) -> None:
        with pytest.raises(InvalidKeyFormatError):
            await service.upsert(VariableInput(key="9lives", value="x"))
        assert await store.list_variables() == []


class TestNamespace:
    @pytest.mark.asyncio
    async def test_namespace_is_cached_until_a_write(self, service: VariableService) -> None:
        await service.upsert(VariableInput(key="site.name", value="Acme"))

        first = await service.namespace()
        assert first.variables == {"site.name": "Acme"}
        assert not first.cached

        second = await service.namespace()
        assert second.cached
        assert second.variables == {"site.name": "Acme"}

        await service.upsert(VariableInput(key="site.city", value="Madrid"))
        third = await service.namespace()
        assert not third.cached
        assert third.variables == {"site.name": "Acme", "site.city": "Madrid"}

    @pytest.mark.asyncio
    async def test_force_refresh_skips_aggregate(self, service: VariableService) -> None:
        await service.upsert(VariableInput(key="site.name", value="Acme"))
        await service.namespace()

        refreshed = await service.namespace(force_refresh=True)
        assert not refreshed.cached

    @pytest.mark.asyncio
    async def test_deactivated_variable_leaves_namespace(self, service: VariableService) -> None:
        await service.upsert(VariableInput(key="site.name", value="Acme"))
        await service.upsert(VariableInput(key="site.city", value="Madrid"))
        await service.namespace()

        variable = await service.deactivate("site.city", user="admin")
        assert not variable.is_active

        namespace = await service.namespace()
        assert namespace.variables == {"site.name": "Acme"}


class TestResolution:
    @pytest.mark.asyncio
    async def test_resolve_unknown_or_inactive(self, service: VariableService) -> None:
        with pytest.raises(VariableNotFoundError):
            await service.resolve("missing")

        await service.upsert(VariableInput(key="site.name", value="Acme", is_active=False))
        with pytest.raises(VariableNotFoundError):
            await service.resolve("site.name")

    @pytest.mark.asyncio
    async def test_resolve_many(self, service: VariableService) -> None:
        await service.upsert(VariableInput(key="a", value="1x"))
        await service.upsert(VariableInput(key="b", value={"k": "v"}))
        assert await service.resolve_many(["a", "b", "c"]) == {"a": "1x", "b": {"k": "v"}}

    @pytest.mark.asyncio
    async def test_refresh(self, service: VariableService) -> None:
        await service.upsert(
            VariableInput(
                key="stats.total_users",
                type=VariableType.DYNAMIC,
                cache_ttl=300,
                config={"query": "SELECT COUNT(*) as count FROM users", "transform": "count"},
            )
        )

        result = await service.refresh("stats.total_users")
        assert result.value == 7
        assert result.refreshed_at is not None
        assert result.last_error is None

    @pytest.mark.asyncio
    async def test_refresh_unknown(self, service: VariableService) -> None:
        with pytest.raises(VariableNotFoundError):
            await service.refresh("missing")

    @pytest.mark.asyncio
    async def test_refresh_expired(self, service: VariableService) -> None:
        await service.upsert(VariableInput(key="site.name", value="Acme"))
        await service.upsert(VariableInput(key="site.ttl", value="t", cache_ttl=60))
        assert await service.refresh_expired() == 1
        assert await service.refresh_expired() == 0


class TestDryRun:
    @pytest.mark.asyncio
    async def test_static(self, service: VariableService, cache: CacheLayer) -> None:
        assert await service.test(VariableType.STATIC, value={"a": 1}) == {"a": 1}
        assert not await cache.has("variable:test.variable")

    @pytest.mark.asyncio
    async def test_dynamic_query(self, service: VariableService) -> None:
        result = await service.test(
            VariableType.DYNAMIC,
            config={"query": "SELECT COUNT(*) as count FROM users", "transform": "count"},
        )
        assert result == 7

    @pytest.mark.asyncio
    async def test_failure_propagates(self, service: VariableService) -> None:
        with pytest.raises(MissingConfigError):
            await service.test(VariableType.DYNAMIC, config={})


class TestCategoriesAndCache:
    @pytest.mark.asyncio
    async def test_categories_include_counts_and_ad_hoc(self, service: VariableService) -> None:
        await service.upsert(VariableInput(key="contact.email", value="x", category="contact"))
        await service.upsert(VariableInput(key="promo.code", value="x", category="promo"))

        categories = {c.key: c for c in await service.categories()}
        assert categories["contact"].count == 1
        assert categories["contact"].default_ttl == 86400
        assert categories["site"].count == 0
        assert categories["promo"].count == 1
        assert categories["promo"].name == "promo"

    @pytest.mark.asyncio
    async def test_categories_are_refreshed_after_write(self, service: VariableService) -> None:
        await service.categories()
        await service.upsert(VariableInput(key="site.name", value="x", category="site"))
        categories = {c.key: c for c in await service.categories()}
        assert categories["site"].count == 1

    @pytest.mark.asyncio
    async def test_cache_info(self, service: VariableService) -> None:
        info = await service.cache_info()
        assert info.cache_key == CACHE_KEY_ALL_RESOLVED
        assert not info.cached
        assert info.cache_ttl == 300
        assert info.backend == "MemoryCache"

        await service.upsert(VariableInput(key="site.name", value="Acme"))
        await service.namespace()
        info = await service.cache_info()
        assert info.cached
        assert info.variable_count == 1

    @pytest.mark.asyncio
    async def test_clear_cache(self, service: VariableService, cache: CacheLayer) -> None:
        await service.upsert(VariableInput(key="site.name", value="Acme"))
        await service.namespace()

        await service.clear_cache()
        assert not await cache.has(CACHE_KEY_ALL_RESOLVED)
        assert await cache.has("variable:site.name")

        await service.clear_cache(everything=True)
        assert not await cache.has("variable:site.name")
