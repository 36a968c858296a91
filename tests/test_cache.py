"""Tests for the cache layer and its backends."""

import asyncio
from pathlib import Path

import pytest

from variables_mcp.engine import MISSING, CacheLayer, MemoryCache, SqliteCache


@pytest.fixture(params=["memory", "sqlite"])
def layer(request: pytest.FixtureRequest, tmp_path: Path) -> CacheLayer:
    if request.param == "memory":
        return CacheLayer(MemoryCache())
    return CacheLayer(SqliteCache(tmp_path / "cache" / "cache.db"))


class TestMissingSentinel:
    def test_missing_is_falsy_singleton(self) -> None:
        assert not MISSING
        assert repr(MISSING) == "MISSING"
        assert type(MISSING)() is MISSING


class TestCacheLayer:
    @pytest.mark.asyncio
    async def test_miss_returns_missing(self, layer: CacheLayer) -> None:
        assert await layer.get("nope") is MISSING
        assert not await layer.has("nope")

    @pytest.mark.asyncio
    async def test_cached_none_is_a_hit(self, layer: CacheLayer) -> None:
        await layer.forever("k", None)
        assert await layer.get("k") is None
        assert await layer.has("k")

    @pytest.mark.asyncio
    async def test_put_and_get_structures(self, layer: CacheLayer) -> None:
        await layer.put("k", {"a": [1, 2]}, 60)
        assert await layer.get("k") == {"a": [1, 2]}

    @pytest.mark.asyncio
    async def test_values_are_not_shared_with_callers(self, layer: CacheLayer) -> None:
        value = {"items": [1, 2]}
        await layer.forever("k", value)
        value["items"].append(3)

        first = await layer.get("k")
        first["items"].append(99)

        assert await layer.get("k") == {"items": [1, 2]}

    @pytest.mark.asyncio
    async def test_ttl_expiry(self, layer: CacheLayer) -> None:
        await layer.put("k", "v", 0.05)
        await asyncio.sleep(0.1)
        assert await layer.get("k") is MISSING

    @pytest.mark.asyncio
    async def test_store_value_none_ttl_is_forever(self, layer: CacheLayer) -> None:
        await layer.store_value("k", "v", None)
        await asyncio.sleep(0.05)
        assert await layer.get("k") == "v"

    @pytest.mark.asyncio
    async def test_forget(self, layer: CacheLayer) -> None:
        await layer.forever("k", 1)
        assert await layer.forget("k")
        assert not await layer.forget("k")
        assert await layer.get("k") is MISSING

    @pytest.mark.asyncio
    async def test_flush(self, layer: CacheLayer) -> None:
        await layer.forever("a", 1)
        await layer.put("b", 2, 60)
        await layer.flush()
        assert await layer.get("a") is MISSING
        assert await layer.get("b") is MISSING

    @pytest.mark.asyncio
    async def test_overwrite(self, layer: CacheLayer) -> None:
        await layer.put("k", 1, 60)
        await layer.forever("k", 2)
        assert await layer.get("k") == 2


class TestMemoryCache:
    @pytest.mark.asyncio
    async def test_periodic_cleanup_drops_expired_entries(self) -> None:
        backend = MemoryCache(cleanup_interval=0)
        await backend.set("old", 1, 0.01)
        await asyncio.sleep(0.05)
        await backend.set("new", 2, None)
        assert len(backend) == 1

    @pytest.mark.asyncio
    async def test_default_layer_backend_is_memory(self) -> None:
        assert isinstance(CacheLayer().backend, MemoryCache)


class TestSqliteCache:
    @pytest.mark.asyncio
    async def test_entries_are_shared_between_instances(self, tmp_path: Path) -> None:
        path = tmp_path / "shared.db"
        await SqliteCache(path).set("k", {"v": 1}, None)
        assert await SqliteCache(path).get("k") == {"v": 1}
