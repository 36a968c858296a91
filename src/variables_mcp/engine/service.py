"""Variable service: the operations exposed to MCP tools.

Ties the store, resolver, batch coordinator and cache together and owns the
aggregate caches:

    variables.all_resolved   resolved namespace (namespace_ttl seconds)
    variables.categories     category list with counts (namespace_ttl seconds)

Every write (upsert, deactivate, refresh) drops both aggregates and the
per-variable cache entry of the written key.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from .batch import BatchCoordinator
from .cache import MISSING, CacheLayer
from .config import VariablesConfig
from .exceptions import VariableNotFoundError
from .models import Variable, VariableInput, VariableType, utcnow
from .resolver import VariableResolver
from .store import VariableStore

logger = logging.getLogger(__name__)

CACHE_KEY_ALL_RESOLVED = "variables.all_resolved"
CACHE_KEY_CATEGORIES = "variables.categories"
TEST_VARIABLE_KEY = "test.variable"


class ResolvedNamespace(BaseModel):
    """Flat key -> value namespace with provenance."""

    variables: dict[str, Any]
    cached: bool
    timestamp: datetime
    execution_time_ms: float


class RefreshResult(BaseModel):
    key: str
    value: Any
    refreshed_at: datetime | None
    last_error: str | None = None


class CategoryInfo(BaseModel):
    key: str
    name: str
    color: str
    icon: str
    description: str | None = None
    default_ttl: int | None = None
    count: int = 0


class CacheInfo(BaseModel):
    cache_key: str
    cached: bool
    cache_ttl: int
    variable_count: int
    backend: str
    timestamp: datetime = Field(default_factory=utcnow)


class VariableService:
    """Facade over the engine for the MCP tools.

    Example:
        service = VariableService(store, resolver, config=VariablesConfig())
        await service.upsert(VariableInput(key="site.name", value="Acme"))
        namespace = await service.namespace()
        namespace.variables["site.name"]  # "Acme"
    """

    def __init__(
        self,
        store: VariableStore,
        resolver: VariableResolver,
        config: VariablesConfig | None = None,
        batch: BatchCoordinator | None = None,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.config = config or VariablesConfig()
        self.batch = batch or BatchCoordinator(
            store, resolver, max_concurrency=self.config.batch.max_concurrency
        )

    @property
    def cache(self) -> CacheLayer:
        return self.resolver.cache

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Variable:
        """Get a variable by key, active or not.

        Raises:
            VariableNotFoundError: If no variable has this key
        """
        variable = await self.store.get(key)
        if variable is None:
            raise VariableNotFoundError(key)
        return variable

    async def list_variables(
        self,
        category: str | None = None,
        variable_type: VariableType | None = None,
        search: str | None = None,
        active_only: bool = False,
    ) -> list[Variable]:
        return await self.store.list_variables(
            category=category,
            variable_type=variable_type,
            search=search,
            active_only=active_only,
        )

    async def upsert(self, data: VariableInput, user: str | None = None) -> Variable:
        """Create or update a variable.

        A non-static variable saved without an explicit cache_ttl gets its
        category's default_ttl.

        Raises:
            InvalidKeyFormatError: If the key is malformed (nothing is written)
        """
        if (
            "cache_ttl" not in data.model_fields_set
            and data.type != VariableType.STATIC
            and data.category in self.config.categories
        ):
            default_ttl = self.config.categories[data.category].default_ttl
            if default_ttl is not None:
                data = data.model_copy(update={"cache_ttl": default_ttl})

        variable = await self.store.upsert(data, user=user)
        await self.resolver.forget(variable)
        await self.invalidate_aggregates()
        logger.info(f"Saved variable '{variable.key}' ({variable.type.value})")
        return variable

    async def deactivate(self, key: str, user: str | None = None) -> Variable:
        """Logically delete a variable (is_active = False).

        Raises:
            VariableNotFoundError: If no variable has this key
        """
        if not await self.store.set_active(key, False, user=user):
            raise VariableNotFoundError(key)
        variable = await self.get(key)
        await self.resolver.forget(variable)
        await self.invalidate_aggregates()
        logger.info(f"Deactivated variable '{key}'")
        return variable

    async def categories(self) -> list[CategoryInfo]:
        """Configured categories plus any ad-hoc ones, with variable counts."""
        cached = await self.cache.get(CACHE_KEY_CATEGORIES)
        if cached is not MISSING:
            return [CategoryInfo.model_validate(item) for item in cached]

        counts = await self.store.category_counts()
        categories = [
            CategoryInfo(key=key, count=counts.get(key, 0), **category.model_dump())
            for key, category in self.config.categories.items()
        ]
        for key in sorted(set(counts) - set(self.config.categories)):
            categories.append(CategoryInfo(key=key, name=key, count=counts[key]))

        await self.cache.put(
            CACHE_KEY_CATEGORIES,
            [category.model_dump() for category in categories],
            self.config.cache.namespace_ttl,
        )
        return categories

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve(self, key: str, force: bool = False) -> Any:
        """Resolve one active variable.

        Raises:
            VariableNotFoundError: If the key is unknown or inactive
            VariableError: If resolution failed and nothing is cached
        """
        variable = await self._get_active(key)
        return await self.resolver.resolve(variable, force=force)

    async def resolve_many(self, keys: list[str], force: bool = False) -> dict[str, Any | None]:
        return await self.batch.resolve_multiple(keys, force=force)

    async def namespace(self, force_refresh: bool = False) -> ResolvedNamespace:
        """Resolved namespace of all active variables.

        Served from the aggregate cache unless ``force_refresh`` is set.
        """
        started = time.perf_counter()

        if not force_refresh:
            cached = await self.cache.get(CACHE_KEY_ALL_RESOLVED)
            if cached is not MISSING:
                return ResolvedNamespace(
                    variables=cached,
                    cached=True,
                    timestamp=utcnow(),
                    execution_time_ms=(time.perf_counter() - started) * 1000,
                )

        variables = await self.batch.resolve_all_active()
        await self.cache.put(CACHE_KEY_ALL_RESOLVED, variables, self.config.cache.namespace_ttl)

        elapsed = (time.perf_counter() - started) * 1000
        logger.info(f"Resolved {len(variables)} variables in {elapsed:.1f}ms")
        return ResolvedNamespace(
            variables=variables,
            cached=False,
            timestamp=utcnow(),
            execution_time_ms=elapsed,
        )

    async def refresh(self, key: str) -> RefreshResult:
        """Force-resolve one variable and drop the aggregates.

        Raises:
            VariableNotFoundError: If the key is unknown or inactive
            VariableError: If resolution failed and nothing is cached
        """
        variable = await self._get_active(key)
        value = await self.resolver.resolve(variable, force=True)
        await self.invalidate_aggregates()
        return RefreshResult(
            key=variable.key,
            value=value,
            refreshed_at=variable.last_refreshed_at,
            last_error=variable.last_error,
        )

    async def refresh_expired(self) -> int:
        """Force-resolve expired variables. Returns the number attempted."""
        attempted = await self.batch.refresh_expired()
        if attempted:
            await self.invalidate_aggregates()
        return attempted

    async def test(
        self,
        variable_type: VariableType,
        value: Any = None,
        config: dict[str, Any] | None = None,
    ) -> Any:
        """Dry-run an unsaved definition. Nothing is cached or stored.

        Raises:
            VariableError: If the strategy fails
        """
        variable = Variable(
            key=TEST_VARIABLE_KEY, type=variable_type, value=value, config=config
        )
        return await self.resolver.evaluate(variable)

    # ------------------------------------------------------------------
    # Cache management
    # ------------------------------------------------------------------

    async def invalidate_aggregates(self) -> None:
        await self.cache.forget(CACHE_KEY_ALL_RESOLVED)
        await self.cache.forget(CACHE_KEY_CATEGORIES)
        logger.debug("Variable aggregate caches invalidated")

    async def clear_cache(self, everything: bool = False) -> None:
        """Drop the aggregate caches, or every cache entry with ``everything``."""
        if everything:
            await self.cache.flush()
            logger.info("Variable cache flushed")
        else:
            await self.invalidate_aggregates()
            logger.info("Variable aggregate caches cleared")

    async def cache_info(self) -> CacheInfo:
        cached = await self.cache.get(CACHE_KEY_ALL_RESOLVED)
        return CacheInfo(
            cache_key=CACHE_KEY_ALL_RESOLVED,
            cached=cached is not MISSING,
            cache_ttl=self.config.cache.namespace_ttl,
            variable_count=len(cached) if cached is not MISSING else 0,
            backend=type(self.cache.backend).__name__,
        )

    async def _get_active(self, key: str) -> Variable:
        variable = await self.store.get(key)
        if variable is None or not variable.is_active:
            raise VariableNotFoundError(key)
        return variable


__all__ = [
    "VariableService",
    "ResolvedNamespace",
    "RefreshResult",
    "CategoryInfo",
    "CacheInfo",
    "CACHE_KEY_ALL_RESOLVED",
    "CACHE_KEY_CATEGORIES",
]
