"""Per-variable resolution with write-through caching.

resolve(variable, force=False):
    1. Not forced and not expired -> cached value short-circuits
    2. Dispatch to the strategy for variable.type
    3. Success -> cache with the variable TTL, stamp last_refreshed_at,
       clear last_error
    4. Failure -> record last_error; serve the cached value if one exists,
       otherwise re-raise

Concurrent resolutions of the same stale key are not deduplicated: each
caller runs the strategy and rewrites the cache.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, Any

from .cache import MISSING, CacheLayer
from .models import Variable, utcnow
from .strategies import StrategyContext, StrategyRegistry, create_default_strategies

if TYPE_CHECKING:
    from .store import VariableStore

logger = logging.getLogger(__name__)


class VariableResolver:
    """Resolves variables through strategies, the cache and the store.

    Example:
        resolver = VariableResolver(cache=CacheLayer(MemoryCache()), store=store)
        value = await resolver.resolve(variable)
        value = await resolver.resolve(variable, force=True)  # bypass cache
    """

    def __init__(
        self,
        strategies: StrategyRegistry | None = None,
        cache: CacheLayer | None = None,
        context: StrategyContext | None = None,
        store: VariableStore | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        """
        Initialize resolver.

        Args:
            strategies: Strategy registry (default: all built-in strategies)
            cache: Cache layer (default: in-memory)
            context: Collaborators passed to strategies
            store: Store used to persist last_refreshed_at/last_error
                (None leaves persistence to the caller)
            clock: Returns the current UTC time
        """
        self.strategies = strategies or create_default_strategies()
        self.cache = cache or CacheLayer()
        self.context = context or StrategyContext()
        self.store = store
        self.clock = clock

    async def resolve(self, variable: Variable, force: bool = False) -> Any:
        """Resolve a variable's value.

        Args:
            variable: Variable to resolve (last_refreshed_at/last_error are
                updated in place)
            force: Skip the cache and re-run the strategy

        Returns:
            Resolved value (or the last cached value if resolution failed)

        Raises:
            VariableError: Resolution failed and nothing is cached
        """
        if not force and not variable.is_expired(self.clock()):
            cached = await self.cache.get(variable.cache_key)
            if cached is not MISSING:
                return cached

        try:
            value = await self.evaluate(variable)
            await self.cache.store_value(variable.cache_key, value, variable.cache_ttl)
            await self._record_success(variable)
            return value
        except Exception as e:
            await self._record_failure(variable, e)

            cached = await self.cache.get(variable.cache_key)
            if cached is not MISSING:
                logger.warning(
                    f"Serving cached value for '{variable.key}' after resolution failure: {e}"
                )
                return cached

            raise

    async def evaluate(self, variable: Variable) -> Any:
        """Run the variable's strategy without touching cache or store.

        Used for dry runs of definitions that are not saved yet.
        """
        strategy = self.strategies.get(variable.type)
        logger.debug(f"Resolving '{variable.key}' with {type(strategy).__name__}")
        return await strategy.resolve(variable, self.context)

    async def forget(self, variable: Variable) -> bool:
        """Drop the cached value of a variable."""
        return await self.cache.forget(variable.cache_key)

    async def _record_success(self, variable: Variable) -> None:
        now = self.clock()
        variable.last_refreshed_at = now
        variable.last_error = None
        if self.store is not None:
            await self.store.record_success(variable.key, now)

    async def _record_failure(self, variable: Variable, error: Exception) -> None:
        message = str(error) or type(error).__name__
        variable.last_error = message
        logger.debug(f"Resolution of '{variable.key}' failed: {message}")
        if self.store is None:
            return
        try:
            await self.store.record_failure(variable.key, message)
        except Exception as store_error:
            logger.error(f"Failed to record error for '{variable.key}': {store_error}")


__all__ = ["VariableResolver"]
