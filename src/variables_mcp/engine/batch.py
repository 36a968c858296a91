"""Batch resolution with per-item failure isolation.

Every operation resolves its variables independently and concurrently
(bounded by a semaphore). A failing variable never aborts the batch:

    resolve_multiple   -> failed keys map to None
    resolve_all_active -> failed keys are left out of the namespace
    refresh_expired    -> failures are logged; the return value counts
                          attempts, not successes
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from .models import Variable
from .resolver import VariableResolver
from .store import VariableStore

logger = logging.getLogger(__name__)


class _Failed:
    """Marker for a failed item inside a gathered batch."""

    __slots__ = ("error",)

    def __init__(self, error: BaseException) -> None:
        self.error = error


class BatchCoordinator:
    """Runs the resolver over sets of stored variables.

    Example:
        batch = BatchCoordinator(store, resolver, max_concurrency=8)
        namespace = await batch.resolve_all_active()
        refreshed = await batch.refresh_expired()
    """

    def __init__(
        self,
        store: VariableStore,
        resolver: VariableResolver,
        max_concurrency: int = 8,
    ) -> None:
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.store = store
        self.resolver = resolver
        self.max_concurrency = max_concurrency

    async def resolve_multiple(
        self, keys: Sequence[str], force: bool = False
    ) -> dict[str, Any | None]:
        """Resolve the active variables among ``keys``.

        Unknown or inactive keys are absent from the result; keys whose
        resolution failed map to None.
        """
        variables = await self.store.list_active(keys=list(keys))
        outcomes = await self._resolve_each(variables, force=force)

        return {
            variable.key: None if isinstance(outcome, _Failed) else outcome
            for variable, outcome in zip(variables, outcomes, strict=True)
        }

    async def resolve_all_active(self) -> dict[str, Any]:
        """Resolve every active variable into a flat key -> value namespace.

        Failed variables are omitted.
        """
        variables = await self.store.list_active()
        outcomes = await self._resolve_each(variables, force=False)

        namespace: dict[str, Any] = {}
        failed: list[str] = []
        for variable, outcome in zip(variables, outcomes, strict=True):
            if isinstance(outcome, _Failed):
                failed.append(variable.key)
                continue
            namespace[variable.key] = outcome

        if failed:
            logger.warning(f"Some variables failed to resolve: {', '.join(failed)}")
        return namespace

    async def refresh_expired(self) -> int:
        """Force-resolve every active variable whose TTL has lapsed.

        Returns:
            Number of variables attempted
        """
        expired = await self.store.list_needing_refresh(self.resolver.clock())
        if not expired:
            return 0

        outcomes = await self._resolve_each(expired, force=True)
        failures = sum(1 for outcome in outcomes if isinstance(outcome, _Failed))
        logger.info(f"Refreshed {len(expired) - failures}/{len(expired)} expired variables")
        return len(expired)

    async def _resolve_each(self, variables: Sequence[Variable], force: bool) -> list[Any]:
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def resolve_one(variable: Variable) -> Any:
            async with semaphore:
                try:
                    return await self.resolver.resolve(variable, force=force)
                except Exception as e:
                    logger.warning(f"Failed to resolve variable '{variable.key}': {e}")
                    return _Failed(e)

        return list(await asyncio.gather(*(resolve_one(v) for v in variables)))


__all__ = ["BatchCoordinator"]
