"""Registry of named service handlers for dynamic and computed variables.

Variables never invoke code by name. A dynamic variable with
``{"model": "users", "method": "count"}`` or a computed variable with
``{"class": "pricing", "method": "vat_rate"}`` only reaches a handler that
the host application registered explicitly at startup:

    services = ServiceRegistry()
    services.register("users", "count", count_users)

    @services.handler("pricing", "vat_rate")
    async def vat_rate(country: str) -> float:
        ...

Handlers receive the variable's ``params`` as positional arguments. Async
handlers are awaited; sync handlers run in the default executor so a slow
call does not block the event loop.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import BaseModel, PrivateAttr

from .exceptions import ServiceNotFoundError, StrategyExecutionError

logger = logging.getLogger(__name__)

ServiceHandler = Callable[..., Any]


class ServiceRegistry(BaseModel):
    """
    Registry of service handlers.

    Maps (service, method) pairs to callables.
    """

    model_config = {"arbitrary_types_allowed": True}

    _handlers: dict[tuple[str, str], ServiceHandler] = PrivateAttr(default_factory=dict)

    def register(self, service: str, method: str, handler: ServiceHandler) -> None:
        """Register ``handler`` for ``service.method``."""
        if not callable(handler):
            raise TypeError(f"Handler for {service}.{method} is not callable")
        if (service, method) in self._handlers:
            raise ValueError(f"Service handler already registered: {service}.{method}")
        self._handlers[(service, method)] = handler

    def register_object(self, service: str, obj: Any, methods: Sequence[str]) -> None:
        """Register the listed bound methods of ``obj`` under ``service``.

        Only the methods named here become reachable from variable config.
        """
        for method in methods:
            self.register(service, method, getattr(obj, method))

    def handler(self, service: str, method: str) -> Callable[[ServiceHandler], ServiceHandler]:
        """Decorator form of register()."""

        def decorator(func: ServiceHandler) -> ServiceHandler:
            self.register(service, method, func)
            return func

        return decorator

    def unregister(self, service: str, method: str) -> None:
        self._handlers.pop((service, method), None)

    def has(self, service: str, method: str) -> bool:
        return (service, method) in self._handlers

    def list_handlers(self) -> list[str]:
        """List registered handlers as 'service.method' strings."""
        return sorted(f"{service}.{method}" for service, method in self._handlers)

    def get(self, service: str, method: str) -> ServiceHandler:
        """Get the handler for ``service.method``.

        Raises:
            ServiceNotFoundError: If nothing is registered for the pair
        """
        handler = self._handlers.get((service, method))
        if handler is None:
            raise ServiceNotFoundError(service, method, self.list_handlers())
        return handler

    async def invoke(self, service: str, method: str, params: Sequence[Any] = ()) -> Any:
        """Call the registered handler with positional ``params``.

        Raises:
            ServiceNotFoundError: If nothing is registered for the pair
            StrategyExecutionError: If the handler raises
        """
        handler = self.get(service, method)
        try:
            if inspect.iscoroutinefunction(handler):
                return await handler(*params)

            loop = asyncio.get_running_loop()
            result = await loop.run_in_executor(None, functools.partial(handler, *params))
            if inspect.isawaitable(result):
                return await result
            return result
        except Exception as e:
            logger.debug(f"Service handler {service}.{method} failed: {e}")
            raise StrategyExecutionError(f"{service}.{method} failed: {e}") from e


__all__ = ["ServiceRegistry", "ServiceHandler"]
