"""Resolution strategies, one per variable type.

Strategies are stateless: a single instance serves every variable of its
type. Each one validates the variable's config into a typed model, computes
the value, and raises a VariableError subclass on failure. Strategies never
read or write the cache; that is the resolver's job.

    static    -> stored value, decoded
    dynamic   -> read-only SQL query, or registered service call
    external  -> HTTP GET/POST returning JSON
    computed  -> registered service call (falls back to the stored value)
"""

from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

import httpx
from pydantic import BaseModel, PrivateAttr, ValidationError

from .exceptions import (
    MissingConfigError,
    RemoteRequestError,
    StrategyExecutionError,
    UnsupportedMethodError,
)
from .models import (
    ComputedConfig,
    DynamicQueryConfig,
    DynamicServiceConfig,
    ExternalConfig,
    StrategyConfig,
    Variable,
    VariableType,
)
from .services import ServiceRegistry
from .sql import DatabaseBackend, SqlError
from .transform import apply_transform

logger = logging.getLogger(__name__)

SUPPORTED_HTTP_METHODS = ("GET", "POST")
ENV_VAR_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass
class StrategyContext:
    """Collaborators available to strategies.

    Attributes:
        services: Registry of service handlers (dynamic/computed)
        database: Backend for dynamic queries (None disables query variables)
        http_timeout: Default timeout for external calls when config omits it
        http_transport: Optional httpx transport (proxies, mounts, tests)
    """

    services: ServiceRegistry = field(default_factory=ServiceRegistry)
    database: DatabaseBackend | None = None
    http_timeout: float = 30.0
    http_transport: httpx.AsyncBaseTransport | None = None


def parse_config[C: StrategyConfig](
    config_type: type[C], variable: Variable, required: list[str]
) -> C:
    """Validate the variable config into ``config_type``.

    Raises:
        MissingConfigError: If a required field is absent
        StrategyExecutionError: If present fields have invalid values
    """
    try:
        return config_type.model_validate(variable.config or {})
    except ValidationError as e:
        missing = [
            str(err["loc"][0]) for err in e.errors() if err["type"] == "missing" and err["loc"]
        ]
        if missing:
            raise MissingConfigError(variable.type.value, required) from e
        raise StrategyExecutionError(
            f"Invalid {variable.type.value} config for '{variable.key}': {e}"
        ) from e


def substitute_env_vars(text: str) -> str:
    """Substitute ${ENV_VAR} references from the environment.

    Unknown variables become empty strings.

    Examples:
        >>> os.environ['API_KEY'] = 'secret123'
        >>> substitute_env_vars('Bearer ${API_KEY}')
        'Bearer secret123'
    """
    return ENV_VAR_PATTERN.sub(lambda match: os.environ.get(match.group(1), ""), text)


class ResolutionStrategy(ABC):
    """Base class for variable resolution strategies.

    Subclasses must:
    1. Set variable_type
    2. Implement resolve()

    Example:
        class StaticStrategy(ResolutionStrategy):
            variable_type = VariableType.STATIC

            async def resolve(self, variable, context):
                return variable.decoded_value
    """

    variable_type: ClassVar[VariableType]

    @abstractmethod
    async def resolve(self, variable: Variable, context: StrategyContext) -> Any:
        """Compute the variable's value.

        Returns:
            The resolved value

        Raises:
            VariableError: Any subclass indicates resolution failure
        """
        pass


class StaticStrategy(ResolutionStrategy):
    """Returns the stored value."""

    variable_type: ClassVar[VariableType] = VariableType.STATIC

    async def resolve(self, variable: Variable, context: StrategyContext) -> Any:
        return variable.decoded_value


class DynamicStrategy(ResolutionStrategy):
    """Database query or registered service call.

    Config shapes:
        {"query": "SELECT ...", "params": [...], "transform": "count"}
        {"model": "users", "method": "count", "params": [...]}

    A query returning exactly one row yields that row as a dict, otherwise
    the list of rows.
    """

    variable_type: ClassVar[VariableType] = VariableType.DYNAMIC

    async def resolve(self, variable: Variable, context: StrategyContext) -> Any:
        config = variable.config or {}

        if config.get("query"):
            query_config = parse_config(DynamicQueryConfig, variable, ["query"])
            result = await self._run_query(query_config, context)
            transform = query_config.transform
        elif config.get("model") and config.get("method"):
            service_config = parse_config(DynamicServiceConfig, variable, ["model", "method"])
            result = await context.services.invoke(
                service_config.model, service_config.method, service_config.params
            )
            transform = service_config.transform
        else:
            raise MissingConfigError(variable.type.value, ["query", "model+method"])

        if transform:
            return apply_transform(result, transform)
        return result

    async def _run_query(self, config: DynamicQueryConfig, context: StrategyContext) -> Any:
        if context.database is None:
            raise StrategyExecutionError("No query database configured for dynamic variables")

        try:
            result = await context.database.query(config.query, config.params or None)
        except SqlError as e:
            raise StrategyExecutionError(f"Query failed: {e}") from e

        if len(result.rows) == 1:
            return result.rows[0]
        return result.rows


class ExternalStrategy(ResolutionStrategy):
    """HTTP API call returning JSON.

    Config:
        url (required), method (GET|POST), timeout, headers,
        auth {type: bearer, token}, params (GET), data (POST), transform

    ${ENV_VAR} references in url, header values and token are substituted
    from the environment so secrets stay out of stored config.
    """

    variable_type: ClassVar[VariableType] = VariableType.EXTERNAL

    async def resolve(self, variable: Variable, context: StrategyContext) -> Any:
        raw_config = variable.config or {}
        if not raw_config.get("url"):
            raise MissingConfigError(variable.type.value, ["url"])

        config = parse_config(ExternalConfig, variable, ["url"])
        method = config.method
        if method not in SUPPORTED_HTTP_METHODS:
            raise UnsupportedMethodError(config.method)

        timeout = config.timeout if "timeout" in raw_config else context.http_timeout
        url = substitute_env_vars(config.url)
        headers = {key: substitute_env_vars(value) for key, value in config.headers.items()}
        if config.auth is not None and config.auth.type.lower() == "bearer":
            headers["Authorization"] = f"Bearer {substitute_env_vars(config.auth.token)}"

        async with httpx.AsyncClient(timeout=timeout, transport=context.http_transport) as client:
            try:
                if method == "GET":
                    response = await client.get(url, params=config.params, headers=headers)
                else:
                    response = await client.post(url, json=config.data, headers=headers)
            except httpx.TimeoutException as e:
                raise RemoteRequestError(None, url, f"timeout after {timeout}s") from e
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                raise RemoteRequestError(None, url, str(e)) from e

        if not response.is_success:
            raise RemoteRequestError(response.status_code, url)

        try:
            data = response.json()
        except ValueError as e:
            raise StrategyExecutionError(f"Response from {url} is not valid JSON") from e

        if config.transform:
            return apply_transform(data, config.transform)
        return data


class ComputedStrategy(ResolutionStrategy):
    """Registered service call: {"class": "pricing", "method": "vat_rate", "params": [...]}.

    Without both class and method the stored value is returned.
    """

    variable_type: ClassVar[VariableType] = VariableType.COMPUTED

    async def resolve(self, variable: Variable, context: StrategyContext) -> Any:
        config = variable.config or {}
        if not (config.get("class") and config.get("method")):
            return variable.decoded_value

        computed = parse_config(ComputedConfig, variable, ["class", "method"])
        return await context.services.invoke(computed.service, computed.method, computed.params)


class StrategyRegistry(BaseModel):
    """
    Registry of resolution strategies.

    Maps variable types to strategy instances.
    """

    model_config = {"arbitrary_types_allowed": True}

    _strategies: dict[VariableType, ResolutionStrategy] = PrivateAttr(default_factory=dict)

    def register(self, strategy: ResolutionStrategy) -> None:
        """Register strategy using strategy.variable_type as key."""
        if strategy.variable_type in self._strategies:
            raise ValueError(f"Strategy already registered: {strategy.variable_type.value}")
        self._strategies[strategy.variable_type] = strategy

    def get(self, variable_type: VariableType) -> ResolutionStrategy:
        """Get strategy by variable type."""
        if variable_type not in self._strategies:
            available = [t.value for t in self._strategies]
            raise ValueError(f"No strategy for type: {variable_type.value}. Available: {available}")
        return self._strategies[variable_type]

    def has(self, variable_type: VariableType) -> bool:
        return variable_type in self._strategies

    def list_types(self) -> list[VariableType]:
        return list(self._strategies)

    def ensure_complete(self) -> None:
        """Raise if any VariableType has no registered strategy."""
        missing = [t.value for t in VariableType if t not in self._strategies]
        if missing:
            raise ValueError(f"Missing strategies for variable types: {missing}")


def create_default_strategies() -> StrategyRegistry:
    """Create a StrategyRegistry covering every variable type.

    Example:
        strategies = create_default_strategies()
        resolver = VariableResolver(strategies=strategies, cache=CacheLayer())
    """
    registry = StrategyRegistry()
    registry.register(StaticStrategy())
    registry.register(DynamicStrategy())
    registry.register(ExternalStrategy())
    registry.register(ComputedStrategy())
    registry.ensure_complete()
    return registry


__all__ = [
    "StrategyContext",
    "ResolutionStrategy",
    "StaticStrategy",
    "DynamicStrategy",
    "ExternalStrategy",
    "ComputedStrategy",
    "StrategyRegistry",
    "create_default_strategies",
    "parse_config",
    "substitute_env_vars",
]
