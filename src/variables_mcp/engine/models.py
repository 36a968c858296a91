"""Variable record and typed strategy configs.

A Variable is the unit of configuration. Its ``type`` selects the resolution
strategy and its ``config`` carries the strategy parameters, which each
strategy validates into one of the typed config models below.

Example:
    variable = Variable(
        key="stats.total_users",
        type=VariableType.DYNAMIC,
        cache_ttl=300,
        config={"query": "SELECT COUNT(*) as count FROM users", "transform": "count"},
    )
    variable.cache_key        # "variable:stats.total_users"
    variable.is_expired()     # True (never refreshed)
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from . import codec
from .exceptions import InvalidKeyFormatError

KEY_SEGMENT_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
CACHE_KEY_PREFIX = "variable:"


class VariableType(str, Enum):
    """Resolution strategy selector."""

    STATIC = "static"
    DYNAMIC = "dynamic"
    EXTERNAL = "external"
    COMPUTED = "computed"


class RefreshStrategy(str, Enum):
    """Declarative refresh hint.

    Stored and validated only. Nothing in the engine schedules on it.
    """

    MANUAL = "manual"
    SCHEDULED = "scheduled"
    EVENT_DRIVEN = "event_driven"
    REAL_TIME = "real_time"


def validate_key(key: str) -> bool:
    """Return True if every dot-separated segment of ``key`` is an identifier."""
    if not key or len(key) > 255:
        return False
    return all(KEY_SEGMENT_PATTERN.match(segment) for segment in key.split("."))


def ensure_valid_key(key: str) -> str:
    """Return ``key`` unchanged or raise InvalidKeyFormatError."""
    if not validate_key(key):
        raise InvalidKeyFormatError(key)
    return key


def cache_key_for(key: str) -> str:
    """Cache key for a variable key."""
    return f"{CACHE_KEY_PREFIX}{key}"


def utcnow() -> datetime:
    return datetime.now(UTC)


class Variable(BaseModel):
    """Stored variable record.

    ``value`` is the raw stored representation (see codec). Use
    ``decoded_value`` for the Python value.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: int | None = None
    key: str = Field(description="Unique dot-segmented identifier, e.g. site.company_name")
    value: str | None = Field(default=None, description="Raw stored value (JSON for composites)")
    type: VariableType = Field(default=VariableType.STATIC)
    category: str = Field(default="custom", max_length=50)
    description: str | None = None
    cache_ttl: int | None = Field(
        default=None,
        ge=1,
        description="Staleness window in seconds (None = cached forever)",
    )
    refresh_strategy: RefreshStrategy = Field(default=RefreshStrategy.MANUAL)
    config: dict[str, Any] | None = None
    is_active: bool = True
    last_refreshed_at: datetime | None = None
    last_error: str | None = None
    created_by: str | None = None
    updated_by: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("value", mode="before")
    @classmethod
    def encode_value(cls, v: Any) -> Any:
        """Store composites as JSON text, scalars as their string form."""
        encoded = codec.encode(v)
        if encoded is None or isinstance(encoded, str):
            return encoded
        if isinstance(encoded, bool):
            return "true" if encoded else "false"
        return str(encoded)

    @field_validator("last_refreshed_at", "created_at", "updated_at")
    @classmethod
    def ensure_aware(cls, v: datetime | None) -> datetime | None:
        """Treat naive timestamps as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=UTC)
        return v

    @property
    def cache_key(self) -> str:
        return cache_key_for(self.key)

    @property
    def decoded_value(self) -> Any:
        return codec.decode(self.value)

    def is_expired(self, now: datetime | None = None) -> bool:
        """Whether the cached value is stale.

        A variable without ``cache_ttl`` never expires; one that was never
        refreshed always is.
        """
        if self.cache_ttl is None:
            return False
        if self.last_refreshed_at is None:
            return True
        now = now or utcnow()
        return now > self.last_refreshed_at + timedelta(seconds=self.cache_ttl)


class VariableInput(BaseModel):
    """Create/update payload for a variable (upsert by key)."""

    key: str
    value: Any = None
    type: VariableType = VariableType.STATIC
    category: str = Field(default="custom", max_length=50)
    description: str | None = None
    cache_ttl: int | None = Field(default=None, ge=1)
    refresh_strategy: RefreshStrategy = RefreshStrategy.MANUAL
    config: dict[str, Any] | None = None
    is_active: bool = True


# ============================================================================
# Typed strategy configs
# ============================================================================


class StrategyConfig(BaseModel):
    """Base for strategy configs. Unknown keys are kept, not rejected."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class StaticConfig(StrategyConfig):
    """Static variables need no config."""

    pass


class DynamicQueryConfig(StrategyConfig):
    """Read-only SQL query against the query database."""

    query: str
    params: list[Any] | dict[str, Any] = Field(default_factory=list)
    transform: str | None = None


class DynamicServiceConfig(StrategyConfig):
    """Registered service call (``model`` names the service)."""

    model: str
    method: str
    params: list[Any] = Field(default_factory=list)
    transform: str | None = None


class BearerAuth(StrategyConfig):
    type: str = "bearer"
    token: str = ""


class ExternalConfig(StrategyConfig):
    """HTTP API call."""

    url: str
    method: str = "GET"
    timeout: float = Field(default=30, gt=0, le=1800)
    headers: dict[str, str] = Field(default_factory=dict)
    auth: BearerAuth | None = None
    params: dict[str, Any] = Field(default_factory=dict)
    data: dict[str, Any] | list[Any] = Field(default_factory=dict)
    transform: str | None = None


class ComputedConfig(StrategyConfig):
    """Registered service call (``class`` names the service)."""

    service: str = Field(alias="class")
    method: str
    params: list[Any] = Field(default_factory=list)


__all__ = [
    "VariableType",
    "RefreshStrategy",
    "Variable",
    "VariableInput",
    "StrategyConfig",
    "StaticConfig",
    "DynamicQueryConfig",
    "DynamicServiceConfig",
    "BearerAuth",
    "ExternalConfig",
    "ComputedConfig",
    "validate_key",
    "ensure_valid_key",
    "cache_key_for",
    "utcnow",
    "CACHE_KEY_PREFIX",
]
