"""Engine configuration loaded from YAML.

Configuration file location priority:
1. Explicit path passed to VariablesConfigLoader
2. VARIABLES_CONFIG environment variable
3. Standard location: ~/.variables/config.yml
4. Built-in defaults (if no config file found)

Example config file:
```yaml
database:
  path: /srv/site/variables.db

query_database:
  path: /srv/site/app.db
  read_only: true

cache:
  backend: sqlite          # memory | sqlite
  path: /srv/site/cache.db
  namespace_ttl: 300

http:
  default_timeout: 30

batch:
  max_concurrency: 8

categories:
  pricing:
    name: Pricing
    color: "#0EA5E9"
    icon: "💶"
    description: Prices and rates
    default_ttl: 600
```

Categories listed in the file are merged over the built-in ones.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field

from .state_config import StateConfig

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "VARIABLES_CONFIG"
CONFIG_FILENAME = "config.yml"

# ===========================================================================
# Configuration Models
# ===========================================================================


class CategoryConfig(BaseModel):
    """Display metadata and suggested TTL for a variable category."""

    name: str
    color: str = "#6B7280"
    icon: str = "📁"
    description: str | None = None
    default_ttl: int | None = Field(
        default=None,
        ge=1,
        description="Suggested cache_ttl for new variables in this category",
    )


DEFAULT_CATEGORIES: dict[str, CategoryConfig] = {
    "site": CategoryConfig(
        name="Website", color="#3B82F6", icon="🌐", description="General website variables"
    ),
    "contact": CategoryConfig(
        name="Contact",
        color="#10B981",
        icon="📞",
        description="Contact information",
        default_ttl=86400,
    ),
    "company": CategoryConfig(
        name="Company", color="#8B5CF6", icon="🏢", description="Company details"
    ),
    "social": CategoryConfig(
        name="Social Media",
        color="#F59E0B",
        icon="📱",
        description="Social media links",
        default_ttl=3600,
    ),
    "api": CategoryConfig(
        name="External API",
        color="#EF4444",
        icon="🔗",
        description="Values from external APIs",
        default_ttl=1800,
    ),
    "system": CategoryConfig(
        name="System", color="#6B7280", icon="⚙️", description="System variables"
    ),
    "custom": CategoryConfig(
        name="Custom",
        color="#84CC16",
        icon="🎨",
        description="Custom variables",
        default_ttl=7200,
    ),
}


class DatabaseConfig(BaseModel):
    """Variable store database."""

    path: str | None = Field(
        default=None,
        description="Database file (default: state directory)",
    )
    timeout: int = Field(default=30, ge=1, le=600)


class QueryDatabaseConfig(DatabaseConfig):
    """Database read by dynamic query variables.

    Always opened on its own connection, never the store's.
    """

    path: str | None = Field(
        default=None,
        description="Database file (default: the store database)",
    )
    read_only: bool = True


class CacheConfig(BaseModel):
    backend: Literal["memory", "sqlite"] = "memory"
    path: str | None = Field(
        default=None,
        description="SQLite cache file (default: state directory)",
    )
    namespace_ttl: int = Field(
        default=300,
        ge=1,
        description="Seconds the resolved namespace aggregate stays cached",
    )


class HttpConfig(BaseModel):
    default_timeout: float = Field(default=30.0, gt=0, le=1800)


class BatchConfig(BaseModel):
    max_concurrency: int = Field(default=8, ge=1, le=256)


class VariablesConfig(BaseModel):
    """Root engine configuration model."""

    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    query_database: QueryDatabaseConfig = Field(default_factory=QueryDatabaseConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    categories: dict[str, CategoryConfig] = Field(
        default_factory=lambda: dict(DEFAULT_CATEGORIES)
    )

    def model_post_init(self, __context: object) -> None:
        # File-defined categories extend the built-in set
        merged = dict(DEFAULT_CATEGORIES)
        merged.update(self.categories)
        self.categories = merged

    def store_path(self) -> str:
        return self.database.path or str(StateConfig.get_db_path())

    def query_database_path(self) -> str:
        return self.query_database.path or self.store_path()

    def cache_path(self) -> str:
        return self.cache.path or str(StateConfig.get_cache_path())


class VariablesConfigLoader:
    """Loader for engine configuration from YAML file.

    Usage:
        ```python
        loader = VariablesConfigLoader()
        config = loader.load_config()
        config.cache.namespace_ttl  # 300
        ```

    Config is loaded once and reused.
    """

    def __init__(self, config_path: str | Path | None = None):
        """
        Args:
            config_path: Explicit path to config file (optional).
                If not provided, uses environment variable or standard location.
        """
        self._config: VariablesConfig | None = None
        self._explicit_path = Path(config_path) if config_path else None

    def get_config_path(self) -> Path | None:
        """Determine config file path using priority order.

        Returns:
            Path to config file, or None if file doesn't exist
        """
        if self._explicit_path:
            if self._explicit_path.exists():
                return self._explicit_path
            logger.warning(f"Explicit config path does not exist: {self._explicit_path}")
            return None

        env_path_str = os.getenv(CONFIG_ENV_VAR)
        if env_path_str:
            env_path = Path(env_path_str).expanduser()
            if env_path.exists():
                return env_path
            logger.warning(f"{CONFIG_ENV_VAR} path does not exist: {env_path}")
            return None

        standard_path = StateConfig.get_home_dir() / CONFIG_FILENAME
        if standard_path.exists():
            return standard_path

        return None

    def load_config(self) -> VariablesConfig:
        """Load and validate configuration from file.

        Returns:
            Validated VariablesConfig (defaults if no config file found)

        Raises:
            ValueError: If config file is invalid or fails validation
        """
        if self._config is not None:
            return self._config

        config_path = self.get_config_path()

        if config_path is None:
            logger.info("No variables config file found. Using built-in defaults.")
            self._config = VariablesConfig()
            return self._config

        logger.info(f"Loading variables config from: {config_path}")

        try:
            with open(config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f)

            if raw_config is None:
                raw_config = {}
            if not isinstance(raw_config, dict):
                raise ValueError("Config file must contain a YAML dictionary")

            config = VariablesConfig(**raw_config)
        except (yaml.YAMLError, ValueError) as e:
            raise ValueError(f"Failed to load variables config from {config_path}: {e}") from e

        logger.info(
            f"Loaded variables config: cache={config.cache.backend}, "
            f"{len(config.categories)} categories"
        )
        self._config = config
        return config


__all__ = [
    "CategoryConfig",
    "DEFAULT_CATEGORIES",
    "DatabaseConfig",
    "QueryDatabaseConfig",
    "CacheConfig",
    "HttpConfig",
    "BatchConfig",
    "VariablesConfig",
    "VariablesConfigLoader",
    "CONFIG_ENV_VAR",
]
