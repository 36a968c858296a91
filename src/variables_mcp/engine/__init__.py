"""Variable resolution and caching engine.

Key Components:

- Variable / VariableInput: Pydantic v2 record and upsert payload
- ResolutionStrategy: One stateless strategy per VariableType
  (static, dynamic, external, computed), held in a StrategyRegistry
- ServiceRegistry: Explicitly registered handlers for dynamic/computed
  service calls
- CacheLayer: Generic TTL cache over MemoryCache or SqliteCache, with the
  MISSING sentinel for misses
- VariableResolver: Cache-first resolution with write-through and graceful
  degradation to the last cached value
- BatchCoordinator: Concurrent batch resolution with per-item isolation
- VariableStore / SqliteVariableStore: Keyed persistence with logical delete
- VariableService: Facade used by the MCP tools
- VariablesConfigLoader: YAML configuration
- load_seed_file / seed_from_paths: YAML seed definitions
"""

from .batch import BatchCoordinator
from .cache import MISSING, CacheBackend, CacheLayer, MemoryCache, SqliteCache
from .config import CategoryConfig, VariablesConfig, VariablesConfigLoader
from .exceptions import (
    InvalidKeyFormatError,
    MissingConfigError,
    RemoteRequestError,
    ServiceNotFoundError,
    StrategyExecutionError,
    UnsupportedMethodError,
    VariableError,
    VariableNotFoundError,
)
from .load_result import LoadResult
from .loader import load_seed_file, load_seed_yaml, seed_from_paths, seed_store
from .models import (
    RefreshStrategy,
    Variable,
    VariableInput,
    VariableType,
    validate_key,
)
from .resolver import VariableResolver
from .service import VariableService
from .services import ServiceRegistry
from .state_config import StateConfig
from .store import SqliteVariableStore, VariableStore
from .strategies import (
    ResolutionStrategy,
    StrategyContext,
    StrategyRegistry,
    create_default_strategies,
)
from .transform import apply_transform

__all__ = [
    # Models
    "Variable",
    "VariableInput",
    "VariableType",
    "RefreshStrategy",
    "validate_key",
    # Exceptions
    "VariableError",
    "InvalidKeyFormatError",
    "VariableNotFoundError",
    "MissingConfigError",
    "UnsupportedMethodError",
    "RemoteRequestError",
    "StrategyExecutionError",
    "ServiceNotFoundError",
    # Resolution
    "ResolutionStrategy",
    "StrategyContext",
    "StrategyRegistry",
    "create_default_strategies",
    "ServiceRegistry",
    "VariableResolver",
    "BatchCoordinator",
    "apply_transform",
    # Cache
    "MISSING",
    "CacheBackend",
    "CacheLayer",
    "MemoryCache",
    "SqliteCache",
    # Persistence
    "VariableStore",
    "SqliteVariableStore",
    # Service and configuration
    "VariableService",
    "VariablesConfig",
    "VariablesConfigLoader",
    "CategoryConfig",
    "StateConfig",
    # Seeds
    "LoadResult",
    "load_seed_file",
    "load_seed_yaml",
    "seed_store",
    "seed_from_paths",
]
