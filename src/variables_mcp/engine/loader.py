"""
YAML seed loader for variable definitions.

A seed file lists variable definitions under a top-level ``variables`` key
(a bare list is accepted too):

```yaml
variables:
  - key: site.company_name
    value: Acme Corp
    category: company

  - key: stats.total_users
    type: dynamic
    category: system
    cache_ttl: 300
    config:
      query: SELECT COUNT(*) AS count FROM users
      transform: count
```

Seeding never overwrites a variable that already exists unless asked to.
"""

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from .exceptions import InvalidKeyFormatError
from .load_result import LoadResult
from .models import VariableInput, validate_key
from .store import VariableStore

logger = logging.getLogger(__name__)

SEED_USER = "seed"


def load_seed_file(file_path: str | Path) -> LoadResult[list[VariableInput]]:
    """
    Load and validate variable definitions from a YAML file.

    Args:
        file_path: Path to YAML seed file

    Returns:
        LoadResult.success(list[VariableInput]) if every definition is valid
        LoadResult.failure(error_message) otherwise
    """
    path = Path(file_path)

    if not path.exists():
        return LoadResult.failure(f"Seed file not found: {file_path}")

    if not path.is_file():
        return LoadResult.failure(f"Path is not a file: {file_path}")

    try:
        with open(path, encoding="utf-8") as f:
            yaml_content = f.read()
    except OSError as e:
        return LoadResult.failure(f"Failed to read file '{file_path}': {e}")

    return load_seed_yaml(yaml_content, source=str(file_path))


def load_seed_yaml(
    yaml_content: str, source: str = "<string>"
) -> LoadResult[list[VariableInput]]:
    """
    Load and validate variable definitions from a YAML string.

    Example:
        result = load_seed_yaml('''
        variables:
          - key: site.name
            value: Acme
        ''')
        result.unwrap()[0].key  # "site.name"
    """
    try:
        data = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        return LoadResult.failure(f"Invalid YAML syntax in {source}: {e}")

    if isinstance(data, dict):
        entries = data.get("variables")
    else:
        entries = data

    if entries is None:
        return LoadResult.success([])
    if not isinstance(entries, list):
        return LoadResult.failure(
            f"Seed {source} must contain a list of variables, got {type(entries).__name__}"
        )

    definitions: list[VariableInput] = []
    errors: list[str] = []
    for index, entry in enumerate(entries):
        error = _validate_entry(entry)
        if error:
            errors.append(f"entry {index}: {error}")
            continue
        try:
            definitions.append(VariableInput.model_validate(entry))
        except ValidationError as e:
            errors.append(f"entry {index} ({entry.get('key')}): {e}")

    if errors:
        return LoadResult.failure(f"Seed validation failed in {source}:\n" + "\n".join(errors))

    return LoadResult.success(definitions, source=source)


def _validate_entry(entry: Any) -> str | None:
    if not isinstance(entry, dict):
        return f"expected a mapping, got {type(entry).__name__}"
    key = entry.get("key")
    if not isinstance(key, str):
        return "missing key"
    if not validate_key(key):
        return str(InvalidKeyFormatError(key))
    return None


def discover_seed_files(directory: str | Path) -> list[Path]:
    """List *.yaml and *.yml files in ``directory`` in name order."""
    dir_path = Path(directory)
    if not dir_path.is_dir():
        return []
    return sorted(list(dir_path.glob("*.yaml")) + list(dir_path.glob("*.yml")))


async def seed_store(
    store: VariableStore,
    definitions: list[VariableInput],
    overwrite: bool = False,
    user: str | None = SEED_USER,
) -> int:
    """Upsert seed definitions into the store.

    Args:
        store: Target store
        definitions: Validated definitions
        overwrite: Replace variables that already exist
        user: Audit reference recorded as created_by/updated_by

    Returns:
        Number of variables written
    """
    written = 0
    for definition in definitions:
        if not overwrite and await store.get(definition.key) is not None:
            logger.debug(f"Seed skipped existing variable '{definition.key}'")
            continue
        await store.upsert(definition, user=user)
        written += 1
    return written


async def seed_from_paths(
    store: VariableStore, paths: list[str | Path], overwrite: bool = False
) -> int:
    """Seed the store from files and directories.

    Files that fail to load are skipped with a warning.

    Returns:
        Number of variables written
    """
    files: list[Path] = []
    for raw_path in paths:
        path = Path(raw_path).expanduser()
        if path.is_dir():
            files.extend(discover_seed_files(path))
        else:
            files.append(path)

    written = 0
    for file in files:
        result = load_seed_file(file)
        if not result.is_success:
            logger.warning(f"Skipping seed file: {result.error}")
            continue
        count = await seed_store(store, result.unwrap(), overwrite=overwrite)
        logger.info(f"Seeded {count} variable(s) from {file}")
        written += count
    return written


__all__ = [
    "load_seed_file",
    "load_seed_yaml",
    "discover_seed_files",
    "seed_store",
    "seed_from_paths",
]
