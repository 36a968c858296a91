"""Tests for YAML seed loading."""

from pathlib import Path

import pytest

from variables_mcp.engine import SqliteVariableStore, VariableType, load_seed_file, load_seed_yaml
from variables_mcp.engine.loader import discover_seed_files, seed_from_paths, seed_store

SEED_YAML = """
variables:
  - key: site.company_name
    value: Page Builder Pro
    category: company

  - key: site.hours
    value:
      mon: "9-17"
      sat: closed

  - key: stats.total_users
    type: dynamic
    category: system
    cache_ttl: 300
    config:
      query: SELECT COUNT(*) as count FROM users
      transform: count
"""


class TestLoadSeedYaml:
    def test_valid_definitions(self) -> None:
        result = load_seed_yaml(SEED_YAML)
        assert result.is_success

        definitions = result.unwrap()
        assert [d.key for d in definitions] == [
            "site.company_name",
            "site.hours",
            "stats.total_users",
        ]
        assert definitions[1].value == {"mon": "9-17", "sat": "closed"}
        assert definitions[2].type == VariableType.DYNAMIC
        assert definitions[2].cache_ttl == 300

    def test_bare_list_is_accepted(self) -> None:
        result = load_seed_yaml("- key: a\n  value: 1\n")
        assert result.is_success
        assert result.unwrap()[0].value == 1

    def test_empty_document(self) -> None:
        result = load_seed_yaml("")
        assert result.is_success
        assert result.value == []

    def test_invalid_yaml(self) -> None:
        result = load_seed_yaml("variables: [unclosed", source="broken.yml")
        assert result.is_failure
        assert "Invalid YAML syntax in broken.yml" in (result.error or "")

    def test_invalid_key_is_reported(self) -> None:
        result = load_seed_yaml("variables:\n  - key: bad-key\n    value: x\n")
        assert result.is_failure
        assert "entry 0" in (result.error or "")
        assert "bad-key" in (result.error or "")

    def test_invalid_field_is_reported(self) -> None:
        result = load_seed_yaml("variables:\n  - key: a\n    type: magic\n")
        assert result.is_failure
        assert "entry 0 (a)" in (result.error or "")

    def test_non_list_variables(self) -> None:
        result = load_seed_yaml("variables: {key: a}\n")
        assert result.is_failure


class TestSeedFiles:
    def test_missing_file(self, tmp_path: Path) -> None:
        result = load_seed_file(tmp_path / "missing.yml")
        assert result.is_failure
        assert "not found" in (result.error or "")

    def test_discover_sorted_yaml_files(self, tmp_path: Path) -> None:
        (tmp_path / "b.yml").write_text("[]")
        (tmp_path / "a.yaml").write_text("[]")
        (tmp_path / "notes.txt").write_text("x")
        assert [p.name for p in discover_seed_files(tmp_path)] == ["a.yaml", "b.yml"]

    @pytest.mark.asyncio
    async def test_seed_store_skips_existing(self, store: SqliteVariableStore) -> None:
        definitions = load_seed_yaml(SEED_YAML).unwrap()
        assert await seed_store(store, definitions) == 3

        variable = await store.get("site.company_name")
        assert variable is not None
        assert variable.created_by == "seed"

        assert await seed_store(store, definitions) == 0
        assert await seed_store(store, definitions, overwrite=True) == 3

    @pytest.mark.asyncio
    async def test_seed_from_paths(self, store: SqliteVariableStore, tmp_path: Path) -> None:
        seeds = tmp_path / "seeds"
        seeds.mkdir()
        (seeds / "site.yml").write_text(SEED_YAML)
        (seeds / "broken.yml").write_text("variables: [unclosed")
        extra = tmp_path / "extra.yaml"
        extra.write_text("variables:\n  - key: contact.email\n    value: hi@example.com\n")

        assert await seed_from_paths(store, [seeds, extra]) == 4
        assert await store.get("contact.email") is not None
