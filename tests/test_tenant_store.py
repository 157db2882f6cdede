"""Tests for file-backed configuration persistence."""

import json
from pathlib import Path

import pytest

from tenant_extractor.core.config import (
    FieldDefinition,
    GlobalConfig,
    PromptTemplate,
    Section,
    TagOverride,
    Tenant,
)
from tenant_extractor.core.exceptions import ConfigValidationError, TenantNotFoundError
from tenant_extractor.storage.tenant_store import TenantStore


class TestGlobalConfigPersistence:
    """Tests for loading and saving the global configuration."""

    def test_load_json(self, store: TenantStore) -> None:
        """Test the JSON config is loaded and cached."""
        first = store.load_global()

        assert first.model == "gpt-4.1"
        assert store.load_global() is first

    def test_load_prefers_yaml(self, tmp_path: Path, global_config: GlobalConfig) -> None:
        """Test a YAML config file is picked up."""
        (tmp_path / "config.yaml").write_text(global_config.to_yaml(), encoding="utf-8")

        assert TenantStore(tmp_path).load_global() == global_config

    def test_missing_config(self, tmp_path: Path) -> None:
        """Test a missing config file is a validation error."""
        with pytest.raises(ConfigValidationError):
            TenantStore(tmp_path).load_global()

    def test_save_refreshes_cache_and_disk(self, store: TenantStore) -> None:
        """Test saving replaces both the cached and stored config."""
        updated = store.load_global().with_section("model", "gpt-4.1-mini")

        store.save_global(updated)

        assert store.load_global().model == "gpt-4.1-mini"
        assert TenantStore(store.root).load_global().model == "gpt-4.1-mini"

    def test_invalidate(self, store: TenantStore) -> None:
        """Test invalidation forces a reload from disk."""
        before = store.load_global()
        store.invalidate()

        assert store.load_global() is not before


class TestTenants:
    """Tests for tenant records."""

    def test_get_and_list(self, store: TenantStore) -> None:
        """Test reading tenants back."""
        store.create_tenant(Tenant(id="beta", name="Beta", folder_path="/srv/beta", enabled=False))

        assert store.get_tenant("acme").name == "Acme Corp"
        assert [t.id for t in store.list_tenants()] == ["acme", "beta"]
        assert [t.id for t in store.list_tenants(enabled_only=True)] == ["acme"]

    def test_stored_with_camel_case(self, store: TenantStore) -> None:
        """Test the tenant file uses the camelCase layout."""
        data = json.loads((store.tenants_dir / "acme" / "tenant.json").read_text(encoding="utf-8"))

        assert data["folderPath"].endswith("acme")
        assert data["enabled"] is True

    def test_create_duplicate(self, store: TenantStore) -> None:
        """Test creating an existing tenant fails."""
        with pytest.raises(ConfigValidationError):
            store.create_tenant(Tenant(id="acme", name="Again", folder_path="/srv"))

    def test_unknown_tenant(self, store: TenantStore) -> None:
        """Test lookups of unknown tenants."""
        with pytest.raises(TenantNotFoundError):
            store.get_tenant("nobody")
        with pytest.raises(TenantNotFoundError):
            store.update_tenant(Tenant(id="nobody", name="X", folder_path="/srv"))
        with pytest.raises(TenantNotFoundError):
            store.load_override("nobody")

    def test_delete_removes_overrides(self, store: TenantStore) -> None:
        """Test deleting a tenant removes its override sections too."""
        store.save_override_section("acme", Section.MODEL, "gpt-4.1-mini")

        store.delete_tenant("acme")

        assert not store.exists("acme")
        assert not (store.tenants_dir / "acme").exists()


class TestOverrideSections:
    """Tests for independently stored override sections."""

    def test_empty_override(self, store: TenantStore) -> None:
        """Test a tenant without overrides."""
        override = store.load_override("acme")

        assert not any(override.has(section) for section in Section)

    def test_each_section_is_stored_separately(self, store: TenantStore) -> None:
        """Test sections round-trip through their own files."""
        field = FieldDefinition(key="ref", label="Ref", schema_hint="string", instruction="x")
        store.save_override_section("acme", Section.FIELDS, [field])
        store.save_override_section("acme", "tags", {"private": TagOverride(enabled=False)})
        store.save_override_section("acme", Section.PROMPT, PromptTemplate(suffix="JSON"))
        store.save_override_section("acme", Section.MODEL, "gpt-4.1-mini")

        override = store.load_override("acme")

        assert override.fields == [field]
        assert override.tags == {"private": TagOverride(enabled=False)}
        assert override.prompt == PromptTemplate(suffix="JSON")
        assert override.model == "gpt-4.1-mini"
        assert override.output is None
        overrides_dir = store.tenants_dir / "acme" / "overrides"
        assert sorted(p.name for p in overrides_dir.iterdir()) == [
            "fields.json",
            "model.json",
            "prompt.json",
            "tags.json",
        ]

    def test_delete_section_is_idempotent(self, store: TenantStore) -> None:
        """Test deleting a section twice."""
        store.save_override_section("acme", Section.MODEL, "gpt-4.1-mini")

        assert store.delete_override_section("acme", Section.MODEL) is True
        assert store.delete_override_section("acme", Section.MODEL) is False
        assert store.load_override("acme").model is None

    def test_delete_section_unknown_tenant(self, store: TenantStore) -> None:
        """Test resetting a section of an unknown tenant."""
        with pytest.raises(TenantNotFoundError):
            store.delete_override_section("nobody", Section.MODEL)

    def test_corrupt_override_is_reported(self, store: TenantStore) -> None:
        """Test invalid stored overrides raise a validation error."""
        path = store.tenants_dir / "acme" / "overrides" / "tags.json"
        path.parent.mkdir(parents=True)
        path.write_text(json.dumps({"private": {"enabled": "sometimes"}}), encoding="utf-8")

        with pytest.raises(ConfigValidationError):
            store.load_override("acme")
