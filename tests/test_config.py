"""Tests for configuration models and section validation."""

from typing import Any

import pytest
from pydantic import ValidationError

from tenant_extractor.core.config import (
    FieldDefinition,
    FieldType,
    GlobalConfig,
    PromptTemplate,
    Section,
    TagDefinition,
    TagOverride,
    Tenant,
    TenantOverride,
    parse_override_section,
    parse_section,
)
from tenant_extractor.core.exceptions import ConfigValidationError


class TestFieldType:
    """Tests for per-type defaults and coercion."""

    def test_defaults(self) -> None:
        """Test each type's fallback value."""
        assert FieldType.TEXT.default == "Unknown"
        assert FieldType.DATE.default == "Unknown"
        assert FieldType.NUMBER.default == 0
        assert FieldType.BOOLEAN.default is False
        assert FieldType.ARRAY.default == []

    def test_number_coercion(self) -> None:
        """Test numbers are parsed from formatted strings."""
        assert FieldType.NUMBER.coerce("1,234.50") == 1234.5
        assert FieldType.NUMBER.coerce("12 EUR") == 12
        assert FieldType.NUMBER.coerce(7.25) == 7.25
        assert FieldType.NUMBER.coerce("n/a") == 0

    def test_boolean_coercion(self) -> None:
        """Test textual booleans."""
        assert FieldType.BOOLEAN.coerce("Yes") is True
        assert FieldType.BOOLEAN.coerce("no") is False
        assert FieldType.BOOLEAN.coerce(1) is True

    def test_array_and_text_coercion(self) -> None:
        """Test scalars are wrapped and blank text falls back."""
        assert FieldType.ARRAY.coerce("single") == ["single"]
        assert FieldType.ARRAY.coerce(["a", "b"]) == ["a", "b"]
        assert FieldType.TEXT.coerce("  ") == "Unknown"
        assert FieldType.TEXT.coerce(None) == "Unknown"
        assert FieldType.TEXT.coerce(" Acme ") == "Acme"


class TestDefinitions:
    """Tests for field and tag definition models."""

    def test_field_accepts_camel_case(self) -> None:
        """Test fields load from the on-disk camelCase form."""
        field = FieldDefinition.model_validate(
            {"key": "total", "label": "Total", "schemaHint": "number", "instruction": "sum"}
        )

        assert field.schema_hint == "number"
        assert field.type is FieldType.TEXT
        assert field.enabled is True
        assert field.to_dict()["schemaHint"] == "number"

    def test_field_enabled_must_be_boolean(self) -> None:
        """Test a non-boolean enabled flag is rejected."""
        with pytest.raises(ValidationError):
            FieldDefinition(
                key="total", label="Total", schema_hint="number", instruction="sum", enabled="yes"
            )

    def test_unknown_field_type_rejected(self) -> None:
        """Test the type set is closed."""
        with pytest.raises(ValidationError):
            FieldDefinition(
                key="total", label="Total", type="currency", schema_hint="n", instruction="sum"
            )

    def test_tag_id_must_be_lowercase_alphanumeric(self) -> None:
        """Test tag id validation."""
        with pytest.raises(ValidationError):
            TagDefinition(id="Private-1", label="Private", instruction="x")

        assert TagDefinition(id="private1", label="Private", instruction="x").id == "private1"

    def test_tag_override_enabled_is_strict(self) -> None:
        """Test tag overrides reject non-boolean enabled values."""
        with pytest.raises(ValidationError):
            TagOverride(enabled="false")


class TestSectionParsing:
    """Tests for global and override section validation."""

    def test_fields_must_be_non_empty(self) -> None:
        """Test an empty field list is rejected."""
        with pytest.raises(ConfigValidationError):
            parse_section(Section.FIELDS, [])

    def test_duplicate_field_keys_rejected(self) -> None:
        """Test field keys must be unique."""
        field = {"key": "a", "label": "A", "schemaHint": "string", "instruction": "x"}

        with pytest.raises(ConfigValidationError) as excinfo:
            parse_section("fields", [field, field])

        assert "duplicate field key" in str(excinfo.value)
        assert excinfo.value.errors

    def test_duplicate_tag_ids_rejected(self) -> None:
        """Test tag ids must be unique."""
        tag = {"id": "a", "label": "A", "instruction": "x"}

        with pytest.raises(ConfigValidationError):
            parse_section(Section.TAGS, [tag, tag])

    def test_unknown_override_section(self) -> None:
        """Test an unknown section name is a validation error."""
        with pytest.raises(ConfigValidationError):
            parse_override_section("colors", {})

    def test_prompt_override_needs_one_part(self) -> None:
        """Test an empty prompt override is rejected."""
        with pytest.raises(ConfigValidationError):
            parse_override_section(Section.PROMPT, {})

        prompt = parse_override_section(Section.PROMPT, {"suffix": "Reply in JSON."})
        assert isinstance(prompt, PromptTemplate)
        assert prompt.suffix == "Reply in JSON."

    def test_tag_override_map(self) -> None:
        """Test tag overrides are a sparse, non-empty map."""
        with pytest.raises(ConfigValidationError):
            parse_override_section(Section.TAGS, {})
        with pytest.raises(ConfigValidationError):
            parse_override_section(Section.TAGS, {"Bad": {"enabled": True}})

        parsed = parse_override_section(Section.TAGS, {"private": {"parameters": {"owner": "Jo"}}})
        assert parsed["private"].enabled is None
        assert parsed["private"].parameters == {"owner": "Jo"}

    def test_model_override_is_trimmed(self) -> None:
        """Test model names are trimmed and must not be blank."""
        assert parse_override_section(Section.MODEL, " gpt-4.1-mini ") == "gpt-4.1-mini"

        with pytest.raises(ConfigValidationError):
            parse_override_section(Section.MODEL, "   ")

    def test_output_requires_template(self) -> None:
        """Test the output section needs a filename template."""
        with pytest.raises(ConfigValidationError):
            parse_override_section(Section.OUTPUT, {"includeSummary": True})


class TestGlobalConfig:
    """Tests for GlobalConfig loading and section replacement."""

    def test_from_dict(self, global_config_data: dict[str, Any]) -> None:
        """Test loading from a dictionary."""
        config = GlobalConfig.from_dict(global_config_data)

        assert [f.key for f in config.field_definitions] == ["supplierName", "amount", "paid"]
        assert config.processing.concurrency == 2
        assert config.prompt_template.preamble == "Read this invoice."

    def test_from_dict_wraps_validation_errors(self) -> None:
        """Test invalid input raises ConfigValidationError."""
        with pytest.raises(ConfigValidationError):
            GlobalConfig.from_dict({"fieldDefinitions": []})

    def test_from_yaml_string(self) -> None:
        """Test loading from an inline YAML document."""
        config = GlobalConfig.from_yaml(
            """
model: gpt-4.1-mini
fieldDefinitions:
  - key: amount
    label: Amount
    type: number
    schemaHint: number
    instruction: use the grand total
output:
  filenameTemplate: "{amount}"
"""
        )

        assert config.model == "gpt-4.1-mini"
        assert config.field_definitions[0].type is FieldType.NUMBER
        assert config.tag_definitions == []
        assert config.processing.retry_attempts == 2

    def test_yaml_round_trip_through_file(self, global_config: GlobalConfig, tmp_path: Any) -> None:
        """Test YAML dump can be loaded back from a file path."""
        path = tmp_path / "config.yaml"
        path.write_text(global_config.to_yaml(), encoding="utf-8")

        assert GlobalConfig.from_yaml(path) == global_config

    def test_with_section_replaces_whole_section(self, global_config: GlobalConfig) -> None:
        """Test a section write replaces only that section."""
        updated = global_config.with_section("model", "gpt-4.1-nano")

        assert updated.model == "gpt-4.1-nano"
        assert updated.field_definitions == global_config.field_definitions
        assert global_config.model == "gpt-4.1"

    def test_with_section_validates(self, global_config: GlobalConfig) -> None:
        """Test invalid section payloads are rejected."""
        with pytest.raises(ConfigValidationError):
            global_config.with_section(Section.FIELDS, [{"key": "x"}])


class TestTenantModels:
    """Tests for tenant records and stored overrides."""

    def test_tenant_id_pattern(self) -> None:
        """Test tenant ids allow lowercase, digits and hyphens only."""
        assert Tenant(id="acme-2", name="Acme", folder_path="/tmp").id == "acme-2"

        with pytest.raises(ValidationError):
            Tenant(id="Acme Corp", name="Acme", folder_path="/tmp")

    def test_override_empty_tags_become_absent(self) -> None:
        """Test an empty tag map counts as no override."""
        override = TenantOverride(tags={})

        assert override.tags is None
        assert not override.has(Section.TAGS)

    def test_override_get(self) -> None:
        """Test section lookup on stored overrides."""
        override = TenantOverride(model="gpt-4.1-mini")

        assert override.get(Section.MODEL) == "gpt-4.1-mini"
        assert override.has(Section.MODEL)
        assert not override.has(Section.FIELDS)
