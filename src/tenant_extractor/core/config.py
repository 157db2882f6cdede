"""Configuration models for global rules, tenants and tenant overrides."""

from __future__ import annotations

import json
import re
from enum import Enum
from pathlib import Path
from typing import Annotated, Any

import yaml
from pydantic import (
    AfterValidator,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from tenant_extractor.core.exceptions import ConfigValidationError

DEFAULT_MODEL = "gpt-4.1"

TAG_ID_PATTERN = re.compile(r"^[a-z0-9]+$")
TENANT_ID_PATTERN = re.compile(r"^[a-z0-9-]+$")


class CamelModel(BaseModel):
    """Base model persisted with camelCase keys, populated by either name."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_dict(self) -> dict[str, Any]:
        """Dump to the on-disk (camelCase) representation."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Section(str, Enum):
    """Independently overridable configuration sections."""

    FIELDS = "fields"
    TAGS = "tags"
    PROMPT = "prompt"
    OUTPUT = "output"
    MODEL = "model"


class FieldType(str, Enum):
    """Closed set of extractable field types.

    Each member knows its fallback value and how to coerce a raw model value.
    """

    TEXT = "text"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ARRAY = "array"

    @property
    def default(self) -> Any:
        """Value used when the model omits the field."""
        match self:
            case FieldType.NUMBER:
                return 0
            case FieldType.BOOLEAN:
                return False
            case FieldType.ARRAY:
                return []
            case _:
                return "Unknown"

    def coerce(self, value: Any) -> Any:
        """Normalize a raw extracted value to this type."""
        if value is None:
            return self.default
        match self:
            case FieldType.NUMBER:
                if isinstance(value, bool):
                    return int(value)
                if isinstance(value, (int, float)):
                    return value
                cleaned = re.sub(r"[^0-9.\-]", "", str(value).replace(",", ""))
                try:
                    number = float(cleaned)
                except ValueError:
                    return self.default
                return int(number) if number.is_integer() else number
            case FieldType.BOOLEAN:
                if isinstance(value, str):
                    return value.strip().lower() in {"true", "yes", "1"}
                return bool(value)
            case FieldType.ARRAY:
                if isinstance(value, list):
                    return value
                return [value]
            case _:
                text = str(value).strip()
                return text or self.default


class FieldDefinition(CamelModel):
    """A single field the model is asked to extract."""

    key: str = Field(min_length=1, description="Unique key in the extraction output")
    label: str = Field(min_length=1, description="Human-readable label")
    type: FieldType = Field(default=FieldType.TEXT, description="Value type")
    schema_hint: str = Field(min_length=1, description="Shape shown in the JSON example")
    instruction: str = Field(min_length=1, description="Extraction instruction")
    enabled: bool = Field(default=True, strict=True)


class TagParameter(CamelModel):
    """A named, substitutable parameter of a tag instruction."""

    label: str | None = None
    default: str = ""


class TagDefinition(CamelModel):
    """A boolean classification the model applies to each document."""

    id: str = Field(description="Lowercase alphanumeric identifier")
    label: str = Field(min_length=1)
    instruction: str = Field(min_length=1, description="May contain {{param}} placeholders")
    enabled: bool = Field(default=True, strict=True)
    parameters: dict[str, TagParameter] = Field(default_factory=dict)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not TAG_ID_PATTERN.match(v):
            raise ValueError(f'tag id "{v}" must be lowercase alphanumeric')
        return v


class TagOverride(CamelModel):
    """Sparse per-tenant adjustment of one global tag."""

    enabled: bool | None = Field(default=None, strict=True)
    parameters: dict[str, str] | None = None


class PromptTemplate(CamelModel):
    """Framing text around the generated field and tag rules."""

    preamble: str | None = None
    general_rules: str | None = None
    suffix: str | None = None


class OutputConfig(CamelModel):
    """Output naming settings; consumed by external filename templating."""

    filename_template: str = Field(min_length=1)
    include_summary: bool = False


class ProcessingConfig(CamelModel):
    """Batch execution settings (global only)."""

    concurrency: int = Field(default=3, ge=1)
    retry_attempts: int = Field(default=2, ge=0)
    retry_delay_ms: int = Field(default=1000, ge=0, description="Base backoff delay")
    retry_max_delay_ms: int = Field(default=30000, ge=0, description="Backoff cap")
    timeout_seconds: float = Field(default=120.0, gt=0)


def _check_unique_keys(fields: list[FieldDefinition]) -> list[FieldDefinition]:
    if not fields:
        raise ValueError("fieldDefinitions must be a non-empty array")
    seen: set[str] = set()
    for field in fields:
        if field.key in seen:
            raise ValueError(f'duplicate field key "{field.key}"')
        seen.add(field.key)
    return fields


def _check_unique_tags(tags: list[TagDefinition]) -> list[TagDefinition]:
    seen: set[str] = set()
    for tag in tags:
        if tag.id in seen:
            raise ValueError(f'duplicate tag id "{tag.id}"')
        seen.add(tag.id)
    return tags


def _check_tag_overrides(overrides: dict[str, TagOverride]) -> dict[str, TagOverride]:
    if not overrides:
        raise ValueError("tag overrides must be a non-empty object")
    for tag_id in overrides:
        if not TAG_ID_PATTERN.match(tag_id):
            raise ValueError(f'tag id "{tag_id}" must be lowercase alphanumeric')
    return overrides


def _check_prompt(prompt: PromptTemplate) -> PromptTemplate:
    if not any((prompt.preamble, prompt.general_rules, prompt.suffix)):
        raise ValueError("prompt must set at least one of preamble, generalRules, suffix")
    return prompt


def _check_model(model: str) -> str:
    if not model.strip():
        raise ValueError("model must be a non-empty string")
    return model.strip()


FieldList = Annotated[list[FieldDefinition], AfterValidator(_check_unique_keys)]
TagList = Annotated[list[TagDefinition], AfterValidator(_check_unique_tags)]
TagOverrideMap = Annotated[dict[str, TagOverride], AfterValidator(_check_tag_overrides)]
PromptSection = Annotated[PromptTemplate, AfterValidator(_check_prompt)]
ModelName = Annotated[str, AfterValidator(_check_model)]

# Global sections and override sections share rules except for tags, where the
# override is a sparse map rather than a list of definitions.
_GLOBAL_ADAPTERS: dict[Section, TypeAdapter[Any]] = {
    Section.FIELDS: TypeAdapter(FieldList),
    Section.TAGS: TypeAdapter(TagList),
    Section.PROMPT: TypeAdapter(PromptSection),
    Section.OUTPUT: TypeAdapter(OutputConfig),
    Section.MODEL: TypeAdapter(ModelName),
}
_OVERRIDE_ADAPTERS: dict[Section, TypeAdapter[Any]] = {
    **_GLOBAL_ADAPTERS,
    Section.TAGS: TypeAdapter(TagOverrideMap),
}


def _format_errors(error: ValidationError) -> list[str]:
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"])
        messages.append(f"{location}: {item['msg']}" if location else item["msg"])
    return messages


def _validate(adapter: TypeAdapter[Any], section: Section, payload: Any) -> Any:
    try:
        return adapter.validate_python(payload)
    except ValidationError as e:
        errors = _format_errors(e)
        raise ConfigValidationError(
            f"Invalid {section.value} section: {'; '.join(errors)}", errors=errors
        ) from e


def _read_source(source: str | Path) -> str:
    """Return file contents for a path, or the string itself for inline content."""
    if isinstance(source, Path):
        return source.read_text(encoding="utf-8")
    if "\n" not in source and len(source) < 256 and Path(source).is_file():
        return Path(source).read_text(encoding="utf-8")
    return source


def parse_section(section: Section | str, payload: Any) -> Any:
    """Validate a payload for a global configuration section."""
    section = Section(section)
    return _validate(_GLOBAL_ADAPTERS[section], section, payload)


def parse_override_section(section: Section | str, payload: Any) -> Any:
    """Validate a payload for a tenant override section."""
    try:
        section = Section(section)
    except ValueError as e:
        valid = ", ".join(s.value for s in Section)
        raise ConfigValidationError(f'Unknown section "{section}" (expected one of: {valid})') from e
    return _validate(_OVERRIDE_ADAPTERS[section], section, payload)


class GlobalConfig(CamelModel):
    """The single global ruleset every tenant inherits from.

    Loadable from JSON or YAML, mirroring the on-disk ``config.json`` layout:

        ```yaml
        model: gpt-4.1
        fieldDefinitions:
          - key: amount
            label: Amount
            type: number
            schemaHint: number
            instruction: use the grand total
        output:
          filenameTemplate: "{supplierName} - {invoiceDate}"
        ```
    """

    field_definitions: FieldList
    tag_definitions: TagList = Field(default_factory=list)
    prompt_template: PromptTemplate = Field(default_factory=PromptTemplate)
    output: OutputConfig
    model: str = DEFAULT_MODEL
    processing: ProcessingConfig = Field(default_factory=ProcessingConfig)

    def section(self, section: Section) -> Any:
        """Return the value of one overridable section."""
        match section:
            case Section.FIELDS:
                return self.field_definitions
            case Section.TAGS:
                return self.tag_definitions
            case Section.PROMPT:
                return self.prompt_template
            case Section.OUTPUT:
                return self.output
            case Section.MODEL:
                return self.model

    def with_section(self, section: Section | str, payload: Any) -> GlobalConfig:
        """Return a copy with one section wholly replaced by a validated payload."""
        section = Section(section)
        value = parse_section(section, payload)
        attribute = {
            Section.FIELDS: "field_definitions",
            Section.TAGS: "tag_definitions",
            Section.PROMPT: "prompt_template",
            Section.OUTPUT: "output",
            Section.MODEL: "model",
        }[section]
        return self.model_copy(update={attribute: value})

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GlobalConfig:
        """Create a config from a dictionary, raising ConfigValidationError on bad input."""
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            errors = _format_errors(e)
            raise ConfigValidationError(
                f"Invalid global configuration: {'; '.join(errors)}", errors=errors
            ) from e

    @classmethod
    def from_json(cls, source: str | Path) -> GlobalConfig:
        """Load config from a JSON file or string."""
        return cls.from_dict(json.loads(_read_source(source)))

    @classmethod
    def from_yaml(cls, source: str | Path) -> GlobalConfig:
        """Load config from a YAML file or string."""
        return cls.from_dict(yaml.safe_load(_read_source(source)) or {})

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)

    def to_yaml(self) -> str:
        dumped: str = yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)
        return dumped


class Tenant(CamelModel):
    """An isolated customer scope with its own document folder."""

    id: str
    name: str = Field(min_length=1)
    enabled: bool = Field(default=True, strict=True)
    folder_path: str = Field(min_length=1)
    api_key_env_var: str | None = None

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not TENANT_ID_PATTERN.match(v):
            raise ValueError("Client ID must be lowercase alphanumeric with hyphens only")
        return v


class TenantOverride(CamelModel):
    """The override sections currently stored for one tenant."""

    fields: list[FieldDefinition] | None = None
    tags: dict[str, TagOverride] | None = None
    prompt: PromptTemplate | None = None
    output: OutputConfig | None = None
    model: str | None = None

    @model_validator(mode="after")
    def _drop_empty_tags(self) -> TenantOverride:
        if self.tags is not None and not self.tags:
            self.tags = None
        return self

    def get(self, section: Section) -> Any:
        return getattr(self, Section(section).value)

    def has(self, section: Section) -> bool:
        return self.get(section) is not None
