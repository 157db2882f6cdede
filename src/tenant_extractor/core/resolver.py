"""Merge the global ruleset with tenant overrides and track provenance.

Merge policies differ per section:

- fields: a tenant list wholly replaces the global list.
- tags: the global list is the base; ``enabled`` and each parameter value are
  overridden individually, everything else keeps the global value.
- prompt, output, model: whole-value replace.
"""

from __future__ import annotations

from enum import Enum

from pydantic import Field

from tenant_extractor.core.config import (
    CamelModel,
    FieldDefinition,
    GlobalConfig,
    OutputConfig,
    ProcessingConfig,
    PromptTemplate,
    Section,
    TagDefinition,
    TagOverride,
    TagParameter,
    TenantOverride,
)


class Source(str, Enum):
    """Where a resolved value came from."""

    GLOBAL = "global"
    OVERRIDE = "override"


class AnnotatedField(FieldDefinition):
    source: Source = Source.GLOBAL


class AnnotatedTagParameter(TagParameter):
    source: Source = Source.GLOBAL


class AnnotatedTag(TagDefinition):
    """A resolved tag; ``source`` describes the ``enabled`` flag only."""

    source: Source = Source.GLOBAL
    parameters: dict[str, AnnotatedTagParameter] = Field(default_factory=dict)

    @property
    def has_override(self) -> bool:
        return self.source is Source.OVERRIDE or any(
            p.source is Source.OVERRIDE for p in self.parameters.values()
        )


class AnnotatedPrompt(PromptTemplate):
    source: Source = Source.GLOBAL


class AnnotatedOutput(OutputConfig):
    source: Source = Source.GLOBAL


class AnnotatedModel(CamelModel):
    value: str
    source: Source = Source.GLOBAL


class ResolvedConfig(CamelModel):
    """Effective configuration for one tenant at one instant. Never persisted."""

    fields: list[FieldDefinition]
    tags: list[TagDefinition]
    prompt: PromptTemplate
    output: OutputConfig
    model: str
    processing: ProcessingConfig

    @property
    def enabled_fields(self) -> list[FieldDefinition]:
        return [f for f in self.fields if f.enabled]

    @property
    def enabled_tags(self) -> list[TagDefinition]:
        return [t for t in self.tags if t.enabled]


class AnnotatedConfig(CamelModel):
    """ResolvedConfig with every leaf tagged by its source."""

    fields: list[AnnotatedField]
    tags: list[AnnotatedTag]
    prompt: AnnotatedPrompt
    output: AnnotatedOutput
    model: AnnotatedModel
    processing: ProcessingConfig

    def sources(self, section: Section | str) -> set[Source]:
        """All provenance labels present in one section."""
        match Section(section):
            case Section.FIELDS:
                return {f.source for f in self.fields}
            case Section.TAGS:
                found = {t.source for t in self.tags}
                for tag in self.tags:
                    found.update(p.source for p in tag.parameters.values())
                return found
            case Section.PROMPT:
                return {self.prompt.source}
            case Section.OUTPUT:
                return {self.output.source}
            case Section.MODEL:
                return {self.model.source}

    def to_resolved(self) -> ResolvedConfig:
        """Strip annotations."""
        return ResolvedConfig(
            fields=[FieldDefinition(**f.model_dump(exclude={"source"})) for f in self.fields],
            tags=[
                TagDefinition(
                    id=t.id,
                    label=t.label,
                    instruction=t.instruction,
                    enabled=t.enabled,
                    parameters={
                        name: TagParameter(label=p.label, default=p.default)
                        for name, p in t.parameters.items()
                    },
                )
                for t in self.tags
            ],
            prompt=PromptTemplate(**self.prompt.model_dump(exclude={"source"})),
            output=OutputConfig(**self.output.model_dump(exclude={"source"})),
            model=self.model.value,
            processing=self.processing,
        )


def _merge_tag(tag: TagDefinition, override: TagOverride | None) -> AnnotatedTag:
    enabled = tag.enabled
    source = Source.GLOBAL
    if override is not None and override.enabled is not None:
        enabled = override.enabled
        source = Source.OVERRIDE

    values = (override.parameters if override is not None else None) or {}
    parameters: dict[str, AnnotatedTagParameter] = {}
    for name, param in tag.parameters.items():
        if name in values:
            parameters[name] = AnnotatedTagParameter(
                label=param.label, default=values[name], source=Source.OVERRIDE
            )
        else:
            parameters[name] = AnnotatedTagParameter(
                label=param.label, default=param.default, source=Source.GLOBAL
            )

    return AnnotatedTag(
        id=tag.id,
        label=tag.label,
        instruction=tag.instruction,
        enabled=enabled,
        source=source,
        parameters=parameters,
    )


class ConfigResolver:
    """Pure merge of a global configuration with one tenant's overrides."""

    def resolve_annotated(
        self,
        global_config: GlobalConfig,
        override: TenantOverride | None = None,
    ) -> AnnotatedConfig:
        override = override or TenantOverride()

        field_source = Source.GLOBAL if override.fields is None else Source.OVERRIDE
        field_list = global_config.field_definitions if override.fields is None else override.fields
        fields = [AnnotatedField(**f.model_dump(), source=field_source) for f in field_list]

        tag_overrides = override.tags or {}
        tags = [_merge_tag(tag, tag_overrides.get(tag.id)) for tag in global_config.tag_definitions]

        if override.prompt is None:
            prompt = AnnotatedPrompt(**global_config.prompt_template.model_dump())
        else:
            prompt = AnnotatedPrompt(**override.prompt.model_dump(), source=Source.OVERRIDE)

        if override.output is None:
            output = AnnotatedOutput(**global_config.output.model_dump())
        else:
            output = AnnotatedOutput(**override.output.model_dump(), source=Source.OVERRIDE)

        if override.model is None:
            model = AnnotatedModel(value=global_config.model)
        else:
            model = AnnotatedModel(value=override.model, source=Source.OVERRIDE)

        return AnnotatedConfig(
            fields=fields,
            tags=tags,
            prompt=prompt,
            output=output,
            model=model,
            processing=global_config.processing,
        )

    def resolve(
        self,
        global_config: GlobalConfig,
        override: TenantOverride | None = None,
    ) -> ResolvedConfig:
        return self.resolve_annotated(global_config, override).to_resolved()
