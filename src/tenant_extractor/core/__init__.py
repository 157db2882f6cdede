"""Core configuration models, merge logic and exceptions."""

from tenant_extractor.core.config import (
    FieldDefinition,
    FieldType,
    GlobalConfig,
    OutputConfig,
    ProcessingConfig,
    PromptTemplate,
    Section,
    TagDefinition,
    TagOverride,
    TagParameter,
    Tenant,
    TenantOverride,
)
from tenant_extractor.core.exceptions import (
    AlreadyRunningError,
    BadRequestError,
    ConfigValidationError,
    FolderMissingError,
    GatewayError,
    NoFailuresError,
    NotFoundError,
    ResultNotFoundError,
    TenantExtractorError,
    TenantNotFoundError,
    TerminalGatewayError,
    TransientGatewayError,
)
from tenant_extractor.core.resolver import (
    AnnotatedConfig,
    ConfigResolver,
    ResolvedConfig,
    Source,
)

__all__ = [
    "FieldDefinition",
    "FieldType",
    "GlobalConfig",
    "OutputConfig",
    "ProcessingConfig",
    "PromptTemplate",
    "Section",
    "TagDefinition",
    "TagOverride",
    "TagParameter",
    "Tenant",
    "TenantOverride",
    "AnnotatedConfig",
    "ConfigResolver",
    "ResolvedConfig",
    "Source",
    "TenantExtractorError",
    "ConfigValidationError",
    "NotFoundError",
    "TenantNotFoundError",
    "ResultNotFoundError",
    "GatewayError",
    "TransientGatewayError",
    "TerminalGatewayError",
    "AlreadyRunningError",
    "FolderMissingError",
    "NoFailuresError",
    "BadRequestError",
]
