"""
tenant-extractor: Multi-tenant, LLM-driven document extraction with layered configuration.
"""

from seeds_clients.core.base_client import BaseClient

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
from tenant_extractor.core.resolver import AnnotatedConfig, ConfigResolver, ResolvedConfig, Source
from tenant_extractor.core.service import BatchOptions, ExtractionService, RetryRequest

# Pipeline
from tenant_extractor.pipeline import (
    BatchScheduler,
    CallbackSink,
    ExtractionGateway,
    ListSink,
    LLMExtractionGateway,
    ProgressEvent,
    ProgressSink,
    ProgressStatus,
    QueueSink,
    RetryingExecutor,
    RetryPolicy,
    TenantRegistry,
)
from tenant_extractor.prompts import PromptBuilder
from tenant_extractor.results import (
    AllTenantsSummary,
    BatchSummary,
    Extraction,
    ExtractionOutcome,
    ResultPage,
    ResultRecord,
    ResultStats,
    ResultStatus,
    RetrySummary,
    TokenUsage,
)
from tenant_extractor.storage import ResultLog, TenantStore

__version__ = "0.1.0"

__all__ = [
    # Service
    "ExtractionService",
    "BatchOptions",
    "RetryRequest",
    "BaseClient",  # For type hints when injecting clients
    # Config
    "GlobalConfig",
    "Tenant",
    "TenantOverride",
    "Section",
    "FieldDefinition",
    "FieldType",
    "TagDefinition",
    "TagOverride",
    "PromptTemplate",
    "OutputConfig",
    "ProcessingConfig",
    # Resolution
    "ConfigResolver",
    "AnnotatedConfig",
    "ResolvedConfig",
    "Source",
    # Exceptions
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
    # Pipeline
    "ExtractionGateway",
    "LLMExtractionGateway",
    "RetryingExecutor",
    "RetryPolicy",
    "BatchScheduler",
    "TenantRegistry",
    "PromptBuilder",
    # Progress
    "ProgressEvent",
    "ProgressSink",
    "ProgressStatus",
    "ListSink",
    "CallbackSink",
    "QueueSink",
    # Storage
    "TenantStore",
    "ResultLog",
    # Results
    "Extraction",
    "ExtractionOutcome",
    "ResultRecord",
    "ResultPage",
    "ResultStats",
    "ResultStatus",
    "TokenUsage",
    "BatchSummary",
    "RetrySummary",
    "AllTenantsSummary",
]
