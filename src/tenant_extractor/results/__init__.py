"""Result types for extraction outputs."""

from tenant_extractor.results.types import (
    MAX_RAW_RESPONSE_LENGTH,
    AllTenantsSummary,
    BatchSummary,
    Extraction,
    ExtractionOutcome,
    ResultPage,
    ResultRecord,
    ResultStats,
    ResultStatus,
    RetrySummary,
    TenantRunResult,
    TokenUsage,
)

__all__ = [
    "MAX_RAW_RESPONSE_LENGTH",
    "AllTenantsSummary",
    "BatchSummary",
    "Extraction",
    "ExtractionOutcome",
    "ResultPage",
    "ResultRecord",
    "ResultStats",
    "ResultStatus",
    "RetrySummary",
    "TenantRunResult",
    "TokenUsage",
]
