"""Result types for extraction outcomes, stored records and batch summaries."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import Field, model_validator

from tenant_extractor.core.config import CamelModel

MAX_RAW_RESPONSE_LENGTH = 5120


class ResultStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class TokenUsage(CamelModel):
    """Token counts reported by the extraction gateway."""

    prompt_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: TokenUsage) -> TokenUsage:
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


class Extraction(CamelModel):
    """Structured data returned by a successful gateway call."""

    fields: dict[str, Any] = Field(default_factory=dict)
    tags: dict[str, bool] = Field(default_factory=dict)
    summary: str | None = None
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    raw_response: str | None = None


class ExtractionOutcome(CamelModel):
    """Outcome of processing one document, possibly after several attempts."""

    original_filename: str
    success: bool
    extraction: Extraction | None = None
    output_filename: str | None = None
    dry_run: bool = False
    error: str | None = None
    retryable: bool = False
    raw_response: str | None = None
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    attempts: int = 1
    duration: float = Field(default=0.0, description="Wall-clock seconds across all attempts")

    @model_validator(mode="after")
    def _validate_extraction_presence(self) -> ExtractionOutcome:
        """Ensure extraction data is present when processing succeeds."""
        if self.success and self.extraction is None:
            raise ValueError("extraction must be provided when success is True")
        if self.raw_response and len(self.raw_response) > MAX_RAW_RESPONSE_LENGTH:
            self.raw_response = self.raw_response[:MAX_RAW_RESPONSE_LENGTH]
        return self


class ResultRecord(CamelModel):
    """One persisted processing attempt in a tenant's result log."""

    id: str
    original_filename: str
    output_filename: str | None = None
    status: ResultStatus
    model: str | None = None
    extracted_fields: dict[str, Any] = Field(default_factory=dict)
    tags: dict[str, bool] = Field(default_factory=dict)
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    timestamp: str
    error: str | None = None
    raw_response: str | None = None
    duration: float | None = None
    retried_from: str | None = None


class ResultPage(CamelModel):
    """A filtered, paginated slice of a result log."""

    records: list[ResultRecord]
    total: int
    has_more: bool


class ResultStats(CamelModel):
    """Aggregate statistics over a tenant's whole result log."""

    total: int = 0
    success: int = 0
    failed: int = 0
    success_rate: int = 0
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    first_processed: str | None = None
    last_processed: str | None = None


class BatchSummary(CamelModel):
    """Counters produced once per batch run."""

    tenant_id: str | None = None
    total: int = 0
    success: int = 0
    failed: int = 0
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
    results: list[ExtractionOutcome] = Field(default_factory=list)

    def record(self, outcome: ExtractionOutcome) -> None:
        """Fold one outcome into the counters."""
        self.results.append(outcome)
        if outcome.success:
            self.success += 1
        else:
            self.failed += 1
        self.token_usage = self.token_usage + outcome.token_usage


class RetrySummary(BatchSummary):
    """Summary of a retry run, with the rewritten records."""

    records: list[ResultRecord] = Field(default_factory=list)


class TenantRunResult(CamelModel):
    """Per-tenant entry of an all-tenants run."""

    name: str
    summary: BatchSummary | None = None
    error: str | None = None
    skipped: bool = False


class AllTenantsSummary(CamelModel):
    """Grand totals of a sequential all-tenants run."""

    tenants: dict[str, TenantRunResult] = Field(default_factory=dict)
    total_tenants: int = 0
    total_files: int = 0
    total_success: int = 0
    total_failed: int = 0
    token_usage: TokenUsage = Field(default_factory=TokenUsage)
