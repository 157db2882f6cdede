"""Service facade exposing configuration, batch and result operations.

Transport adapters (HTTP, CLI, scripts) call these methods and forward the
progress events to their own observers.
"""

from __future__ import annotations

import fnmatch
import logging
import os
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from pydantic import ValidationError, field_validator

from tenant_extractor.core.config import (
    CamelModel,
    GlobalConfig,
    Section,
    Tenant,
    parse_override_section,
)
from tenant_extractor.core.exceptions import (
    BadRequestError,
    ConfigValidationError,
    FolderMissingError,
    NoFailuresError,
    ResultNotFoundError,
    TenantExtractorError,
)
from tenant_extractor.core.resolver import AnnotatedConfig, ConfigResolver, ResolvedConfig
from tenant_extractor.pipeline.executor import RetryingExecutor, WorkItem
from tenant_extractor.pipeline.gateway import ExtractionGateway, LLMExtractionGateway
from tenant_extractor.pipeline.progress import GuardedSink, ProgressSink, ProgressStatus
from tenant_extractor.pipeline.scheduler import (
    BatchJob,
    BatchScheduler,
    DocumentFinalizer,
    TenantRegistry,
)
from tenant_extractor.results.types import (
    AllTenantsSummary,
    BatchSummary,
    ResultPage,
    ResultRecord,
    ResultStats,
    ResultStatus,
    RetrySummary,
)
from tenant_extractor.storage.result_log import DEFAULT_PAGE_SIZE, RESULTS_FILENAME, ResultLog
from tenant_extractor.storage.tenant_store import TenantStore

logger = logging.getLogger(__name__)

DOCUMENT_SUFFIX = ".pdf"


class BatchOptions(CamelModel):
    """Options for a single-tenant batch run.

    ``file_filter`` holds filenames or glob patterns; a document is processed
    when it matches any of them.
    """

    dry_run: bool = False
    file_filter: list[str] | None = None

    @field_validator("file_filter", mode="before")
    @classmethod
    def _wrap_single(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [v]
        return v


class RetryRequest(CamelModel):
    """Which stored failures to re-process: explicit ids or every failure."""

    result_ids: list[str] | None = None
    all: bool = False


def _section(section: Section | str) -> Section:
    try:
        return Section(section)
    except ValueError as e:
        valid = ", ".join(s.value for s in Section)
        raise ConfigValidationError(f"Invalid section: {section}. Must be one of: {valid}") from e


def _validated(model: type[CamelModel], data: Any, what: str) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        errors = [f"{'.'.join(str(p) for p in err['loc']) or what}: {err['msg']}" for err in e.errors()]
        raise ConfigValidationError(f"Invalid {what}: {'; '.join(errors)}", errors=errors) from e


class ExtractionService:
    """Entry point tying the store, resolver and batch pipeline together.

    Example:
        ```python
        service = ExtractionService(TenantStore("data"))
        service.put_override("acme", "model", "gpt-4.1-mini")
        summary = service.run_batch("acme", BatchOptions(dry_run=True))
        print(summary.success, summary.failed)
        ```
    """

    def __init__(
        self,
        store: TenantStore,
        gateway: ExtractionGateway | None = None,
        result_log: ResultLog | None = None,
        resolver: ConfigResolver | None = None,
        registry: TenantRegistry | None = None,
        finalizer: DocumentFinalizer | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the service.

        Args:
            store: Persistence for the global config, tenants and overrides.
            gateway: Extraction boundary. Defaults to an LLM-backed gateway.
            result_log: Per-tenant result log. Defaults to a log stored in
                each tenant's document folder.
            resolver: Config merge strategy.
            registry: In-flight batch registry, shareable between services.
            finalizer: Post-processing hook for successful, non-dry-run items.
            sleep: Backoff sleep, injectable for tests.
        """
        self.store = store
        self.gateway = gateway or LLMExtractionGateway()
        self.result_log = result_log or ResultLog(self._results_path)
        self.resolver = resolver or ConfigResolver()
        self.scheduler = BatchScheduler(
            RetryingExecutor(self.gateway, sleep=sleep),
            self.result_log,
            registry=registry,
            finalizer=finalizer,
        )

    def _results_path(self, tenant_id: str) -> Path:
        return Path(self.store.get_tenant(tenant_id).folder_path) / RESULTS_FILENAME

    # =========================================================================
    # Configuration
    # =========================================================================

    def get_resolved_config(self, tenant_id: str) -> AnnotatedConfig:
        """Effective configuration for a tenant with per-value provenance."""
        self.store.get_tenant(tenant_id)
        return self.resolver.resolve_annotated(
            self.store.load_global(), self.store.load_override(tenant_id)
        )

    def resolve(self, tenant_id: str) -> ResolvedConfig:
        return self.get_resolved_config(tenant_id).to_resolved()

    def put_override(self, tenant_id: str, section: Section | str, payload: Any) -> AnnotatedConfig:
        """Validate and store one override section, replacing any previous one.

        Raises:
            ConfigValidationError: If the section name or payload is invalid.
            TenantNotFoundError: If the tenant does not exist.
        """
        section = _section(section)
        self.store.get_tenant(tenant_id)
        value = parse_override_section(section, payload)
        self.store.save_override_section(tenant_id, section, value)
        return self.get_resolved_config(tenant_id)

    def delete_override(self, tenant_id: str, section: Section | str) -> AnnotatedConfig:
        """Reset a section to the global value. Idempotent."""
        section = _section(section)
        if not self.store.delete_override_section(tenant_id, section):
            logger.debug("No %s override stored for client %s", section.value, tenant_id)
        return self.get_resolved_config(tenant_id)

    def put_global_section(self, section: Section | str, payload: Any) -> GlobalConfig:
        """Replace one section of the global configuration."""
        section = _section(section)
        config = self.store.load_global().with_section(section, payload)
        self.store.save_global(config)
        return config

    # =========================================================================
    # Tenants
    # =========================================================================

    def list_tenants(self, enabled_only: bool = False) -> list[Tenant]:
        return self.store.list_tenants(enabled_only=enabled_only)

    def get_tenant(self, tenant_id: str) -> Tenant:
        return self.store.get_tenant(tenant_id)

    def create_tenant(self, payload: Tenant | dict[str, Any]) -> Tenant:
        tenant = payload if isinstance(payload, Tenant) else _validated(Tenant, payload, "client")
        return self.store.create_tenant(tenant)

    def update_tenant(self, tenant_id: str, changes: dict[str, Any]) -> Tenant:
        """Apply a partial update. The tenant id cannot change."""
        current = self.store.get_tenant(tenant_id)
        names = {info.alias or name: name for name, info in Tenant.model_fields.items()}
        data = current.model_dump()
        data.update({names.get(key, key): value for key, value in changes.items()})
        data["id"] = tenant_id
        return self.store.update_tenant(_validated(Tenant, data, "client"))

    def delete_tenant(self, tenant_id: str) -> None:
        self.store.delete_tenant(tenant_id)

    # =========================================================================
    # Batches
    # =========================================================================

    def _folder(self, tenant: Tenant) -> Path:
        folder = Path(tenant.folder_path)
        if not folder.is_dir():
            raise FolderMissingError(tenant.folder_path)
        return folder

    def _api_key(self, tenant: Tenant) -> str | None:
        if not tenant.api_key_env_var:
            return None
        key = os.getenv(tenant.api_key_env_var)
        if not key:
            logger.warning(
                "Environment variable %s for client %s is not set", tenant.api_key_env_var, tenant.id
            )
        return key

    def worklist(self, tenant_id: str, file_filter: list[str] | None = None) -> list[WorkItem]:
        """Documents waiting in a tenant's folder, sorted by name.

        Filter entries select files by exact name first; an entry naming no
        file is used as a glob pattern.
        """
        folder = self._folder(self.store.get_tenant(tenant_id))
        paths = [
            path
            for path in sorted(folder.iterdir())
            if path.is_file() and path.suffix.lower() == DOCUMENT_SUFFIX
        ]
        if file_filter:
            names = {path.name for path in paths}
            exact = set(file_filter) & names
            patterns = [entry for entry in file_filter if entry not in names]
            paths = [
                path
                for path in paths
                if path.name in exact
                or any(fnmatch.fnmatch(path.name, pattern) for pattern in patterns)
            ]
        return [WorkItem(path) for path in paths]

    def _prepare(self, tenant_id: str, options: BatchOptions) -> BatchJob:
        tenant = self.store.get_tenant(tenant_id)
        self._folder(tenant)
        return BatchJob(
            tenant_id=tenant.id,
            name=tenant.name,
            config=self.resolve(tenant_id),
            items=self.worklist(tenant_id, options.file_filter),
            api_key=self._api_key(tenant),
            dry_run=options.dry_run,
        )

    def run_batch(
        self,
        tenant_id: str,
        options: BatchOptions | dict[str, Any] | None = None,
        sink: ProgressSink | None = None,
    ) -> BatchSummary:
        """Process every pending document of one tenant.

        Precondition failures are reported to ``sink`` as a single ``error``
        event and re-raised; no batch is started in that case.

        Raises:
            TenantNotFoundError: If the tenant does not exist.
            FolderMissingError: If the tenant's folder is missing.
            AlreadyRunningError: If the tenant already has a batch in flight.
        """
        progress = GuardedSink(sink, tenant_id=tenant_id)
        progress.send(ProgressStatus.CONNECTED)
        try:
            if not isinstance(options, BatchOptions):
                options = _validated(BatchOptions, options or {}, "batch options")
            job = self._prepare(tenant_id, options)
            return self.scheduler.run(job, progress)
        except TenantExtractorError as e:
            logger.warning("Batch for client %s not started: %s", tenant_id, e)
            progress.send(ProgressStatus.ERROR, error=str(e))
            raise

    def run_all_tenants(self, sink: ProgressSink | None = None) -> AllTenantsSummary:
        """Run every enabled tenant in turn, skipping those that cannot start."""
        progress = GuardedSink(sink)
        progress.send(ProgressStatus.CONNECTED)
        tenants = self.store.list_tenants(enabled_only=True)
        logger.info("Processing %d enabled clients", len(tenants))
        return self.scheduler.run_all(
            [(t.id, t.name) for t in tenants],
            lambda tenant_id: self._prepare(tenant_id, BatchOptions()),
            progress,
        )

    # =========================================================================
    # Results
    # =========================================================================

    def list_results(
        self,
        tenant_id: str,
        status: ResultStatus | str | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> ResultPage:
        self.store.get_tenant(tenant_id)
        return self.result_log.list(tenant_id, status=status, limit=limit, offset=offset)

    def get_result(self, tenant_id: str, result_id: str) -> ResultRecord:
        self.store.get_tenant(tenant_id)
        return self.result_log.get(tenant_id, result_id)

    def result_stats(self, tenant_id: str) -> ResultStats:
        self.store.get_tenant(tenant_id)
        return self.result_log.summary(tenant_id)

    def _failed_records(self, tenant_id: str, request: RetryRequest) -> list[ResultRecord]:
        if request.all:
            return self.result_log.list_failed(tenant_id)
        records = []
        for result_id in request.result_ids or []:
            try:
                record = self.result_log.get(tenant_id, result_id)
            except ResultNotFoundError:
                logger.warning("Skipping unknown result %s for client %s", result_id, tenant_id)
                continue
            if record.status == ResultStatus.FAILED:
                records.append(record)
        return records

    def retry_results(
        self,
        tenant_id: str,
        request: RetryRequest | dict[str, Any],
        sink: ProgressSink | None = None,
    ) -> RetrySummary:
        """Re-process stored failures, rewriting each record in place.

        Ids that are unknown or not failed are skipped.

        Raises:
            BadRequestError: If neither ids nor ``all`` are given.
            NoFailuresError: If nothing is left to retry.
        """
        progress = GuardedSink(sink, tenant_id=tenant_id)
        progress.send(ProgressStatus.CONNECTED)
        try:
            if not isinstance(request, RetryRequest):
                request = _validated(RetryRequest, request, "retry request")
            if not request.all and not request.result_ids:
                raise BadRequestError("Provide resultIds array or all: true")

            tenant = self.store.get_tenant(tenant_id)
            folder = self._folder(tenant)
            records = self._failed_records(tenant_id, request)
            if not records:
                raise NoFailuresError("No failed results to retry")

            job = BatchJob(
                tenant_id=tenant.id,
                name=tenant.name,
                config=self.resolve(tenant_id),
                items=[WorkItem(folder / r.original_filename, record_id=r.id) for r in records],
                api_key=self._api_key(tenant),
            )
            return self.scheduler.retry(job, progress)
        except TenantExtractorError as e:
            logger.warning("Retry for client %s not started: %s", tenant_id, e)
            progress.send(ProgressStatus.ERROR, error=str(e))
            raise
