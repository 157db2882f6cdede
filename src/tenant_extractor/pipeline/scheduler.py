"""Bounded-concurrency batch runs with per-tenant mutual exclusion."""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Protocol

from tenant_extractor.core.exceptions import AlreadyRunningError, TenantExtractorError
from tenant_extractor.core.resolver import ResolvedConfig
from tenant_extractor.pipeline.executor import RetryingExecutor, RetryPolicy, WorkItem
from tenant_extractor.pipeline.progress import GuardedSink, ProgressSink, ProgressStatus
from tenant_extractor.results.types import (
    AllTenantsSummary,
    BatchSummary,
    ExtractionOutcome,
    ResultRecord,
    RetrySummary,
    TenantRunResult,
)
from tenant_extractor.storage.result_log import ResultLog

logger = logging.getLogger(__name__)


class DocumentFinalizer(Protocol):
    """Post-extraction side effects (enriched copy, file moves, naming).

    Returns the output filename, if any.
    """

    def finalize(self, item: WorkItem, outcome: ExtractionOutcome, config: ResolvedConfig) -> str | None: ...


@dataclass
class BatchJob:
    """Everything one tenant's batch needs, resolved once before it starts."""

    tenant_id: str
    config: ResolvedConfig
    items: list[WorkItem]
    name: str | None = None
    api_key: str | None = None
    dry_run: bool = False
    concurrency: int | None = None

    @property
    def width(self) -> int:
        return max(1, self.concurrency or self.config.processing.concurrency)


class TenantRegistry:
    """In-flight batches keyed by tenant id, with atomic insert-if-absent."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._running: dict[str, str] = {}

    def acquire(self, tenant_id: str) -> str:
        """Claim a tenant. Raises AlreadyRunningError without side effects if taken."""
        with self._lock:
            if tenant_id in self._running:
                raise AlreadyRunningError(tenant_id)
            token = uuid.uuid4().hex
            self._running[tenant_id] = token
            return token

    def release(self, tenant_id: str, token: str) -> bool:
        """Drop the claim if ``token`` still owns it. Returns whether it did."""
        with self._lock:
            if self._running.get(tenant_id) != token:
                return False
            del self._running[tenant_id]
            return True

    def is_running(self, tenant_id: str) -> bool:
        with self._lock:
            return tenant_id in self._running

    def running(self) -> set[str]:
        with self._lock:
            return set(self._running)


@dataclass
class _Counters:
    summary: BatchSummary
    lock: threading.Lock = field(default_factory=threading.Lock)
    completed: int = 0


class BatchScheduler:
    """Fans a worklist out over at most ``concurrency`` worker threads.

    Each finished item is persisted to the result log, folded into the
    summary and reported to the progress sink. Completion order is not
    guaranteed.
    """

    def __init__(
        self,
        executor: RetryingExecutor,
        result_log: ResultLog,
        registry: TenantRegistry | None = None,
        finalizer: DocumentFinalizer | None = None,
    ) -> None:
        self.executor = executor
        self.result_log = result_log
        self.registry = registry or TenantRegistry()
        self.finalizer = finalizer

    def run(self, job: BatchJob, sink: ProgressSink | None = None) -> BatchSummary:
        """Process every item of a tenant's worklist.

        Raises:
            AlreadyRunningError: If the tenant already has a batch in flight.
        """
        token = self.registry.acquire(job.tenant_id)
        try:
            progress = GuardedSink(sink, tenant_id=job.tenant_id)
            summary = BatchSummary(tenant_id=job.tenant_id)
            self._execute(job, progress, summary, self._append)
            progress.send(
                ProgressStatus.DONE,
                total=summary.total,
                success=summary.success,
                failed=summary.failed,
                token_usage=summary.token_usage.to_dict(),
            )
            return summary
        finally:
            self.registry.release(job.tenant_id, token)

    def retry(
        self,
        job: BatchJob,
        sink: ProgressSink | None = None,
    ) -> RetrySummary:
        """Re-process stored failures; each item's ``record_id`` is rewritten in place."""
        token = self.registry.acquire(job.tenant_id)
        try:
            progress = GuardedSink(sink, tenant_id=job.tenant_id)
            summary = RetrySummary(tenant_id=job.tenant_id)
            self._execute(job, progress, summary, self._update)
            progress.send(
                ProgressStatus.DONE,
                total=summary.total,
                success=summary.success,
                failed=summary.failed,
                token_usage=summary.token_usage.to_dict(),
            )
            return summary
        finally:
            self.registry.release(job.tenant_id, token)

    def run_all(
        self,
        tenants: Iterable[tuple[str, str]],
        prepare: Callable[[str], BatchJob],
        sink: ProgressSink | None = None,
    ) -> AllTenantsSummary:
        """Run tenants one after another; each batch is parallel internally.

        Args:
            tenants: ``(tenant_id, name)`` pairs in processing order.
            prepare: Builds a tenant's job at the moment its turn comes. Any
                TenantExtractorError it raises skips that tenant.
            sink: Progress observer for the whole run.
        """
        tenants = list(tenants)
        progress = GuardedSink(sink)
        result = AllTenantsSummary(total_tenants=len(tenants))
        progress.send(
            ProgressStatus.STARTING,
            mode="all",
            total_clients=len(tenants),
            clients=[{"clientId": tenant_id, "name": name} for tenant_id, name in tenants],
        )

        for number, (tenant_id, name) in enumerate(tenants, start=1):
            progress.send(
                ProgressStatus.CLIENT_STARTING,
                tenant_id=tenant_id,
                client_name=name,
                client_number=number,
                total_clients=len(tenants),
            )
            try:
                job = prepare(tenant_id)
                summary = self.run(job, progress)
            except TenantExtractorError as e:
                logger.warning("Skipping client %s: %s", tenant_id, e)
                result.tenants[tenant_id] = TenantRunResult(name=name, error=str(e), skipped=True)
                progress.send(ProgressStatus.CLIENT_ERROR, tenant_id=tenant_id, error=str(e))
                continue

            result.tenants[tenant_id] = TenantRunResult(name=name, summary=summary)
            result.total_files += summary.total
            result.total_success += summary.success
            result.total_failed += summary.failed
            result.token_usage = result.token_usage + summary.token_usage
            progress.send(
                ProgressStatus.CLIENT_DONE,
                tenant_id=tenant_id,
                total=summary.total,
                success=summary.success,
                failed=summary.failed,
            )

        progress.send(
            ProgressStatus.DONE,
            mode="all",
            total_clients=result.total_tenants,
            total_success=result.total_success,
            total_failed=result.total_failed,
        )
        return result

    # =========================================================================
    # Internals
    # =========================================================================

    def _execute(
        self,
        job: BatchJob,
        progress: GuardedSink,
        summary: BatchSummary,
        persist: Callable[[BatchJob, WorkItem, ExtractionOutcome], ResultRecord | None],
    ) -> None:
        summary.total = len(job.items)
        if not job.items:
            return

        policy = RetryPolicy.from_config(job.config.processing)
        counters = _Counters(summary=summary)
        progress.send(ProgressStatus.STARTING, total=summary.total, concurrency=job.width)
        logger.info(
            "Processing %d documents for client %s (concurrency=%d)",
            summary.total,
            job.tenant_id,
            job.width,
        )

        def work(item: WorkItem) -> None:
            outcome = self.executor.execute(
                item, job.config, policy, progress=progress, api_key=job.api_key
            )
            outcome = self._finalize(job, item, outcome)

            record = None
            try:
                record = persist(job, item, outcome)
            except Exception as e:
                logger.warning("Failed to store processing result for %s: %s", item.filename, e)
                progress.send(
                    ProgressStatus.WARNING,
                    filename=item.filename,
                    error=f"Result could not be saved: {e}",
                )

            with counters.lock:
                counters.completed += 1
                summary.record(outcome)
                if record is not None and isinstance(summary, RetrySummary):
                    summary.records.append(record)
                current = counters.completed

            if not outcome.success:
                status = ProgressStatus.FAILED
            elif outcome.dry_run:
                status = ProgressStatus.DRY_RUN_COMPLETED
            else:
                status = ProgressStatus.COMPLETED
            progress.send(
                status,
                filename=outcome.original_filename,
                output_filename=outcome.output_filename,
                error=outcome.error,
                current=current,
                total=summary.total,
            )

        with ThreadPoolExecutor(max_workers=job.width, thread_name_prefix=f"batch-{job.tenant_id}") as pool:
            futures = [pool.submit(work, item) for item in job.items]
            for future in futures:
                future.result()

    def _finalize(self, job: BatchJob, item: WorkItem, outcome: ExtractionOutcome) -> ExtractionOutcome:
        if not outcome.success:
            return outcome
        if job.dry_run or self.finalizer is None:
            return outcome.model_copy(update={"dry_run": job.dry_run})
        try:
            output_filename = self.finalizer.finalize(item, outcome, job.config)
        except Exception as e:
            logger.warning("Finalizing %s failed: %s", item.filename, e)
            return ExtractionOutcome(
                original_filename=outcome.original_filename,
                success=False,
                error=f"Finalizing failed: {e}",
                token_usage=outcome.token_usage,
                attempts=outcome.attempts,
                duration=outcome.duration,
            )
        return outcome.model_copy(update={"output_filename": output_filename})

    def _append(self, job: BatchJob, item: WorkItem, outcome: ExtractionOutcome) -> ResultRecord:
        return self.result_log.append(job.tenant_id, outcome, model=job.config.model)

    def _update(self, job: BatchJob, item: WorkItem, outcome: ExtractionOutcome) -> ResultRecord | None:
        if item.record_id is None:
            return self._append(job, item, outcome)
        return self.result_log.update(job.tenant_id, item.record_id, outcome, model=job.config.model)
