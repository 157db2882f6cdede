"""Bounded retry with exponential backoff around the extraction gateway."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from tenant_extractor.core.config import ProcessingConfig
from tenant_extractor.core.exceptions import GatewayError, TerminalGatewayError
from tenant_extractor.core.resolver import ResolvedConfig
from tenant_extractor.pipeline.gateway import ExtractionGateway, classify_error, read_document
from tenant_extractor.pipeline.progress import GuardedSink, ProgressStatus
from tenant_extractor.results.types import ExtractionOutcome, TokenUsage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkItem:
    """One document to process. ``record_id`` is set when re-processing a stored result."""

    path: Path
    record_id: str | None = None

    @property
    def filename(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 1
    base_delay: float = 1.0
    max_delay: float = 30.0

    @classmethod
    def from_config(cls, processing: ProcessingConfig) -> RetryPolicy:
        return cls(
            max_attempts=processing.retry_attempts + 1,
            base_delay=processing.retry_delay_ms / 1000,
            max_delay=processing.retry_max_delay_ms / 1000,
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff after the given (1-based) failed attempt. No jitter."""
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)


class RetryingExecutor:
    """Runs one work item through the gateway, retrying transient failures."""

    def __init__(
        self,
        gateway: ExtractionGateway,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._gateway = gateway
        self._sleep = sleep
        self._clock = clock

    def execute(
        self,
        item: WorkItem,
        config: ResolvedConfig,
        policy: RetryPolicy,
        progress: GuardedSink | None = None,
        api_key: str | None = None,
    ) -> ExtractionOutcome:
        """Process one document.

        Returns:
            A successful outcome, or a failed one once a terminal error occurs
            or every attempt is used up. Never raises for gateway failures.
        """
        progress = progress or GuardedSink(None)
        started = self._clock()
        last_error: GatewayError | None = None

        try:
            document = read_document(item.path)
        except OSError as e:
            logger.warning("Cannot read %s: %s", item.path, e)
            return ExtractionOutcome(
                original_filename=item.filename,
                success=False,
                error=f"Cannot read document: {e}",
                attempts=0,
                duration=self._clock() - started,
            )

        for attempt in range(1, policy.max_attempts + 1):
            progress.send(ProgressStatus.ANALYZING, filename=item.filename, attempt=attempt)
            try:
                extraction = self._gateway.extract(document, item.filename, config, api_key=api_key)
            except Exception as e:
                last_error = classify_error(e)
            else:
                return ExtractionOutcome(
                    original_filename=item.filename,
                    success=True,
                    extraction=extraction,
                    token_usage=extraction.token_usage,
                    attempts=attempt,
                    duration=self._clock() - started,
                )

            if not last_error.retryable:
                logger.warning(
                    "Terminal failure for %s on attempt %d: %s", item.filename, attempt, last_error
                )
                usage = last_error.token_usage
                return ExtractionOutcome(
                    original_filename=item.filename,
                    success=False,
                    error=str(last_error),
                    retryable=False,
                    raw_response=last_error.raw_response
                    if isinstance(last_error, TerminalGatewayError)
                    else None,
                    token_usage=usage if isinstance(usage, TokenUsage) else TokenUsage(),
                    attempts=attempt,
                    duration=self._clock() - started,
                )

            if attempt < policy.max_attempts:
                delay = policy.delay_for(attempt)
                logger.warning(
                    "Transient failure for %s on attempt %d/%d, retrying in %.2fs: %s",
                    item.filename,
                    attempt,
                    policy.max_attempts,
                    delay,
                    last_error,
                )
                progress.send(
                    ProgressStatus.RETRYING,
                    filename=item.filename,
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                    delay=delay,
                    error=str(last_error),
                )
                self._sleep(delay)

        logger.error(
            "Extraction of %s failed after %d attempts: %s",
            item.filename,
            policy.max_attempts,
            last_error,
        )
        return ExtractionOutcome(
            original_filename=item.filename,
            success=False,
            error=str(last_error),
            retryable=True,
            token_usage=TokenUsage(),
            attempts=policy.max_attempts,
            duration=self._clock() - started,
        )
