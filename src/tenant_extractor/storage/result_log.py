"""Append-only, per-tenant result log stored as a JSON document.

Every write is a read-modify-write of the tenant's whole file, performed under
that tenant's lock and finished with an atomic replace.
"""

from __future__ import annotations

import json
import logging
import os
import threading
import uuid
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from tenant_extractor.core.exceptions import ConfigValidationError, ResultNotFoundError
from tenant_extractor.results.types import (
    ExtractionOutcome,
    ResultPage,
    ResultRecord,
    ResultStats,
    ResultStatus,
    TokenUsage,
)
from tenant_extractor.storage.atomic import atomic_write_json

logger = logging.getLogger(__name__)

RESULTS_FILENAME = "processing-results.json"
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 250

PathResolver = Callable[[str], Path]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_record(
    record_id: str,
    outcome: ExtractionOutcome,
    timestamp: str,
    model: str | None = None,
    retried_from: str | None = None,
) -> ResultRecord:
    """Project an outcome onto the stored record shape."""
    extraction = outcome.extraction if outcome.success else None
    return ResultRecord(
        id=record_id,
        original_filename=outcome.original_filename,
        output_filename=outcome.output_filename,
        status=ResultStatus.SUCCESS if outcome.success else ResultStatus.FAILED,
        model=model,
        extracted_fields=dict(extraction.fields) if extraction else {},
        tags=dict(extraction.tags) if extraction else {},
        token_usage=outcome.token_usage,
        timestamp=timestamp,
        error=outcome.error,
        raw_response=None if outcome.success else outcome.raw_response,
        duration=outcome.duration,
        retried_from=retried_from,
    )


class ResultLog:
    """Durable record of one outcome per processed document, per tenant.

    Args:
        location: Either a base directory (the log for tenant ``t`` lives at
            ``location/t/processing-results.json``) or a callable mapping a
            tenant id to the log file path.
    """

    def __init__(self, location: str | Path | PathResolver) -> None:
        if callable(location):
            self._resolve: PathResolver = location
        else:
            base = Path(location)
            self._resolve = lambda tenant_id: base / tenant_id / RESULTS_FILENAME
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, tenant_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(tenant_id, threading.Lock())

    def path_for(self, tenant_id: str) -> Path:
        return self._resolve(tenant_id)

    def _read(self, tenant_id: str, for_write: bool = False) -> dict[str, Any]:
        """Load the log file. A missing file is an empty log.

        An unreadable file also reads as empty. Before a write replaces it,
        it is moved aside to ``<name>.corrupt-<timestamp>`` so no history is lost.
        """
        path = self.path_for(tenant_id)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {"results": [], "lastUpdated": None}
        except json.JSONDecodeError as e:
            if for_write:
                stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
                backup = path.with_name(f"{path.name}.corrupt-{stamp}")
                os.replace(path, backup)
                logger.error("Result log %s is unreadable (%s); moved it to %s", path, e, backup)
            else:
                logger.error("Result log %s is unreadable: %s", path, e)
            return {"results": [], "lastUpdated": None}
        data.setdefault("results", [])
        return data

    def _write(self, tenant_id: str, data: dict[str, Any]) -> None:
        atomic_write_json(self.path_for(tenant_id), data)

    def _records(self, tenant_id: str) -> list[ResultRecord]:
        return [ResultRecord.model_validate(item) for item in self._read(tenant_id)["results"]]

    # =========================================================================
    # Writes
    # =========================================================================

    def append(
        self,
        tenant_id: str,
        outcome: ExtractionOutcome,
        model: str | None = None,
    ) -> ResultRecord:
        """Store a new record with a fresh id and the current timestamp."""
        with self._lock_for(tenant_id):
            data = self._read(tenant_id, for_write=True)
            record = build_record(str(uuid.uuid4()), outcome, _now(), model=model)
            data["results"].append(record.to_dict())
            data["lastUpdated"] = record.timestamp
            self._write(tenant_id, data)
        return record

    def update(
        self,
        tenant_id: str,
        record_id: str,
        outcome: ExtractionOutcome,
        model: str | None = None,
    ) -> ResultRecord:
        """Replace a record's content in place, keeping its id.

        ``retried_from`` is set to the replaced record's timestamp.

        Raises:
            ResultNotFoundError: If no record has ``record_id``.
        """
        with self._lock_for(tenant_id):
            data = self._read(tenant_id, for_write=True)
            for index, item in enumerate(data["results"]):
                if item.get("id") == record_id:
                    break
            else:
                raise ResultNotFoundError(record_id)

            previous = ResultRecord.model_validate(data["results"][index])
            record = build_record(
                record_id,
                outcome,
                _now(),
                model=model or previous.model,
                retried_from=previous.timestamp,
            )
            data["results"][index] = record.to_dict()
            data["lastUpdated"] = record.timestamp
            self._write(tenant_id, data)
        return record

    # =========================================================================
    # Reads
    # =========================================================================

    def list(
        self,
        tenant_id: str,
        status: ResultStatus | str | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> ResultPage:
        """Newest-first page of records, optionally filtered by status."""
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ConfigValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
        if offset < 0:
            raise ConfigValidationError("offset must be non-negative")
        if status is not None:
            try:
                wanted = ResultStatus(status)
            except ValueError as e:
                allowed = ", ".join(s.value for s in ResultStatus)
                raise ConfigValidationError(f"status must be one of: {allowed}") from e

        indexed = list(enumerate(self._records(tenant_id)))
        indexed.sort(key=lambda pair: (pair[1].timestamp, pair[0]), reverse=True)
        records = [record for _, record in indexed]

        if status is not None:
            records = [r for r in records if r.status == wanted]

        total = len(records)
        return ResultPage(
            records=records[offset : offset + limit],
            total=total,
            has_more=offset + limit < total,
        )

    def get(self, tenant_id: str, record_id: str) -> ResultRecord:
        for record in self._records(tenant_id):
            if record.id == record_id:
                return record
        raise ResultNotFoundError(record_id)

    def list_failed(self, tenant_id: str) -> list[ResultRecord]:
        return [r for r in self._records(tenant_id) if r.status == ResultStatus.FAILED]

    def summary(self, tenant_id: str) -> ResultStats:
        """Aggregate statistics over the whole log."""
        records = self._records(tenant_id)
        if not records:
            return ResultStats()

        success = sum(1 for r in records if r.status == ResultStatus.SUCCESS)
        usage = TokenUsage()
        for record in records:
            usage = usage + record.token_usage
        timestamps = sorted(r.timestamp for r in records)

        return ResultStats(
            total=len(records),
            success=success,
            failed=len(records) - success,
            success_rate=round(success / len(records) * 100),
            token_usage=usage,
            first_processed=timestamps[0],
            last_processed=timestamps[-1],
        )
