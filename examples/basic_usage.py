"""Example: Basic usage of tenant-extractor.

Expects a data directory laid out as::

    data/config.yaml
    data/tenants/<id>/tenant.json

and PDF documents in each tenant's folder.
"""

import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from tenant_extractor import (
    BatchOptions,
    CallbackSink,
    ExtractionService,
    ProgressEvent,
    RetryRequest,
    TenantExtractorError,
    TenantStore,
)

# Load environment variables (OPENAI_API_KEY and per-tenant key variables)
load_dotenv()

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def print_event(event: ProgressEvent) -> None:
    parts = [event.status]
    if event.filename:
        parts.append(event.filename)
    if event.attempt:
        parts.append(f"attempt {event.attempt}")
    if event.current and event.total:
        parts.append(f"{event.current}/{event.total}")
    if event.error:
        parts.append(f"error: {event.error}")
    print("  " + " | ".join(parts))


def example_show_config(service: ExtractionService, tenant_id: str) -> None:
    """Show where each resolved value comes from."""
    print("=" * 60)
    print(f"Resolved configuration for {tenant_id}")
    print("=" * 60)

    annotated = service.get_resolved_config(tenant_id)
    print(f"Model: {annotated.model.value} ({annotated.model.source.value})")
    for field in annotated.fields:
        state = "on" if field.enabled else "off"
        print(f"  field {field.key:<20} {state:<4} {field.source.value}")
    for tag in annotated.tags:
        state = "on" if tag.enabled else "off"
        print(f"  tag   {tag.id:<20} {state:<4} {tag.source.value}")


def example_dry_run(service: ExtractionService, tenant_id: str) -> None:
    """Extract every document without moving or renaming anything."""
    print("=" * 60)
    print(f"Dry run for {tenant_id}")
    print("=" * 60)

    summary = service.run_batch(tenant_id, BatchOptions(dry_run=True), CallbackSink(print_event))
    print(f"\nProcessed {summary.total}: {summary.success} ok, {summary.failed} failed")
    print(f"Tokens used: {summary.token_usage.total_tokens}")


def example_retry_failures(service: ExtractionService, tenant_id: str) -> None:
    """Re-process every stored failure."""
    print("=" * 60)
    print(f"Retrying failures for {tenant_id}")
    print("=" * 60)

    try:
        summary = service.retry_results(tenant_id, RetryRequest(all=True), CallbackSink(print_event))
    except TenantExtractorError as e:
        print(f"Nothing retried: {e}")
        return
    print(f"\nRetried {summary.total}: {summary.success} recovered")


if __name__ == "__main__":
    data_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("data")
    service = ExtractionService(TenantStore(data_dir))

    for tenant in service.list_tenants(enabled_only=True):
        example_show_config(service, tenant.id)
        example_dry_run(service, tenant.id)
        example_retry_failures(service, tenant.id)
