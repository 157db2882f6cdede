"""Persistence for configuration records and result logs."""

from tenant_extractor.storage.atomic import atomic_write_json, atomic_write_text
from tenant_extractor.storage.result_log import RESULTS_FILENAME, ResultLog
from tenant_extractor.storage.tenant_store import TenantStore

__all__ = [
    "RESULTS_FILENAME",
    "ResultLog",
    "TenantStore",
    "atomic_write_json",
    "atomic_write_text",
]
