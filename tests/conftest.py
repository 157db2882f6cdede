"""Shared fixtures: a small global ruleset and a store with one tenant."""

import json
from pathlib import Path
from typing import Any

import pytest

from tenant_extractor.core.config import GlobalConfig, Tenant
from tenant_extractor.storage.tenant_store import TenantStore


@pytest.fixture
def global_config_data() -> dict[str, Any]:
    """Global configuration in its on-disk (camelCase) form."""
    return {
        "model": "gpt-4.1",
        "fieldDefinitions": [
            {
                "key": "supplierName",
                "label": "Supplier",
                "type": "text",
                "schemaHint": "string",
                "instruction": "use the company name on the letterhead",
            },
            {
                "key": "amount",
                "label": "Amount",
                "type": "number",
                "schemaHint": "number",
                "instruction": "use the grand total including tax",
            },
            {
                "key": "paid",
                "label": "Paid",
                "type": "boolean",
                "schemaHint": "boolean",
                "instruction": "true if the invoice is marked as paid",
                "enabled": False,
            },
        ],
        "tagDefinitions": [
            {
                "id": "private",
                "label": "Private expense",
                "instruction": "the buyer is {{owner}} personally",
                "parameters": {"owner": {"label": "Owner", "default": "the director"}},
            },
            {
                "id": "foreign",
                "label": "Foreign supplier",
                "instruction": "the supplier is located outside {{country}}",
                "enabled": False,
                "parameters": {
                    "country": {"label": "Country", "default": "France"},
                    "currency": {"label": "Currency", "default": "EUR"},
                },
            },
        ],
        "promptTemplate": {"preamble": "Read this invoice."},
        "output": {"filenameTemplate": "{supplierName} - {amount}", "includeSummary": False},
        "processing": {"concurrency": 2, "retryAttempts": 2, "retryDelayMs": 10, "retryMaxDelayMs": 40},
    }


@pytest.fixture
def global_config(global_config_data: dict[str, Any]) -> GlobalConfig:
    return GlobalConfig.from_dict(global_config_data)


@pytest.fixture
def docs_dir(tmp_path: Path) -> Path:
    folder = tmp_path / "docs" / "acme"
    folder.mkdir(parents=True)
    return folder


@pytest.fixture
def store(tmp_path: Path, global_config_data: dict[str, Any], docs_dir: Path) -> TenantStore:
    """A store rooted in ``tmp_path`` holding the global config and tenant ``acme``."""
    root = tmp_path / "data"
    root.mkdir()
    (root / "config.json").write_text(json.dumps(global_config_data), encoding="utf-8")
    store = TenantStore(root)
    store.create_tenant(Tenant(id="acme", name="Acme Corp", folder_path=str(docs_dir)))
    return store
