"""File-backed persistence for the global config, tenants and override sections.

Layout under ``root``::

    config.yaml | config.json
    tenants/<tenant_id>/tenant.json
    tenants/<tenant_id>/overrides/<section>.json
"""

from __future__ import annotations

import json
import logging
import shutil
import threading
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from tenant_extractor.core.config import (
    GlobalConfig,
    Section,
    Tenant,
    TenantOverride,
)
from tenant_extractor.core.exceptions import (
    ConfigValidationError,
    TenantNotFoundError,
)
from tenant_extractor.storage.atomic import atomic_write_json, atomic_write_text

logger = logging.getLogger(__name__)

CONFIG_FILENAMES = ("config.yaml", "config.yml", "config.json")


class TenantStore:
    """Reads and writes configuration records. Pure I/O, no merge logic.

    The global config is cached on the instance and invalidated only by
    :meth:`save_global`.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.tenants_dir = self.root / "tenants"
        self._lock = threading.RLock()
        self._global: GlobalConfig | None = None

    # =========================================================================
    # Global configuration
    # =========================================================================

    def _config_path(self) -> Path:
        for name in CONFIG_FILENAMES:
            candidate = self.root / name
            if candidate.exists():
                return candidate
        return self.root / "config.json"

    def load_global(self) -> GlobalConfig:
        """Return the global configuration, reading it from disk on first use."""
        with self._lock:
            if self._global is not None:
                return self._global

            path = self._config_path()
            if not path.exists():
                raise ConfigValidationError(f"Configuration file not found: {path}")

            if path.suffix in (".yaml", ".yml"):
                config = GlobalConfig.from_yaml(path)
            else:
                config = GlobalConfig.from_json(path)
            logger.debug("Loaded global configuration from %s", path)
            self._global = config
            return config

    def save_global(self, config: GlobalConfig) -> None:
        """Persist a whole global configuration and refresh the cache."""
        with self._lock:
            path = self._config_path()
            if path.suffix in (".yaml", ".yml"):
                atomic_write_text(path, config.to_yaml())
            else:
                atomic_write_text(path, config.to_json())
            self._global = config
            logger.info("Saved global configuration to %s", path)

    def invalidate(self) -> None:
        with self._lock:
            self._global = None

    # =========================================================================
    # Tenants
    # =========================================================================

    def _tenant_dir(self, tenant_id: str) -> Path:
        return self.tenants_dir / tenant_id

    def _tenant_file(self, tenant_id: str) -> Path:
        return self._tenant_dir(tenant_id) / "tenant.json"

    def _read_tenant(self, path: Path) -> Tenant:
        try:
            return Tenant.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (ValueError, ValidationError) as e:
            raise ConfigValidationError(f"Failed to load client config {path}: {e}") from e

    def exists(self, tenant_id: str) -> bool:
        return self._tenant_file(tenant_id).exists()

    def get_tenant(self, tenant_id: str) -> Tenant:
        path = self._tenant_file(tenant_id)
        if not path.exists():
            raise TenantNotFoundError(tenant_id)
        return self._read_tenant(path)

    def list_tenants(self, enabled_only: bool = False) -> list[Tenant]:
        """All tenants sorted by id."""
        if not self.tenants_dir.exists():
            return []
        tenants = []
        for path in sorted(self.tenants_dir.glob("*/tenant.json")):
            tenant = self._read_tenant(path)
            if enabled_only and not tenant.enabled:
                continue
            tenants.append(tenant)
        return tenants

    def create_tenant(self, tenant: Tenant) -> Tenant:
        with self._lock:
            if self.exists(tenant.id):
                raise ConfigValidationError(f'Client "{tenant.id}" already exists')
            atomic_write_json(self._tenant_file(tenant.id), tenant.to_dict())
            logger.info("Created client %s", tenant.id)
            return tenant

    def update_tenant(self, tenant: Tenant) -> Tenant:
        with self._lock:
            if not self.exists(tenant.id):
                raise TenantNotFoundError(tenant.id)
            atomic_write_json(self._tenant_file(tenant.id), tenant.to_dict())
            return tenant

    def delete_tenant(self, tenant_id: str) -> None:
        """Remove a tenant record and all of its override sections."""
        with self._lock:
            if not self.exists(tenant_id):
                raise TenantNotFoundError(tenant_id)
            shutil.rmtree(self._tenant_dir(tenant_id))
            logger.info("Deleted client %s", tenant_id)

    # =========================================================================
    # Override sections
    # =========================================================================

    def _override_file(self, tenant_id: str, section: Section) -> Path:
        return self._tenant_dir(tenant_id) / "overrides" / f"{section.value}.json"

    def load_override(self, tenant_id: str) -> TenantOverride:
        """Read every stored override section for a tenant."""
        if not self.exists(tenant_id):
            raise TenantNotFoundError(tenant_id)

        data: dict[str, Any] = {}
        for section in Section:
            path = self._override_file(tenant_id, section)
            if path.exists():
                data[section.value] = json.loads(path.read_text(encoding="utf-8"))
        try:
            return TenantOverride.model_validate(data)
        except ValidationError as e:
            raise ConfigValidationError(f'Stored overrides for "{tenant_id}" are invalid: {e}') from e

    def save_override_section(self, tenant_id: str, section: Section | str, value: Any) -> None:
        """Replace one override section with an already validated value."""
        section = Section(section)
        with self._lock:
            if not self.exists(tenant_id):
                raise TenantNotFoundError(tenant_id)
            if isinstance(value, list):
                payload: Any = [item.to_dict() for item in value]
            elif isinstance(value, dict):
                payload = {key: item.to_dict() for key, item in value.items()}
            elif isinstance(value, str):
                payload = value
            else:
                payload = value.to_dict()
            atomic_write_json(self._override_file(tenant_id, section), payload)
            logger.info("Saved %s override for client %s", section.value, tenant_id)

    def delete_override_section(self, tenant_id: str, section: Section | str) -> bool:
        """Delete one override section. Returns False when nothing was stored."""
        section = Section(section)
        with self._lock:
            if not self.exists(tenant_id):
                raise TenantNotFoundError(tenant_id)
            path = self._override_file(tenant_id, section)
            if not path.exists():
                return False
            path.unlink()
            logger.info("Reset %s override for client %s", section.value, tenant_id)
            return True
