"""Custom exceptions for tenant-extractor."""

from typing import Any


class TenantExtractorError(Exception):
    """Base exception for all tenant-extractor errors."""

    pass


class ConfigValidationError(TenantExtractorError):
    """Raised when a configuration section or override payload is invalid."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class NotFoundError(TenantExtractorError):
    """Raised when a requested entity does not exist."""

    pass


class TenantNotFoundError(NotFoundError):
    """Raised when a tenant id is unknown."""

    def __init__(self, tenant_id: str) -> None:
        super().__init__(f'Tenant "{tenant_id}" not found')
        self.tenant_id = tenant_id


class ResultNotFoundError(NotFoundError):
    """Raised when a result record id is unknown."""

    def __init__(self, result_id: str) -> None:
        super().__init__(f"Result {result_id} not found")
        self.result_id = result_id


class GatewayError(TenantExtractorError):
    """Raised when the extraction gateway fails for a document."""

    retryable: bool = False

    def __init__(
        self,
        message: str,
        raw_response: str | None = None,
        token_usage: Any = None,
        last_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.raw_response = raw_response
        self.token_usage = token_usage
        self.last_error = last_error


class TransientGatewayError(GatewayError):
    """Rate-limit or server-busy signal; worth retrying after a delay."""

    retryable = True


class TerminalGatewayError(GatewayError):
    """Malformed or unparseable response; retrying will not help."""

    pass


class AlreadyRunningError(TenantExtractorError):
    """Raised when a batch is requested for a tenant that is already processing."""

    def __init__(self, tenant_id: str) -> None:
        super().__init__(f'Client "{tenant_id}" is already being processed')
        self.tenant_id = tenant_id


class FolderMissingError(TenantExtractorError):
    """Raised when a tenant's document folder does not exist."""

    def __init__(self, folder: str) -> None:
        super().__init__(f"Folder does not exist: {folder}")
        self.folder = folder


class NoFailuresError(TenantExtractorError):
    """Raised when a retry-all request finds no failed results."""

    pass


class BadRequestError(TenantExtractorError):
    """Raised when an operation receives inconsistent arguments."""

    pass
