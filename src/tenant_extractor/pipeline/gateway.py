"""Boundary to the external document-extraction service."""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from seeds_clients import Message, OpenAIClient
from seeds_clients.core.base_client import BaseClient

from tenant_extractor.core.exceptions import (
    GatewayError,
    TerminalGatewayError,
    TransientGatewayError,
)
from tenant_extractor.core.resolver import ResolvedConfig
from tenant_extractor.prompts.builder import PromptBuilder
from tenant_extractor.prompts.parser import normalize_extraction, parse_response
from tenant_extractor.results.types import Extraction, TokenUsage

logger = logging.getLogger(__name__)

DEFAULT_API_KEY_ENV = "OPENAI_API_KEY"

RATE_LIMIT_MARKERS = ("429", "rate_limit", "rate limit", "resource has been exhausted", "quota")
TRANSIENT_MARKERS = (
    "500",
    "502",
    "503",
    "504",
    "overloaded",
    "unavailable",
    "timed out",
    "timeout",
    "connection reset",
)
TRANSIENT_STATUS_CODES = {429, 500, 502, 503, 504}

ClientFactory = Callable[[str, str | None], BaseClient]


@runtime_checkable
class ExtractionGateway(Protocol):
    """A single-document extraction call.

    Implementations return an :class:`Extraction` or raise a
    :class:`GatewayError` subclass whose type says whether retrying can help.
    """

    def extract(
        self,
        document: bytes,
        filename: str,
        config: ResolvedConfig,
        api_key: str | None = None,
    ) -> Extraction: ...


def classify_error(error: Exception) -> GatewayError:
    """Map an arbitrary client exception onto the retryable/terminal split."""
    if isinstance(error, GatewayError):
        return error

    status = getattr(error, "status_code", None) or getattr(error, "status", None)
    message = str(error)
    lowered = message.lower()

    if isinstance(status, int) and status in TRANSIENT_STATUS_CODES:
        return TransientGatewayError(message, last_error=error)
    if isinstance(error, (TimeoutError, FutureTimeoutError, ConnectionError)):
        return TransientGatewayError(message or "request timed out", last_error=error)
    if any(marker in lowered for marker in RATE_LIMIT_MARKERS + TRANSIENT_MARKERS):
        return TransientGatewayError(message, last_error=error)
    return TerminalGatewayError(message, last_error=error)


def _count(usage: Any, name: str) -> int:
    value = getattr(usage, name, 0)
    return value if isinstance(value, int) else 0


class _TimedCall:
    """Runs one client call on its own daemon thread.

    The timeout clock starts when the call starts. A call that outlives its
    timeout is abandoned; it holds only its own thread.
    """

    def __init__(self, fn: Callable[[], Any], filename: str) -> None:
        self.result: Any = None
        self.error: Exception | None = None
        self._fn = fn
        self._done = threading.Event()
        self._thread = threading.Thread(
            target=self._run, name=f"extraction-call-{filename}", daemon=True
        )
        self._thread.start()

    def _run(self) -> None:
        try:
            self.result = self._fn()
        except Exception as e:
            self.error = e
        finally:
            self._done.set()

    def wait(self, timeout: float | None) -> bool:
        return self._done.wait(timeout)


def _default_client_factory(model: str, api_key: str | None) -> BaseClient:
    return OpenAIClient(
        api_key=api_key or os.getenv(DEFAULT_API_KEY_ENV),
        model=model,
        cache_dir="cache",
        ttl_hours=None,
    )


class LLMExtractionGateway:
    """Extraction gateway backed by a seeds-clients LLM client.

    Clients are created lazily per ``(model, api_key)`` pair and reused.

    Example:
        ```python
        from seeds_clients import AnthropicClient

        gateway = LLMExtractionGateway(
            client_factory=lambda model, key: AnthropicClient(model=model, api_key=key),
        )
        extraction = gateway.extract(pdf_bytes, "invoice.pdf", resolved)
        ```
    """

    def __init__(
        self,
        client: BaseClient | None = None,
        client_factory: ClientFactory | None = None,
        prompt_builder: PromptBuilder | None = None,
        timeout: float | None = None,
    ) -> None:
        """Initialize the gateway.

        Args:
            client: Pre-configured client used for every call. Takes
                precedence over ``client_factory``.
            client_factory: Builds a client for a model name and API key.
            prompt_builder: Builder turning a resolved config into a prompt.
            timeout: Per-call timeout in seconds. ``None`` uses the resolved
                ``processing.timeout_seconds``.
        """
        self._client = client
        self._client_factory = client_factory or _default_client_factory
        self._clients: dict[tuple[str, str | None], BaseClient] = {}
        self._clients_lock = threading.Lock()
        self._prompt_builder = prompt_builder or PromptBuilder()
        self._timeout = timeout

    def _client_for(self, model: str, api_key: str | None) -> BaseClient:
        if self._client is not None:
            return self._client
        with self._clients_lock:
            key = (model, api_key)
            if key not in self._clients:
                self._clients[key] = self._client_factory(model, api_key)
            return self._clients[key]

    def build_messages(self, document: bytes, config: ResolvedConfig) -> list[Message]:
        prompt = self._prompt_builder.build_extraction_prompt(config)
        content: list[dict[str, Any]] = [
            {"type": "image", "source": document},
            {"type": "text", "text": prompt},
        ]
        return [Message(role="user", content=content)]

    def extract(
        self,
        document: bytes,
        filename: str,
        config: ResolvedConfig,
        api_key: str | None = None,
    ) -> Extraction:
        """Run one extraction call and normalize its response.

        Raises:
            TransientGatewayError: Rate limiting, server errors or timeouts.
            TerminalGatewayError: Anything else, including unparseable output.
        """
        client = self._client_for(config.model, api_key)
        messages = self.build_messages(document, config)
        timeout = self._timeout or config.processing.timeout_seconds

        logger.debug("Extracting %s with model=%s", filename, config.model)
        call = _TimedCall(
            lambda: client.generate(messages, use_cache=False, temperature=0.0), filename
        )
        if not call.wait(timeout):
            raise TransientGatewayError(f"Extraction call for {filename} timed out after {timeout:g}s")
        if call.error is not None:
            raise classify_error(call.error) from call.error
        response = call.result

        usage = response.usage
        token_usage = TokenUsage(
            prompt_tokens=_count(usage, "prompt_tokens"),
            output_tokens=_count(usage, "completion_tokens"),
            total_tokens=_count(usage, "total_tokens"),
        )
        text = response.content or ""

        try:
            data = parse_response(text)
        except TerminalGatewayError as e:
            e.token_usage = token_usage
            raise
        return normalize_extraction(data, config, token_usage=token_usage, raw_response=text)


def read_document(path: str | Path) -> bytes:
    return Path(path).read_bytes()
