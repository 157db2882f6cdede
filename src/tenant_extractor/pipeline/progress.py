"""One-way, ordered progress events from a batch run to an observer."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from pydantic import ConfigDict
from pydantic.alias_generators import to_camel

from tenant_extractor.core.config import CamelModel
from tenant_extractor.core.exceptions import TenantExtractorError

logger = logging.getLogger(__name__)


class ProgressStatus:
    """Well-known status values. Observers must tolerate others."""

    CONNECTED = "connected"
    STARTING = "starting"
    ANALYZING = "analyzing"
    RETRYING = "retrying"
    COMPLETED = "completed"
    DRY_RUN_COMPLETED = "dry-run-completed"
    FAILED = "failed"
    DONE = "done"
    ERROR = "error"
    WARNING = "warning"
    CLIENT_STARTING = "client-starting"
    CLIENT_DONE = "client-done"
    CLIENT_ERROR = "client-error"


class ProgressEvent(CamelModel):
    """A single progress notification. Unknown keys are carried through."""

    model_config = ConfigDict(extra="allow")

    status: str
    tenant_id: str | None = None
    filename: str | None = None
    attempt: int | None = None
    max_attempts: int | None = None
    delay: float | None = None
    error: str | None = None
    current: int | None = None
    total: int | None = None


class SinkDisconnectedError(TenantExtractorError):
    """Raised by a sink whose observer has gone away."""

    pass


@runtime_checkable
class ProgressSink(Protocol):
    def emit(self, event: ProgressEvent) -> None: ...


class NullSink:
    def emit(self, event: ProgressEvent) -> None:
        pass


class ListSink:
    """Collects events in memory, in emission order."""

    def __init__(self) -> None:
        self.events: list[ProgressEvent] = []

    def emit(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def statuses(self) -> list[str]:
        return [e.status for e in self.events]


class CallbackSink:
    def __init__(self, callback: Callable[[ProgressEvent], Any]) -> None:
        self._callback = callback

    def emit(self, event: ProgressEvent) -> None:
        self._callback(event)


class QueueSink:
    """Feeds events into a queue for a transport adapter (e.g. server-sent events).

    Calling :meth:`close` models the observer disconnecting: later emits
    raise :class:`SinkDisconnectedError`.
    """

    def __init__(self, maxsize: int = 0) -> None:
        self.queue: queue.Queue[ProgressEvent] = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self) -> None:
        self._closed.set()

    def emit(self, event: ProgressEvent) -> None:
        if self._closed.is_set():
            raise SinkDisconnectedError("progress observer disconnected")
        self.queue.put(event)


class GuardedSink:
    """Serializes delivery to a sink and stops delivering once it fails.

    A failing observer never affects the batch: the first exception marks the
    sink disconnected and every later event is dropped.
    """

    def __init__(self, sink: ProgressSink | None, **context: Any) -> None:
        self._sink = sink or NullSink()
        self._context = {k: v for k, v in context.items() if v is not None}
        self._lock = threading.Lock()
        self.disconnected = False

    def emit(self, event: ProgressEvent) -> None:
        with self._lock:
            if self.disconnected:
                return
            try:
                self._sink.emit(event)
            except Exception as e:
                self.disconnected = True
                logger.warning("Progress delivery stopped: %s", e)

    def send(self, status: str, **fields: Any) -> None:
        """Build an event carrying this sink's context and deliver it."""
        payload = {**self._context, **{k: v for k, v in fields.items() if v is not None}}
        known = ProgressEvent.model_fields
        payload = {k if k in known else to_camel(k): v for k, v in payload.items()}
        self.emit(ProgressEvent(status=status, **payload))
