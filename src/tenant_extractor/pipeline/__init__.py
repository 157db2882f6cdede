"""Batch pipeline: gateway, retries, scheduling and progress."""

from tenant_extractor.pipeline.executor import RetryingExecutor, RetryPolicy, WorkItem
from tenant_extractor.pipeline.gateway import (
    ExtractionGateway,
    LLMExtractionGateway,
    classify_error,
)
from tenant_extractor.pipeline.progress import (
    CallbackSink,
    GuardedSink,
    ListSink,
    NullSink,
    ProgressEvent,
    ProgressSink,
    ProgressStatus,
    QueueSink,
    SinkDisconnectedError,
)
from tenant_extractor.pipeline.scheduler import (
    BatchJob,
    BatchScheduler,
    DocumentFinalizer,
    TenantRegistry,
)

__all__ = [
    "ExtractionGateway",
    "LLMExtractionGateway",
    "classify_error",
    "RetryingExecutor",
    "RetryPolicy",
    "WorkItem",
    "BatchJob",
    "BatchScheduler",
    "DocumentFinalizer",
    "TenantRegistry",
    "ProgressEvent",
    "ProgressSink",
    "ProgressStatus",
    "GuardedSink",
    "NullSink",
    "ListSink",
    "CallbackSink",
    "QueueSink",
    "SinkDisconnectedError",
]
