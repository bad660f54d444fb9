"""
ComfyUI-Router: load-aware job routing across a fixed pool of ComfyUI workers.
"""
from .models import (
    UNREACHABLE,
    TASK_CATEGORIES,
    CallResult,
    Depth,
    DispatchRequest,
    DispatchResult,
    ErrorKind,
    JobCategory,
    QueueDepth,
    TransportError,
)
from .queue_probe import probe_queue_depth
from .registry import WorkerPool
from .router import DispatchRouter
from .selector import select_best_worker
from .transport import call_worker, classify_error
from .upload import check_connection, upload_with_retry

__all__ = [
    "UNREACHABLE",
    "TASK_CATEGORIES",
    "CallResult",
    "Depth",
    "DispatchRequest",
    "DispatchResult",
    "DispatchRouter",
    "ErrorKind",
    "JobCategory",
    "QueueDepth",
    "TransportError",
    "WorkerPool",
    "call_worker",
    "check_connection",
    "classify_error",
    "probe_queue_depth",
    "select_best_worker",
    "upload_with_retry",
]
