"""
Queue-depth probing for ComfyUI workers.
"""
from .models import UNREACHABLE, Depth, QueueDepth, depth_to_json
from .transport import call_worker
from .utils.constants import QUEUE_PATH
from .utils.logging import debug_log


def _count(entries):
    return len(entries) if isinstance(entries, list) else 0


def queue_depth_from_snapshot(snapshot) -> QueueDepth:
    """Running + pending job count from a /queue response body."""
    if not isinstance(snapshot, dict):
        return UNREACHABLE
    return Depth(_count(snapshot.get("queue_running")) + _count(snapshot.get("queue_pending")))


async def probe_queue_depth(endpoint, *, timeout=None, session=None) -> QueueDepth:
    """Current load of one worker, or UNREACHABLE if it cannot be read.

    Never raises for network or payload problems.
    """
    result = await call_worker(endpoint, QUEUE_PATH, timeout=timeout, session=session)
    if not result.ok:
        debug_log(f"Queue probe failed for {endpoint}: {result.error.kind.value}")
        return UNREACHABLE
    return queue_depth_from_snapshot(result.data)


async def fetch_server_queue(endpoint, *, timeout=None, session=None):
    """Raw /queue snapshot plus derived queue size, for the overview endpoint."""
    result = await call_worker(endpoint, QUEUE_PATH, timeout=timeout, session=session)
    snapshot = result.to_dict()
    depth = queue_depth_from_snapshot(result.data) if result.ok else UNREACHABLE
    snapshot["queueSize"] = depth_to_json(depth)
    return snapshot
