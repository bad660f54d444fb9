"""
Least-loaded worker selection across the pool.
"""
import asyncio

from .models import Depth, depth_sort_key
from .queue_probe import probe_queue_depth
from .utils.logging import debug_log


async def probe_pool(endpoints, *, probe=probe_queue_depth, timeout=None, session=None):
    """Probe every endpoint concurrently.

    Returns [(endpoint, QueueDepth), ...] in the given order once all probes
    have finished. Cancelling the caller cancels the outstanding probes.
    """
    endpoints = list(endpoints)
    depths = await asyncio.gather(
        *[probe(endpoint, timeout=timeout, session=session) for endpoint in endpoints]
    )
    return list(zip(endpoints, depths))


def pick_least_loaded(results):
    """Endpoint with the smallest depth, first configured on ties.

    Falls back to the full (all unreachable) result set so there is always
    an answer.
    """
    if not results:
        raise ValueError("No workers to choose from")
    online = [entry for entry in results if isinstance(entry[1], Depth)]
    # sorted() is stable, so equal depths keep configuration order
    best = sorted(online or results, key=lambda entry: depth_sort_key(entry[1]))[0]
    return best[0]


async def select_best_worker(pool, *, probe=probe_queue_depth, timeout=None, session=None):
    """Pick the pool worker with the shortest queue."""
    results = await probe_pool(pool.workers, probe=probe, timeout=timeout, session=session)
    best = pick_least_loaded(results)
    debug_log(
        "Queue depths: "
        + ", ".join(f"{endpoint}={depth!r}" for endpoint, depth in results)
        + f" -> {best}"
    )
    return best
