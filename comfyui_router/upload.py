"""
Upload images to a worker with a connectivity gate and bounded retry.
"""
import asyncio
import io

import aiohttp
from PIL import Image

from .models import CallResult, ErrorKind, TransportError
from .transport import call_worker
from .utils.constants import (
    SYSTEM_STATS_PATH,
    UPLOAD_BACKOFF_BASE,
    UPLOAD_IMAGE_PATH,
    UPLOAD_MAX_ATTEMPTS,
)
from .utils.logging import debug_log, log


async def check_connection(endpoint, *, timeout=None, session=None) -> CallResult:
    """Lightweight liveness probe (GET /system_stats)."""
    debug_log(f"Testing ComfyUI server connection at {endpoint}...")
    return await call_worker(endpoint, SYSTEM_STATS_PATH, timeout=timeout, session=session)


def backoff_delay(attempt):
    """Seconds to wait after failed attempt number `attempt` (1-based)."""
    return UPLOAD_BACKOFF_BASE ** attempt


def encode_image(payload):
    """Return the raw bytes to upload for bytes, file-like or PIL input."""
    if isinstance(payload, Image.Image):
        bio = io.BytesIO()
        payload.save(bio, format='PNG', compress_level=0)
        return bio.getvalue()
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return bytes(payload)
    if hasattr(payload, "read"):
        return payload.read()
    raise TypeError(f"Unsupported upload payload type: {type(payload).__name__}")


def _build_form(image_bytes, filename, content_type, fields):
    # FormData is consumed by a request, so every attempt gets a fresh one
    data = aiohttp.FormData()
    data.add_field('image', io.BytesIO(image_bytes), filename=filename, content_type=content_type)
    for key, value in (fields or {}).items():
        data.add_field(key, str(value))
    return data


async def upload_with_retry(endpoint, payload, *, filename="image.png", content_type="image/png",
                            path=UPLOAD_IMAGE_PATH, fields=None, max_attempts=UPLOAD_MAX_ATTEMPTS,
                            sleep=asyncio.sleep, timeout=None, session=None) -> CallResult:
    """Upload `payload` to `endpoint`, retrying transient failures.

    The worker is health-checked first; if that fails nothing is uploaded and
    a CANNOT_CONNECT error is returned. Otherwise up to `max_attempts`
    uploads are tried with 2s, 4s, ... between them. When every attempt fails
    the result carries UPLOAD_EXHAUSTED with the last error as its cause.
    """
    image_bytes = encode_image(payload)
    max_attempts = max(1, int(max_attempts))

    connection_test = await check_connection(endpoint, timeout=timeout, session=session)
    if not connection_test.ok:
        log(f"ComfyUI server connection test failed for {endpoint}: {connection_test.error.message}")
        return CallResult(
            endpoint=endpoint,
            error=TransportError(
                kind=ErrorKind.CANNOT_CONNECT,
                message="Cannot connect to ComfyUI server",
                endpoint=endpoint,
                cause=connection_test.error,
            ),
        )
    debug_log("ComfyUI server connection test successful")

    last_error = None

    for attempt in range(1, max_attempts + 1):
        debug_log(f"Upload attempt {attempt}/{max_attempts} to {endpoint}{path}")
        result = await call_worker(
            endpoint,
            path,
            "POST",
            data=_build_form(image_bytes, filename, content_type, fields),
            timeout=timeout,
            session=session,
        )
        if result.ok:
            debug_log(f"Upload successful on attempt {attempt}")
            return result

        last_error = result.error
        log(f"Upload failed on attempt {attempt}: {last_error.message}")

        if attempt < max_attempts:
            delay = backoff_delay(attempt)
            debug_log(f"Waiting {delay}s before retry...")
            await sleep(delay)

    log(f"All {max_attempts} upload attempts to {endpoint} failed")
    return CallResult(
        endpoint=endpoint,
        error=TransportError(
            kind=ErrorKind.UPLOAD_EXHAUSTED,
            message="Upload failed after multiple attempts",
            endpoint=endpoint,
            cause=last_error,
        ),
    )
