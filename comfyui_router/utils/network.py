"""
Network and API utilities for ComfyUI-Router.
"""
import aiohttp
from aiohttp import web
from .constants import (
    CONNECTOR_LIMIT,
    CONNECTOR_LIMIT_PER_HOST,
    DEFAULT_WORKER_PORT,
    HTTPS_HOST_SUFFIXES,
)
from .logging import debug_log

# Shared session for connection pooling
_client_session = None

async def get_client_session():
    """Get or create a shared aiohttp client session."""
    global _client_session
    if _client_session is None or _client_session.closed:
        connector = aiohttp.TCPConnector(limit=CONNECTOR_LIMIT, limit_per_host=CONNECTOR_LIMIT_PER_HOST)
        # Don't set timeout here - set it per request
        _client_session = aiohttp.ClientSession(connector=connector)
    return _client_session

async def cleanup_client_session():
    """Clean up the shared client session."""
    global _client_session
    if _client_session and not _client_session.closed:
        await _client_session.close()
    _client_session = None

async def handle_api_error(request, error, status=500):
    """Standardized error response handler."""
    debug_log(f"API Error: {error}")
    return web.json_response({"status": "error", "message": str(error)}, status=status)

def needs_https(hostname):
    """True for cloud proxy / tunnel hosts that only serve https."""
    hostname = hostname.lower()
    return any(hostname.endswith(suffix) for suffix in HTTPS_HOST_SUFFIXES)

def build_worker_url(worker, endpoint=""):
    """Construct the worker base URL with optional endpoint.

    `worker` is either a ready URL string or a config entry with
    host/port/type keys.
    """
    if isinstance(worker, str):
        worker = {"host": worker}

    host = (worker.get("host") or "").strip()
    configured_port = worker.get("port")
    port = int(configured_port or DEFAULT_WORKER_PORT)

    if not host:
        raise ValueError(f"Worker entry has no host: {worker!r}")

    if host.startswith(("http://", "https://")):
        base = host.rstrip("/")
    else:
        is_cloud = worker.get("type") == "cloud" or needs_https(host) or port == 443
        scheme = "https" if is_cloud else "http"
        default_port = 443 if scheme == "https" else 80
        # Cloud hosts without an explicit port use the scheme default
        if configured_port is None and is_cloud:
            port = default_port
        port_part = "" if port == default_port else f":{port}"
        base = f"{scheme}://{host}{port_part}"

    return f"{base}{endpoint}"
