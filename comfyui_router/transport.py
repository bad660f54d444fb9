"""
Single-call HTTP transport to a ComfyUI worker.

Every call is bounded by a hard timeout and every failure comes back as a
classified `TransportError` inside a `CallResult`; nothing is retried here.
"""
import asyncio
import errno
import json
import socket

import aiohttp

from .models import CallResult, ErrorKind, TransportError
from .utils.config import get_transport_timeout_seconds
from .utils.logging import debug_log
from .utils.network import get_client_session


ERROR_MESSAGES = {
    ErrorKind.TIMEOUT: "Request timed out. ComfyUI server is taking too long to respond.",
    ErrorKind.CONNECTION_RESET: "Connection reset. ComfyUI server may be down or unreachable.",
    ErrorKind.NETWORK_UNREACHABLE: "Network error. Unable to connect to ComfyUI server.",
    ErrorKind.DNS_FAILURE: "DNS resolution failed. ComfyUI server URL is invalid or unreachable.",
}

_DNS_MARKERS = (
    "ENOTFOUND",
    "Name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "Temporary failure in name resolution",
)
_RESET_MARKERS = ("ECONNRESET", "Connection reset")
_UNREACHABLE_MARKERS = (
    "ECONNREFUSED",
    "ENETUNREACH",
    "EHOSTUNREACH",
    "Cannot connect to host",
    "Network is unreachable",
)
_UNREACHABLE_ERRNOS = (errno.ECONNREFUSED, errno.ENETUNREACH, errno.EHOSTUNREACH)


def _error_chain(exc):
    """The exception, the OS error a connector error wraps, and its causes."""
    chain = []
    while exc is not None and exc not in chain:
        chain.append(exc)
        os_error = getattr(exc, "os_error", None)
        if isinstance(os_error, BaseException) and os_error not in chain:
            chain.append(os_error)
        exc = exc.__cause__ or exc.__context__
    return chain


def _is_dns(exc):
    return isinstance(exc, socket.gaierror)


def _is_reset(exc):
    if isinstance(exc, (ConnectionResetError, aiohttp.ServerDisconnectedError)):
        return True
    return isinstance(exc, OSError) and exc.errno == errno.ECONNRESET


def _is_unreachable(exc):
    if isinstance(exc, (aiohttp.ClientConnectionError, ConnectionRefusedError)):
        return True
    return isinstance(exc, OSError) and exc.errno in _UNREACHABLE_ERRNOS


def classify_error(exc):
    """Map a transport exception to an ErrorKind.

    Types are inspected across the whole chain first (most specific kind
    wins), then the error text is matched.
    """
    chain = _error_chain(exc)
    if any(isinstance(e, asyncio.TimeoutError) for e in chain):
        return ErrorKind.TIMEOUT
    for predicate, kind in (
        (_is_dns, ErrorKind.DNS_FAILURE),
        (_is_reset, ErrorKind.CONNECTION_RESET),
        (_is_unreachable, ErrorKind.NETWORK_UNREACHABLE),
    ):
        if any(predicate(e) for e in chain):
            return kind

    text = " ".join(str(e) for e in chain)
    for markers, kind in (
        (_DNS_MARKERS, ErrorKind.DNS_FAILURE),
        (_RESET_MARKERS, ErrorKind.CONNECTION_RESET),
        (_UNREACHABLE_MARKERS, ErrorKind.NETWORK_UNREACHABLE),
    ):
        if any(marker in text for marker in markers):
            return kind
    return ErrorKind.OTHER


def error_from_exception(exc, endpoint=None) -> TransportError:
    kind = classify_error(exc)
    detail = str(exc) or type(exc).__name__
    return TransportError(
        kind=kind,
        message=ERROR_MESSAGES.get(kind, detail),
        body=detail,
        endpoint=endpoint,
    )


def _decode_body(raw: bytes):
    """JSON when the worker sent JSON, text otherwise, None when empty."""
    if not raw:
        return None
    try:
        return json.loads(raw)
    except ValueError:
        return raw.decode("utf-8", errors="replace")


async def call_worker(endpoint, path, method="GET", *, payload=None, data=None,
                      headers=None, timeout=None, session=None) -> CallResult:
    """Perform one request against `endpoint + path`.

    Args:
        endpoint: worker base URL
        path: API path, e.g. "/prompt"
        payload: JSON body
        data: raw body or aiohttp.FormData
        timeout: total seconds before the call is aborted (defaults to the
            configured transport timeout)
        session: aiohttp session; the shared one when omitted

    Returns:
        CallResult with decoded `data` on 2xx, otherwise a classified error.
    """
    url = f"{endpoint.rstrip('/')}{path}"
    total = timeout if timeout is not None else get_transport_timeout_seconds()
    if session is None:
        session = await get_client_session()

    try:
        async with session.request(
            method,
            url,
            json=payload,
            data=data,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=total),
        ) as resp:
            if not 200 <= resp.status < 300:
                body = await resp.text(errors="replace")
                debug_log(f"{method} {url} failed: {resp.status} - {body[:200]}")
                return CallResult(
                    endpoint=endpoint,
                    error=TransportError(
                        kind=ErrorKind.SERVER_ERROR,
                        message=f"ComfyUI server error: {resp.status}",
                        status=resp.status,
                        body=body,
                        endpoint=endpoint,
                    ),
                )
            raw = await resp.read()
            return CallResult(endpoint=endpoint, data=_decode_body(raw))
    except Exception as e:
        error = error_from_exception(e, endpoint)
        debug_log(f"{method} {url} failed ({error.kind.value}): {error.body}")
        return CallResult(endpoint=endpoint, error=error)
