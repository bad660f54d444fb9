"""
Value objects shared by the router core.

Everything here is immutable; results are created per call and handed back
to the caller instead of being raised.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union

from .utils.constants import PROMPT_PATH


class ErrorKind(str, Enum):
    TIMEOUT = "timeout"
    CONNECTION_RESET = "connection_reset"
    NETWORK_UNREACHABLE = "network_unreachable"
    DNS_FAILURE = "dns_failure"
    SERVER_ERROR = "server_error"
    CANNOT_CONNECT = "cannot_connect"
    UPLOAD_EXHAUSTED = "upload_exhausted"
    OTHER = "other"


@dataclass(frozen=True)
class TransportError:
    """Classified failure of a worker call.

    `cause` is set for the wrapper kinds (CANNOT_CONNECT, UPLOAD_EXHAUSTED)
    and holds the underlying classified error.
    """
    kind: ErrorKind
    message: str
    status: Optional[int] = None
    body: Optional[str] = None
    endpoint: Optional[str] = None
    cause: Optional["TransportError"] = None

    @property
    def details(self):
        if self.body is not None:
            return self.body
        if self.cause is not None:
            return self.cause.message
        return self.message

    def to_dict(self):
        result = {
            "kind": self.kind.value,
            "error": self.message,
            "details": self.details,
        }
        if self.status is not None:
            result["status"] = self.status
        if self.cause is not None:
            result["cause"] = self.cause.to_dict()
        return result


@dataclass(frozen=True)
class CallResult:
    """Outcome of a single transport call: either `data` or `error`."""
    endpoint: str
    data: Any = None
    error: Optional[TransportError] = None

    @property
    def ok(self):
        return self.error is None

    def to_dict(self):
        if self.ok:
            return {"success": True, "data": self.data, "serverUrl": self.endpoint}
        return {"success": False, **self.error.to_dict(), "serverUrl": self.endpoint}


@dataclass(frozen=True)
class Depth:
    count: int

    def __post_init__(self):
        if self.count < 0:
            raise ValueError(f"Queue depth cannot be negative: {self.count}")


class Unreachable:
    """Probe failed; the worker sorts after every reachable one."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "UNREACHABLE"


UNREACHABLE = Unreachable()

QueueDepth = Union[Depth, Unreachable]


def depth_sort_key(depth: QueueDepth) -> float:
    """Ordering value for a probe result; unreachable is +infinity."""
    if isinstance(depth, Depth):
        return depth.count
    return math.inf


def depth_to_json(depth: QueueDepth):
    return depth.count if isinstance(depth, Depth) else None


class JobCategory(str, Enum):
    AFFINITY = "affinity"  # primary unless overridden
    BALANCED = "balanced"  # least-loaded pool member


# Job kinds the image front end submits and where they are allowed to run
TASK_CATEGORIES = {
    "bump": JobCategory.AFFINITY,
    "grain": JobCategory.AFFINITY,
    "upscale": JobCategory.BALANCED,
}


@dataclass(frozen=True)
class DispatchRequest:
    category: JobCategory
    payload: Any = field(default_factory=dict)
    override: Optional[str] = None
    path: str = PROMPT_PATH


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    endpoint: str
    data: Any = None
    error: Optional[TransportError] = None

    @classmethod
    def from_call(cls, call: CallResult):
        return cls(success=call.ok, endpoint=call.endpoint, data=call.data, error=call.error)

    def to_dict(self):
        if self.success:
            return {"success": True, "data": self.data, "serverUrl": self.endpoint}
        return {"success": False, **self.error.to_dict(), "serverUrl": self.endpoint}
