"""Shared dataclasses used across the dispatch, transport and wire modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Mapping


class ConnectivityState(str, Enum):
    """Channel health as reported by the transport."""

    IDLE = "idle"
    CONNECTING = "connecting"
    READY = "ready"
    TRANSIENT_FAILURE = "transient_failure"
    SHUTDOWN = "shutdown"


class ProxyErrorKind(IntEnum):
    """Error kinds the remote proxy declares in its error envelope."""

    INVALID_URL = 0
    PROXY_ERROR = 1
    REMOTE_HOST_TIMED_OUT = 2
    REMOTE_HOST_UNREACHABLE = 3
    UNKNOWN = -1

    @classmethod
    def from_wire(cls, value: int) -> ProxyErrorKind:
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True, slots=True)
class ProxyRequest:
    """One logical fetch tunneled through the proxy."""

    url: str
    priority: int | None = None
    retry_on_codes: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True)
class ProxyResponse:
    """Successful proxied response."""

    body: bytes
    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class ProxyEnvelope:
    """Decoded RPC reply: a success payload, an error kind, or neither."""

    success: ProxyResponse | None = None
    error_kind: ProxyErrorKind | None = None


__all__ = [
    "ConnectivityState",
    "ProxyEnvelope",
    "ProxyErrorKind",
    "ProxyRequest",
    "ProxyResponse",
]
