"""Client for tunneling HTTP fetches through a gRPC forward proxy."""

from __future__ import annotations

from .config import ChannelConfig, ProxyClientConfig, load_config
from .errors import (
    ConnectTimeoutError,
    ConnectionFailedError,
    ProtocolViolationError,
    ProxyClientError,
    RemoteApplicationError,
    RequestCancelledError,
    TransportError,
    UnexpectedStatusError,
)
from .events import ProxyEvent
from .manager import FetchResult, ForwardProxyManager
from .models import ConnectivityState, ProxyErrorKind, ProxyResponse

__all__ = [
    "ChannelConfig",
    "ConnectTimeoutError",
    "ConnectionFailedError",
    "ConnectivityState",
    "FetchResult",
    "ForwardProxyManager",
    "ProtocolViolationError",
    "ProxyClientConfig",
    "ProxyClientError",
    "ProxyErrorKind",
    "ProxyEvent",
    "ProxyResponse",
    "RemoteApplicationError",
    "RequestCancelledError",
    "TransportError",
    "UnexpectedStatusError",
    "load_config",
]
