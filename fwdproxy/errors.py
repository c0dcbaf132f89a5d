"""Typed failures raised by the proxy client."""

from __future__ import annotations

from .models import ProxyErrorKind


class ProxyClientError(RuntimeError):
    """Base class for every failure surfaced by the proxy client."""

    retryable: bool = False


class ConnectTimeoutError(ProxyClientError):
    """Raised when the channel does not become ready within the client timeout."""

    retryable = True

    def __init__(self, target: str, timeout_ms: int) -> None:
        self.target = target
        self.timeout_ms = timeout_ms
        super().__init__(f"Failed to connect to proxy at {target} within {timeout_ms}ms")


class TransportError(ProxyClientError):
    """RPC-level failure reported by the transport."""

    def __init__(self, code: str, details: str | None = None) -> None:
        self.code = code
        self.details = details or ""
        message = f"{code}: {self.details}" if self.details else code
        super().__init__(message)


class ConnectionFailedError(TransportError):
    """Transport failure caused by a lost or unreachable connection."""

    retryable = True


class RemoteApplicationError(ProxyClientError):
    """The proxy answered with an explicit error envelope."""

    def __init__(self, url: str, kind: ProxyErrorKind) -> None:
        self.url = url
        self.kind = kind
        super().__init__(f"request failed: {kind.name}")


class ProtocolViolationError(ProxyClientError):
    """The proxy reply carried neither a success nor an error envelope."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__("No response")


class RequestCancelledError(ProxyClientError):
    """The request's cancellation signal fired while it was outstanding."""

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__("Request aborted")


class UnexpectedStatusError(ProxyClientError):
    """A proxied fetch succeeded with an HTTP status other than 200."""

    def __init__(self, url: str, status_code: int) -> None:
        self.url = url
        self.status_code = status_code
        super().__init__(f"Failed to download {url}, status code {status_code}")


__all__ = [
    "ConnectTimeoutError",
    "ConnectionFailedError",
    "ProtocolViolationError",
    "ProxyClientError",
    "RemoteApplicationError",
    "RequestCancelledError",
    "TransportError",
    "UnexpectedStatusError",
]
