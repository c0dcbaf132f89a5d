"""RPC transport used by the connection holder and dispatcher."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

import grpc

from .errors import TransportError
from .models import ConnectivityState, ProxyEnvelope, ProxyRequest
from .wire import SEND_REQUEST_METHOD, decode_response, encode_request


@runtime_checkable
class PendingCall(Protocol):
    """Handle to one in-flight unary call."""

    async def result(self) -> ProxyEnvelope | None:
        """Wait for the reply; raises ``TransportError`` on RPC failure."""

    def cancel(self) -> bool:
        """Cancel the call; returns ``False`` if it already finished."""


@runtime_checkable
class ProxyChannel(Protocol):
    """Protocol implemented by proxy channels."""

    def get_state(self, try_to_connect: bool = False) -> ConnectivityState:
        """Return the current connectivity state."""

    async def wait_for_state_change(self, last_observed: ConnectivityState) -> None:
        """Suspend until the state differs from ``last_observed``."""

    async def wait_for_ready(self) -> None:
        """Suspend until the channel is ready."""

    def send_request(self, request: ProxyRequest) -> PendingCall:
        """Start a ``SendRequest`` call."""

    async def close(self) -> None:
        """Release the channel."""


@dataclass(frozen=True, slots=True)
class ChannelSettings:
    """Options used when opening a gRPC channel to the proxy."""

    target: str
    secure: bool = False
    max_message_length: int = -1
    max_reconnect_backoff_ms: int = 1000
    compression_level: int = 2
    enable_retries: bool = True

    def channel_options(self) -> list[tuple[str, int]]:
        return [
            ("grpc.max_receive_message_length", self.max_message_length),
            ("grpc.max_send_message_length", self.max_message_length),
            ("grpc.max_reconnect_backoff_ms", self.max_reconnect_backoff_ms),
            ("grpc.default_compression_level", self.compression_level),
            ("grpc.enable_retries", int(self.enable_retries)),
        ]


class _GrpcPendingCall:
    def __init__(self, call: grpc.aio.UnaryUnaryCall) -> None:
        self._call = call

    async def result(self) -> ProxyEnvelope | None:
        try:
            return await self._call
        except grpc.aio.AioRpcError as exc:
            raise TransportError(exc.code().name, exc.details()) from exc

    def cancel(self) -> bool:
        return self._call.cancel()


class GrpcProxyChannel:
    """Proxy channel backed by ``grpc.aio``."""

    def __init__(self, channel: grpc.aio.Channel) -> None:
        self._channel = channel
        self._send_request = channel.unary_unary(
            SEND_REQUEST_METHOD,
            request_serializer=encode_request,
            response_deserializer=decode_response,
        )

    @classmethod
    def open(cls, settings: ChannelSettings) -> GrpcProxyChannel:
        """Open a channel; grpcio owns reconnection from here on."""

        options = settings.channel_options()
        if settings.secure:
            channel = grpc.aio.secure_channel(
                settings.target,
                grpc.ssl_channel_credentials(),
                options=options,
            )
        else:
            channel = grpc.aio.insecure_channel(settings.target, options=options)
        return cls(channel)

    def get_state(self, try_to_connect: bool = False) -> ConnectivityState:
        state = self._channel.get_state(try_to_connect=try_to_connect)
        return ConnectivityState[state.name]

    async def wait_for_state_change(self, last_observed: ConnectivityState) -> None:
        await self._channel.wait_for_state_change(grpc.ChannelConnectivity[last_observed.name])

    async def wait_for_ready(self) -> None:
        await self._channel.channel_ready()

    def send_request(self, request: ProxyRequest) -> PendingCall:
        return _GrpcPendingCall(self._send_request(request))

    async def close(self) -> None:
        await self._channel.close()


__all__ = [
    "ChannelSettings",
    "GrpcProxyChannel",
    "PendingCall",
    "ProxyChannel",
]
