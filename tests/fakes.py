"""In-memory stand-ins for the gRPC channel used across the tests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Iterable

from fwdproxy.errors import TransportError
from fwdproxy.models import ConnectivityState, ProxyEnvelope, ProxyErrorKind, ProxyRequest, ProxyResponse


def success(body: bytes = b"ok", status: int = 200, headers: dict[str, str] | None = None) -> ProxyEnvelope:
    return ProxyEnvelope(success=ProxyResponse(body=body, status_code=status, headers=headers or {}))


def remote_error(kind: ProxyErrorKind) -> ProxyEnvelope:
    return ProxyEnvelope(error_kind=kind)


def unavailable() -> TransportError:
    return TransportError("UNAVAILABLE", "failed to connect to all addresses")


@dataclass
class Held:
    """Reply that is only delivered once ``release`` is set."""

    reply: object
    release: asyncio.Event


class FakeCall:
    def __init__(self, reply: object, release: asyncio.Event | None = None) -> None:
        self._reply = reply
        self._release = release
        self.cancelled = False
        self.finished = False

    async def result(self) -> ProxyEnvelope | None:
        if self._release is not None:
            await self._release.wait()
        self.finished = True
        reply = self._reply() if callable(self._reply) else self._reply
        if isinstance(reply, BaseException):
            raise reply
        return reply  # type: ignore[return-value]

    def cancel(self) -> bool:
        if self.finished:
            return False
        self.cancelled = True
        return True


class FakeChannel:
    def __init__(self, replies: Iterable[object] = (), *, ready: bool = True, ready_delay: float = 0.0) -> None:
        self.replies = list(replies)
        self.ready = ready
        self.ready_delay = ready_delay
        self.requests: list[ProxyRequest] = []
        self.calls: list[FakeCall] = []
        self.closed = False
        self.state = ConnectivityState.IDLE

    def get_state(self, try_to_connect: bool = False) -> ConnectivityState:
        if try_to_connect and self.state is ConnectivityState.IDLE:
            self.state = ConnectivityState.CONNECTING
        return self.state

    async def wait_for_state_change(self, last_observed: ConnectivityState) -> None:
        while self.state is last_observed:
            await asyncio.sleep(0.005)

    async def wait_for_ready(self) -> None:
        if not self.ready:
            await asyncio.Event().wait()
        await asyncio.sleep(self.ready_delay)
        self.state = ConnectivityState.READY

    def send_request(self, request: ProxyRequest) -> FakeCall:
        self.requests.append(request)
        reply = self.replies.pop(0) if self.replies else success()
        if isinstance(reply, Held):
            call = FakeCall(reply.reply, reply.release)
        else:
            call = FakeCall(reply)
        self.calls.append(call)
        return call

    async def close(self) -> None:
        self.closed = True
        self.state = ConnectivityState.SHUTDOWN


class FakeChannelFactory:
    """Hands out prepared channels in order, counting how many were opened."""

    def __init__(self, *channels: FakeChannel) -> None:
        self._channels = list(channels)
        self.opened: list[FakeChannel] = []

    def __call__(self) -> FakeChannel:
        channel = self._channels.pop(0) if len(self._channels) > 1 else self._channels[0]
        self.opened.append(channel)
        return channel


async def wait_until(predicate, timeout: float = 1.0) -> None:  # type: ignore[no-untyped-def]
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)
