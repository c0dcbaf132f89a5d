"""Issue one proxied request over the shared channel."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from .errors import ProtocolViolationError, RemoteApplicationError, RequestCancelledError, TransportError
from .models import ProxyEnvelope, ProxyRequest, ProxyResponse
from .retry import classify_transport_error
from .transport import ProxyChannel

T = TypeVar("T")


async def until_signalled(work: Awaitable[T], signal: asyncio.Event, url: str) -> T:
    """Await ``work`` unless ``signal`` fires first.

    The losing side is cancelled before returning. A result that lands in the
    same tick as the signal still wins. Raises ``RequestCancelledError`` when
    the signal wins.
    """

    pending = asyncio.ensure_future(work)
    abort = asyncio.ensure_future(signal.wait())
    try:
        done, _ = await asyncio.wait({pending, abort}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        abort.cancel()
        if not pending.done():
            pending.cancel()
            await asyncio.gather(pending, return_exceptions=True)
    if pending in done:
        return pending.result()
    raise RequestCancelledError(url)


class RequestDispatcher:
    """Sends ``SendRequest`` calls and turns replies into responses or typed errors."""

    async def dispatch(
        self,
        channel: ProxyChannel,
        request: ProxyRequest,
        *,
        signal: asyncio.Event | None = None,
    ) -> ProxyResponse:
        if signal is not None and signal.is_set():
            raise RequestCancelledError(request.url)
        call = channel.send_request(request)
        try:
            if signal is None:
                envelope = await call.result()
            else:
                envelope = await until_signalled(call.result(), signal, request.url)
        except TransportError as exc:
            classified = classify_transport_error(exc)
            if classified is exc:
                raise
            raise classified from exc
        except (asyncio.CancelledError, RequestCancelledError):
            call.cancel()
            raise
        return self._translate(request.url, envelope)

    @staticmethod
    def _translate(url: str, envelope: ProxyEnvelope | None) -> ProxyResponse:
        if envelope is None:
            raise ProtocolViolationError(url)
        if envelope.error_kind is not None:
            raise RemoteApplicationError(url, envelope.error_kind)
        if envelope.success is None:
            raise ProtocolViolationError(url)
        return envelope.success


__all__ = ["RequestDispatcher", "until_signalled"]
