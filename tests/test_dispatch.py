"""Tests for the request dispatcher."""

from __future__ import annotations

import asyncio

import pytest

from fakes import FakeChannel, Held, remote_error, success, unavailable, wait_until
from fwdproxy.dispatch import RequestDispatcher, until_signalled
from fwdproxy.errors import (
    ConnectionFailedError,
    ProtocolViolationError,
    RemoteApplicationError,
    RequestCancelledError,
    TransportError,
)
from fwdproxy.models import ProxyEnvelope, ProxyErrorKind, ProxyRequest

URL = "https://example.com/page"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.mark.anyio
async def test_success_envelope_becomes_response() -> None:
    channel = FakeChannel([success(b"hello", 200, {"Server": "demo"})])
    request = ProxyRequest(url=URL, priority=3, retry_on_codes=(503,))

    response = await RequestDispatcher().dispatch(channel, request)

    assert response.body == b"hello"
    assert response.status_code == 200
    assert response.headers == {"Server": "demo"}
    assert channel.requests == [request]


@pytest.mark.anyio
async def test_error_envelope_raises_remote_error() -> None:
    channel = FakeChannel([remote_error(ProxyErrorKind.INVALID_URL)])

    with pytest.raises(RemoteApplicationError) as excinfo:
        await RequestDispatcher().dispatch(channel, ProxyRequest(url=URL))

    assert excinfo.value.kind is ProxyErrorKind.INVALID_URL
    assert "INVALID_URL" in str(excinfo.value)


@pytest.mark.parametrize("reply", [None, ProxyEnvelope()])
@pytest.mark.anyio
async def test_missing_payload_is_a_protocol_violation(reply: ProxyEnvelope | None) -> None:
    channel = FakeChannel([reply])

    with pytest.raises(ProtocolViolationError, match="No response"):
        await RequestDispatcher().dispatch(channel, ProxyRequest(url=URL))


@pytest.mark.anyio
async def test_unavailable_transport_error_is_retryable() -> None:
    channel = FakeChannel([unavailable()])

    with pytest.raises(ConnectionFailedError) as excinfo:
        await RequestDispatcher().dispatch(channel, ProxyRequest(url=URL))

    assert excinfo.value.retryable is True
    assert isinstance(excinfo.value.__cause__, TransportError)


@pytest.mark.anyio
async def test_other_transport_errors_propagate_unchanged() -> None:
    failure = TransportError("PERMISSION_DENIED", "nope")
    channel = FakeChannel([failure])

    with pytest.raises(TransportError) as excinfo:
        await RequestDispatcher().dispatch(channel, ProxyRequest(url=URL))

    assert excinfo.value is failure


@pytest.mark.anyio
async def test_signal_cancels_in_flight_call() -> None:
    channel = FakeChannel([Held(success(), asyncio.Event())])
    signal = asyncio.Event()

    task = asyncio.create_task(RequestDispatcher().dispatch(channel, ProxyRequest(url=URL), signal=signal))
    await wait_until(lambda: channel.requests)
    signal.set()

    with pytest.raises(RequestCancelledError):
        await task
    assert channel.calls[0].cancelled is True


@pytest.mark.anyio
async def test_fired_signal_prevents_sending() -> None:
    channel = FakeChannel()
    signal = asyncio.Event()
    signal.set()

    with pytest.raises(RequestCancelledError):
        await RequestDispatcher().dispatch(channel, ProxyRequest(url=URL), signal=signal)

    assert channel.requests == []


@pytest.mark.anyio
async def test_abort_waiter_does_not_outlive_completed_call() -> None:
    channel = FakeChannel([success()])
    signal = asyncio.Event()
    before = len(asyncio.all_tasks())

    await RequestDispatcher().dispatch(channel, ProxyRequest(url=URL), signal=signal)
    await asyncio.sleep(0.01)

    assert len(asyncio.all_tasks()) == before
    assert channel.calls[0].cancelled is False
    signal.set()


@pytest.mark.anyio
async def test_cancelling_the_caller_cancels_the_call() -> None:
    channel = FakeChannel([Held(success(), asyncio.Event())])

    task = asyncio.create_task(
        RequestDispatcher().dispatch(channel, ProxyRequest(url=URL), signal=asyncio.Event())
    )
    await wait_until(lambda: channel.requests)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert channel.calls[0].cancelled is True


@pytest.mark.anyio
async def test_until_signalled_prefers_a_result_landing_with_the_signal() -> None:
    signal = asyncio.Event()

    async def _work() -> str:
        signal.set()
        return "done"

    assert await until_signalled(_work(), signal, URL) == "done"


@pytest.mark.anyio
async def test_until_signalled_cancels_the_losing_work() -> None:
    signal = asyncio.Event()
    started = asyncio.Event()
    cancelled = False

    async def _work() -> None:
        nonlocal cancelled
        started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            cancelled = True
            raise

    task = asyncio.create_task(until_signalled(_work(), signal, URL))
    await started.wait()
    signal.set()

    with pytest.raises(RequestCancelledError):
        await asyncio.wait_for(task, timeout=1)
    assert cancelled is True
