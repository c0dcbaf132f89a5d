"""Retry classification and linear backoff for proxied requests."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from .errors import ConnectionFailedError, ProxyClientError, RequestCancelledError, TransportError

# gRPC statuses that mean the channel could not carry the call.
CONNECTION_STATUS_CODES = frozenset({"UNAVAILABLE"})


def classify_transport_error(exc: TransportError) -> TransportError:
    """Promote connection-class transport failures to ``ConnectionFailedError``."""

    if isinstance(exc, ConnectionFailedError) or exc.code not in CONNECTION_STATUS_CODES:
        return exc
    return ConnectionFailedError(exc.code, exc.details)


def is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ProxyClientError) and exc.retryable


async def pause(delay: float, *, url: str, signal: asyncio.Event | None = None) -> None:
    """Sleep out a backoff; raises ``RequestCancelledError`` if ``signal`` fires."""

    if signal is None:
        await asyncio.sleep(delay)
        return
    if signal.is_set():
        raise RequestCancelledError(url)
    try:
        await asyncio.wait_for(signal.wait(), timeout=delay)
    except TimeoutError:
        return
    raise RequestCancelledError(url)


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Linear backoff: ``min(attempt * backoff_step, max_backoff)`` seconds."""

    max_retries: int = 0
    backoff_step: float = 0.25
    max_backoff: float = 10.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must not be negative, got {self.max_retries}")

    def wait_strategy(self) -> wait_incrementing:
        return wait_incrementing(start=self.backoff_step, increment=self.backoff_step, max=self.max_backoff)

    def retrying(
        self,
        *,
        url: str,
        signal: asyncio.Event | None = None,
        before_sleep: Callable[[RetryCallState], None] | None = None,
    ) -> AsyncRetrying:
        """Tenacity controller for one request.

        Only retryable errors are retried; the last error is re-raised once
        ``max_retries`` is spent. Backoff sleeps end early with
        ``RequestCancelledError`` when ``signal`` fires.
        """

        async def _sleep(delay: float) -> None:
            await pause(delay, url=url, signal=signal)

        return AsyncRetrying(
            sleep=_sleep,
            retry=retry_if_exception(is_retryable),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=self.wait_strategy(),
            before_sleep=before_sleep,
            reraise=True,
        )


__all__ = [
    "CONNECTION_STATUS_CODES",
    "RetryPolicy",
    "classify_transport_error",
    "is_retryable",
    "pause",
]
