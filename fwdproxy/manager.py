"""Request API tunneling fetches through the forward proxy."""

from __future__ import annotations

import asyncio
import functools
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping

from tenacity import RetryCallState

from .config import ChannelConfig, ProxyClientConfig
from .connection import ChannelFactory, ConnectionHolder
from .dispatch import RequestDispatcher, until_signalled
from .errors import ProxyClientError, RequestCancelledError, UnexpectedStatusError
from .events import EventListener, EventNotifier, ProxyEvent
from .gate import AdmissionGate
from .models import ConnectivityState, ProxyRequest, ProxyResponse
from .retry import RetryPolicy, is_retryable
from .transport import GrpcProxyChannel, ProxyChannel

LOG = logging.getLogger(__name__)


def _silent_logger() -> logging.Logger:
    logger = logging.Logger(f"{__name__}.silent")
    logger.disabled = True
    return logger


@dataclass(frozen=True, slots=True)
class FetchResult:
    """Body of a successful (HTTP 200) proxied fetch."""

    url: str
    body: bytes
    status_code: int
    headers: Mapping[str, str] = field(default_factory=dict)

    def text(self, encoding: str = "utf-8") -> str:
        return self.body.decode(encoding)

    def json(self) -> Any:
        return json.loads(self.body)

    def buffer(self) -> bytes:
        return self.body


class ForwardProxyManager:
    """Shares one proxy connection between many concurrent fetches.

    ``semaphore`` bounds how many requests are dispatched at once,
    ``max_retries`` caps retries of connection failures and ``client_timeout``
    (milliseconds) bounds the initial handshake. Pass ``logger=None`` to
    silence logging. ``retry_policy``, when given, replaces the policy built
    from ``max_retries``.
    """

    def __init__(
        self,
        target: str,
        *,
        semaphore: int = 1000,
        max_retries: int = 0,
        client_timeout: int = 5000,
        logger: logging.Logger | None = LOG,
        channel: ChannelConfig | None = None,
        channel_factory: ChannelFactory | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._target = target
        self._log = logger if logger is not None else _silent_logger()
        self._events = EventNotifier()
        self._gate = AdmissionGate(semaphore)
        self._retry = retry_policy or RetryPolicy(max_retries=max_retries)
        self._dispatcher = RequestDispatcher()
        if channel_factory is None:
            settings = (channel or ChannelConfig()).settings(target)
            channel_factory = functools.partial(GrpcProxyChannel.open, settings)
        self._holder = ConnectionHolder(
            channel_factory,
            target=target,
            connect_timeout_ms=client_timeout,
            events=self._events,
            logger=self._log,
        )

    @classmethod
    def from_config(cls, config: ProxyClientConfig, **kwargs: Any) -> ForwardProxyManager:
        """Build a manager from a loaded :class:`ProxyClientConfig`."""

        kwargs.setdefault("logger", LOG if config.logging_enabled else None)
        return cls(
            config.target,
            semaphore=config.semaphore,
            max_retries=config.max_retries,
            client_timeout=config.client_timeout_ms,
            channel=config.channel,
            **kwargs,
        )

    @property
    def target(self) -> str:
        return self._target

    @property
    def max_retries(self) -> int:
        return self._retry.max_retries

    @property
    def capacity(self) -> int:
        return self._gate.capacity

    @property
    def in_flight(self) -> int:
        """Requests currently holding an admission slot."""

        return self._gate.in_flight

    @property
    def connectivity_state(self) -> ConnectivityState | None:
        return self._holder.state

    def subscribe(self, event: ProxyEvent | str, listener: EventListener) -> Callable[[], None]:
        """Subscribe to lifecycle events; returns an unsubscribe handle."""

        return self._events.subscribe(event, listener)

    async def connect(self) -> ProxyChannel:
        """Establish the shared connection (or join the attempt in progress)."""

        return await self._holder.ensure_connected()

    async def close(self) -> None:
        await self._holder.close()

    async def __aenter__(self) -> ForwardProxyManager:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def request(
        self,
        url: str,
        *,
        signal: asyncio.Event | None = None,
        priority: int | None = None,
        retry_on_codes: Iterable[int] | None = None,
    ) -> ProxyResponse:
        """Fetch ``url`` through the proxy, whatever HTTP status it answers with."""

        proxy_request = ProxyRequest(
            url=url,
            priority=priority,
            retry_on_codes=tuple(retry_on_codes or ()),
        )
        retrying = self._retry.retrying(
            url=url,
            signal=signal,
            before_sleep=functools.partial(self._before_retry, url),
        )
        async for attempt in retrying:
            with attempt:
                response = await self._attempt(proxy_request, signal)
        return response

    async def _attempt(self, request: ProxyRequest, signal: asyncio.Event | None) -> ProxyResponse:
        url = request.url
        if signal is None:
            await self._gate.acquire()
        elif not await self._gate.acquire_unless(signal):
            raise RequestCancelledError(url)
        try:
            self._events.emit(ProxyEvent.DOWNLOAD, url)
            self._log.debug("Downloading", extra={"url": url})
            if signal is None:
                channel = await self._holder.ensure_connected()
            else:
                channel = await until_signalled(self._holder.ensure_connected(), signal, url)
            return await self._dispatcher.dispatch(channel, request, signal=signal)
        except ProxyClientError as exc:
            # A failure racing the caller's abort is reported as the abort.
            if is_retryable(exc) and signal is not None and signal.is_set():
                raise RequestCancelledError(url) from exc
            raise
        finally:
            self._gate.release()

    def _before_retry(self, url: str, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        self._events.emit(ProxyEvent.RETRY, url)
        self._log.error(
            "Failed to download, retrying",
            extra={"url": url, "attempt": retry_state.attempt_number, "error": str(error)},
        )

    async def fetch(
        self,
        url: str,
        *,
        signal: asyncio.Event | None = None,
        priority: int | None = None,
        retry_on_codes: Iterable[int] | None = None,
    ) -> FetchResult:
        """Fetch ``url`` and require an HTTP 200 answer."""

        response = await self.request(url, signal=signal, priority=priority, retry_on_codes=retry_on_codes)
        if response.status_code != 200:
            raise UnexpectedStatusError(url, response.status_code)
        return FetchResult(
            url=url,
            body=response.body,
            status_code=response.status_code,
            headers=response.headers,
        )

    async def fetch_text(self, url: str, **kwargs: Any) -> str:
        return (await self.fetch(url, **kwargs)).text()

    async def fetch_json(self, url: str, **kwargs: Any) -> Any:
        return (await self.fetch(url, **kwargs)).json()

    async def fetch_bytes(self, url: str, **kwargs: Any) -> bytes:
        return (await self.fetch(url, **kwargs)).buffer()


__all__ = ["FetchResult", "ForwardProxyManager"]
