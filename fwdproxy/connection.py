"""Single shared connection to the proxy, established lazily."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from .errors import ConnectTimeoutError
from .events import EventNotifier, ProxyEvent
from .models import ConnectivityState
from .transport import ProxyChannel

LOG = logging.getLogger(__name__)

ChannelFactory = Callable[[], ProxyChannel]


class ConnectionHolder:
    """Owns the proxy channel and the one handshake in progress.

    Every caller of :meth:`ensure_connected` awaits the same memoized attempt,
    so concurrent arrivals trigger exactly one handshake. A successful attempt
    is kept until :meth:`close`. A failed attempt is delivered to everyone who
    was waiting on it and then dropped, so the next caller starts over with a
    fresh channel.
    """

    def __init__(
        self,
        channel_factory: ChannelFactory,
        *,
        target: str,
        connect_timeout_ms: int = 5000,
        events: EventNotifier | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._channel_factory = channel_factory
        self._target = target
        self._connect_timeout_ms = connect_timeout_ms
        self._events = events or EventNotifier()
        self._log = logger or LOG
        self._attempt: asyncio.Task[ProxyChannel] | None = None
        self._channel: ProxyChannel | None = None
        self._watch_task: asyncio.Task[None] | None = None
        self._state: ConnectivityState | None = None

    @property
    def state(self) -> ConnectivityState | None:
        """Last connectivity state observed by the watch loop."""

        return self._state

    @property
    def connected(self) -> bool:
        attempt = self._attempt
        return attempt is not None and attempt.done() and not attempt.cancelled() and attempt.exception() is None

    async def ensure_connected(self) -> ProxyChannel:
        """Return the shared channel, connecting on first use."""

        if self._attempt is None:
            self._attempt = asyncio.ensure_future(self._connect())
            self._attempt.add_done_callback(self._discard_failed_attempt)
        # A waiter being cancelled must not cancel the shared handshake.
        return await asyncio.shield(self._attempt)

    async def close(self) -> None:
        """Cancel any pending handshake and release the channel."""

        attempt, self._attempt = self._attempt, None
        if attempt is not None and not attempt.done():
            attempt.cancel()
            await asyncio.gather(attempt, return_exceptions=True)
        await self._teardown()

    async def _connect(self) -> ProxyChannel:
        self._events.emit(ProxyEvent.CONNECTING)
        self._log.info("Connecting to proxy", extra={"target": self._target})
        channel = self._channel_factory()
        self._channel = channel
        self._watch_task = asyncio.create_task(self._watch_state(channel))
        try:
            await asyncio.wait_for(channel.wait_for_ready(), timeout=self._connect_timeout_ms / 1000)
        except TimeoutError as exc:
            await self._teardown()
            raise ConnectTimeoutError(self._target, self._connect_timeout_ms) from exc
        except Exception:
            await self._teardown()
            raise
        self._events.emit(ProxyEvent.CONNECTED)
        self._log.info("Connected to proxy server", extra={"target": self._target})
        return channel

    async def _watch_state(self, channel: ProxyChannel) -> None:
        try:
            state = channel.get_state(try_to_connect=True)
            while True:
                self._state = state
                self._log.debug("Proxy channel state", extra={"target": self._target, "state": state.value})
                if state is ConnectivityState.SHUTDOWN:
                    return
                await channel.wait_for_state_change(state)
                state = channel.get_state(try_to_connect=True)
        except asyncio.CancelledError:
            return
        except Exception:
            self._log.warning("Proxy channel state watch stopped", exc_info=True, extra={"target": self._target})

    async def _teardown(self) -> None:
        watch, self._watch_task = self._watch_task, None
        channel, self._channel = self._channel, None
        if watch is not None:
            watch.cancel()
            await asyncio.gather(watch, return_exceptions=True)
        if channel is not None:
            await channel.close()
        self._state = None

    def _discard_failed_attempt(self, task: asyncio.Task[ProxyChannel]) -> None:
        if task.cancelled() or task.exception() is not None:
            if self._attempt is task:
                self._attempt = None


__all__ = ["ChannelFactory", "ConnectionHolder"]
