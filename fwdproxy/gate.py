"""Admission gate bounding in-flight proxy requests."""

from __future__ import annotations

import asyncio


class AdmissionGate:
    """Counting semaphore with a fixed capacity."""

    def __init__(self, capacity: int = 1000) -> None:
        if capacity < 1:
            raise ValueError(f"Admission capacity must be at least 1, got {capacity}")
        self._capacity = capacity
        self._semaphore = asyncio.Semaphore(capacity)
        self._in_flight = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def in_flight(self) -> int:
        """Slots currently held."""

        return self._in_flight

    async def acquire(self) -> None:
        """Suspend until a slot is free, then take it."""

        await self._semaphore.acquire()
        self._in_flight += 1

    async def acquire_unless(self, signal: asyncio.Event) -> bool:
        """Take a slot unless ``signal`` fires while queued.

        Returns ``False`` without holding a slot when the signal wins.
        """

        if signal.is_set():
            return False
        acquiring = asyncio.ensure_future(self.acquire())
        abort = asyncio.ensure_future(signal.wait())
        try:
            await asyncio.wait({acquiring, abort}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            abort.cancel()
            await self._abandon(acquiring)
            raise
        abort.cancel()
        if signal.is_set():
            await self._abandon(acquiring)
            return False
        acquiring.result()
        return True

    def release(self) -> None:
        """Return a slot; never suspends."""

        if self._in_flight == 0:
            raise RuntimeError("Admission gate released more times than acquired")
        self._in_flight -= 1
        self._semaphore.release()

    async def _abandon(self, acquiring: asyncio.Future[None]) -> None:
        if not acquiring.done():
            acquiring.cancel()
            await asyncio.gather(acquiring, return_exceptions=True)
        if not acquiring.cancelled() and acquiring.exception() is None:
            self.release()


__all__ = ["AdmissionGate"]
