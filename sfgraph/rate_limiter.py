"""Concurrency cap plus minimum dispatch spacing for outbound requests."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Iterable, List, Optional, TypeVar, Union

T = TypeVar("T")


class RequestLimiter:
    """Admit at most ``max_concurrent`` holders, spaced ``min_interval`` apart.

    Usage::

        limiter = RequestLimiter(max_concurrent=2, min_interval=0.5)
        async with limiter:
            response = await client.get(url)
    """

    def __init__(
        self,
        max_concurrent: int = 2,
        min_interval: float = 0.5,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.min_interval = max(0.0, min_interval)
        self._clock = clock
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._dispatch_lock = asyncio.Lock()
        self._last_dispatch: Optional[float] = None
        self.active = 0
        self.dispatched = 0

    async def acquire(self) -> None:
        await self._semaphore.acquire()
        try:
            async with self._dispatch_lock:
                if self._last_dispatch is not None and self.min_interval:
                    wait = self.min_interval - (self._clock() - self._last_dispatch)
                    if wait > 0:
                        await asyncio.sleep(wait)
                self._last_dispatch = self._clock()
        except BaseException:
            self._semaphore.release()
            raise
        self.active += 1
        self.dispatched += 1

    def release(self) -> None:
        self.active -= 1
        self._semaphore.release()

    async def __aenter__(self) -> "RequestLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()


async def gather_limited(
    factories: Iterable[Callable[[], Awaitable[T]]],
    limit: int,
) -> List[Union[T, BaseException]]:
    """Run coroutine factories with at most *limit* in flight.

    Results come back in input order; a failure is returned in place of its
    value instead of cancelling the siblings.
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def _guarded(factory: Callable[[], Awaitable[T]]) -> T:
        async with semaphore:
            return await factory()

    return await asyncio.gather(*(_guarded(f) for f in factories), return_exceptions=True)
