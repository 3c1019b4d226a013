"""Wait on several awaitables and pick one ready result, uniformly at random."""
from __future__ import annotations

import asyncio
import random
from typing import Awaitable, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

K = TypeVar("K", bound=Hashable)


class Selector(Generic[K]):
    """Keeps one pending waiter per case across calls to :meth:`select`.

    A case whose waiter finished but was not chosen keeps its result for the
    next call, so nothing taken from a queue is ever dropped between rounds.
    """

    def __init__(self, cases: Dict[K, Callable[[], Awaitable[object]]], *, rng: Optional[random.Random] = None) -> None:
        self._cases = dict(cases)
        self._waiters: Dict[K, asyncio.Future] = {}
        self._rng = rng or random.Random()

    async def select(self) -> Tuple[K, object]:
        for key, factory in self._cases.items():
            if key not in self._waiters:
                self._waiters[key] = asyncio.ensure_future(factory())
        ready = [key for key, waiter in self._waiters.items() if waiter.done()]
        if not ready:
            await asyncio.wait(self._waiters.values(), return_when=asyncio.FIRST_COMPLETED)
            ready = [key for key, waiter in self._waiters.items() if waiter.done()]
        key = self._rng.choice(ready)
        waiter = self._waiters.pop(key)
        return key, waiter.result()

    def ready_results(self) -> Dict[K, object]:
        """Results of waiters that finished but were never chosen."""

        return {
            key: waiter.result()
            for key, waiter in self._waiters.items()
            if waiter.done() and not waiter.cancelled() and waiter.exception() is None
        }

    async def aclose(self) -> None:
        pending = [waiter for waiter in self._waiters.values() if not waiter.done()]
        for waiter in pending:
            waiter.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._waiters.clear()
