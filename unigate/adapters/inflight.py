"""Single-flight coordination of identical concurrent requests.

Usage::

    result = await inflight.get_or_join(cache_key, lambda: dispatch(request))

The first caller for a key starts ``factory()`` as a task; callers arriving
while it runs join that task and receive the identical result or exception.
The registration is removed as soon as the task finishes, so a later call
starts fresh.  A joiner that is cancelled stops waiting without disturbing
the others; the shared task itself is cancelled only when its last joiner
goes away.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, TypeVar

from unigate.core.monitoring import INFLIGHT_JOINS

__all__ = ["InFlightCoordinator"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


class _Flight:
    __slots__ = ("task", "joiners", "abandoned")

    def __init__(self, task: "asyncio.Future") -> None:
        self.task = task
        self.joiners = 0
        self.abandoned = False


class InFlightCoordinator:

    def __init__(self) -> None:
        self._flights: Dict[str, _Flight] = {}

    @property
    def inflight_count(self) -> int:
        return len(self._flights)

    def __contains__(self, key: str) -> bool:
        return key in self._flights

    async def get_or_join(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        flight = self._flights.get(key)
        if flight is None or flight.abandoned:
            flight = _Flight(asyncio.ensure_future(factory()))
            self._flights[key] = flight
            flight.task.add_done_callback(lambda _task, k=key, f=flight: self._forget(k, f))
        else:
            INFLIGHT_JOINS.inc()
            logger.debug(f"Joined in-flight request {key[:48]}")

        flight.joiners += 1
        try:
            return await asyncio.shield(flight.task)
        finally:
            flight.joiners -= 1
            if flight.joiners == 0 and not flight.task.done():
                # last joiner left
                flight.abandoned = True
                flight.task.cancel()

    def _forget(self, key: str, flight: _Flight) -> None:
        if self._flights.get(key) is flight:
            del self._flights[key]
