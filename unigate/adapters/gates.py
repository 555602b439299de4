"""Per-provider concurrency gates for live streams.

Usage::

    async with gates.hold(provider_id, config.concurrency_limit):
        ...

Each provider gets its own semaphore, sized once on first use, so streams for
one provider never queue behind another's.  The gate is released on every
exit of the block, including errors and cancellation.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional

__all__ = ["StreamGates", "MAX_STREAMS_PER_PROVIDER"]

MAX_STREAMS_PER_PROVIDER = 3


def gate_size(limit: Optional[int]) -> int:
    """Configured limit capped at 3; unset or invalid limits fall back to 3."""
    if not limit or limit <= 0:
        return MAX_STREAMS_PER_PROVIDER
    return min(limit, MAX_STREAMS_PER_PROVIDER)


class StreamGates:
    """Registry of provider id → semaphore."""

    def __init__(self) -> None:
        self._gates: Dict[str, asyncio.Semaphore] = {}

    def _get_gate(self, provider_id: str, limit: Optional[int]) -> asyncio.Semaphore:
        gate = self._gates.get(provider_id)
        if gate is None:
            gate = asyncio.Semaphore(gate_size(limit))
            self._gates[provider_id] = gate
        return gate

    @asynccontextmanager
    async def hold(self, provider_id: str, limit: Optional[int]) -> AsyncIterator[None]:
        gate = self._get_gate(provider_id.lower(), limit)
        async with gate:
            yield
