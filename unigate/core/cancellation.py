"""Caller-driven cancellation tokens.

Native task cancellation (``task.cancel()``) always works and propagates as
``asyncio.CancelledError``.  A :class:`CancellationToken` is the explicit
variant: firing it makes the guarded operation stop waiting and fail with
:class:`~unigate.core.errors.RequestCancelled`, which the orchestrators turn
into a ``cancelled`` Result.

Usage::

    token = CancellationToken()
    result = await gateway.process_chat(request, "openai", cancel=token)
"""

import asyncio
from typing import Awaitable, Optional, TypeVar

from unigate.core.errors import RequestCancelled

__all__ = ["CancellationToken", "guard"]

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation signal shared between a caller and the gateway."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelled()

    async def wait(self) -> None:
        await self._event.wait()


async def guard(awaitable: Awaitable[T], token: Optional[CancellationToken]) -> T:
    """Await *awaitable* unless *token* fires first.

    When the token wins, the inner task is cancelled and awaited so that any
    resource it holds (HTTP connection, in-flight registration) is released
    before :class:`RequestCancelled` is raised.
    """
    if token is None:
        return await awaitable
    token.raise_if_cancelled()

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        waiter.cancel()
        raise

    if task.done():
        waiter.cancel()
        return task.result()

    task.cancel()
    await asyncio.wait({task})
    if not task.cancelled() and task.exception() is not None:
        raise RequestCancelled() from task.exception()
    raise RequestCancelled()
