"""Cooperative cancellation token.

One token is created per extraction session (or batch run) and passed into
every layer. Layers call ``check()`` at step boundaries and race their
subprocesses against ``wait()`` so a fired token tears work down promptly.
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from docextract.core.errors import ExtractionCancelled

T = TypeVar("T")


class CancelToken:
    """A one-shot, idempotent cancellation signal."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        """Fire the token. Calling it again has no effect."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        """Raise ExtractionCancelled if the token has fired."""
        if self._event.is_set():
            raise ExtractionCancelled()

    async def wait(self) -> None:
        """Block until the token fires."""
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        Raises:
            ExtractionCancelled: The token fired; the awaitable was cancelled.
        """
        task = asyncio.ensure_future(awaitable)
        if self.cancelled:
            task.cancel()
            raise ExtractionCancelled()
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            finished = task.done()
            if not finished:
                task.cancel()

        if finished:
            return task.result()
        raise ExtractionCancelled()

    def __repr__(self) -> str:
        return f"CancelToken(cancelled={self.cancelled})"
