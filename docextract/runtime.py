"""Message loop that drives the interactive extraction controller.

Handlers are synchronous: they mutate state and may return a ``Cmd``, a
zero-argument coroutine function that performs one unit of background work
and returns exactly one message (or None). The loop awaits the command and
feeds its message back to the handler, which decides whether to re-arm.
A session therefore never has two results racing each other.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

Cmd = Callable[[], Awaitable[Any]]
"""One unit of background work yielding a single message (or None)."""

Update = Callable[[Any], "Cmd | None"]
"""Message handler: mutate state, optionally return the next command."""


async def drive(update: Update, cmd: Cmd | None) -> int:
    """Run a command chain until no command is left.

    Used when nothing but the chain itself produces messages (batch use,
    tests).

    Returns:
        Number of messages handled.
    """
    handled = 0
    while cmd is not None:
        msg = await cmd()
        if msg is None:
            break
        handled += 1
        cmd = update(msg)
    return handled


class EventLoop:
    """Single-consumer message loop with background commands.

    Commands run as tasks and post their message to the queue; external
    input (key presses) is posted with ``send``. ``step`` handles one
    message at a time, so all state mutation stays on one coroutine.
    """

    def __init__(self, update: Update):
        self._update = update
        self._queue: asyncio.Queue = asyncio.Queue()
        self._tasks: set[asyncio.Task] = set()

    def dispatch(self, cmd: Cmd | None) -> None:
        """Start a command in the background. None is ignored."""
        if cmd is None:
            return
        task = asyncio.get_running_loop().create_task(self._run(cmd))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, cmd: Cmd) -> None:
        try:
            msg = await cmd()
        except Exception:
            logger.exception("Command failed without producing a message")
            msg = None
        finally:
            # No longer pending once its message (if any) is queued
            self._tasks.discard(asyncio.current_task())
        if msg is not None:
            self._queue.put_nowait(msg)

    def send(self, msg: Any) -> None:
        """Post an external message (e.g. a key press)."""
        self._queue.put_nowait(msg)

    @property
    def pending(self) -> int:
        """Commands still running."""
        return len(self._tasks)

    @property
    def idle(self) -> bool:
        return not self._tasks and self._queue.empty()

    async def step(self) -> Any:
        """Handle the next message and dispatch whatever command it returns."""
        msg = await self._queue.get()
        self.dispatch(self._update(msg))
        return msg

    async def run_until(self, predicate: Callable[[], bool]) -> None:
        """Handle messages until ``predicate()`` holds or nothing is left to wait for."""
        while not predicate():
            if self._queue.empty():
                if not self._tasks:
                    return
                await asyncio.wait(set(self._tasks), return_when=asyncio.FIRST_COMPLETED)
                continue
            await self.step()

    async def shutdown(self) -> None:
        """Cancel outstanding commands and wait for them to finish."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
