"""Run external programs under a time bound and a cancellation token."""

import asyncio
import contextlib
import logging

from docextract.core.cancel import CancelToken
from docextract.core.errors import ExtractionCancelled, ToolError, ToolTimeoutError

logger = logging.getLogger(__name__)


async def run_tool(
    args: list[str],
    token: CancelToken | None = None,
    timeout: float | None = None,
    error_cls: type[ToolError] = ToolError,
) -> bytes:
    """Run ``args`` and return its stdout.

    The process is killed if the token fires or the timeout elapses.

    Args:
        args: Program name followed by its arguments.
        token: Optional cancellation token.
        timeout: Optional time bound in seconds.
        error_cls: ToolError subclass raised on a non-zero exit.

    Returns:
        Raw stdout bytes.

    Raises:
        ExtractionCancelled: The token fired before the program finished.
        ToolTimeoutError: The program ran past ``timeout``.
        ToolError: The program exited non-zero (as ``error_cls``).
    """
    tool = args[0]
    if token is not None:
        token.check()

    logger.debug(f"exec: {' '.join(args)}")
    proc = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    communicate = asyncio.ensure_future(proc.communicate())
    cancel_wait = asyncio.ensure_future(token.wait()) if token is not None else None
    waiters = {communicate} if cancel_wait is None else {communicate, cancel_wait}

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        communicate.cancel()
        raise
    finally:
        if cancel_wait is not None:
            cancel_wait.cancel()

    if communicate not in done:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        await communicate
        if token is not None and token.cancelled:
            raise ExtractionCancelled()
        raise ToolTimeoutError(tool, timeout or 0.0)

    stdout, stderr = communicate.result()
    if proc.returncode != 0:
        raise error_cls(tool, stderr.decode("utf-8", errors="replace"), proc.returncode)
    return stdout
