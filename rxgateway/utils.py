"""Utility helpers used across ``rxgateway`` modules."""

import asyncio
import traceback


def get_short_error_info(e: BaseException) -> str:
    """One-line ``Type: message`` description of an exception."""
    return f"{type(e).__name__}: {e}"


def get_full_error_info(e: BaseException) -> str:
    """Formatted traceback of an exception."""
    return "".join(traceback.format_exception(type(e), e, e.__traceback__))


async def join_task(task: asyncio.Task, timeout: float) -> bool:
    """Wait for ``task`` to finish, cancelling it after ``timeout`` seconds.

    Returns True if the task finished on its own.
    """
    if task.done():
        return True
    done, _ = await asyncio.wait({task}, timeout=timeout)
    if done:
        return True
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    return False
