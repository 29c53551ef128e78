"""Cooperative cancellation for analysis jobs.

A single ``asyncio.Event`` (the abort event) is created per job and threaded
through the orchestrator, every agent and every model call. Setting it stops
all further work for the job.
"""
import asyncio
from typing import Awaitable, Optional, TypeVar

T = TypeVar("T")


class AnalysisCancelled(Exception):
    """Raised when the job's abort event is set. Never retried."""

    def __init__(self, message: str = "Analysis cancelled"):
        super().__init__(message)


def raise_if_aborted(abort_event: Optional[asyncio.Event]) -> None:
    if abort_event is not None and abort_event.is_set():
        raise AnalysisCancelled()


async def run_abortable(awaitable: Awaitable[T], abort_event: Optional[asyncio.Event]) -> T:
    """Await ``awaitable`` unless the abort event fires first.

    When the event wins, the pending request task is cancelled so the
    underlying HTTP call is torn down, and ``AnalysisCancelled`` is raised.
    """
    raise_if_aborted(abort_event)
    if abort_event is None:
        return await awaitable

    request = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(abort_event.wait())
    try:
        done, _ = await asyncio.wait({request, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        request.cancel()
        raise
    finally:
        waiter.cancel()

    if request in done:
        return request.result()

    request.cancel()
    try:
        await request
    except asyncio.CancelledError:
        pass
    except Exception:
        # the request failed while being torn down; cancellation takes precedence
        pass
    raise AnalysisCancelled()
