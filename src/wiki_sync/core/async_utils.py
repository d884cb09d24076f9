"""Async utilities for running blocking HTTP and database calls off the event loop."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        completion = await run_sync(llm.complete, prompt, schema=AnalysisResponse)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def gather_bounded(
    factories: Sequence[Callable[[], Awaitable[T]]],
    limit: int,
) -> list[T | BaseException]:
    """Run awaitables with at most ``limit`` in flight, collecting every outcome.

    Unlike ``asyncio.gather`` without ``return_exceptions``, one failure does
    not cancel its siblings: each slot in the result holds either the value
    or the exception raised for that input. Order matches the input.

    Args:
        factories: Zero-argument callables each returning an awaitable.
            Factories (rather than coroutines) keep unstarted work from
            being created before a slot is free.
        limit: Maximum number of awaitables running at once (>= 1).

    Returns:
        List of results or exceptions, one per factory.
    """
    semaphore = asyncio.Semaphore(max(1, limit))

    async def _run(factory: Callable[[], Awaitable[T]]) -> T:
        async with semaphore:
            return await factory()

    return list(
        await asyncio.gather(
            *(_run(f) for f in factories), return_exceptions=True
        )
    )
