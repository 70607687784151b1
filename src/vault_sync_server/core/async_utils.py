"""Async utilities for bridging blocking I/O into the sync event loop."""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Used for every blocking step of a sync operation: HTTP calls through
    ``RemoteClient`` and document reads/writes.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        record = await run_sync(client.get_record, container_id, record_id)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def gather_limited(
    factories: Sequence[Callable[[], Awaitable[T]]],
    limit: int,
) -> list[T]:
    """Run coroutine factories concurrently, at most *limit* at a time.

    Factories (rather than coroutines) are taken so that work which is
    waiting for a slot has not started yet.  Results are returned in
    input order.  Exceptions propagate from the first failure.

    Args:
        factories: Zero-argument callables returning awaitables.
        limit: Maximum number of awaitables in flight.

    Returns:
        List of results in the same order as *factories*.
    """
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")

    semaphore = asyncio.Semaphore(limit)

    async def _bounded(factory: Callable[[], Awaitable[T]]) -> T:
        async with semaphore:
            return await factory()

    return list(await asyncio.gather(*(_bounded(f) for f in factories)))
