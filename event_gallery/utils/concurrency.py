"""Helpers for fanning blocking SDK calls out on the event loop."""
import asyncio
from functools import partial
from typing import Any, Awaitable, Callable, Iterable, List, TypeVar

T = TypeVar("T")
R = TypeVar("R")


async def run_blocking(fn: Callable[..., R], *args: Any, **kwargs: Any) -> R:
    """Run a blocking function in the default threadpool so the event loop isn't blocked."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(fn, *args, **kwargs))


async def gather_bounded(
    items: Iterable[T],
    worker: Callable[[T], Awaitable[R]],
    max_concurrency: int = 0,
) -> List[R]:
    """
    Run ``worker`` for every item concurrently and wait for all of them.

    Args:
        items: Batch members
        worker: Coroutine function applied to each item
        max_concurrency: Fan-out limit; 0 submits the whole batch at once

    Returns:
        Worker results in item order
    """
    items = list(items)
    if max_concurrency <= 0 or max_concurrency >= len(items):
        return list(await asyncio.gather(*(worker(item) for item in items)))

    # Created per batch so it binds to the loop running this batch
    semaphore = asyncio.Semaphore(max_concurrency)

    async def _limited(item: T) -> R:
        async with semaphore:
            return await worker(item)

    return list(await asyncio.gather(*(_limited(item) for item in items)))
