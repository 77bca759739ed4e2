# app/core/concurrency.py
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterator, List, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def iter_batches(items: Sequence[T], batch_size: int) -> Iterator[Sequence[T]]:
    """Yield consecutive slices of at most `batch_size` items."""
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    for start in range(0, len(items), batch_size):
        yield items[start:start + batch_size]


async def gather_in_batches(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    batch_size: int = 5,
) -> List[R]:
    """
    Fan out `worker` over `items`, `batch_size` at a time.

    Members of one batch run concurrently; the next batch starts only after the
    whole previous batch has finished, so at most `batch_size` calls are in
    flight. Results are positional (input order, not completion order).
    Exceptions propagate; workers that must not fail should catch their own.
    """
    results: List[R] = []
    for batch in iter_batches(items, batch_size):
        results.extend(await asyncio.gather(*(worker(item) for item in batch)))
    return results
