"""Bounded-concurrency runner for parallel and branch batches."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

T = TypeVar("T")


async def run_with_concurrency_limit(
    tasks: Sequence[Callable[[], Awaitable[T]]], limit: Optional[int]
) -> List[T]:
    """Run ``tasks`` with at most ``limit`` in flight.

    Results keep the order of ``tasks`` regardless of completion order. With
    no limit (or a limit not smaller than the number of tasks) everything is
    started at once. The first failure propagates; tasks already started are
    left running and their results are discarded.
    """
    if limit is None or limit < 1 or len(tasks) <= limit:
        return list(await asyncio.gather(*(task() for task in tasks)))

    results: List[Optional[T]] = [None] * len(tasks)
    next_index = 0

    async def worker() -> None:
        nonlocal next_index
        while next_index < len(tasks):
            index = next_index
            next_index += 1
            results[index] = await tasks[index]()

    await asyncio.gather(*(worker() for _ in range(limit)))
    return results  # type: ignore[return-value]
