from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

T = TypeVar("T")
U = TypeVar("U")


async def concurrent_map(
    items: Sequence[T],
    fn: Callable[[T, int], Awaitable[U]],
    max_concurrency: int,
) -> List[U]:
    """
    Awaits `fn(item, index)` for every item with at most `max_concurrency`
    calls in flight. `results[i]` always answers `items[i]`.

    Workers pull the next unclaimed index from a shared cursor. The first
    error stops every worker from claiming more items; calls already in
    flight finish, then that error is raised.
    """
    if max_concurrency < 1:
        raise ValueError("max_concurrency must be >= 1")
    if not items:
        return []

    results: List[Optional[U]] = [None] * len(items)
    errors: List[BaseException] = []
    cursor = 0

    async def worker() -> None:
        nonlocal cursor
        while cursor < len(items) and not errors:
            index = cursor
            cursor += 1
            try:
                results[index] = await fn(items[index], index)
            except Exception as e:
                errors.append(e)
                return

    await asyncio.gather(*(worker() for _ in range(min(max_concurrency, len(items)))))
    if errors:
        raise errors[0]
    return results  # type: ignore[return-value]
