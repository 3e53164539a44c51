"""Bounded-concurrency helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterator, Sequence
from typing import TypeVar

T = TypeVar("T")
R = TypeVar("R")


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    if size <= 0:
        raise ValueError(f"chunk size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield items[start:start + size]


async def gather_in_chunks(
    items: Sequence[T],
    fn: Callable[[T], Awaitable[R]],
    size: int,
) -> list[R]:
    """Run fn over items, at most `size` at a time, preserving input order.

    Each chunk is awaited as a group before the next one starts, which caps
    the number of in-flight store lookups.
    """
    results: list[R] = []
    for chunk in chunked(items, size):
        results.extend(await asyncio.gather(*(fn(item) for item in chunk)))
    return results
