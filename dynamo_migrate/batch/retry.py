"""
Batch writes with binary-split retry.

A failing batch is halved and both halves are retried concurrently until the
failure is narrowed down to single records, which are logged and skipped.
One poisoned record therefore costs O(log n) extra writes instead of the
whole batch.
"""

import asyncio
import math
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

from dynamo_migrate.observability.logger import format_db_error, get_logger

logger = get_logger(__name__)

T = TypeVar("T")

InsertFn = Callable[[Sequence[T]], Awaitable[int]]
SkipCallback = Callable[[T, BaseException], None]


def max_split_depth(batch_size: int) -> int:
    """Number of halvings needed to reduce a batch to single items."""
    if batch_size <= 1:
        return 0
    return math.ceil(math.log2(batch_size))


async def insert_with_retry(
    items: Sequence[T],
    insert_fn: InsertFn,
    item_label: Callable[[T], str],
    on_skip: SkipCallback | None = None,
) -> int:
    """
    Write a batch, isolating failing records by recursive halving.

    Args:
        items: Records to write (deduplicated by the caller)
        insert_fn: Coroutine writing a batch and returning rows written
        item_label: Log-friendly label for a single record
        on_skip: Called with (record, exception) for each skipped record

    Returns:
        Number of records written
    """
    items = tuple(items)
    return await _insert_split(items, insert_fn, item_label, on_skip, 0, max_split_depth(len(items)))


async def _insert_split(
    items: tuple,
    insert_fn: InsertFn,
    item_label: Callable,
    on_skip: SkipCallback | None,
    depth: int,
    max_depth: int,
) -> int:
    if not items:
        return 0

    try:
        return await insert_fn(items)
    except Exception as e:
        if len(items) == 1 or depth >= max_depth:
            for item in items:
                logger.warning(
                    f"Skipping {item_label(item)}: {format_db_error(e)}",
                    extra={"item": item_label(item), "error_type": e.__class__.__name__}
                )
                if on_skip is not None:
                    on_skip(item, e)
            return 0

        mid = math.ceil(len(items) / 2)
        left, right = items[:mid], items[mid:]

        logger.warning(
            f"Batch of {len(items)} failed, splitting into {len(left)} + {len(right)}",
            extra={"batch_size": len(items), "depth": depth}
        )

        left_count, right_count = await asyncio.gather(
            _insert_split(left, insert_fn, item_label, on_skip, depth + 1, max_depth),
            _insert_split(right, insert_fn, item_label, on_skip, depth + 1, max_depth),
        )
        return left_count + right_count
