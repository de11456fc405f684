"""Distribute items evenly across a bounded number of runner instances."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Sequence

logger = logging.getLogger(__name__)

_T = TypeVar("_T")


class InvalidCapacityError(ValueError):
    """Raised when the number of available instances is not positive."""


def partition_sizes(item_count: int, max_groups: int) -> list[int]:
    """Return the size of each group for *item_count* items.

    Uses ``min(item_count, max_groups)`` groups.  The first groups are the
    heavier ones: every group holds either ``ceil(item_count / groups)`` or
    one item less.

    Raises:
        InvalidCapacityError: If *max_groups* is not positive.
    """
    if max_groups < 1:
        msg = f"max_groups must be >= 1, got {max_groups}"
        raise InvalidCapacityError(msg)
    if item_count <= 0:
        return []

    num_groups = min(item_count, max_groups)
    max_per_group = math.ceil(item_count / num_groups)
    remainder = item_count % num_groups
    heavier_groups = remainder or num_groups

    return [
        max_per_group if idx < heavier_groups else max_per_group - 1
        for idx in range(num_groups)
    ]


def partition(items: Sequence[_T], max_groups: int) -> list[list[_T]]:
    """Split *items* into contiguous, near-equal groups.

    Args:
        items: Items in the order they should be assigned.
        max_groups: Upper bound on the number of groups.

    Returns:
        Groups in order; concatenated they equal *items*.

    Raises:
        InvalidCapacityError: If *max_groups* is not positive.
    """
    sizes = partition_sizes(len(items), max_groups)
    logger.debug("Partitioning %d items into groups of sizes %s", len(items), sizes)

    groups: list[list[_T]] = []
    start = 0
    for size in sizes:
        groups.append(list(items[start : start + size]))
        start += size
    return groups
