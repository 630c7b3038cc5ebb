"""Split an ordered sequence into fixed-size batches."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TypeVar

from outreach.core.errors import InputValidationError

T = TypeVar("T")


def split(items: Sequence[T], batch_size: int) -> list[list[T]]:
    """Partition items into consecutive chunks of at most batch_size.

    The last chunk may be smaller. Concatenating the chunks gives back the
    input in its original order.

    Args:
        items: Items to split
        batch_size: Maximum chunk length (must be at least 1)

    Returns:
        List of chunks ([] for empty input)

    Raises:
        InputValidationError: If batch_size is less than 1
    """
    if isinstance(batch_size, bool) or not isinstance(batch_size, int) or batch_size < 1:
        raise InputValidationError(
            f"batch_size must be a positive integer, got {batch_size!r}", field="batch_size"
        )
    return [list(items[start : start + batch_size]) for start in range(0, len(items), batch_size)]
