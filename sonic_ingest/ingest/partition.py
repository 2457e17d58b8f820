"""Splitting a batch of records into contiguous per-worker partitions."""
from __future__ import annotations

from typing import Sequence, TypeVar

T = TypeVar("T")


def normalize_parallelism(requested: int, batch_size: int) -> int:
    """
    Clamp a requested worker count to [1, batch_size].

    Returns 0 only for an empty batch, where no worker is needed.
    """
    if batch_size <= 0:
        return 0
    return max(1, min(requested, batch_size))


def partition_records(records: Sequence[T], parallelism: int) -> list[list[T]]:
    """
    Divide records into at most `parallelism` contiguous slices.

    Slice size is ceil(len(records) / parallelism); the last slice takes the
    remainder.  Order is preserved and every record lands in exactly one
    slice.  No slice is ever empty.
    """
    if not records:
        return []
    if parallelism <= 0:
        raise ValueError(f"parallelism must be positive, got {parallelism}")

    chunk_size = (len(records) + parallelism - 1) // parallelism
    return [
        list(records[i: i + chunk_size])
        for i in range(0, len(records), chunk_size)
    ]
