"""Batched execution of async per-item operations with failure isolation.

run_batched drives any async operation over a list of work items:

1. Items flagged by `skip_reason` are recorded as skipped up front and never
   reach the operation
2. The rest are split into batches of `batch_size`
3. Within a batch, item launches are staggered by `inter_item_delay_ms` and at
   most `max_concurrent` operations are in flight at once
4. Any exception from the operation is caught per item and recorded as a
   failed result; siblings and later batches carry on
5. Between batches (never after the last) the run pauses for
   `inter_batch_delay_ms`

Results are stored by original index, so the returned list is in input order
whatever order the operations complete in. All pauses go through the
injected Scheduler.

Usage:
    from outreach.batch.processor import BatchConfig, run_batched

    run = await run_batched(
        customers,
        send_one,
        BatchConfig(batch_size=5, inter_item_delay_ms=1000, inter_batch_delay_ms=5000),
        key=lambda c: c["ACCOUNT_NO"],
        skip_reason=lambda c: None if c.get("EMAIL") else "No email address provided",
    )
    print(run.statistics.succeeded, run.statistics.failed)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, TypeVar

from outreach.batch.splitter import split
from outreach.core.errors import InputValidationError
from outreach.core.logging import get_logger
from outreach.core.scheduler import DEFAULT_SCHEDULER, Scheduler

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class JobStatus(StrEnum):
    """Outcome of one work item."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class BatchConfig:
    """Batch sizing and backpressure settings.

    Attributes:
        batch_size: Items per batch (>= 1)
        inter_item_delay_ms: Stagger between item launches within a batch
        inter_batch_delay_ms: Pause between consecutive batches
        max_concurrent: Operations in flight at once within a batch (>= 1)
    """

    batch_size: int = 10
    inter_item_delay_ms: int = 0
    inter_batch_delay_ms: int = 0
    max_concurrent: int = 1

    def __post_init__(self) -> None:
        for name in ("batch_size", "max_concurrent"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise InputValidationError(
                    f"{name} must be a positive integer, got {value!r}", field=name
                )
        for name in ("inter_item_delay_ms", "inter_batch_delay_ms"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InputValidationError(
                    f"{name} must be a non-negative integer, got {value!r}", field=name
                )


@dataclass(frozen=True, slots=True)
class BatchJobResult(Generic[R]):
    """Outcome for one work item.

    Attributes:
        index: Position of the item in the input
        item_key: Caller-supplied identifier (account number, etc.)
        status: success, failed or skipped
        payload: Operation result (success only)
        error_message: Exception message (failed only)
        error_code: Collaborator error code, when the exception carried one
        reason: Why the item was skipped (skipped only)
    """

    index: int
    item_key: str
    status: JobStatus
    payload: R | None = None
    error_message: str | None = None
    error_code: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "index": self.index,
            "item": self.item_key,
            "status": self.status.value,
        }
        if self.error_message is not None:
            result["error"] = self.error_message
            result["error_code"] = self.error_code
        if self.reason is not None:
            result["reason"] = self.reason
        return result


@dataclass(frozen=True, slots=True)
class BatchStatistics:
    """Aggregate counts for one run."""

    total: int
    succeeded: int
    failed: int
    skipped: int
    batches: int
    elapsed_ms: int

    @property
    def success_rate(self) -> int:
        """Percentage of all items that succeeded, rounded."""
        if not self.total:
            return 0
        return round(self.succeeded * 100 / self.total)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "batches": self.batches,
            "elapsed_ms": self.elapsed_ms,
            "success_rate": self.success_rate,
        }


@dataclass(frozen=True)
class BatchRun(Generic[R]):
    """Statistics plus per-item results in input order."""

    statistics: BatchStatistics
    results: tuple[BatchJobResult[R], ...]

    def by_status(self, status: JobStatus) -> list[BatchJobResult[R]]:
        return [r for r in self.results if r.status == status]


@dataclass(frozen=True, slots=True)
class BatchProgress:
    """Progress snapshot reported after each batch completes."""

    batch: int  # 1-based
    total_batches: int
    processed: int
    total: int

    @property
    def percentage(self) -> int:
        if not self.total:
            return 100
        return round(self.processed * 100 / self.total)


async def run_batched(
    items: Sequence[T],
    operation: Callable[[T], Awaitable[R]],
    config: BatchConfig,
    *,
    key: Callable[[T], Any] | None = None,
    skip_reason: Callable[[T], str | None] | None = None,
    scheduler: Scheduler | None = None,
    on_progress: Callable[[BatchProgress], None] | None = None,
    default_error_code: str | None = None,
) -> BatchRun[R]:
    """Run an async operation over items in batches.

    Args:
        items: Work items, in the order results should be reported
        operation: Async function applied to each non-skipped item
        config: Batch sizing and delay settings
        key: Maps an item to its reported key (defaults to its index)
        skip_reason: Returns a reason to skip an item, or None to process it
        scheduler: Delay provider (defaults to asyncio.sleep)
        on_progress: Called after each batch with a BatchProgress snapshot
        default_error_code: Code recorded for failures whose exception has none

    Returns:
        BatchRun with statistics and one result per input item
    """
    scheduler = scheduler or DEFAULT_SCHEDULER
    start_time = time.monotonic()
    results: list[BatchJobResult[R] | None] = [None] * len(items)

    def item_key(index: int, item: T) -> str:
        if key is None:
            return str(index)
        value = key(item)
        return str(value) if value is not None else str(index)

    pending: list[tuple[int, T]] = []
    for index, item in enumerate(items):
        reason = skip_reason(item) if skip_reason else None
        if reason:
            results[index] = BatchJobResult(
                index=index,
                item_key=item_key(index, item),
                status=JobStatus.SKIPPED,
                reason=reason,
            )
        else:
            pending.append((index, item))

    batches = split(pending, config.batch_size) if pending else []
    semaphore = asyncio.Semaphore(config.max_concurrent)
    processed = len(items) - len(pending)

    logger.info(
        "batch_run_start",
        total=len(items),
        to_process=len(pending),
        skipped=processed,
        batches=len(batches),
        batch_size=config.batch_size,
    )

    async def run_one(index: int, item: T) -> None:
        async with semaphore:
            try:
                payload = await operation(item)
            except Exception as e:
                code = getattr(e, "code", None)
                logger.warning(
                    "batch_item_failed",
                    index=index,
                    item=item_key(index, item),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                results[index] = BatchJobResult(
                    index=index,
                    item_key=item_key(index, item),
                    status=JobStatus.FAILED,
                    error_message=str(e) or type(e).__name__,
                    error_code=str(code) if code is not None else default_error_code,
                )
                return
        results[index] = BatchJobResult(
            index=index,
            item_key=item_key(index, item),
            status=JobStatus.SUCCESS,
            payload=payload,
        )

    for batch_number, batch in enumerate(batches, start=1):
        tasks: list[asyncio.Task[None]] = []
        for position, (index, item) in enumerate(batch):
            if position > 0 and config.inter_item_delay_ms > 0:
                await scheduler.sleep(config.inter_item_delay_ms)
            tasks.append(asyncio.create_task(run_one(index, item)))
        await asyncio.gather(*tasks)

        processed += len(batch)
        progress = BatchProgress(
            batch=batch_number,
            total_batches=len(batches),
            processed=processed,
            total=len(items),
        )
        logger.info(
            "batch_complete",
            batch=progress.batch,
            total_batches=progress.total_batches,
            processed=progress.processed,
            total=progress.total,
            percentage=progress.percentage,
        )
        if on_progress:
            on_progress(progress)

        if batch_number < len(batches) and config.inter_batch_delay_ms > 0:
            await scheduler.sleep(config.inter_batch_delay_ms)

    final = tuple(r for r in results if r is not None)
    statistics = BatchStatistics(
        total=len(items),
        succeeded=sum(1 for r in final if r.status == JobStatus.SUCCESS),
        failed=sum(1 for r in final if r.status == JobStatus.FAILED),
        skipped=sum(1 for r in final if r.status == JobStatus.SKIPPED),
        batches=len(batches),
        elapsed_ms=int((time.monotonic() - start_time) * 1000),
    )

    logger.info(
        "batch_run_complete",
        total=statistics.total,
        succeeded=statistics.succeeded,
        failed=statistics.failed,
        skipped=statistics.skipped,
        elapsed_ms=statistics.elapsed_ms,
    )
    return BatchRun(statistics=statistics, results=final)
