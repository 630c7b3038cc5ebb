"""Tests for batch splitting and the batch processor.

The processor is exercised with plain async callables and a recording
scheduler, so no test actually sleeps.
"""

from __future__ import annotations

import asyncio
from typing import Any

import pytest

from outreach.batch.processor import (
    BatchConfig,
    BatchProgress,
    BatchStatistics,
    JobStatus,
    run_batched,
)
from outreach.batch.splitter import split
from outreach.core.errors import InputValidationError, MailerError

# ---------------------------------------------------------------------------
# split
# ---------------------------------------------------------------------------


class TestSplit:
    def test_last_batch_may_be_short(self) -> None:
        assert split([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]

    def test_concatenation_preserves_order(self) -> None:
        items = list(range(23))
        batches = split(items, 5)
        assert [i for batch in batches for i in batch] == items
        assert all(len(b) <= 5 for b in batches)

    def test_empty_input(self) -> None:
        assert split([], 3) == []

    @pytest.mark.parametrize("size", [0, -1, 2.5, True])
    def test_invalid_size(self, size: Any) -> None:
        with pytest.raises(InputValidationError) as exc_info:
            split([1, 2], size)
        assert exc_info.value.field == "batch_size"


# ---------------------------------------------------------------------------
# BatchConfig / statistics
# ---------------------------------------------------------------------------


class TestBatchConfig:
    def test_rejects_zero_concurrency(self) -> None:
        with pytest.raises(InputValidationError):
            BatchConfig(max_concurrent=0)

    def test_rejects_negative_delay(self) -> None:
        with pytest.raises(InputValidationError):
            BatchConfig(inter_batch_delay_ms=-5)


class TestStatistics:
    def test_success_rate_is_whole_percent(self) -> None:
        stats = BatchStatistics(total=3, succeeded=2, failed=1, skipped=0, batches=1, elapsed_ms=0)
        assert stats.success_rate == 67

    def test_success_rate_for_empty_run(self) -> None:
        stats = BatchStatistics(total=0, succeeded=0, failed=0, skipped=0, batches=0, elapsed_ms=0)
        assert stats.success_rate == 0


# ---------------------------------------------------------------------------
# run_batched
# ---------------------------------------------------------------------------


async def _double(value: int) -> int:
    return value * 2


class TestRunBatched:
    """Tests for run_batched."""

    async def test_results_in_input_order(self, scheduler) -> None:
        run = await run_batched([3, 1, 2], _double, BatchConfig(batch_size=2), scheduler=scheduler)

        assert [r.payload for r in run.results] == [6, 2, 4]
        assert [r.index for r in run.results] == [0, 1, 2]
        assert run.statistics.total == 3
        assert run.statistics.succeeded == 3
        assert run.statistics.batches == 2

    async def test_failure_is_isolated(self, scheduler) -> None:
        async def flaky(value: int) -> int:
            if value == 2:
                raise MailerError("mailbox full", code="552")
            return value

        run = await run_batched([1, 2, 3], flaky, BatchConfig(batch_size=3), scheduler=scheduler)

        assert [r.status for r in run.results] == [
            JobStatus.SUCCESS,
            JobStatus.FAILED,
            JobStatus.SUCCESS,
        ]
        failed = run.results[1]
        assert failed.error_message == "mailbox full"
        assert failed.error_code == "552"
        assert run.statistics.failed == 1

    async def test_default_error_code(self, scheduler) -> None:
        async def broken(value: int) -> int:
            raise RuntimeError()

        run = await run_batched(
            [1], broken, BatchConfig(), scheduler=scheduler, default_error_code="UNKNOWN"
        )

        assert run.results[0].error_code == "UNKNOWN"
        assert run.results[0].error_message == "RuntimeError"

    async def test_skipped_items_are_not_processed(self, scheduler) -> None:
        seen: list[int] = []

        async def record(value: int) -> int:
            seen.append(value)
            return value

        run = await run_batched(
            [1, 2, 3, 4],
            record,
            BatchConfig(batch_size=2),
            skip_reason=lambda v: "odd" if v % 2 else None,
            key=lambda v: f"item-{v}",
            scheduler=scheduler,
        )

        assert sorted(seen) == [2, 4]
        assert run.statistics.skipped == 2
        assert run.statistics.batches == 1
        assert run.results[0].status == JobStatus.SKIPPED
        assert run.results[0].reason == "odd"
        assert run.results[0].item_key == "item-1"

    async def test_all_skipped_runs_no_batches(self, scheduler) -> None:
        run = await run_batched(
            [1, 3], _double, BatchConfig(), skip_reason=lambda v: "odd", scheduler=scheduler
        )
        assert run.statistics.batches == 0
        assert run.statistics.skipped == 2

    async def test_empty_input(self, scheduler) -> None:
        run = await run_batched([], _double, BatchConfig(), scheduler=scheduler)
        assert run.results == ()
        assert run.statistics.total == 0

    async def test_delays_between_items_and_batches(self, scheduler) -> None:
        config = BatchConfig(batch_size=2, inter_item_delay_ms=100, inter_batch_delay_ms=1000)

        await run_batched([1, 2, 3, 4, 5], _double, config, scheduler=scheduler)

        # Batches [1,2] [3,4] [5]: one stagger in each full batch, two batch pauses
        assert scheduler.delays == [100, 1000, 100, 1000]

    async def test_no_delay_after_last_batch(self, scheduler) -> None:
        config = BatchConfig(batch_size=5, inter_batch_delay_ms=1000)
        await run_batched([1, 2], _double, config, scheduler=scheduler)
        assert scheduler.delays == []

    async def test_concurrency_is_bounded(self, scheduler) -> None:
        in_flight = 0
        peak = 0

        async def track(value: int) -> int:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return value

        config = BatchConfig(batch_size=6, max_concurrent=2)
        await run_batched(list(range(6)), track, config, scheduler=scheduler)

        assert peak == 2

    async def test_progress_reported_per_batch(self, scheduler) -> None:
        reports: list[BatchProgress] = []

        await run_batched(
            [1, 2, 3],
            _double,
            BatchConfig(batch_size=2),
            scheduler=scheduler,
            on_progress=reports.append,
        )

        assert [(p.batch, p.total_batches, p.processed) for p in reports] == [(1, 2, 2), (2, 2, 3)]
        assert reports[-1].percentage == 100

    async def test_results_keep_order_when_completion_is_reversed(self, scheduler) -> None:
        finished: list[int] = []

        async def slow_first(value: int) -> int:
            await asyncio.sleep(0.01 * (3 - value % 3))
            finished.append(value)
            return value * 10

        config = BatchConfig(batch_size=3, max_concurrent=3)
        run = await run_batched([0, 1, 2, 3, 4], slow_first, config, scheduler=scheduler)

        assert finished[:3] == [2, 1, 0]
        assert [r.index for r in run.results] == [0, 1, 2, 3, 4]
        assert [r.payload for r in run.results] == [0, 10, 20, 30, 40]

    async def test_all_items_failing(self, scheduler) -> None:
        async def always_fails(value: int) -> int:
            await asyncio.sleep(0.01 * (5 - value))
            raise MailerError(f"rejected {value}", code="550")

        config = BatchConfig(batch_size=2, max_concurrent=2)
        run = await run_batched([0, 1, 2, 3, 4], always_fails, config, scheduler=scheduler)

        assert run.statistics.failed == 5
        assert run.statistics.succeeded == 0
        assert [r.index for r in run.results] == [0, 1, 2, 3, 4]
        assert [r.error_message for r in run.results] == [f"rejected {i}" for i in range(5)]
        assert all(r.status == JobStatus.FAILED for r in run.results)

    async def test_failure_in_first_batch_does_not_stop_later_batches(self, scheduler) -> None:
        seen: list[int] = []

        async def fails_on_first(value: int) -> int:
            seen.append(value)
            if value == 1:
                raise MailerError("connection reset", code="ECONNRESET")
            return value

        config = BatchConfig(batch_size=2)
        run = await run_batched([1, 2, 3, 4, 5], fails_on_first, config, scheduler=scheduler)

        assert sorted(seen) == [1, 2, 3, 4, 5]
        assert run.statistics.batches == 3
        assert [r.status for r in run.results] == [JobStatus.FAILED] + [JobStatus.SUCCESS] * 4
