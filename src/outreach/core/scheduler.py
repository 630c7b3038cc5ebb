"""Delay scheduling for batch backpressure.

Every pause the batch processor takes (item stagger, inter-batch pause)
goes through a Scheduler so the suspension points are explicit and tests
can swap in a fake that records delays instead of sleeping.

Usage:
    from outreach.core.scheduler import AsyncioScheduler

    scheduler = AsyncioScheduler()
    await scheduler.sleep(500)  # yields to the event loop for 0.5s
"""

from __future__ import annotations

import asyncio
from typing import Protocol


class Scheduler(Protocol):
    """Anything that can suspend the current task for a number of milliseconds."""

    async def sleep(self, delay_ms: int) -> None: ...


class AsyncioScheduler:
    """Scheduler backed by asyncio.sleep."""

    async def sleep(self, delay_ms: int) -> None:
        """Suspend for delay_ms milliseconds (0 or less just yields once)."""
        await asyncio.sleep(max(delay_ms, 0) / 1000)


DEFAULT_SCHEDULER = AsyncioScheduler()
