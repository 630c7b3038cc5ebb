"""Batch execution components.

This package provides the generic batching layer:
- Batch splitter for fixed-size chunking in input order
- Batch processor with bounded concurrency, staggered launches and
  per-item failure isolation
"""

from outreach.batch.processor import (
    BatchConfig,
    BatchJobResult,
    BatchProgress,
    BatchRun,
    BatchStatistics,
    JobStatus,
    run_batched,
)
from outreach.batch.splitter import split

__all__ = [
    # Processor
    "BatchConfig",
    "BatchJobResult",
    "BatchProgress",
    "BatchRun",
    "BatchStatistics",
    "JobStatus",
    "run_batched",
    # Splitter
    "split",
]
