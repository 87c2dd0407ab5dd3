"""Batch processing on worker threads, with progress reports and cancellation."""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Iterable, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class CPUAllocationStrategy(enum.Enum):
    """How many of the machine's cores a batch may use."""

    MINIMAL = "minimal"  # 1-2 workers
    BALANCED = "balanced"  # half of the cores
    AGGRESSIVE = "aggressive"  # all cores but one
    MAXIMUM = "maximum"  # all cores


def get_cpu_core_count(
    strategy: CPUAllocationStrategy = CPUAllocationStrategy.BALANCED,
    cpu_count: int | None = None,
) -> int:
    """Return the worker count for a strategy, given the machine's (or a stated) core count."""
    count = max(cpu_count if cpu_count is not None else (os.cpu_count() or 1), 1)
    if strategy is CPUAllocationStrategy.MINIMAL:
        return min(count, 2)
    if strategy is CPUAllocationStrategy.BALANCED:
        return max(count // 2, 1)
    if strategy is CPUAllocationStrategy.AGGRESSIVE:
        return max(count - 1, 1)
    return count


class BatchStatus(enum.Enum):
    """Lifecycle of a batch."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class BatchResult(Generic[R]):
    """Outcome of processing one item."""

    item_index: int
    result: R | None
    error: str | None
    success: bool
    duration_ms: float


@dataclass
class BatchProgress:
    """Counters describing how far a batch has got."""

    total: int
    completed: int = 0
    failed: int = 0
    status: BatchStatus = BatchStatus.PENDING
    start_time: float = field(default_factory=time.monotonic)

    def percent_complete(self) -> float:
        """Return the share of items completed, in percent."""
        if self.total == 0:
            return 0.0
        return self.completed / self.total * 100.0

    def elapsed_seconds(self) -> float:
        """Return seconds since the batch started."""
        return time.monotonic() - self.start_time

    def estimated_remaining_seconds(self) -> float | None:
        """Estimate the seconds left from the rate so far, or None before any item is done."""
        if self.completed == 0:
            return None
        elapsed = self.elapsed_seconds()
        if elapsed == 0:
            return None
        rate = elapsed / self.completed
        return rate * (self.total - self.completed)


ProgressCallback = Callable[[BatchProgress], None]


class BatchProcessor:
    """Runs a function over many items on worker threads, a bounded number at a time."""

    def __init__(
        self,
        max_workers: int | None = None,
        strategy: CPUAllocationStrategy = CPUAllocationStrategy.BALANCED,
    ) -> None:
        self.max_workers = max_workers if max_workers is not None else get_cpu_core_count(strategy)
        self._cancel_requested = threading.Event()

    def __repr__(self) -> str:
        return f"BatchProcessor(max_workers={self.max_workers})"

    async def _run_one(
        self,
        index: int,
        item: T,
        processor: Callable[[T], R],
        progress: BatchProgress,
    ) -> BatchResult[R]:
        if self._cancel_requested.is_set():
            return BatchResult(index, None, "Cancelled", False, 0.0)

        start = time.monotonic()
        try:
            value = await asyncio.to_thread(processor, item)
        except Exception as exc:
            duration_ms = (time.monotonic() - start) * 1000.0
            logger.error("Task failed: %s", exc)
            progress.failed += 1
            outcome: BatchResult[R] = BatchResult(index, None, str(exc), False, duration_ms)
        else:
            duration_ms = (time.monotonic() - start) * 1000.0
            outcome = BatchResult(index, value, None, True, duration_ms)
        progress.completed += 1
        return outcome

    async def process_batch(
        self,
        items: Iterable[T],
        processor: Callable[[T], R],
        progress_callback: ProgressCallback | None = None,
    ) -> list[BatchResult[R]]:
        """Process every item and return the results in the items' original order."""
        self._cancel_requested.clear()
        items = list(items)
        progress = BatchProgress(total=len(items), status=BatchStatus.RUNNING)

        def notify() -> None:
            if progress_callback is not None:
                progress_callback(dataclasses.replace(progress))

        notify()

        results: list[BatchResult[R]] = []
        pending: set[asyncio.Task[BatchResult[R]]] = set()

        async def collect() -> None:
            nonlocal pending
            done, pending = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            for task in done:
                results.append(task.result())
                notify()

        for index, item in enumerate(items):
            pending.add(asyncio.ensure_future(self._run_one(index, item, processor, progress)))
            if len(pending) >= self.max_workers:
                await collect()

        while pending:
            await collect()

        progress.status = (
            BatchStatus.CANCELLED if self._cancel_requested.is_set() else BatchStatus.COMPLETED
        )
        notify()

        results.sort(key=lambda r: r.item_index)
        logger.info("Batch complete: %d items, %d failures", len(results), progress.failed)
        return results

    def cancel(self) -> None:
        """Ask the running batch to skip every item not yet started."""
        self._cancel_requested.set()
        logger.debug("Cancel requested")


def parallel_map(func: Callable[[T], R], items: Iterable[T]) -> list[R]:
    """Apply ``func`` to each item on a thread pool, keeping the input order."""
    with ThreadPoolExecutor() as executor:
        return list(executor.map(func, items))


def parallel_starmap(func: Callable[..., R], items: Iterable[Sequence[Any]]) -> list[R]:
    """Call ``func(*args)`` for each argument sequence on a thread pool, keeping the input order."""

    def unpack(args: Sequence[Any]) -> R:
        return func(*args)

    with ThreadPoolExecutor() as executor:
        return list(executor.map(unpack, items))