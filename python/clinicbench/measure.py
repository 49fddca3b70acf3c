"""Timing and memory instrumentation for a single async operation."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

import psutil

from clinicbench.types import MemoryUsage

T = TypeVar("T")


@dataclass(frozen=True)
class Measurement(Generic[T]):
    """The untouched operation result plus what it cost."""

    result: T
    duration_ms: float
    memory_used: int
    """Change in resident set size, in bytes. Can be negative when the
    collector frees memory while the operation runs; that noise is kept."""
    memory_total: int
    """Resident set size after the operation, in bytes."""

    @property
    def memory_usage(self) -> MemoryUsage:
        return MemoryUsage(used=self.memory_used, total=self.memory_total)


async def measure_performance(
    operation: Callable[[], Awaitable[T]],
    label: str,
    log: Callable[[str], None] | None = None,
) -> Measurement[T]:
    """Await ``operation`` and record its wall time and memory delta.

    Exceptions from the operation are not caught.

    Args:
        operation: Zero-argument coroutine function to run once.
        label: Name used in the summary line.
        log: Optional sink for a one-line summary.

    Returns:
        A Measurement wrapping the operation's own return value.
    """
    process = psutil.Process()
    mem_before = process.memory_info().rss
    start = time.perf_counter_ns()

    result = await operation()

    end = time.perf_counter_ns()
    mem_after = process.memory_info().rss

    measurement = Measurement(
        result=result,
        duration_ms=(end - start) / 1_000_000,
        memory_used=mem_after - mem_before,
        memory_total=mem_after,
    )

    if log is not None:
        log(
            f"[dim]{label}: {measurement.duration_ms:.2f}ms, "
            f"Memory: {measurement.memory_used / 1024 / 1024:.2f}MB[/dim]"
        )

    return measurement
