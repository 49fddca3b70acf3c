"""Benchmark contract and the fixed run sequence every backend goes through."""

from __future__ import annotations

import random
from collections.abc import Awaitable, Callable, Sized
from typing import Any, Protocol, runtime_checkable

from clinicbench.datagen import PHONE_SEQ_MODULUS, ClinicDataGenerator
from clinicbench.measure import measure_performance
from clinicbench.types import BenchmarkResult

LogFn = Callable[[str], None]

# (operation, args) in run order. bulk_delete is destructive and depends on
# what earlier steps inserted, so it only runs when invoked by hand.
DEFAULT_SEQUENCE: tuple[tuple[str, tuple[int, ...]], ...] = (
    ("simple_read", (1000, 0)),
    ("simple_read", (10000, 0)),
    ("simple_write", (1000,)),
    ("simple_write", (5000,)),
    ("complex_transaction", (100,)),
    ("complex_transaction", (500,)),
    ("nested_insert", (100,)),
    ("nested_insert", (500,)),
    ("simple_stats", (30,)),
    ("complex_stats", (10,)),
    ("bulk_update", (1000,)),
)


@runtime_checkable
class BenchmarkBackend(Protocol):
    """What a data-access library adapter must provide.

    Each operation returns the rows it produced or touched, or an integer
    row count when the library only reports counts. Write operations get
    the run's generator so every backend sees the same kind of payloads.
    """

    name: str

    async def initialize(self) -> None: ...

    async def cleanup(self) -> None: ...

    async def simple_read(self, limit: int, offset: int) -> Any: ...

    async def simple_write(self, count: int, data: ClinicDataGenerator) -> Any: ...

    async def complex_transaction(self, count: int, data: ClinicDataGenerator) -> Any: ...

    async def nested_insert(self, count: int, data: ClinicDataGenerator) -> Any: ...

    async def simple_stats(self, days: int) -> Any: ...

    async def complex_stats(self, limit: int) -> Any: ...

    async def bulk_update(self, count: int) -> Any: ...

    async def bulk_delete(self, older_than_days: int) -> Any: ...


class BenchmarkRunError(Exception):
    """A run stopped early; ``results`` holds what completed before it."""

    def __init__(self, backend: str, results: list[BenchmarkResult], message: str) -> None:
        super().__init__(message)
        self.backend = backend
        self.results = results


def count_records(outcome: Any) -> int:
    """Number of rows an operation reported."""
    if isinstance(outcome, bool):
        raise TypeError("Backend returned a bool, expected rows or a row count")
    if isinstance(outcome, int):
        return outcome
    if isinstance(outcome, Sized):
        return len(outcome)
    if outcome is None:
        return 0
    raise TypeError(f"Cannot count records in {type(outcome).__name__}")


def _default_log(msg: str) -> None:
    from rich.console import Console

    Console().print(msg)


class BenchmarkRunner:
    """Drives one backend through measured operations.

    Example:
        >>> runner = BenchmarkRunner(create_backend("aiosqlite", config))
        >>> results = await runner.run_all()
    """

    def __init__(
        self,
        backend: BenchmarkBackend,
        generator: ClinicDataGenerator | None = None,
        log: LogFn | None = None,
    ) -> None:
        self.backend = backend
        if generator is None:
            # Offset the middle block so repeated runs against seeded data
            # are unlikely to reuse a phone number.
            generator = ClinicDataGenerator(
                phone_mid_seq=random.randrange(PHONE_SEQ_MODULUS),
                phone_last_seq=0,
            )
        self.generator = generator
        self.log = log or _default_log
        self.results: list[BenchmarkResult] = []

    @property
    def orm_name(self) -> str:
        return self.backend.name

    async def _run(
        self,
        operation: Callable[[], Awaitable[Any]],
        operation_name: str,
    ) -> BenchmarkResult:
        measurement = await measure_performance(
            operation, f"{self.orm_name} - {operation_name}", log=self.log
        )
        return BenchmarkResult.create(
            operation=operation_name,
            orm=self.orm_name,
            total_records=count_records(measurement.result),
            duration=measurement.duration_ms,
            memory_usage=measurement.memory_usage,
        )

    # ========== Measured Operations ==========

    async def simple_read(self, limit: int = 1000, offset: int = 0) -> BenchmarkResult:
        return await self._run(
            lambda: self.backend.simple_read(limit, offset),
            f"Simple Read (limit: {limit})",
        )

    async def simple_write(self, count: int) -> BenchmarkResult:
        return await self._run(
            lambda: self.backend.simple_write(count, self.generator),
            f"Simple Write ({count} records)",
        )

    async def complex_transaction(self, count: int) -> BenchmarkResult:
        return await self._run(
            lambda: self.backend.complex_transaction(count, self.generator),
            f"Complex Transaction ({count} complete workflows)",
        )

    async def nested_insert(self, count: int) -> BenchmarkResult:
        return await self._run(
            lambda: self.backend.nested_insert(count, self.generator),
            f"Nested Insert ({count} records)",
        )

    async def simple_stats(self, days: int = 30) -> BenchmarkResult:
        return await self._run(
            lambda: self.backend.simple_stats(days),
            f"Simple Stats ({days} days)",
        )

    async def complex_stats(self, limit: int = 10) -> BenchmarkResult:
        return await self._run(
            lambda: self.backend.complex_stats(limit),
            f"Complex Stats - Doctor Performance (limit: {limit})",
        )

    async def bulk_update(self, count: int) -> BenchmarkResult:
        return await self._run(
            lambda: self.backend.bulk_update(count),
            f"Bulk Update ({count} records)",
        )

    async def bulk_delete(self, older_than_days: int) -> BenchmarkResult:
        return await self._run(
            lambda: self.backend.bulk_delete(older_than_days),
            f"Bulk Delete (older than {older_than_days} days)",
        )

    # ========== Full Run ==========

    async def run_all(
        self,
        sequence: tuple[tuple[str, tuple[int, ...]], ...] = DEFAULT_SEQUENCE,
    ) -> list[BenchmarkResult]:
        """Run ``sequence`` in order, one operation at a time.

        The backend is initialized first and always cleaned up exactly
        once. On any failure a BenchmarkRunError is raised carrying the
        results gathered so far, chained to the original exception.
        """
        self.log(f"[bold cyan]Starting {self.orm_name} benchmarks...[/bold cyan]")
        self.results = []

        try:
            try:
                await self.backend.initialize()
            except Exception as e:
                self.log(f"[red]{self.orm_name} initialization failed: {e}[/red]")
                raise BenchmarkRunError(
                    self.orm_name, [], f"{self.orm_name} initialization failed: {e}"
                ) from e

            for op_name, args in sequence:
                try:
                    result = await getattr(self, op_name)(*args)
                except Exception as e:
                    self.log(f"[red]{self.orm_name} benchmark failed in {op_name}: {e}[/red]")
                    raise BenchmarkRunError(
                        self.orm_name,
                        list(self.results),
                        f"{self.orm_name} failed in {op_name}{args}: {e}",
                    ) from e
                self.results.append(result)

            self.log(f"[green]{self.orm_name} benchmarks completed![/green]")
        finally:
            await self.backend.cleanup()

        return list(self.results)
