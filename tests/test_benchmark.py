"""Tests for the benchmark runner against an in-process fake backend."""

from __future__ import annotations

import pytest

from clinicbench.benchmark import (
    DEFAULT_SEQUENCE,
    BenchmarkBackend,
    BenchmarkRunError,
    BenchmarkRunner,
    count_records,
)


class FakeBackend:
    """Backend that records calls and returns canned row lists."""

    def __init__(self, name: str = "Fake", fail_on: str | None = None, fail_init: bool = False):
        self.name = name
        self.fail_on = fail_on
        self.fail_init = fail_init
        self.calls: list[tuple[str, tuple]] = []
        self.cleanups = 0

    def _record(self, op: str, *args):
        self.calls.append((op, args))
        if op == self.fail_on:
            raise RuntimeError(f"{op} exploded")

    async def initialize(self) -> None:
        self._record("initialize")
        if self.fail_init:
            raise ConnectionError("database unreachable")

    async def cleanup(self) -> None:
        self.cleanups += 1

    async def simple_read(self, limit, offset):
        self._record("simple_read", limit, offset)
        return [{"id": i} for i in range(limit)]

    async def simple_write(self, count, data):
        self._record("simple_write", count)
        return [data.generate_patient() for _ in range(3)]

    async def complex_transaction(self, count, data):
        self._record("complex_transaction", count)
        return list(range(count))

    async def nested_insert(self, count, data):
        self._record("nested_insert", count)
        return list(range(count))

    async def simple_stats(self, days):
        self._record("simple_stats", days)
        return []

    async def complex_stats(self, limit):
        self._record("complex_stats", limit)
        return ["doctor"] * min(limit, 4)

    async def bulk_update(self, count):
        self._record("bulk_update", count)
        return count

    async def bulk_delete(self, older_than_days):
        self._record("bulk_delete", older_than_days)
        return 0


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def runner(backend, generator, quiet_log) -> BenchmarkRunner:
    return BenchmarkRunner(backend, generator, log=quiet_log)


class TestCountRecords:
    def test_sequence(self) -> None:
        assert count_records([1, 2, 3]) == 3

    def test_integer_count(self) -> None:
        assert count_records(42) == 42

    def test_none(self) -> None:
        assert count_records(None) == 0

    def test_bool_rejected(self) -> None:
        with pytest.raises(TypeError):
            count_records(True)


class TestSingleOperations:
    def test_fake_backend_satisfies_protocol(self, backend) -> None:
        assert isinstance(backend, BenchmarkBackend)

    async def test_simple_read_result(self, runner) -> None:
        result = await runner.simple_read(100, 0)
        assert result.operation == "Simple Read (limit: 100)"
        assert result.orm == "Fake"
        assert result.total_records == 100
        assert result.average_time == pytest.approx(result.duration / 100)
        assert result.memory_usage is not None

    async def test_records_are_what_backend_returned(self, runner) -> None:
        # The backend returns 3 rows whatever count was requested
        result = await runner.simple_write(1000)
        assert result.operation == "Simple Write (1000 records)"
        assert result.total_records == 3

    async def test_zero_records_average_equals_duration(self, runner) -> None:
        result = await runner.simple_stats(30)
        assert result.operation == "Simple Stats (30 days)"
        assert result.total_records == 0
        assert result.average_time == result.duration

    async def test_integer_count_from_backend(self, runner) -> None:
        result = await runner.bulk_update(250)
        assert result.operation == "Bulk Update (250 records)"
        assert result.total_records == 250

    async def test_operation_names(self, runner) -> None:
        names = [
            (await runner.complex_transaction(5)).operation,
            (await runner.nested_insert(5)).operation,
            (await runner.complex_stats(10)).operation,
            (await runner.bulk_delete(365)).operation,
        ]
        assert names == [
            "Complex Transaction (5 complete workflows)",
            "Nested Insert (5 records)",
            "Complex Stats - Doctor Performance (limit: 10)",
            "Bulk Delete (older than 365 days)",
        ]

    async def test_generator_is_passed_to_writes(self, runner, generator) -> None:
        await runner.simple_write(1)
        assert generator.phone_sequence == (3, 3)


class TestRunAll:
    async def test_default_sequence_order(self, runner, backend) -> None:
        results = await runner.run_all()
        assert len(results) == len(DEFAULT_SEQUENCE) == 11
        assert [op for op, _ in backend.calls[1:]] == [op for op, _ in DEFAULT_SEQUENCE]
        assert results[0].operation == "Simple Read (limit: 1000)"
        assert results[1].operation == "Simple Read (limit: 10000)"
        assert results[-1].operation == "Bulk Update (1000 records)"

    async def test_bulk_delete_not_in_default_run(self, runner, backend) -> None:
        await runner.run_all()
        assert "bulk_delete" not in [op for op, _ in backend.calls]

    async def test_initialize_first_cleanup_once(self, runner, backend) -> None:
        await runner.run_all()
        assert backend.calls[0] == ("initialize", ())
        assert backend.cleanups == 1

    async def test_init_failure(self, generator, quiet_log) -> None:
        backend = FakeBackend(fail_init=True)
        runner = BenchmarkRunner(backend, generator, log=quiet_log)

        with pytest.raises(BenchmarkRunError) as exc_info:
            await runner.run_all()

        assert exc_info.value.results == []
        assert exc_info.value.backend == "Fake"
        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert backend.cleanups == 1
        assert backend.calls == [("initialize", ())]

    async def test_failure_keeps_partial_results(self, generator, quiet_log) -> None:
        backend = FakeBackend(fail_on="complex_transaction")
        runner = BenchmarkRunner(backend, generator, log=quiet_log)

        with pytest.raises(BenchmarkRunError) as exc_info:
            await runner.run_all()

        # two reads and two writes finished before the first transaction
        partial = exc_info.value.results
        assert [r.operation for r in partial] == [
            "Simple Read (limit: 1000)",
            "Simple Read (limit: 10000)",
            "Simple Write (1000 records)",
            "Simple Write (5000 records)",
        ]
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert backend.cleanups == 1
        assert not any(op == "nested_insert" for op, _ in backend.calls)

    async def test_custom_sequence(self, runner) -> None:
        results = await runner.run_all((("bulk_delete", (30,)),))
        assert [r.operation for r in results] == ["Bulk Delete (older than 30 days)"]

    async def test_logs_start_and_completion(self, runner, quiet_log) -> None:
        await runner.run_all()
        assert "Starting Fake benchmarks" in quiet_log.messages[0]
        assert "completed" in quiet_log.messages[-1]

    def test_default_generator_random_mid_offset(self, backend) -> None:
        runner = BenchmarkRunner(backend, log=lambda msg: None)
        mid, last = runner.generator.phone_sequence
        assert 0 <= mid < 10000
        assert last == 0
