"""Tests for the measurement wrapper."""

from __future__ import annotations

import asyncio

import pytest

from clinicbench.measure import measure_performance
from clinicbench.types import MemoryUsage


class TestMeasurePerformance:
    async def test_returns_operation_result_untouched(self) -> None:
        payload = [{"id": 1}, {"id": 2}]

        async def op():
            return payload

        measurement = await measure_performance(op, "noop")
        assert measurement.result is payload

    async def test_duration_covers_the_await(self) -> None:
        async def op():
            await asyncio.sleep(0.02)

        measurement = await measure_performance(op, "sleep")
        assert measurement.duration_ms >= 15

    async def test_memory_fields(self) -> None:
        async def op():
            return None

        measurement = await measure_performance(op, "noop")
        assert measurement.memory_total > 0
        assert measurement.memory_usage == MemoryUsage(
            used=measurement.memory_used, total=measurement.memory_total
        )

    async def test_exceptions_propagate(self) -> None:
        async def op():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            await measure_performance(op, "failing")

    async def test_logs_one_summary_line(self, quiet_log) -> None:
        async def op():
            return 1

        await measure_performance(op, "Simple Read", log=quiet_log)
        assert len(quiet_log.messages) == 1
        assert quiet_log.messages[0].startswith("[dim]Simple Read: ")
        assert "MB" in quiet_log.messages[0]

    async def test_no_log_on_failure(self, quiet_log) -> None:
        async def op():
            raise ValueError("nope")

        with pytest.raises(ValueError):
            await measure_performance(op, "failing", log=quiet_log)
        assert quiet_log.messages == []
