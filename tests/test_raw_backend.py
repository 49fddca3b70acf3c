"""Tests for the raw SQL backend on SQLite, plus PostgreSQL when available."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

import sqlite3

import pytest
import pytest_asyncio

from clinicbench.backends.raw import RawSQLBackend
from clinicbench.benchmark import BenchmarkRunner
from clinicbench.datagen import ClinicDataGenerator
from clinicbench.schema import TABLES
from clinicbench.store import AiosqliteStore, AsyncpgStore
from clinicbench.types import DailyPatientStats, DoctorPerformanceStats


class FailingPaymentGenerator(ClinicDataGenerator):
    """Raises on the Nth payment it is asked for."""

    def __init__(self, fail_at: int, **kwargs) -> None:
        super().__init__(**kwargs)
        self.fail_at = fail_at
        self.payments = 0

    def generate_payment(self, *args, **kwargs):
        self.payments += 1
        if self.payments == self.fail_at:
            raise RuntimeError("payment gateway down")
        return super().generate_payment(*args, **kwargs)


async def counts(store) -> dict[str, int]:
    result = {}
    for table in TABLES:
        rows = await store.fetch(f"SELECT COUNT(*) AS n FROM {table}")
        result[table] = rows[0]["n"]
    return result


@pytest_asyncio.fixture
async def backend():
    backend = RawSQLBackend("aiosqlite", AiosqliteStore(":memory:"))
    await backend.initialize()
    yield backend
    await backend.cleanup()


class TestReadWrite:
    async def test_simple_write_then_read(self, backend, generator) -> None:
        ids = await backend.simple_write(25, generator)
        assert len(ids) == 25

        rows = await backend.simple_read(10, 5)
        assert [r["id"] for r in rows] == sorted(ids)[5:15]

    async def test_read_past_end(self, backend, generator) -> None:
        await backend.simple_write(3, generator)
        assert await backend.simple_read(10, 3) == []

    async def test_read_empty_table(self, backend) -> None:
        assert await backend.simple_read(1000, 0) == []

    async def test_failed_write_leaves_no_rows(self, backend, generator) -> None:
        """A write that fails part-way is rolled back as one batch."""
        taken = ClinicDataGenerator(seed=7).generate_patient().to_row()
        taken["phone"] = "010-0119-0119"
        await backend.store.insert("patients", taken)

        # The 120th generated patient reuses the phone above
        with pytest.raises(sqlite3.IntegrityError):
            await backend.simple_write(150, generator)

        assert (await counts(backend.store))["patients"] == 1


class TestComplexTransaction:
    async def test_each_workflow_creates_one_row_per_table(self, backend, generator) -> None:
        workflows = await backend.complex_transaction(4, generator)
        assert len(workflows) == 4
        assert await counts(backend.store) == {
            "payments": 4,
            "treatments": 4,
            "medical_records": 4,
            "reservations": 4,
            "patients": 4,
        }

    async def test_payment_amount_is_treatment_price(self, backend, generator) -> None:
        await backend.complex_transaction(3, generator)
        rows = await backend.store.fetch(
            "SELECT p.amount AS amount, t.price AS price "
            "FROM payments p JOIN treatments t ON t.id = p.treatment_id"
        )
        assert len(rows) == 3
        assert all(Decimal(str(r["amount"])) == Decimal(str(r["price"])) for r in rows)

    async def test_failure_keeps_completed_workflows(self, backend) -> None:
        generator = FailingPaymentGenerator(fail_at=3, seed=5)
        with pytest.raises(RuntimeError, match="payment gateway down"):
            await backend.complex_transaction(5, generator)

        # Workflows 1 and 2 committed; workflow 3 rolled back entirely
        assert await counts(backend.store) == {
            "payments": 2,
            "treatments": 2,
            "medical_records": 2,
            "reservations": 2,
            "patients": 2,
        }


class TestNestedInsert:
    async def test_nested_counts(self, backend, generator) -> None:
        patient_ids = await backend.nested_insert(3, generator)
        assert len(patient_ids) == 3
        assert await counts(backend.store) == {
            "payments": 6,
            "treatments": 12,
            "medical_records": 6,
            "reservations": 6,
            "patients": 3,
        }

    async def test_children_reference_their_patient(self, backend, generator) -> None:
        [pid] = await backend.nested_insert(1, generator)
        rows = await backend.store.fetch(
            "SELECT DISTINCT patient_id FROM reservations "
            "UNION SELECT DISTINCT patient_id FROM medical_records "
            "UNION SELECT DISTINCT patient_id FROM payments"
        )
        assert [r["patient_id"] for r in rows] == [pid]


class TestStats:
    async def test_simple_stats(self, backend, generator) -> None:
        now = datetime.now()
        rows = [generator.generate_patient().to_row() for _ in range(5)]
        for i, row in enumerate(rows):
            row["first_visit_at"] = now - timedelta(days=i % 2, hours=1)
        rows[4]["first_visit_at"] = now - timedelta(days=400)
        await backend.store.insert_many("patients", rows)

        stats = await backend.simple_stats(30)
        assert all(isinstance(s, DailyPatientStats) for s in stats)
        assert sum(s.new_patients for s in stats) == 4
        assert [s.date for s in stats] == sorted((s.date for s in stats), reverse=True)
        assert all(s.new_patients == s.total_visits for s in stats)

    async def test_simple_stats_no_rows(self, backend) -> None:
        assert await backend.simple_stats(30) == []

    async def test_complex_stats(self, backend, generator) -> None:
        await backend.complex_transaction(20, generator)
        stats = await backend.complex_stats(3)

        assert 1 <= len(stats) <= 3
        assert all(isinstance(s, DoctorPerformanceStats) for s in stats)
        revenues = [s.total_revenue for s in stats]
        assert revenues == sorted(revenues, reverse=True)
        for s in stats:
            assert s.average_revenue == pytest.approx(s.total_revenue / s.treatment_count)

    async def test_complex_stats_ignores_records_without_treatments(
        self, backend, generator
    ) -> None:
        pid = await backend.store.insert("patients", generator.generate_patient().to_row())
        await backend.store.insert("medical_records", generator.generate_medical_record(pid).to_row())
        assert await backend.complex_stats(10) == []


class TestBulkOperations:
    async def test_bulk_update_lowest_ids(self, backend, generator) -> None:
        ids = await backend.simple_write(10, generator)
        updated = await backend.bulk_update(4)
        assert sorted(updated) == sorted(ids)[:4]

    async def test_bulk_update_more_than_exists(self, backend, generator) -> None:
        await backend.simple_write(3, generator)
        assert len(await backend.bulk_update(1000)) == 3

    async def test_bulk_delete_cascades(self, backend, generator) -> None:
        await backend.nested_insert(2, generator)
        await backend.store.fetch("UPDATE patients SET first_visit_at = $1", [datetime.now()])
        await backend.store.fetch(
            "UPDATE patients SET first_visit_at = $1 WHERE id = (SELECT MIN(id) FROM patients)",
            [datetime.now() - timedelta(days=800)],
        )
        deleted = await backend.bulk_delete(365)
        assert len(deleted) == 1
        assert await counts(backend.store) == {
            "payments": 2,
            "treatments": 4,
            "medical_records": 2,
            "reservations": 2,
            "patients": 1,
        }


class TestRunner:
    async def test_small_sequence(self, generator, quiet_log) -> None:
        backend = RawSQLBackend("aiosqlite", AiosqliteStore(":memory:"))
        runner = BenchmarkRunner(backend, generator, log=quiet_log)
        sequence = (
            ("simple_write", (50,)),
            ("simple_read", (20, 0)),
            ("complex_transaction", (5,)),
            ("nested_insert", (5,)),
            ("simple_stats", (30,)),
            ("complex_stats", (10,)),
            ("bulk_update", (10,)),
            ("bulk_delete", (100000,)),
        )
        results = await runner.run_all(sequence)

        assert [r.total_records for r in results[:4]] == [50, 20, 5, 5]
        assert results[6].total_records == 10
        assert results[7].total_records == 0
        assert all(r.orm == "aiosqlite" for r in results)


class TestPostgres:
    async def test_workflow(self, database_url, generator) -> None:
        store = AsyncpgStore(database_url, schema="clinicbench_raw_test", max_size=4)
        backend = RawSQLBackend("asyncpg", store)
        await backend.initialize()
        try:
            await backend.simple_write(10, generator)
            await backend.complex_transaction(3, generator)
            await backend.nested_insert(2, generator)
            assert len(await backend.simple_read(100, 0)) == 15
            assert await backend.complex_stats(10)
            assert len(await backend.bulk_update(5)) == 5
        finally:
            await store.execute_script('DROP SCHEMA IF EXISTS "clinicbench_raw_test" CASCADE')
            await backend.cleanup()
