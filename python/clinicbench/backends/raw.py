"""Hand-written SQL backend running over any RawStore."""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from clinicbench.datagen import ClinicDataGenerator
from clinicbench.schema import create_schema
from clinicbench.store import RawStore
from clinicbench.types import DailyPatientStats, DoctorPerformanceStats

SIMPLE_READ_SQL = "SELECT * FROM patients ORDER BY id ASC LIMIT $1 OFFSET $2"

SIMPLE_STATS_SQL = """
    SELECT DATE(first_visit_at) AS date,
           COUNT(*) AS new_patients,
           COUNT(DISTINCT id) AS total_visits
    FROM patients
    WHERE first_visit_at >= $1
    GROUP BY DATE(first_visit_at)
    ORDER BY DATE(first_visit_at) DESC
"""

COMPLEX_STATS_SQL = """
    SELECT m.doctor AS doctor,
           COUNT(t.id) AS treatment_count,
           SUM(t.price) AS total_revenue,
           AVG(t.price) AS average_revenue
    FROM medical_records m
    INNER JOIN treatments t ON t.record_id = m.id
    GROUP BY m.doctor
    ORDER BY total_revenue DESC
    LIMIT $1
"""

BULK_UPDATE_SQL = """
    UPDATE patients SET last_visit_at = $1, updated_at = $1
    WHERE id IN (SELECT id FROM patients ORDER BY id ASC LIMIT $2)
    RETURNING id
"""

BULK_DELETE_SQL = "DELETE FROM patients WHERE first_visit_at < $1 RETURNING id"


def _decimal(value: Any) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value or 0))


class RawSQLBackend:
    """Benchmark backend issuing plain SQL through a RawStore.

    The same statements run on PostgreSQL (asyncpg) and SQLite (aiosqlite);
    only the store differs.
    """

    def __init__(self, name: str, store: RawStore) -> None:
        self.name = name
        self.store = store

    async def initialize(self) -> None:
        await self.store.connect()
        await create_schema(self.store)

    async def cleanup(self) -> None:
        await self.store.close()

    async def simple_read(self, limit: int, offset: int) -> list[dict[str, Any]]:
        return await self.store.fetch(SIMPLE_READ_SQL, [limit, offset])

    async def simple_write(self, count: int, data: ClinicDataGenerator) -> list[int]:
        rows = [data.generate_patient().to_row() for _ in range(count)]
        async with self.store.transaction() as tx:
            return await tx.insert_many("patients", rows)

    async def complex_transaction(self, count: int, data: ClinicDataGenerator) -> list[dict[str, int]]:
        workflows = []
        for _ in range(count):
            async with self.store.transaction() as tx:
                patient_id = await tx.insert("patients", data.generate_patient().to_row())
                reservation_id = await tx.insert(
                    "reservations", data.generate_reservation(patient_id).to_row()
                )
                record_id = await tx.insert(
                    "medical_records", data.generate_medical_record(patient_id).to_row()
                )
                treatment = data.generate_treatment(record_id)
                treatment_id = await tx.insert("treatments", treatment.to_row())
                payment = data.generate_payment(patient_id, treatment_id, treatment.price)
                payment_id = await tx.insert("payments", payment.to_row())
            workflows.append({
                "patient_id": patient_id,
                "reservation_id": reservation_id,
                "record_id": record_id,
                "treatment_id": treatment_id,
                "payment_id": payment_id,
            })
        return workflows

    async def nested_insert(self, count: int, data: ClinicDataGenerator) -> list[int]:
        patient_ids = []
        for _ in range(count):
            nested = data.generate_nested_patient()
            async with self.store.transaction() as tx:
                patient_id = await tx.insert("patients", nested.patient.to_row())

                reservations = [r.to_row() | {"patient_id": patient_id} for r in nested.reservations]
                await tx.insert_many("reservations", reservations)

                payments = [p.to_row() | {"patient_id": patient_id} for p in nested.payments]
                await tx.insert_many("payments", payments)

                for item in nested.medical_records:
                    record_id = await tx.insert(
                        "medical_records", item.record.to_row() | {"patient_id": patient_id}
                    )
                    treatments = [t.to_row() | {"record_id": record_id} for t in item.treatments]
                    await tx.insert_many("treatments", treatments)
            patient_ids.append(patient_id)
        return patient_ids

    async def simple_stats(self, days: int) -> list[DailyPatientStats]:
        start_date = datetime.now() - timedelta(days=days)
        rows = await self.store.fetch(SIMPLE_STATS_SQL, [start_date])
        return [
            DailyPatientStats(
                date=str(row["date"]),
                new_patients=int(row["new_patients"]),
                total_visits=int(row["total_visits"]),
            )
            for row in rows
        ]

    async def complex_stats(self, limit: int) -> list[DoctorPerformanceStats]:
        rows = await self.store.fetch(COMPLEX_STATS_SQL, [limit])
        return [
            DoctorPerformanceStats(
                doctor=row["doctor"],
                treatment_count=int(row["treatment_count"]),
                total_revenue=_decimal(row["total_revenue"]),
                average_revenue=_decimal(row["average_revenue"]),
            )
            for row in rows
        ]

    async def bulk_update(self, count: int) -> list[int]:
        return await self.store.execute_returning(BULK_UPDATE_SQL, [datetime.now(), count])

    async def bulk_delete(self, older_than_days: int) -> list[int]:
        cutoff = datetime.now() - timedelta(days=older_than_days)
        return await self.store.execute_returning(BULK_DELETE_SQL, [cutoff])
