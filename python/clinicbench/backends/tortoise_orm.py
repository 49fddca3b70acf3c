"""Tortoise ORM backend.

Models are defined at module level so ``Tortoise.init`` can discover them
through ``modules={"models": [__name__]}``.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any
from urllib.parse import unquote, urlparse

from tortoise import Tortoise, connections, fields
from tortoise.functions import Avg, Count, Sum
from tortoise.models import Model
from tortoise.transactions import in_transaction

from clinicbench.datagen import ClinicDataGenerator
from clinicbench.types import (
    DailyPatientStats,
    DoctorPerformanceStats,
    Gender,
    PaymentMethod,
    PaymentStatus,
    ReservationStatus,
)

CONNECTION = "default"


class Patient(Model):
    id = fields.IntField(pk=True)
    name = fields.CharField(max_length=100)
    gender = fields.CharEnumField(Gender, max_length=10)
    birth_date = fields.DateField()
    phone = fields.CharField(max_length=20, unique=True, index=True)
    address = fields.CharField(max_length=200, null=True)
    email = fields.CharField(max_length=100, null=True)
    first_visit_at = fields.DatetimeField(index=True)
    last_visit_at = fields.DatetimeField(null=True, index=True)
    created_at = fields.DatetimeField(auto_now_add=True, index=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "patients"


class Reservation(Model):
    id = fields.IntField(pk=True)
    patient = fields.ForeignKeyField(
        "models.Patient", related_name="reservations", on_delete=fields.CASCADE
    )
    reserved_at = fields.DatetimeField(index=True)
    department = fields.CharField(max_length=50)
    doctor = fields.CharField(max_length=50, index=True)
    status = fields.CharEnumField(
        ReservationStatus, max_length=20, default=ReservationStatus.SCHEDULED, index=True
    )
    notes = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "reservations"


class MedicalRecord(Model):
    id = fields.IntField(pk=True)
    patient = fields.ForeignKeyField(
        "models.Patient", related_name="medical_records", on_delete=fields.CASCADE
    )
    doctor = fields.CharField(max_length=50, index=True)
    visit_date = fields.DatetimeField(index=True)
    symptoms = fields.TextField()
    diagnosis = fields.TextField()
    prescription = fields.TextField(null=True)
    notes = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "medical_records"


class Treatment(Model):
    id = fields.IntField(pk=True)
    record = fields.ForeignKeyField(
        "models.MedicalRecord", related_name="treatments", on_delete=fields.CASCADE
    )
    treatment_name = fields.CharField(max_length=100, index=True)
    price = fields.DecimalField(max_digits=10, decimal_places=2, index=True)
    started_at = fields.DatetimeField(index=True)
    ended_at = fields.DatetimeField(null=True)
    duration = fields.IntField(null=True)
    notes = fields.TextField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "treatments"


class Payment(Model):
    id = fields.IntField(pk=True)
    patient = fields.ForeignKeyField(
        "models.Patient", related_name="payments", on_delete=fields.CASCADE
    )
    treatment = fields.ForeignKeyField(
        "models.Treatment", related_name="payments", null=True, on_delete=fields.SET_NULL
    )
    amount = fields.DecimalField(max_digits=10, decimal_places=2)
    method = fields.CharEnumField(PaymentMethod, max_length=20, index=True)
    status = fields.CharEnumField(
        PaymentStatus, max_length=20, default=PaymentStatus.PENDING, index=True
    )
    paid_at = fields.DatetimeField(null=True, index=True)
    receipt_number = fields.CharField(max_length=50, null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "payments"


def tortoise_config(url: str, schema: str | None = None) -> dict[str, Any]:
    """Build a Tortoise config dict for a PostgreSQL or SQLite URL."""
    if url.startswith("sqlite"):
        connection: Any = url
    else:
        parsed = urlparse(url)
        credentials: dict[str, Any] = {
            "host": parsed.hostname or "localhost",
            "port": parsed.port or 5432,
            "user": unquote(parsed.username or ""),
            "password": unquote(parsed.password or ""),
            "database": parsed.path.lstrip("/"),
        }
        if schema:
            credentials["schema"] = schema
        connection = {"engine": "tortoise.backends.asyncpg", "credentials": credentials}

    return {
        "connections": {CONNECTION: connection},
        "apps": {"models": {"models": [__name__], "default_connection": CONNECTION}},
        "use_tz": False,
    }


def _strip(row: dict[str, Any], *keys: str) -> dict[str, Any]:
    return {k: v for k, v in row.items() if k not in keys}


class TortoiseBackend:
    """Benchmark backend using Tortoise ORM's model API."""

    def __init__(self, url: str, *, name: str = "Tortoise", schema: str | None = None) -> None:
        self.name = name
        self.url = url
        self.schema = schema
        self._initialized = False

    async def initialize(self) -> None:
        if self._initialized:
            return
        await Tortoise.init(config=tortoise_config(self.url, self.schema))
        if self.schema and not self.url.startswith("sqlite"):
            conn = connections.get(CONNECTION)
            await conn.execute_script(f'CREATE SCHEMA IF NOT EXISTS "{self.schema}"')
        await Tortoise.generate_schemas(safe=True)
        self._initialized = True

    async def cleanup(self) -> None:
        if self._initialized:
            await Tortoise.close_connections()
            self._initialized = False

    async def simple_read(self, limit: int, offset: int) -> list[Patient]:
        return await Patient.all().order_by("id").limit(limit).offset(offset)

    async def simple_write(self, count: int, data: ClinicDataGenerator) -> list[Patient]:
        patients = [Patient(**data.generate_patient().to_row()) for _ in range(count)]
        return await Patient.bulk_create(patients)

    async def complex_transaction(self, count: int, data: ClinicDataGenerator) -> list[Payment]:
        payments = []
        for _ in range(count):
            async with in_transaction(CONNECTION) as conn:
                patient = await Patient.create(using_db=conn, **data.generate_patient().to_row())
                await Reservation.create(
                    using_db=conn, **data.generate_reservation(patient.id).to_row()
                )
                record = await MedicalRecord.create(
                    using_db=conn, **data.generate_medical_record(patient.id).to_row()
                )
                treatment_data = data.generate_treatment(record.id)
                treatment = await Treatment.create(using_db=conn, **treatment_data.to_row())
                payment = await Payment.create(
                    using_db=conn,
                    **data.generate_payment(patient.id, treatment.id, treatment_data.price).to_row(),
                )
            payments.append(payment)
        return payments

    async def nested_insert(self, count: int, data: ClinicDataGenerator) -> list[Patient]:
        patients = []
        for _ in range(count):
            nested = data.generate_nested_patient()
            async with in_transaction(CONNECTION) as conn:
                patient = await Patient.create(using_db=conn, **nested.patient.to_row())
                await Reservation.bulk_create(
                    [
                        Reservation(patient_id=patient.id, **_strip(r.to_row(), "patient_id"))
                        for r in nested.reservations
                    ],
                    using_db=conn,
                )
                await Payment.bulk_create(
                    [
                        Payment(patient_id=patient.id, **_strip(p.to_row(), "patient_id"))
                        for p in nested.payments
                    ],
                    using_db=conn,
                )
                for item in nested.medical_records:
                    record = await MedicalRecord.create(
                        using_db=conn,
                        patient_id=patient.id,
                        **_strip(item.record.to_row(), "patient_id"),
                    )
                    await Treatment.bulk_create(
                        [
                            Treatment(record_id=record.id, **_strip(t.to_row(), "record_id"))
                            for t in item.treatments
                        ],
                        using_db=conn,
                    )
            patients.append(patient)
        return patients

    async def simple_stats(self, days: int) -> list[DailyPatientStats]:
        conn = connections.get(CONNECTION)
        placeholder = "?" if conn.capabilities.dialect == "sqlite" else "$1"
        start_date = datetime.now() - timedelta(days=days)
        sql = (
            "SELECT DATE(first_visit_at) AS date, COUNT(*) AS new_patients, "
            "COUNT(DISTINCT id) AS total_visits FROM patients "
            f"WHERE first_visit_at >= {placeholder} "
            "GROUP BY DATE(first_visit_at) ORDER BY DATE(first_visit_at) DESC"
        )
        rows = await conn.execute_query_dict(sql, [start_date])
        return [
            DailyPatientStats(
                date=str(row["date"]),
                new_patients=int(row["new_patients"]),
                total_visits=int(row["total_visits"]),
            )
            for row in rows
        ]

    async def complex_stats(self, limit: int) -> list[DoctorPerformanceStats]:
        rows = (
            await MedicalRecord.filter(treatments__id__isnull=False)
            .annotate(
                treatment_count=Count("treatments__id"),
                total_revenue=Sum("treatments__price"),
                average_revenue=Avg("treatments__price"),
            )
            .group_by("doctor")
            .order_by("-total_revenue")
            .limit(limit)
            .values("doctor", "treatment_count", "total_revenue", "average_revenue")
        )
        return [
            DoctorPerformanceStats(
                doctor=row["doctor"],
                treatment_count=int(row["treatment_count"]),
                total_revenue=Decimal(str(row["total_revenue"])),
                average_revenue=Decimal(str(row["average_revenue"])),
            )
            for row in rows
        ]

    async def bulk_update(self, count: int) -> int:
        ids = await Patient.all().order_by("id").limit(count).values_list("id", flat=True)
        now = datetime.now()
        return await Patient.filter(id__in=list(ids)).update(last_visit_at=now, updated_at=now)

    async def bulk_delete(self, older_than_days: int) -> int:
        cutoff = datetime.now() - timedelta(days=older_than_days)
        return await Patient.filter(first_visit_at__lt=cutoff).delete()
