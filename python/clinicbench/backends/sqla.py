"""SQLAlchemy 2.0 async ORM backend."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    delete,
    distinct,
    event,
    func,
    select,
    text,
    update,
)
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from clinicbench.datagen import ClinicDataGenerator
from clinicbench.types import DailyPatientStats, DoctorPerformanceStats


class Base(DeclarativeBase):
    pass


class Patient(Base):
    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(100))
    gender: Mapped[str] = mapped_column(String(10))
    birth_date: Mapped[date] = mapped_column(Date)
    phone: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    address: Mapped[str | None] = mapped_column(String(200))
    email: Mapped[str | None] = mapped_column(String(100))
    first_visit_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    last_visit_at: Mapped[datetime | None] = mapped_column(DateTime, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now(), index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    reservations: Mapped[list[Reservation]] = relationship(
        back_populates="patient", cascade="all, delete-orphan", passive_deletes=True
    )
    medical_records: Mapped[list[MedicalRecord]] = relationship(
        back_populates="patient", cascade="all, delete-orphan", passive_deletes=True
    )
    payments: Mapped[list[Payment]] = relationship(
        back_populates="patient", cascade="all, delete-orphan", passive_deletes=True
    )


class Reservation(Base):
    __tablename__ = "reservations"

    id: Mapped[int] = mapped_column(primary_key=True)
    patient_id: Mapped[int] = mapped_column(
        ForeignKey("patients.id", ondelete="CASCADE"), index=True
    )
    reserved_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    department: Mapped[str] = mapped_column(String(50))
    doctor: Mapped[str] = mapped_column(String(50), index=True)
    status: Mapped[str] = mapped_column(String(20), default="scheduled", index=True)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    patient: Mapped[Patient] = relationship(back_populates="reservations")


class MedicalRecord(Base):
    __tablename__ = "medical_records"

    id: Mapped[int] = mapped_column(primary_key=True)
    patient_id: Mapped[int] = mapped_column(
        ForeignKey("patients.id", ondelete="CASCADE"), index=True
    )
    doctor: Mapped[str] = mapped_column(String(50), index=True)
    visit_date: Mapped[datetime] = mapped_column(DateTime, index=True)
    symptoms: Mapped[str] = mapped_column(Text)
    diagnosis: Mapped[str] = mapped_column(Text)
    prescription: Mapped[str | None] = mapped_column(Text)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    patient: Mapped[Patient] = relationship(back_populates="medical_records")
    treatments: Mapped[list[Treatment]] = relationship(
        back_populates="medical_record", cascade="all, delete-orphan", passive_deletes=True
    )


class Treatment(Base):
    __tablename__ = "treatments"

    id: Mapped[int] = mapped_column(primary_key=True)
    record_id: Mapped[int] = mapped_column(
        ForeignKey("medical_records.id", ondelete="CASCADE"), index=True
    )
    treatment_name: Mapped[str] = mapped_column(String(100), index=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime)
    duration: Mapped[int | None]
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    medical_record: Mapped[MedicalRecord] = relationship(back_populates="treatments")
    payments: Mapped[list[Payment]] = relationship(back_populates="treatment", passive_deletes=True)


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True)
    patient_id: Mapped[int] = mapped_column(
        ForeignKey("patients.id", ondelete="CASCADE"), index=True
    )
    treatment_id: Mapped[int | None] = mapped_column(
        ForeignKey("treatments.id", ondelete="SET NULL"), index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    method: Mapped[str] = mapped_column(String(20), index=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime, index=True)
    receipt_number: Mapped[str | None] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    patient: Mapped[Patient] = relationship(back_populates="payments")
    treatment: Mapped[Treatment | None] = relationship(back_populates="payments")


def _without(row: dict[str, Any], *keys: str) -> dict[str, Any]:
    return {k: v for k, v in row.items() if k not in keys}


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class SQLAlchemyBackend:
    """Benchmark backend using SQLAlchemy's async ORM session.

    Args:
        url: Async SQLAlchemy URL (``postgresql+asyncpg://`` or
            ``sqlite+aiosqlite://``).
        schema: PostgreSQL schema to create and put on the search path.
        pool_size: Connection pool size (PostgreSQL only).
    """

    def __init__(
        self,
        url: str,
        *,
        name: str = "SQLAlchemy",
        schema: str | None = None,
        pool_size: int = 20,
    ) -> None:
        self.name = name
        self.url = url
        self.schema = schema
        self.pool_size = pool_size
        self.engine: AsyncEngine | None = None
        self.session_factory: async_sessionmaker | None = None

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    async def initialize(self) -> None:
        if self.engine is not None:
            return

        if self.is_sqlite:
            engine = create_async_engine(self.url)
            event.listen(engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
        else:
            connect_args = {}
            if self.schema:
                connect_args["server_settings"] = {"search_path": self.schema}
            engine = create_async_engine(
                self.url, pool_size=self.pool_size, connect_args=connect_args
            )

        async with engine.begin() as conn:
            if self.schema and not self.is_sqlite:
                await conn.execute(text(f'CREATE SCHEMA IF NOT EXISTS "{self.schema}"'))
            await conn.run_sync(Base.metadata.create_all)

        self.engine = engine
        self.session_factory = async_sessionmaker(engine, expire_on_commit=False)

    async def cleanup(self) -> None:
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self.session_factory = None

    def _sessions(self) -> async_sessionmaker:
        if self.session_factory is None:
            raise RuntimeError("SQLAlchemyBackend is not initialized")
        return self.session_factory

    async def simple_read(self, limit: int, offset: int) -> list[Patient]:
        async with self._sessions()() as session:
            result = await session.execute(
                select(Patient).order_by(Patient.id.asc()).limit(limit).offset(offset)
            )
            return list(result.scalars().all())

    async def simple_write(self, count: int, data: ClinicDataGenerator) -> list[Patient]:
        patients = [Patient(**data.generate_patient().to_row()) for _ in range(count)]
        async with self._sessions()() as session, session.begin():
            session.add_all(patients)
        return patients

    async def complex_transaction(self, count: int, data: ClinicDataGenerator) -> list[Payment]:
        payments = []
        for _ in range(count):
            async with self._sessions()() as session, session.begin():
                patient = Patient(**data.generate_patient().to_row())
                session.add(patient)
                await session.flush()

                session.add(Reservation(**data.generate_reservation(patient.id).to_row()))
                record = MedicalRecord(**data.generate_medical_record(patient.id).to_row())
                session.add(record)
                await session.flush()

                treatment_data = data.generate_treatment(record.id)
                treatment = Treatment(**treatment_data.to_row())
                session.add(treatment)
                await session.flush()

                payment = Payment(
                    **data.generate_payment(patient.id, treatment.id, treatment_data.price).to_row()
                )
                session.add(payment)
            payments.append(payment)
        return payments

    async def nested_insert(self, count: int, data: ClinicDataGenerator) -> list[Patient]:
        patients = []
        for _ in range(count):
            nested = data.generate_nested_patient()
            patient = Patient(
                **nested.patient.to_row(),
                reservations=[
                    Reservation(**_without(r.to_row(), "patient_id")) for r in nested.reservations
                ],
                medical_records=[
                    MedicalRecord(
                        **_without(item.record.to_row(), "patient_id"),
                        treatments=[
                            Treatment(**_without(t.to_row(), "record_id")) for t in item.treatments
                        ],
                    )
                    for item in nested.medical_records
                ],
                payments=[
                    Payment(**_without(p.to_row(), "patient_id", "treatment_id"))
                    for p in nested.payments
                ],
            )
            async with self._sessions()() as session, session.begin():
                session.add(patient)
            patients.append(patient)
        return patients

    async def simple_stats(self, days: int) -> list[DailyPatientStats]:
        start_date = datetime.now() - timedelta(days=days)
        day = func.date(Patient.first_visit_at)
        stmt = (
            select(
                day.label("date"),
                func.count().label("new_patients"),
                func.count(distinct(Patient.id)).label("total_visits"),
            )
            .where(Patient.first_visit_at >= start_date)
            .group_by(day)
            .order_by(day.desc())
        )
        async with self._sessions()() as session:
            rows = (await session.execute(stmt)).all()
        return [
            DailyPatientStats(
                date=str(row.date), new_patients=row.new_patients, total_visits=row.total_visits
            )
            for row in rows
        ]

    async def complex_stats(self, limit: int) -> list[DoctorPerformanceStats]:
        total_revenue = func.sum(Treatment.price)
        stmt = (
            select(
                MedicalRecord.doctor,
                func.count(Treatment.id).label("treatment_count"),
                total_revenue.label("total_revenue"),
                func.avg(Treatment.price).label("average_revenue"),
            )
            .join(Treatment, Treatment.record_id == MedicalRecord.id)
            .group_by(MedicalRecord.doctor)
            .order_by(total_revenue.desc())
            .limit(limit)
        )
        async with self._sessions()() as session:
            rows = (await session.execute(stmt)).all()
        return [
            DoctorPerformanceStats(
                doctor=row.doctor,
                treatment_count=row.treatment_count,
                total_revenue=Decimal(str(row.total_revenue)),
                average_revenue=Decimal(str(row.average_revenue)),
            )
            for row in rows
        ]

    async def bulk_update(self, count: int) -> list[int]:
        now = datetime.now()
        first_ids = select(Patient.id).order_by(Patient.id.asc()).limit(count)
        stmt = (
            update(Patient)
            .where(Patient.id.in_(first_ids))
            .values(last_visit_at=now, updated_at=now)
            .returning(Patient.id)
        )
        async with self._sessions()() as session, session.begin():
            result = await session.execute(stmt, execution_options={"synchronize_session": False})
            return list(result.scalars().all())

    async def bulk_delete(self, older_than_days: int) -> list[int]:
        cutoff = datetime.now() - timedelta(days=older_than_days)
        stmt = delete(Patient).where(Patient.first_visit_at < cutoff).returning(Patient.id)
        async with self._sessions()() as session, session.begin():
            result = await session.execute(stmt, execution_options={"synchronize_session": False})
            return list(result.scalars().all())
