"""Domain payloads and benchmark result types."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date, datetime
from decimal import Decimal
from enum import StrEnum
from typing import Any


class Gender(StrEnum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


class ReservationStatus(StrEnum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class PaymentMethod(StrEnum):
    CASH = "cash"
    CARD = "card"
    INSURANCE = "insurance"
    BANK_TRANSFER = "bank_transfer"


class PaymentStatus(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class _Payload:
    """Mixin turning a payload dataclass into a column -> value mapping."""

    def to_row(self) -> dict[str, Any]:
        """Return column values with enums flattened to their string value."""
        row: dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if isinstance(value, StrEnum):
                value = value.value
            row[f.name] = value
        return row


# ========== Domain Payloads ==========


@dataclass
class PatientData(_Payload):
    name: str
    gender: Gender
    birth_date: date
    phone: str
    first_visit_at: datetime
    address: str | None = None
    email: str | None = None
    last_visit_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class ReservationData(_Payload):
    patient_id: int | None
    reserved_at: datetime
    department: str
    doctor: str
    status: ReservationStatus
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class MedicalRecordData(_Payload):
    patient_id: int | None
    doctor: str
    visit_date: datetime
    symptoms: str
    diagnosis: str
    prescription: str | None = None
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class TreatmentData(_Payload):
    record_id: int | None
    treatment_name: str
    price: Decimal
    started_at: datetime
    ended_at: datetime | None = None
    duration: int | None = None
    """Treatment length in minutes."""
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class PaymentData(_Payload):
    patient_id: int | None
    amount: Decimal
    method: PaymentMethod
    status: PaymentStatus
    treatment_id: int | None = None
    paid_at: datetime | None = None
    receipt_number: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class NestedMedicalRecord:
    """A medical record together with the treatments performed in it."""

    record: MedicalRecordData
    treatments: list[TreatmentData] = field(default_factory=list)


@dataclass
class NestedPatientData:
    """A patient and all of its dependents, foreign keys left unset.

    The caller assigns real IDs as each parent row is inserted.
    """

    patient: PatientData
    reservations: list[ReservationData] = field(default_factory=list)
    medical_records: list[NestedMedicalRecord] = field(default_factory=list)
    payments: list[PaymentData] = field(default_factory=list)


# ========== Statistics Rows ==========


@dataclass
class DailyPatientStats:
    date: str
    new_patients: int
    total_visits: int


@dataclass
class DoctorPerformanceStats:
    doctor: str
    treatment_count: int
    total_revenue: Decimal
    average_revenue: Decimal


# ========== Benchmark Results ==========


@dataclass(frozen=True)
class MemoryUsage:
    """Memory figures for one operation, in bytes."""

    used: int
    total: int


@dataclass(frozen=True)
class BenchmarkResult:
    """Single benchmark result."""

    operation: str
    orm: str
    total_records: int
    duration: float
    """Wall-clock duration in milliseconds."""
    average_time: float
    """Milliseconds per record."""
    timestamp: datetime
    memory_usage: MemoryUsage | None = None

    @classmethod
    def create(
        cls,
        operation: str,
        orm: str,
        total_records: int,
        duration: float,
        memory_usage: MemoryUsage | None = None,
        timestamp: datetime | None = None,
    ) -> BenchmarkResult:
        """Build a result, deriving the per-record average from the duration."""
        average = duration / total_records if total_records > 0 else duration
        return cls(
            operation=operation,
            orm=orm,
            total_records=total_records,
            duration=duration,
            average_time=average,
            timestamp=timestamp or datetime.now(),
            memory_usage=memory_usage,
        )

    @property
    def memory_used_mb(self) -> float | None:
        if self.memory_usage is None:
            return None
        return self.memory_usage.used / 1024 / 1024

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the field names used in exported reports."""
        memory = None
        if self.memory_usage is not None:
            memory = {"used": self.memory_usage.used, "total": self.memory_usage.total}
        return {
            "operation": self.operation,
            "orm": self.orm,
            "totalRecords": self.total_records,
            "duration": self.duration,
            "averageTime": self.average_time,
            "memoryUsage": memory,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BenchmarkResult:
        memory = data.get("memoryUsage")
        return cls(
            operation=data["operation"],
            orm=data["orm"],
            total_records=int(data["totalRecords"]),
            duration=float(data["duration"]),
            average_time=float(data["averageTime"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
            memory_usage=MemoryUsage(**memory) if memory else None,
        )
