"""DDL for the clinic schema used by the raw SQL backends and the seeder."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from clinicbench.store import RawStore

# Children first, so DELETE/DROP in this order never trips a foreign key.
TABLES = ("payments", "treatments", "medical_records", "reservations", "patients")

_ENUM_CHECKS = {
    "gender": "('male', 'female', 'other')",
    "reservation_status": "('scheduled', 'completed', 'cancelled', 'no_show')",
    "payment_method": "('cash', 'card', 'insurance', 'bank_transfer')",
    "payment_status": "('pending', 'completed', 'failed', 'refunded')",
}

_TABLES_DDL = """
CREATE TABLE IF NOT EXISTS patients (
    id {pk},
    name VARCHAR(100) NOT NULL,
    gender VARCHAR(10) NOT NULL CHECK (gender IN {gender}),
    birth_date DATE NOT NULL,
    phone VARCHAR(20) NOT NULL UNIQUE,
    address VARCHAR(200),
    email VARCHAR(100),
    first_visit_at {ts} NOT NULL,
    last_visit_at {ts},
    created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS reservations (
    id {pk},
    patient_id INTEGER NOT NULL REFERENCES patients(id) ON DELETE CASCADE,
    reserved_at {ts} NOT NULL,
    department VARCHAR(50) NOT NULL,
    doctor VARCHAR(50) NOT NULL,
    status VARCHAR(20) NOT NULL DEFAULT 'scheduled' CHECK (status IN {reservation_status}),
    notes TEXT,
    created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS medical_records (
    id {pk},
    patient_id INTEGER NOT NULL REFERENCES patients(id) ON DELETE CASCADE,
    doctor VARCHAR(50) NOT NULL,
    visit_date {ts} NOT NULL,
    symptoms TEXT NOT NULL,
    diagnosis TEXT NOT NULL,
    prescription TEXT,
    notes TEXT,
    created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS treatments (
    id {pk},
    record_id INTEGER NOT NULL REFERENCES medical_records(id) ON DELETE CASCADE,
    treatment_name VARCHAR(100) NOT NULL,
    price NUMERIC(10, 2) NOT NULL,
    started_at {ts} NOT NULL,
    ended_at {ts},
    duration INTEGER,
    notes TEXT,
    created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
);

CREATE TABLE IF NOT EXISTS payments (
    id {pk},
    patient_id INTEGER NOT NULL REFERENCES patients(id) ON DELETE CASCADE,
    treatment_id INTEGER REFERENCES treatments(id) ON DELETE SET NULL,
    amount NUMERIC(10, 2) NOT NULL,
    method VARCHAR(20) NOT NULL CHECK (method IN {payment_method}),
    status VARCHAR(20) NOT NULL DEFAULT 'pending' CHECK (status IN {payment_status}),
    paid_at {ts},
    receipt_number VARCHAR(50),
    created_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at {ts} NOT NULL DEFAULT CURRENT_TIMESTAMP
);
"""

INDEXES: list[tuple[str, str, str]] = [
    ("idx_patients_phone", "patients", "phone"),
    ("idx_patients_first_visit_at", "patients", "first_visit_at"),
    ("idx_patients_last_visit_at", "patients", "last_visit_at"),
    ("idx_patients_created_at", "patients", "created_at"),
    ("idx_reservations_patient_id", "reservations", "patient_id"),
    ("idx_reservations_reserved_at", "reservations", "reserved_at"),
    ("idx_reservations_status", "reservations", "status"),
    ("idx_reservations_doctor", "reservations", "doctor"),
    ("idx_medical_records_patient_id", "medical_records", "patient_id"),
    ("idx_medical_records_visit_date", "medical_records", "visit_date"),
    ("idx_medical_records_doctor", "medical_records", "doctor"),
    ("idx_treatments_record_id", "treatments", "record_id"),
    ("idx_treatments_treatment_name", "treatments", "treatment_name"),
    ("idx_treatments_started_at", "treatments", "started_at"),
    ("idx_treatments_price", "treatments", "price"),
    ("idx_payments_patient_id", "payments", "patient_id"),
    ("idx_payments_treatment_id", "payments", "treatment_id"),
    ("idx_payments_paid_at", "payments", "paid_at"),
    ("idx_payments_status", "payments", "status"),
    ("idx_payments_method", "payments", "method"),
]

_DIALECT_TYPES = {
    "postgresql": {"pk": "SERIAL PRIMARY KEY", "ts": "TIMESTAMP"},
    "sqlite": {"pk": "INTEGER PRIMARY KEY AUTOINCREMENT", "ts": "TIMESTAMP"},
}


def schema_ddl(dialect: str) -> str:
    """Full CREATE script (tables and indexes) for ``dialect``."""
    try:
        types = _DIALECT_TYPES[dialect]
    except KeyError:
        raise ValueError(f"Unsupported dialect: {dialect}") from None

    ddl = _TABLES_DDL.format(**types, **_ENUM_CHECKS)
    index_ddl = "\n".join(
        f"CREATE INDEX IF NOT EXISTS {name} ON {table} ({column});"
        for name, table, column in INDEXES
    )
    return f"{ddl}\n{index_ddl}\n"


async def create_schema(store: RawStore) -> None:
    """Create all tables and indexes if they are missing."""
    await store.execute_script(schema_ddl(store.dialect))


async def drop_schema(store: RawStore) -> None:
    await store.execute_script("\n".join(f"DROP TABLE IF EXISTS {t};" for t in TABLES))


async def clear_tables(store: RawStore) -> None:
    """Delete every row, children first."""
    await store.execute_script("\n".join(f"DELETE FROM {t};" for t in TABLES))
