"""Bulk seeding of the clinic schema through a RawStore."""

from __future__ import annotations

import asyncio
import random
from collections.abc import Callable
from typing import Any

from clinicbench.datagen import PHONE_SEQ_MODULUS, ClinicDataGenerator
from clinicbench.measure import measure_performance
from clinicbench.schema import TABLES, clear_tables, create_schema
from clinicbench.store import RawStore


def reservation_count(rng: random.Random) -> int:
    """Half the patients visit once; the rest book 2-15 reservations."""
    if rng.random() < 0.5:
        return 1
    return rng.randint(2, 15)


def medical_record_count(rng: random.Random) -> int:
    return rng.randint(3, 8)


def _patient_row(generator: ClinicDataGenerator, index: int) -> dict[str, Any]:
    # Both phone counters step together, so they repeat every
    # PHONE_SEQ_MODULUS calls. Shift the last block once per cycle to move
    # onto an unused (mid, last) diagonal.
    if index and index % PHONE_SEQ_MODULUS == 0:
        _, last = generator.phone_sequence
        generator.set_phone_number_last_seq(last + 1)
    return generator.generate_patient().to_row()


async def seed_batch(
    store: RawStore,
    generator: ClinicDataGenerator,
    start_index: int,
    size: int,
) -> int:
    """Insert ``size`` patients with their dependents in one transaction."""
    rng = generator.rng
    async with store.transaction() as tx:
        patient_rows = [_patient_row(generator, start_index + i) for i in range(size)]
        patient_ids = await tx.insert_many("patients", patient_rows)

        reservations: list[dict[str, Any]] = []
        records: list[dict[str, Any]] = []
        payments: list[dict[str, Any]] = []

        for patient_id in patient_ids:
            visits = reservation_count(rng)
            reservations += [
                generator.generate_reservation(patient_id).to_row() for _ in range(visits)
            ]
            records += [
                generator.generate_medical_record(patient_id).to_row()
                for _ in range(medical_record_count(rng))
            ]
            for _ in range(visits):
                payments += [p.to_row() for p in generator.generate_payment_scenario(patient_id)]

        await tx.insert_many("reservations", reservations)
        record_ids = await tx.insert_many("medical_records", records)
        # One treatment per record keeps revenue consistent with visits
        await tx.insert_many(
            "treatments", [generator.generate_treatment(rid).to_row() for rid in record_ids]
        )
        await tx.insert_many("payments", payments)

    return len(patient_ids)


async def table_counts(store: RawStore) -> dict[str, int]:
    """Row count per table, queried concurrently."""
    rows = await asyncio.gather(
        *(store.fetch(f"SELECT COUNT(*) AS count FROM {table}") for table in TABLES)
    )
    return {table: int(r[0]["count"]) for table, r in zip(TABLES, rows)}


async def seed_store(
    store: RawStore,
    generator: ClinicDataGenerator | None = None,
    *,
    total_records: int = 100000,
    batch_size: int = 1000,
    log: Callable[[str], None] | None = None,
) -> dict[str, int]:
    """Replace the store's data with ``total_records`` synthetic patients.

    The store must already be connected. Returns final per-table counts.
    """
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")

    generator = generator or ClinicDataGenerator()
    emit = log or (lambda msg: None)

    await create_schema(store)
    emit("[yellow]Cleaning existing data...[/yellow]")
    await clear_tables(store)

    inserted = 0
    batch_number = 0
    while inserted < total_records:
        size = min(batch_size, total_records - inserted)
        batch_number += 1
        start = inserted

        await measure_performance(
            lambda: seed_batch(store, generator, start, size),
            f"Batch insert ({size} records)",
            log=log,
        )

        inserted += size
        progress = inserted / total_records * 100
        emit(f"[green]Batch {batch_number}: {inserted:,} patients ({progress:.1f}%)[/green]")

    return await table_counts(store)
