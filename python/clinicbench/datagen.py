"""Synthetic clinic data generation.

All probability branches and uniform picks go through one injectable
``random.Random`` so a seeded generator is fully reproducible; Faker only
supplies human-looking text (names, addresses, e-mails, sentences).
"""

from __future__ import annotations

import random
import string
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal

from faker import Faker

from clinicbench.types import (
    Gender,
    MedicalRecordData,
    NestedMedicalRecord,
    NestedPatientData,
    PatientData,
    PaymentData,
    PaymentMethod,
    PaymentStatus,
    ReservationData,
    ReservationStatus,
    TreatmentData,
)

DEFAULT_LOCALE = "ko_KR"

FIRST_VISIT_EPOCH = datetime(2020, 1, 1)

PHONE_SEQ_MODULUS = 10000

DERMATOLOGY_DEPARTMENTS = [
    "General Dermatology",
    "Cosmetic Dermatology",
    "Hair Transplant",
    "Laser Center",
    "Plastic Surgery",
]

DOCTORS = [
    "Kim Jin-su",
    "Park Mi-young",
    "Lee Su-jeong",
    "Choi Min-ho",
    "Jeong Young-hee",
    "Kang Tae-hyun",
    "Yoon So-young",
    "Lim Jun-hyuk",
    "Song Ji-hyun",
    "Han Min-woo",
]

SYMPTOMS = [
    "acne",
    "atopic dermatitis",
    "psoriasis",
    "eczema",
    "urticaria",
    "melasma",
    "freckles",
    "mole",
    "wart",
    "hair loss",
    "scar",
    "wrinkles",
    "hyperpigmentation",
    "enlarged pores",
    "xerosis",
]

TREATMENTS: list[tuple[str, int]] = [
    ("IPL phototherapy", 150000),
    ("Fraxel laser", 200000),
    ("Botox injection", 100000),
    ("Filler injection", 300000),
    ("Skin scaling", 80000),
    ("Acne extraction", 50000),
    ("Mole removal", 30000),
    ("Wart removal", 40000),
    ("PRP therapy", 250000),
    ("Hair transplant", 2000000),
]

RECEIPT_ALPHABET = string.ascii_uppercase + string.digits


@dataclass(frozen=True)
class PaymentScenario:
    """One row of the payment outcome table.

    ``statuses`` lists the payments created for a single reservation; a
    ``None`` entry keeps the randomly generated status.
    """

    name: str
    weight: float
    statuses: tuple[PaymentStatus | None, ...]


PAYMENT_SCENARIOS: tuple[PaymentScenario, ...] = (
    PaymentScenario("single", 0.90, (None,)),
    PaymentScenario("failed_then_completed", 0.04, (PaymentStatus.FAILED, PaymentStatus.COMPLETED)),
    PaymentScenario("completed_then_refunded", 0.03, (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED)),
    PaymentScenario("pending", 0.03, (PaymentStatus.PENDING,)),
)


class ClinicDataGenerator:
    """Produces randomized clinic payloads with collision-free phone numbers.

    Phone numbers come from two rolling counters (middle and last block)
    that both advance on every call and wrap to 0 after 9999. One instance
    yields 10,000 distinct numbers before the pair comes round again.
    Instances whose (last - mid) offsets differ never share a number, so
    give parallel or long-running generators distinct offsets.

    Example:
        >>> gen = ClinicDataGenerator(phone_mid_seq=42, seed=7)
        >>> gen.get_phone_number()
        '010-0042-0000'
    """

    def __init__(
        self,
        *,
        phone_mid_seq: int = 0,
        phone_last_seq: int = 0,
        seed: int | None = None,
        rng: random.Random | None = None,
        faker: Faker | None = None,
        locale: str = DEFAULT_LOCALE,
    ) -> None:
        self._rng = rng or random.Random(seed)
        self._faker = faker or Faker(locale)
        if seed is not None:
            self._faker.seed_instance(seed)
        self._phone_mid_seq = 0
        self._phone_last_seq = 0
        self.set_phone_number_mid_seq(phone_mid_seq)
        self.set_phone_number_last_seq(phone_last_seq)

    @property
    def rng(self) -> random.Random:
        return self._rng

    # ========== Phone Sequence ==========

    def set_phone_number_mid_seq(self, seq: int) -> None:
        self._phone_mid_seq = seq % PHONE_SEQ_MODULUS

    def set_phone_number_last_seq(self, seq: int) -> None:
        self._phone_last_seq = seq % PHONE_SEQ_MODULUS

    @property
    def phone_sequence(self) -> tuple[int, int]:
        """Current (mid, last) counter values."""
        return self._phone_mid_seq, self._phone_last_seq

    def get_phone_number(self) -> str:
        """Return the next phone number and advance both counters."""
        mid, last = self._phone_mid_seq, self._phone_last_seq
        self._phone_mid_seq = (mid + 1) % PHONE_SEQ_MODULUS
        self._phone_last_seq = (last + 1) % PHONE_SEQ_MODULUS
        return f"010-{mid:04d}-{last:04d}"

    # ========== Sampling Helpers ==========

    def _between(self, start: datetime, end: datetime) -> datetime:
        span = (end - start).total_seconds()
        return start + timedelta(seconds=self._rng.uniform(0, max(span, 0.0)))

    def _recent(self, days: int) -> datetime:
        now = datetime.now()
        return self._between(now - timedelta(days=days), now)

    def _future(self, days: int = 365) -> datetime:
        now = datetime.now()
        return self._between(now, now + timedelta(days=days))

    def _maybe_sentence(self, probability: float) -> str | None:
        return self._faker.sentence() if self._rng.random() < probability else None

    def _receipt_number(self) -> str:
        return "RCP-" + "".join(self._rng.choices(RECEIPT_ALPHABET, k=8))

    # ========== Entity Payloads ==========

    def generate_patient(self) -> PatientData:
        now = datetime.now()
        first_visit_at = self._between(FIRST_VISIT_EPOCH, now)
        return PatientData(
            name=self._faker.name(),
            gender=self._rng.choice(list(Gender)),
            birth_date=self._faker.date_of_birth(minimum_age=18, maximum_age=80),
            phone=self.get_phone_number(),
            address=self._faker.address().replace("\n", " "),
            email=self._faker.email(),
            first_visit_at=first_visit_at,
            last_visit_at=self._between(first_visit_at, now),
            created_at=first_visit_at,
            updated_at=now,
        )

    def generate_reservation(self, patient_id: int | None) -> ReservationData:
        now = datetime.now()
        return ReservationData(
            patient_id=patient_id,
            reserved_at=self._future(),
            department=self._rng.choice(DERMATOLOGY_DEPARTMENTS),
            doctor=self._rng.choice(DOCTORS),
            status=self._rng.choice(list(ReservationStatus)),
            notes=self._maybe_sentence(0.3),
            created_at=now,
            updated_at=now,
        )

    def generate_medical_record(self, patient_id: int | None) -> MedicalRecordData:
        visit_date = self._recent(30)
        symptoms = self._rng.sample(SYMPTOMS, self._rng.randint(1, 3))
        prescription = None
        if self._rng.random() < 0.5:
            prescription = " ".join(self._faker.words(3)) + " prescribed"
        return MedicalRecordData(
            patient_id=patient_id,
            doctor=self._rng.choice(DOCTORS),
            visit_date=visit_date,
            symptoms=", ".join(symptoms),
            diagnosis=f"{symptoms[0]} diagnosis",
            prescription=prescription,
            notes=self._maybe_sentence(0.4),
            created_at=visit_date,
            updated_at=datetime.now(),
        )

    def generate_treatment(self, record_id: int | None) -> TreatmentData:
        name, base_price = self._rng.choice(TREATMENTS)
        started_at = self._recent(7)
        duration = self._rng.randint(30, 180)
        return TreatmentData(
            record_id=record_id,
            treatment_name=name,
            price=Decimal(base_price + self._rng.randint(-20000, 50000)),
            started_at=started_at,
            ended_at=started_at + timedelta(minutes=duration),
            duration=duration,
            notes=self._maybe_sentence(0.3),
            created_at=started_at,
            updated_at=datetime.now(),
        )

    def generate_payment(
        self,
        patient_id: int | None,
        treatment_id: int | None = None,
        amount: Decimal | int | None = None,
    ) -> PaymentData:
        if amount is None:
            amount = self._rng.randint(50000, 500000)
        paid_at = self._recent(3)
        return PaymentData(
            patient_id=patient_id,
            treatment_id=treatment_id,
            amount=Decimal(amount),
            method=self._rng.choice(list(PaymentMethod)),
            status=self._rng.choice(list(PaymentStatus)),
            # 10% of payments are still unpaid
            paid_at=None if self._rng.random() < 0.1 else paid_at,
            receipt_number=self._receipt_number(),
            created_at=paid_at,
            updated_at=datetime.now(),
        )

    # ========== Composites ==========

    def choose_payment_scenario(self) -> PaymentScenario:
        weights = [scenario.weight for scenario in PAYMENT_SCENARIOS]
        return self._rng.choices(PAYMENT_SCENARIOS, weights=weights)[0]

    def generate_payment_scenario(self, patient_id: int | None) -> list[PaymentData]:
        """Payments for one reservation, following the weighted scenario table."""
        scenario = self.choose_payment_scenario()
        payments = []
        for status in scenario.statuses:
            payment = self.generate_payment(patient_id)
            if status is not None:
                payment = replace(payment, status=status)
            payments.append(payment)
        return payments

    def generate_nested_patient(self) -> NestedPatientData:
        """Patient with 2 reservations, 2 records of 2 treatments each and 2 payments."""
        patient = self.generate_patient()
        reservations = [self.generate_reservation(None) for _ in range(2)]
        records = [
            NestedMedicalRecord(
                record=self.generate_medical_record(None),
                treatments=[self.generate_treatment(None) for _ in range(2)],
            )
            for _ in range(2)
        ]
        payments = [self.generate_payment(None, None) for _ in range(2)]
        return NestedPatientData(
            patient=patient,
            reservations=reservations,
            medical_records=records,
            payments=payments,
        )
