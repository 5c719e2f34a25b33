#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Demo patients the clinic front end ships with. Times are UTC; the clinic
itself runs on UTC+7, so 03:00Z is 10:00 local."""

import datetime

from cadence.scheduling.appointments import Appointment, Patient
from cadence.scheduling.recurrence import RecurrenceRule
from cadence.scheduling.time_utils import Frequency, parse_instant
from cadence.storage.clinic_database import ClinicDatabase
from cadence.storage.repository import DataFramePatientRepository

SEED_CREATED_AT = datetime.datetime(2025, 12, 1, tzinfo=datetime.timezone.utc)


def seed_patients() -> list[Patient]:
    return [
        Patient(
            id="1",
            name="Jessica Novia",
            email="jessica@example.com",
            phone="555-1234",
            address="123 Main St, Springfield",
            medical_history="No known allergies. Previous cavity fillings.",
            created_at=SEED_CREATED_AT,
            updated_at=SEED_CREATED_AT,
            recurrence_rules=[
                RecurrenceRule(
                    id="rule1",
                    patient_id="1",
                    frequency=Frequency.WEEKLY,
                    interval=1,
                    start_date_time=parse_instant("2025-12-23T03:00:00Z"),
                    until=parse_instant("2026-03-23T03:00:00Z"),
                    by_day=[{"ordinal": None, "day": "TU"}],
                    note="Weekly aligner check",
                )
            ],
        ),
        Patient(
            id="2",
            name="Melrose Burhan",
            created_at=SEED_CREATED_AT,
            updated_at=SEED_CREATED_AT,
            appointments=[
                Appointment(
                    id="app1",
                    patient_id="2",
                    start_date_time=parse_instant("2025-12-26T07:00:00Z"),
                    end_date_time=parse_instant("2025-12-26T08:00:00Z"),
                    note="Initial 3D scan",
                )
            ],
            recurrence_rules=[
                RecurrenceRule(
                    id="rule2",
                    patient_id="2",
                    frequency=Frequency.DAILY,
                    interval=3,
                    start_date_time=parse_instant("2025-12-23T02:00:00Z"),
                    count=10,
                    note="Medication reminder",
                )
            ],
        ),
        Patient(
            id="3",
            name="Novira Veronica",
            created_at=SEED_CREATED_AT,
            updated_at=SEED_CREATED_AT,
            recurrence_rules=[
                RecurrenceRule(
                    id="rule3",
                    patient_id="3",
                    frequency=Frequency.MONTHLY,
                    interval=1,
                    start_date_time=parse_instant("2025-12-01T07:00:00Z"),
                    by_month_day=[1, 15],
                    count=4,
                    note="Scaling schedule",
                )
            ],
        ),
        Patient(
            id="4",
            name="Vania Liman",
            created_at=SEED_CREATED_AT,
            updated_at=SEED_CREATED_AT,
            recurrence_rules=[
                RecurrenceRule(
                    id="rule4",
                    patient_id="4",
                    frequency=Frequency.YEARLY,
                    interval=1,
                    start_date_time=parse_instant("2025-12-15T03:00:00Z"),
                    by_month=[6, 12],
                    count=3,
                    note="Biannual dental exam",
                )
            ],
        ),
    ]


def seed_database() -> ClinicDatabase:
    """A fresh database holding the demo patients."""
    database = ClinicDatabase()
    repository = DataFramePatientRepository(database)
    for patient in seed_patients():
        repository.save(patient)
    return database
