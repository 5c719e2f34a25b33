#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime
import itertools

import pytest

from cadence.api.handlers import ClinicService
from cadence.scheduling.appointments import Patient
from cadence.storage.clinic_database import ClinicDatabase
from cadence.storage.repository import DataFramePatientRepository
from cadence.storage.seed import seed_database, seed_patients

# the clinic's "now" in the service tests: the day after the demo rules start
FIXED_NOW = datetime.datetime(2025, 12, 24, tzinfo=datetime.timezone.utc)


@pytest.fixture
def patients() -> dict[str, Patient]:
    return {p.id: p for p in seed_patients()}


@pytest.fixture
def database() -> ClinicDatabase:
    return seed_database()


@pytest.fixture
def repository(database: ClinicDatabase) -> DataFramePatientRepository:
    return DataFramePatientRepository(database)


@pytest.fixture
def service(repository: DataFramePatientRepository) -> ClinicService:
    counter = itertools.count(1)
    return ClinicService(
        repository,
        id_factory=lambda kind: f"{kind}-{next(counter)}",
        clock=lambda: FIXED_NOW,
    )
