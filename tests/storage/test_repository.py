#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime

import pytest

from cadence.scheduling.appointments import Appointment, Patient
from cadence.scheduling.exceptions import NotFoundError, ValidationError
from cadence.scheduling.recurrence import RecurrenceRule
from cadence.storage.clinic_database import ClinicDatabase
from cadence.storage.repository import DataFramePatientRepository, PatientRepository

UTC = datetime.timezone.utc


def test_repository_satisfies_the_storage_port(repository):
    assert isinstance(repository, PatientRepository)


def test_load_round_trips_seed_patients(repository, patients):
    for patient_id, patient in patients.items():
        assert repository.load(patient_id).to_payload() == patient.to_payload()


def test_load_unknown_patient(repository):
    with pytest.raises(NotFoundError):
        repository.load("404")


def test_snapshot_restores_patients(database: ClinicDatabase, patients, tmp_path):
    database.save(tmp_path / "clinic.json")
    restored = DataFramePatientRepository(ClinicDatabase.load(tmp_path / "clinic.json"))
    assert [p.to_payload() for p in restored.all_patients()] == [
        p.to_payload() for p in patients.values()
    ]


def test_save_replaces_stored_patient(repository, patients):
    jessica = patients["1"]
    start = datetime.datetime(2026, 1, 2, 4, tzinfo=UTC)
    updated = Patient(
        **{
            **jessica.model_dump(),
            "phone": "555-0000",
            "recurrence_rules": [],
            "appointments": [
                Appointment(
                    id="visit",
                    patient_id="1",
                    start_date_time=start,
                    end_date_time=start + datetime.timedelta(hours=1),
                )
            ],
        }
    )
    repository.save(updated)
    loaded = repository.load("1")
    assert loaded.phone == "555-0000"
    assert loaded.recurrence_rules == []
    assert [a.id for a in loaded.appointments] == ["visit"]
    with pytest.raises(NotFoundError):
        repository.find_rule_owner("rule1")
    assert len(repository.all_patients()) == 4


def test_save_rejects_records_of_another_patient(repository, patients):
    stray_rule = patients["2"].recurrence_rules[0]
    with pytest.raises(ValidationError):
        repository.save(
            patients["1"].model_copy(update={"recurrence_rules": [stray_rule]})
        )


def test_save_rejects_ids_owned_by_another_patient(repository, patients):
    clash = RecurrenceRule(**{**patients["2"].recurrence_rules[0].model_dump(), "patient_id": "1"})
    with pytest.raises(ValidationError):
        repository.save(patients["1"].model_copy(update={"recurrence_rules": [clash]}))


def test_delete_patient(repository):
    repository.delete("2")
    with pytest.raises(NotFoundError):
        repository.load("2")
    with pytest.raises(NotFoundError):
        repository.find_rule_owner("rule2")
    with pytest.raises(NotFoundError):
        repository.find_appointment_owner("app1")
    with pytest.raises(NotFoundError):
        repository.delete("2")


def test_find_owners(repository):
    assert repository.find_rule_owner("rule3") == "3"
    assert repository.find_appointment_owner("app1") == "2"
    with pytest.raises(NotFoundError):
        repository.find_rule_owner("rule404")


@pytest.mark.parametrize(
    "search, limit, offset, expected_ids, expected_total",
    [
        (None, 10, 0, ["1", "2", "3", "4"], 4),
        ("", 10, 0, ["1", "2", "3", "4"], 4),
        (None, 2, 1, ["2", "3"], 4),
        ("nov", 10, 0, ["1", "3"], 2),
        ("nov", 1, 1, ["3"], 2),
        ("555-1234", 10, 0, ["1"], 1),
        ("EXAMPLE.COM", 10, 0, ["1"], 1),
        ("zzz", 10, 0, [], 0),
        (None, 10, 10, [], 4),
    ],
)
def test_find_patients(repository, search, limit, offset, expected_ids, expected_total):
    page = repository.find_patients(search=search, limit=limit, offset=offset)
    assert [p.id for p in page.patients] == expected_ids
    assert page.total == expected_total


def test_find_patients_attaches_rules_and_appointments(repository):
    (melrose,) = repository.find_patients(search="melrose").patients
    assert [r.id for r in melrose.recurrence_rules] == ["rule2"]
    assert [a.id for a in melrose.appointments] == ["app1"]


@pytest.mark.parametrize("limit, offset", [(-1, 0), (10, -1)])
def test_find_patients_rejects_negative_pages(repository, limit, offset):
    with pytest.raises(ValidationError):
        repository.find_patients(limit=limit, offset=offset)
