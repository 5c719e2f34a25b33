#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""The storage port used by the transport handlers to resolve and persist
patients. The expansion engine never touches storage: callers load a
`Patient`, hand it to the engine and save whatever they changed."""

import logging
from collections import defaultdict
from typing import Any, NamedTuple, Protocol, runtime_checkable

import polars as pl

from cadence.aliases import AppointmentId, PatientId, RuleId
from cadence.constants import DEFAULT_PAGE_SIZE
from cadence.scheduling.appointments import Appointment, Patient
from cadence.scheduling.exceptions import NotFoundError, ValidationError
from cadence.scheduling.recurrence import RecurrenceRule
from cadence.storage.clinic_database import ClinicDatabase
from cadence.storage.database_schemas import DatabaseNamespace
from cadence.storage.utils import (
    exact_match_filter_dataframe,
    filter_dataframe,
    is_sequence_member_filter_dataframe,
    substring_match_predicate,
)

logger = logging.getLogger(__name__)

SEARCHABLE_PATIENT_FIELDS = ("name", "phone", "email")


class PatientPage(NamedTuple):
    """One page of a patient search, with the number of patients matching
    the search overall."""

    patients: list[Patient]
    total: int


@runtime_checkable
class PatientRepository(Protocol):
    def load(self, patient_id: PatientId) -> Patient: ...

    def save(self, patient: Patient) -> None: ...

    def delete(self, patient_id: PatientId) -> None: ...

    def all_patients(self) -> list[Patient]: ...

    def find_patients(
        self, search: str | None = None, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> PatientPage: ...

    def find_rule_owner(self, rule_id: RuleId) -> PatientId: ...

    def find_appointment_owner(self, appointment_id: AppointmentId) -> PatientId: ...


def _patient_to_row(patient: Patient) -> dict[str, Any]:
    return {
        "patient_id": patient.id,
        "name": patient.name,
        "phone": patient.phone,
        "email": patient.email,
        "address": patient.address,
        "medical_history": patient.medical_history,
        "outstanding_balance": patient.outstanding_balance,
        "insurance_info": patient.insurance_info,
        "last_visit": patient.last_visit,
        "created_at": patient.created_at,
        "updated_at": patient.updated_at,
    }


def _rule_to_row(rule: RecurrenceRule) -> dict[str, Any]:
    by_day = None
    if rule.by_day is not None:
        by_day = [{"ordinal": d.ordinal, "day": d.day.value} for d in rule.by_day]
    return {
        "rule_id": rule.id,
        "patient_id": rule.patient_id,
        "frequency": rule.frequency.value,
        "interval": rule.interval,
        "start_date_time": rule.start_date_time,
        "until": rule.until,
        "count": rule.count,
        "by_day": by_day,
        "by_month_day": rule.by_month_day,
        "by_month": rule.by_month,
        "week_start": rule.week_start.value,
        "note": rule.note,
    }


def _appointment_to_row(appointment: Appointment) -> dict[str, Any]:
    return {
        "appointment_id": appointment.id,
        "patient_id": appointment.patient_id,
        "start_date_time": appointment.start_date_time,
        "end_date_time": appointment.end_date_time,
        "note": appointment.note,
        "recurrence_rule_id": appointment.recurrence_rule_id,
        "recurrence_id": appointment.recurrence_id,
        "is_exception": appointment.is_exception,
    }


def _rule_from_row(row: dict[str, Any]) -> RecurrenceRule:
    row = dict(row)
    row["id"] = row.pop("rule_id")
    return RecurrenceRule(**row)


def _appointment_from_row(row: dict[str, Any]) -> Appointment:
    row = dict(row)
    row["id"] = row.pop("appointment_id")
    return Appointment(**row)


class DataFramePatientRepository:
    """`PatientRepository` backed by the polars tables of a `ClinicDatabase`."""

    def __init__(self, database: ClinicDatabase):
        self.database = database

    def _table(self, namespace: DatabaseNamespace) -> pl.DataFrame:
        return self.database.get_database(namespace)

    def _assemble(self, patient_rows: list[dict[str, Any]]) -> list[Patient]:
        """Attach rules and stored appointments to patient records."""
        patient_ids = [r["patient_id"] for r in patient_rows]
        rules, appointments = defaultdict(list), defaultdict(list)
        for row in filter_dataframe(
            self._table(DatabaseNamespace.RECURRENCE_RULES),
            [("patient_id", patient_ids, is_sequence_member_filter_dataframe)],
        ).to_dicts():
            rules[row["patient_id"]].append(_rule_from_row(row))
        for row in filter_dataframe(
            self._table(DatabaseNamespace.APPOINTMENTS),
            [("patient_id", patient_ids, is_sequence_member_filter_dataframe)],
        ).to_dicts():
            appointments[row["patient_id"]].append(_appointment_from_row(row))
        patients = []
        for row in patient_rows:
            row = dict(row)
            patient_id = row.pop("patient_id")
            patients.append(
                Patient(
                    id=patient_id,
                    recurrence_rules=rules[patient_id],
                    appointments=sorted(appointments[patient_id], key=lambda a: a.sort_key),
                    **row,
                )
            )
        return patients

    def _exists(self, namespace: DatabaseNamespace, predicate: pl.Expr) -> bool:
        return not self._table(namespace).filter(predicate).is_empty()

    def _check_ownership(
        self,
        namespace: DatabaseNamespace,
        id_column: str,
        ids: list[str],
        patient_id: PatientId,
    ) -> None:
        """Ids are unique across patients: refuse to save a record whose id is
        already owned by someone else."""
        clashes = filter_dataframe(
            self._table(namespace),
            [(id_column, ids, is_sequence_member_filter_dataframe)],
        ).filter(pl.col("patient_id") != patient_id)
        if not clashes.is_empty():
            raise ValidationError(
                f"{id_column} values {clashes[id_column].to_list()} already belong "
                f"to another patient"
            )

    def load(self, patient_id: PatientId) -> Patient:
        """Load a patient with their rules and stored appointments.

        Raises
        ------
        NotFoundError if no patient has id `patient_id`.
        """
        rows = filter_dataframe(
            self._table(DatabaseNamespace.PATIENTS),
            [("patient_id", patient_id, exact_match_filter_dataframe)],
        ).to_dicts()
        if not rows:
            raise NotFoundError(f"Patient {patient_id} not found")
        return self._assemble(rows)[0]

    def save(self, patient: Patient) -> None:
        """Insert `patient` or replace the stored version, together with their
        rules and stored appointments."""
        for record in (*patient.recurrence_rules, *patient.appointments):
            if record.patient_id != patient.id:
                raise ValidationError(
                    f"{type(record).__name__} {record.id} belongs to patient "
                    f"{record.patient_id}, not {patient.id}"
                )
        self._check_ownership(
            DatabaseNamespace.RECURRENCE_RULES,
            "rule_id",
            [r.id for r in patient.recurrence_rules],
            patient.id,
        )
        self._check_ownership(
            DatabaseNamespace.APPOINTMENTS,
            "appointment_id",
            [a.id for a in patient.appointments],
            patient.id,
        )
        predicate = pl.col("patient_id") == patient.id
        for namespace in DatabaseNamespace:
            if self._exists(namespace, predicate):
                self.database.remove_from_database(namespace, predicate)
        self.database.add_to_database(
            DatabaseNamespace.PATIENTS, [_patient_to_row(patient)]
        )
        self.database.add_to_database(
            DatabaseNamespace.RECURRENCE_RULES,
            [_rule_to_row(r) for r in patient.recurrence_rules],
        )
        self.database.add_to_database(
            DatabaseNamespace.APPOINTMENTS,
            [_appointment_to_row(a) for a in patient.appointments],
        )
        logger.debug(f"Saved patient {patient.id}")

    def delete(self, patient_id: PatientId) -> None:
        """Remove a patient with their rules and stored appointments.

        Raises
        ------
        NotFoundError if no patient has id `patient_id`.
        """
        predicate = pl.col("patient_id") == patient_id
        if not self._exists(DatabaseNamespace.PATIENTS, predicate):
            raise NotFoundError(f"Patient {patient_id} not found")
        for namespace in DatabaseNamespace:
            if self._exists(namespace, predicate):
                self.database.remove_from_database(namespace, predicate)

    def all_patients(self) -> list[Patient]:
        return self._assemble(self._table(DatabaseNamespace.PATIENTS).to_dicts())

    def find_patients(
        self,
        search: str | None = None,
        limit: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
    ) -> PatientPage:
        """Search patients by name, phone or email (case-insensitive substring)
        and return the page starting at `offset`."""
        if limit < 0 or offset < 0:
            raise ValidationError(f"Invalid page: {limit=}, {offset=}")
        patients = self._table(DatabaseNamespace.PATIENTS)
        if search:
            patients = patients.filter(
                substring_match_predicate(SEARCHABLE_PATIENT_FIELDS, search)
            )
        page = patients.slice(offset, limit)
        return PatientPage(patients=self._assemble(page.to_dicts()), total=patients.height)

    def _find_owner(
        self, namespace: DatabaseNamespace, id_column: str, id_: str
    ) -> PatientId:
        owners = filter_dataframe(
            self._table(namespace),
            [(id_column, id_, exact_match_filter_dataframe)],
        )["patient_id"].to_list()
        if not owners:
            raise NotFoundError(f"No record with {id_column} {id_} found")
        return owners[0]

    def find_rule_owner(self, rule_id: RuleId) -> PatientId:
        """The id of the patient owning a recurrence rule.

        Raises
        ------
        NotFoundError if the rule does not exist.
        """
        return self._find_owner(DatabaseNamespace.RECURRENCE_RULES, "rule_id", rule_id)

    def find_appointment_owner(self, appointment_id: AppointmentId) -> PatientId:
        return self._find_owner(
            DatabaseNamespace.APPOINTMENTS, "appointment_id", appointment_id
        )
