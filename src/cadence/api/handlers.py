#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Query and mutation handlers for the clinic front end.

Arguments arrive as the front end sends them (camelCase keys, ISO-8601
instants) and results are returned as JSON-compatible payloads. Handlers
resolve patients through the injected `PatientRepository`, call the
expansion engine on plain data and persist what they changed.
"""

import logging
import uuid
from collections.abc import Callable
from typing import Any

from pydantic.alias_generators import to_snake

from cadence.aliases import AppointmentId, Instant, PatientId, RuleId
from cadence.constants import DEFAULT_PAGE_SIZE, OCCURRENCE_DURATION
from cadence.scheduling.appointments import Appointment, Patient
from cadence.scheduling.exceptions import ValidationError
from cadence.scheduling.expansion import (
    ExpansionSettings,
    expand,
    next_appointment,
    occurrences_for_patient,
)
from cadence.scheduling.recurrence import RecurrenceRule
from cadence.scheduling.time_utils import (
    CalendarView,
    TimeInterval,
    calendar_window,
    format_instant,
    now_,
    parse_instant,
)
from cadence.storage.repository import PatientRepository

logger = logging.getLogger(__name__)

IdFactory = Callable[[str], str]
"""Maps a record kind (`patient`, `rule`, `app`) to a fresh unique id."""

UPDATABLE_PATIENT_FIELDS = (
    "name",
    "phone",
    "email",
    "address",
    "medical_history",
    "insurance_info",
    "outstanding_balance",
)
IMMUTABLE_RULE_FIELDS = ("id", "patient_id")


def uuid_ids(kind: str) -> str:
    return f"{kind}-{uuid.uuid4().hex}"


def _snake_keys(data: dict[str, Any]) -> dict[str, Any]:
    return {to_snake(k): v for k, v in data.items()}


def _require(data: dict[str, Any], *fields: str) -> None:
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required input fields: {missing}")


def _deleted(message: str) -> dict[str, Any]:
    return {"success": True, "message": message}


class ClinicService:
    """Implements the clinic's queries and mutations on top of a storage
    port and the expansion engine.

    Parameters
    ----------
    repository
        Resolves and persists patients.
    settings
        Passed to every expansion call.
    id_factory
        Assigns ids to new patients, rules and appointments.
    clock
        Returns the current instant; used for timestamps and to find a
        patient's next appointment.
    """

    def __init__(
        self,
        repository: PatientRepository,
        settings: ExpansionSettings | None = None,
        id_factory: IdFactory = uuid_ids,
        clock: Callable[[], Instant] = now_,
    ):
        self.repository = repository
        self.settings = settings or ExpansionSettings()
        self.id_factory = id_factory
        self.clock = clock

    # Queries

    def all_patients(
        self, search: str | None = None, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0
    ) -> dict[str, Any]:
        page = self.repository.find_patients(search=search, limit=limit, offset=offset)
        return {
            "patients": [p.to_payload() for p in page.patients],
            "total": page.total,
        }

    def _next_appointment(self, patient: Patient) -> Appointment | None:
        return next_appointment(patient, self.clock(), settings=self.settings)

    def patient(self, id: PatientId) -> dict[str, Any]:
        patient = self.repository.load(id)
        upcoming = self._next_appointment(patient)
        return {
            **patient.to_payload(),
            "nextAppointment": upcoming.to_payload() if upcoming else None,
        }

    def patient_with_next_appointment(self, id: PatientId) -> dict[str, Any]:
        patient = self.repository.load(id)
        upcoming = self._next_appointment(patient)
        return {
            "id": patient.id,
            "name": patient.name,
            "nextAppointment": upcoming.to_payload() if upcoming else None,
        }

    def appointments_by_patient(
        self, patient_id: PatientId, from_date: str, to_date: str
    ) -> dict[str, Any]:
        window = TimeInterval(parse_instant(from_date), parse_instant(to_date))
        patient = self.repository.load(patient_id)
        appointments = occurrences_for_patient(
            patient, window.start, window.end, self.settings
        )
        return {
            "appointments": [a.to_payload() for a in appointments],
            "total": len(appointments),
        }

    def all_appointments(self, from_date: str, to_date: str) -> dict[str, Any]:
        """Every patient's appointments in the window, in one time-sorted list.
        Each entry names the patient it belongs to."""
        window = TimeInterval(parse_instant(from_date), parse_instant(to_date))
        entries = []
        for patient in self.repository.all_patients():
            owner = {"id": patient.id, "name": patient.name}
            for appointment in occurrences_for_patient(
                patient, window.start, window.end, self.settings
            ):
                entries.append((appointment, owner))
        entries.sort(key=lambda entry: entry[0].sort_key)
        return {
            "appointments": [{**a.to_payload(), "patient": owner} for a, owner in entries],
            "total": len(entries),
        }

    def calendar(self, view: CalendarView, reference: str | None = None) -> dict[str, Any]:
        """The appointments shown by the calendar screen for a day, week or
        month around `reference` (now by default)."""
        anchor = parse_instant(reference) if reference is not None else self.clock()
        window = calendar_window(view, anchor)
        from_date, to_date = format_instant(window.start), format_instant(window.end)
        return {
            **self.all_appointments(from_date, to_date),
            "fromDate": from_date,
            "toDate": to_date,
        }

    # Mutations

    def create_patient(self, input: dict[str, Any]) -> dict[str, Any]:
        data = _snake_keys(input)
        _require(data, "name")
        now = self.clock()
        fields = {k: v for k, v in data.items() if k in UPDATABLE_PATIENT_FIELDS}
        patient = Patient(
            id=self.id_factory("patient"), created_at=now, updated_at=now, **fields
        )
        self.repository.save(patient)
        logger.info(f"Created patient {patient.id}")
        return patient.to_payload()

    def update_patient(self, id: PatientId, input: dict[str, Any]) -> dict[str, Any]:
        patient = self.repository.load(id)
        changes = {
            k: v for k, v in _snake_keys(input).items() if k in UPDATABLE_PATIENT_FIELDS
        }
        if "name" in changes:
            _require(changes, "name")
        updated = Patient(
            **{**patient.model_dump(), **changes, "updated_at": self.clock()}
        )
        self.repository.save(updated)
        logger.info(f"Updated patient {id}: {sorted(changes)}")
        return updated.to_payload()

    def delete_patient(self, id: PatientId) -> dict[str, Any]:
        self.repository.delete(id)
        logger.info(f"Deleted patient {id}")
        return _deleted("Patient deleted successfully")

    def _replace_patient(self, patient: Patient, **changes: Any) -> Patient:
        updated = Patient(
            **{**patient.model_dump(), **changes, "updated_at": self.clock()}
        )
        self.repository.save(updated)
        return updated

    def create_recurrence_rule(self, input: dict[str, Any]) -> dict[str, Any]:
        data = _snake_keys(input)
        _require(data, "patient_id", "frequency", "start_date_time")
        patient = self.repository.load(data["patient_id"])
        rule = RecurrenceRule(**{**data, "id": self.id_factory("rule")})
        self._replace_patient(
            patient, recurrence_rules=[*patient.recurrence_rules, rule]
        )
        logger.info(f"Created {rule.frequency} rule {rule.id} for patient {patient.id}")
        return rule.to_payload()

    def update_recurrence_rule(self, id: RuleId, input: dict[str, Any]) -> dict[str, Any]:
        """Apply `input` to an existing rule. Generated occurrences follow the
        new rule on the next expansion; stored exceptions are kept."""
        patient = self.repository.load(self.repository.find_rule_owner(id))
        changes = {
            k: v for k, v in _snake_keys(input).items() if k not in IMMUTABLE_RULE_FIELDS
        }
        updated = patient.get_rule(id).update(**changes)
        self._replace_patient(
            patient,
            recurrence_rules=[
                updated if r.id == id else r for r in patient.recurrence_rules
            ],
        )
        logger.info(f"Updated rule {id}: {sorted(changes)}")
        return updated.to_payload()

    def delete_recurrence_rule(self, id: RuleId) -> dict[str, Any]:
        """Delete a rule together with the exceptions overriding its
        occurrences."""
        patient = self.repository.load(self.repository.find_rule_owner(id))
        self._replace_patient(
            patient,
            recurrence_rules=[r for r in patient.recurrence_rules if r.id != id],
            appointments=[a for a in patient.appointments if a.recurrence_rule_id != id],
        )
        logger.info(f"Deleted rule {id} of patient {patient.id}")
        return _deleted("Recurrence rule deleted successfully")

    def create_one_time_appointment(self, input: dict[str, Any]) -> dict[str, Any]:
        data = _snake_keys(input)
        _require(data, "patient_id", "start_date_time")
        patient = self.repository.load(data["patient_id"])
        start = parse_instant(data["start_date_time"])
        end = data.get("end_date_time")
        appointment = Appointment(
            id=self.id_factory("app"),
            patient_id=patient.id,
            start_date_time=start,
            end_date_time=parse_instant(end) if end else start + OCCURRENCE_DURATION,
            note=data.get("note"),
        )
        self._replace_patient(
            patient, appointments=[*patient.appointments, appointment]
        )
        logger.info(f"Created appointment {appointment.id} for patient {patient.id}")
        return appointment.to_payload()

    def create_exception_for_rule(self, input: dict[str, Any]) -> dict[str, Any]:
        """Override one occurrence of a rule: reschedule it or change its note.

        Input fields: `ruleId`, `originalStartDateTime` (the occurrence to
        override), optional `newStartDateTime`, `newEndDateTime` (one hour
        after the new start by default) and `note` (the rule's note by
        default). An existing exception for the same occurrence is replaced.

        Raises
        ------
        ValidationError if the rule has no occurrence at `originalStartDateTime`.
        """
        data = _snake_keys(input)
        _require(data, "rule_id", "original_start_date_time")
        rule_id = data["rule_id"]
        patient = self.repository.load(self.repository.find_rule_owner(rule_id))
        rule = patient.get_rule(rule_id)
        original = parse_instant(data["original_start_date_time"])
        if not expand(rule, original, original, self.settings):
            raise ValidationError(
                f"Rule {rule_id} has no occurrence starting at {format_instant(original)}"
            )
        new_start = data.get("new_start_date_time")
        start = parse_instant(new_start) if new_start else original
        new_end = data.get("new_end_date_time")
        exception = Appointment(
            id=self.id_factory("app"),
            patient_id=patient.id,
            start_date_time=start,
            end_date_time=parse_instant(new_end) if new_end else start + OCCURRENCE_DURATION,
            note=data.get("note", rule.note),
            recurrence_rule_id=rule_id,
            recurrence_id=original,
            is_exception=True,
        )
        kept = [
            a
            for a in patient.appointments
            if not (
                a.is_exception
                and a.recurrence_rule_id == rule_id
                and a.recurrence_id == original
            )
        ]
        self._replace_patient(patient, appointments=[*kept, exception])
        logger.info(
            f"Created exception {exception.id} overriding rule {rule_id} "
            f"at {format_instant(original)}"
        )
        return exception.to_payload()

    def delete_appointment(self, id: AppointmentId) -> dict[str, Any]:
        """Delete a stored appointment. Deleting an exception restores the
        generated occurrence it overrode."""
        patient = self.repository.load(self.repository.find_appointment_owner(id))
        self._replace_patient(
            patient, appointments=[a for a in patient.appointments if a.id != id]
        )
        logger.info(f"Deleted appointment {id} of patient {patient.id}")
        return _deleted("Appointment deleted successfully")
