#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""Concrete scheduled events and the patients who own them."""

import datetime

from pydantic import field_serializer, field_validator, model_validator

from cadence.aliases import AppointmentId, PatientId, RuleId
from cadence.scheduling.recurrence import CadenceModel, RecurrenceRule
from cadence.scheduling.time_utils import as_utc, format_instant

INSTANT_FIELDS = ("start_date_time", "end_date_time", "recurrence_id")


class Appointment(CadenceModel):
    """One concrete scheduled event.

    Parameters
    ----------
    id
        For generated occurrences, derived from the rule id and the position
        of the occurrence in the rule's series. Stored appointments carry an
        independently assigned id.
    recurrence_rule_id
        The rule the appointment belongs to. `None` for one-off appointments.
    recurrence_id
        The original, unmodified start of the occurrence. This is the key an
        exception is matched on, so it does not change when an exception
        moves the appointment.
    is_exception
        True only for a stored record that overrides a generated occurrence.
    """

    id: AppointmentId
    patient_id: PatientId
    start_date_time: datetime.datetime
    end_date_time: datetime.datetime
    note: str | None = None
    recurrence_rule_id: RuleId | None = None
    recurrence_id: datetime.datetime | None = None
    is_exception: bool = False

    @field_validator(*INSTANT_FIELDS)
    @classmethod
    def _normalise_instant(cls, value: datetime.datetime | None):
        if value is None:
            return value
        return as_utc(value)

    @model_validator(mode="after")
    def _check_consistency(self):
        if self.end_date_time < self.start_date_time:
            raise ValueError(
                f"Appointment {self.id} ends ({self.end_date_time}) "
                f"before it starts ({self.start_date_time})"
            )
        if self.is_exception and (
            self.recurrence_rule_id is None or self.recurrence_id is None
        ):
            raise ValueError(
                f"Exception {self.id} must reference the rule and the "
                f"occurrence it overrides"
            )
        return self

    @field_serializer(*INSTANT_FIELDS, when_used="json")
    def _serialise_instant(self, value: datetime.datetime | None) -> str | None:
        if value is None:
            return value
        return format_instant(value)

    @property
    def is_one_off(self) -> bool:
        return self.recurrence_rule_id is None

    @property
    def sort_key(self) -> tuple[datetime.datetime, str]:
        return self.start_date_time, self.id

    def __str__(self) -> str:
        starts_at_str = self.start_date_time.strftime("%Y-%m-%d %H:%M")
        ends_at_str = self.end_date_time.strftime("%H:%M")
        display = f"{starts_at_str}-{ends_at_str} UTC"
        if self.note:
            display += f" '{self.note}'"
        if self.is_exception:
            display += " (rescheduled)"
        elif not self.is_one_off:
            display += " (recurring)"
        return display


class Patient(CadenceModel):
    """A patient together with their stored appointments and recurrence rules.
    Stored appointments include both one-offs and exception records."""

    id: PatientId
    name: str
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    medical_history: str | None = None
    outstanding_balance: float = 0.0
    insurance_info: str | None = None
    last_visit: datetime.datetime | None = None
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None
    appointments: list[Appointment] = []
    recurrence_rules: list[RecurrenceRule] = []

    @field_validator("appointments")
    @classmethod
    def _check_stored_appointments(cls, value: list[Appointment]) -> list[Appointment]:
        for appointment in value:
            if not (appointment.is_one_off or appointment.is_exception):
                raise ValueError(
                    f"Stored appointment {appointment.id} references rule "
                    f"{appointment.recurrence_rule_id} but does not override "
                    f"one of its occurrences"
                )
        return value

    @field_validator("last_visit", "created_at", "updated_at")
    @classmethod
    def _normalise_instant(cls, value: datetime.datetime | None):
        if value is None:
            return value
        return as_utc(value)

    @field_serializer("last_visit", "created_at", "updated_at", when_used="json")
    def _serialise_instant(self, value: datetime.datetime | None) -> str | None:
        if value is None:
            return value
        return format_instant(value)

    @property
    def one_off_appointments(self) -> list[Appointment]:
        return [a for a in self.appointments if a.is_one_off]

    @property
    def exceptions(self) -> list[Appointment]:
        return [a for a in self.appointments if a.is_exception]

    def get_rule(self, rule_id: RuleId) -> RecurrenceRule | None:
        for rule in self.recurrence_rules:
            if rule.id == rule_id:
                return rule
        return None
