#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""The recurrence rule model. A rule is a validated, immutable value: all the
temporal logic lives in `cadence.scheduling.expansion`."""

import datetime
from typing import Any, Self

import pydantic
from pydantic import BaseModel, ConfigDict, field_serializer, field_validator
from pydantic.alias_generators import to_camel

from cadence.aliases import PatientId, RuleId
from cadence.scheduling.exceptions import ValidationError
from cadence.scheduling.time_utils import Frequency, Weekday, as_utc, format_instant

MAX_WEEKDAY_ORDINAL = 53


class CadenceModel(BaseModel):
    """Base for the records exchanged with the transport layer: camelCase on
    the wire, snake_case in Python. Construction errors surface as
    `cadence.scheduling.exceptions.ValidationError`."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except pydantic.ValidationError as e:
            raise ValidationError(str(e)) from e

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        return cls(**data)

    def to_payload(self) -> dict[str, Any]:
        """Serialise to the JSON-compatible shape the transport layer returns."""
        return self.model_dump(mode="json", by_alias=True)


class ByDay(CadenceModel):
    """A weekday filter.

    Parameters
    ----------
    ordinal
        The nth occurrence of `day` inside the period (eg 2 for the second
        Tuesday, -1 for the last). Only evaluated when expansion is asked to
        honour ordinals.
    day
        The weekday code.
    """

    ordinal: int | None = None
    day: Weekday

    @field_validator("ordinal")
    @classmethod
    def _check_ordinal(cls, value: int | None) -> int | None:
        if value is None:
            return value
        if value == 0 or abs(value) > MAX_WEEKDAY_ORDINAL:
            raise ValueError(
                f"Weekday ordinal must be a non-zero integer in "
                f"[-{MAX_WEEKDAY_ORDINAL}, {MAX_WEEKDAY_ORDINAL}], got {value}"
            )
        return value


def _check_members(
    values: list[int] | None, lower: int, upper: int, field: str
) -> list[int] | None:
    if values is None:
        return values
    if not values:
        raise ValueError(f"{field} must not be empty when given")
    invalid = [v for v in values if not lower <= v <= upper]
    if invalid:
        raise ValueError(f"{field} values must be in [{lower}, {upper}], got {invalid}")
    return sorted(set(values))


class RecurrenceRule(CadenceModel):
    """Describes a repeating schedule for one patient.

    Parameters
    ----------
    id
        Unique identifier assigned at creation.
    patient_id
        The patient who owns the rule. The rule does not manage the patient's
        lifecycle.
    frequency
        Determines the unit `interval` is counted in.
    interval
        Step size in units of `frequency` (eg every 3 days, every 2 months).
    start_date_time
        The anchor of the series. No occurrence starts before it.
    until
        If set, no occurrence starts after this instant.
    count
        If set, the total number of occurrences the rule ever generates,
        independent of any query window.
    by_day
        Only days whose weekday is listed survive.
    by_month_day
        Only days whose day of the month (1-31) is listed survive.
    by_month
        Only days whose month (1-12) is listed survive.
    week_start
        The weekday opening a week for WEEKLY rules.
    note
        Free text copied onto every generated occurrence.
    """

    id: RuleId
    patient_id: PatientId
    frequency: Frequency
    interval: int = 1
    start_date_time: datetime.datetime
    until: datetime.datetime | None = None
    count: int | None = None
    by_day: list[ByDay] | None = None
    by_month_day: list[int] | None = None
    by_month: list[int] | None = None
    week_start: Weekday = Weekday.MO
    note: str | None = None

    @field_validator("interval")
    @classmethod
    def _check_interval(cls, value: int) -> int:
        if value < 1:
            raise ValueError(f"interval must be >= 1, got {value}")
        return value

    @field_validator("count")
    @classmethod
    def _check_count(cls, value: int | None) -> int | None:
        if value is not None and value < 1:
            raise ValueError(f"count must be >= 1 when given, got {value}")
        return value

    @field_validator("start_date_time", "until")
    @classmethod
    def _normalise_instant(cls, value: datetime.datetime | None):
        if value is None:
            return value
        return as_utc(value)

    @field_validator("by_day")
    @classmethod
    def _check_by_day(cls, value: list[ByDay] | None) -> list[ByDay] | None:
        if value is not None and not value:
            raise ValueError("by_day must not be empty when given")
        return value

    @field_validator("by_month_day")
    @classmethod
    def _check_by_month_day(cls, value: list[int] | None) -> list[int] | None:
        return _check_members(value, 1, 31, "by_month_day")

    @field_validator("by_month")
    @classmethod
    def _check_by_month(cls, value: list[int] | None) -> list[int] | None:
        return _check_members(value, 1, 12, "by_month")

    @field_serializer("start_date_time", "until", when_used="json")
    def _serialise_instant(self, value: datetime.datetime | None) -> str | None:
        if value is None:
            return value
        return format_instant(value)

    @property
    def weekdays(self) -> set[Weekday] | None:
        """The weekday codes in `by_day`, ordinals dropped."""
        if self.by_day is None:
            return None
        return {d.day for d in self.by_day}

    def update(self, **changes: Any) -> Self:
        """Return a validated copy of the rule with `changes` applied."""
        data = self.model_dump()
        data.update(changes)
        return type(self)(**data)
