#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import datetime

import pytest

from cadence.scheduling.appointments import Appointment, Patient
from cadence.scheduling.exceptions import ValidationError
from cadence.scheduling.recurrence import RecurrenceRule
from cadence.scheduling.time_utils import UTC, Frequency, Weekday


def make_rule(**overrides) -> RecurrenceRule:
    fields = dict(
        id="r1",
        patient_id="p1",
        frequency=Frequency.WEEKLY,
        start_date_time=datetime.datetime(2025, 12, 20, 3, tzinfo=UTC),
    )
    fields.update(overrides)
    return RecurrenceRule(**fields)


def test_rule_defaults():
    rule = make_rule()
    assert rule.interval == 1
    assert rule.week_start == Weekday.MO
    assert rule.count is None and rule.until is None
    assert rule.weekdays is None


@pytest.mark.parametrize(
    "overrides",
    [
        {"interval": 0},
        {"interval": -2},
        {"count": 0},
        {"frequency": "HOURLY"},
        {"by_day": []},
        {"by_day": [{"day": "XX"}]},
        {"by_day": [{"ordinal": 0, "day": "TU"}]},
        {"by_day": [{"ordinal": 54, "day": "TU"}]},
        {"by_month_day": []},
        {"by_month_day": [0]},
        {"by_month_day": [32]},
        {"by_month": [13]},
        {"start_date_time": "yesterday"},
    ],
)
def test_invalid_rules_are_rejected(overrides):
    with pytest.raises(ValidationError):
        make_rule(**overrides)


def test_validation_error_chains_the_pydantic_error():
    with pytest.raises(ValidationError) as excinfo:
        make_rule(interval=0)
    assert "interval" in str(excinfo.value)
    assert excinfo.value.__cause__ is not None


def test_rule_from_camel_case_payload():
    rule = RecurrenceRule.from_dict(
        {
            "id": "rule9",
            "patientId": "1",
            "frequency": "MONTHLY",
            "startDateTime": "2025-12-01T14:00:00+07:00",
            "byDay": [{"ordinal": -1, "day": "FR"}],
            "byMonthDay": [15, 1, 15],
            "weekStart": "SU",
        }
    )
    assert rule.patient_id == "1"
    assert rule.frequency == Frequency.MONTHLY
    assert rule.start_date_time == datetime.datetime(2025, 12, 1, 7, tzinfo=UTC)
    assert [(d.ordinal, d.day) for d in rule.by_day] == [(-1, Weekday.FR)]
    assert rule.by_month_day == [1, 15]
    assert rule.week_start == Weekday.SU
    assert rule.weekdays == {Weekday.FR}


def test_naive_instants_are_taken_as_utc():
    rule = make_rule(
        start_date_time=datetime.datetime(2025, 12, 20, 3),
        until=datetime.datetime(2026, 1, 1),
    )
    assert rule.start_date_time.tzinfo == UTC
    assert rule.until == datetime.datetime(2026, 1, 1, tzinfo=UTC)


def test_rule_payload():
    rule = make_rule(by_day=[{"day": "TU"}], count=3, note="Weekly aligner check")
    payload = rule.to_payload()
    assert payload["patientId"] == "p1"
    assert payload["frequency"] == "WEEKLY"
    assert payload["startDateTime"] == "2025-12-20T03:00:00Z"
    assert payload["until"] is None
    assert payload["byDay"] == [{"ordinal": None, "day": "TU"}]
    assert payload["count"] == 3
    assert RecurrenceRule.from_dict(payload).to_payload() == payload


def test_update_returns_validated_copy():
    rule = make_rule()
    updated = rule.update(interval=2, by_day=[{"day": "WE"}])
    assert updated.interval == 2
    assert updated.weekdays == {Weekday.WE}
    assert rule.interval == 1
    with pytest.raises(ValidationError):
        rule.update(count=-1)


def test_appointment_must_not_end_before_it_starts():
    start = datetime.datetime(2025, 12, 23, 3, tzinfo=UTC)
    with pytest.raises(ValidationError):
        Appointment(
            id="a1",
            patient_id="p1",
            start_date_time=start,
            end_date_time=start - datetime.timedelta(minutes=1),
        )


def test_exception_must_reference_its_occurrence():
    start = datetime.datetime(2025, 12, 23, 3, tzinfo=UTC)
    with pytest.raises(ValidationError):
        Appointment(
            id="a1",
            patient_id="p1",
            start_date_time=start,
            end_date_time=start,
            recurrence_rule_id="r1",
            is_exception=True,
        )


def test_patient_rejects_a_stored_occurrence_that_is_not_an_exception():
    start = datetime.datetime(2025, 12, 23, 3, tzinfo=UTC)
    stray = Appointment(
        id="a1",
        patient_id="p1",
        start_date_time=start,
        end_date_time=start + datetime.timedelta(hours=1),
        recurrence_rule_id="r1",
        recurrence_id=start,
    )
    assert not stray.is_one_off and not stray.is_exception
    with pytest.raises(ValidationError):
        Patient(id="p1", name="Ann Lee", appointments=[stray])
    rescheduled = stray.model_copy(update={"is_exception": True})
    assert Patient(id="p1", name="Ann Lee", appointments=[rescheduled]).exceptions == [
        rescheduled
    ]


def test_appointment_str():
    start = datetime.datetime(2025, 12, 23, 3, tzinfo=UTC)
    appointment = Appointment(
        id="a1",
        patient_id="p1",
        start_date_time=start,
        end_date_time=start + datetime.timedelta(hours=1),
        note="Initial 3D scan",
    )
    assert str(appointment) == "2025-12-23 03:00-04:00 UTC 'Initial 3D scan'"
    assert appointment.is_one_off
