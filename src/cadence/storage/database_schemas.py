#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
from enum import StrEnum, auto

import polars as pl

from cadence.scheduling.time_utils import Frequency, Weekday


class DatabaseNamespace(StrEnum):
    """Namespace for each database"""

    PATIENTS = auto()
    RECURRENCE_RULES = auto()
    APPOINTMENTS = auto()


Timestamp = pl.Datetime(time_unit="us", time_zone="UTC")
WeekdayEnum = pl.Enum([d.value for d in Weekday])

DATABASE_SCHEMAS = {
    DatabaseNamespace.PATIENTS: {
        "patient_id": pl.String,
        "name": pl.String,
        "phone": pl.String,
        "email": pl.String,
        "address": pl.String,
        "medical_history": pl.String,
        "outstanding_balance": pl.Float64,
        "insurance_info": pl.String,
        "last_visit": Timestamp,
        "created_at": Timestamp,
        "updated_at": Timestamp,
    },
    DatabaseNamespace.RECURRENCE_RULES: {
        "rule_id": pl.String,
        "patient_id": pl.String,
        "frequency": pl.Enum([f.value for f in Frequency]),
        "interval": pl.Int32,
        "start_date_time": Timestamp,
        "until": Timestamp,
        "count": pl.Int32,
        "by_day": pl.List(pl.Struct({"ordinal": pl.Int8, "day": WeekdayEnum})),
        "by_month_day": pl.List(pl.UInt8),
        "by_month": pl.List(pl.UInt8),
        "week_start": WeekdayEnum,
        "note": pl.String,
    },
    DatabaseNamespace.APPOINTMENTS: {
        "appointment_id": pl.String,
        "patient_id": pl.String,
        "start_date_time": Timestamp,
        "end_date_time": Timestamp,
        "note": pl.String,
        "recurrence_rule_id": pl.String,
        "recurrence_id": Timestamp,
        "is_exception": pl.Boolean,
    },
}
