#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""A light wrapper around the `datetime` library, mapping the recurrence
vocabulary onto `dateutil.rrule` and providing helpers for parsing and
formatting the ISO-8601 instants exchanged with the transport layer.

All instants are absolute: they are aware `datetime` objects in UTC, held at
millisecond precision, and calendar fields (weekday, day of month, month) are
read in UTC."""

import datetime
from enum import StrEnum
from typing import Literal, NamedTuple

from dateutil import rrule
from dateutil.relativedelta import relativedelta

from cadence.aliases import Instant
from cadence.scheduling.exceptions import ValidationError

UTC = datetime.timezone.utc

CalendarView = Literal["daily", "weekly", "monthly"]


class Frequency(StrEnum):
    """The unit `interval` is counted in."""

    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"

    @property
    def rrule_frequency(self) -> int:
        return getattr(rrule, self.value)


class Weekday(StrEnum):
    SU = "SU"
    MO = "MO"
    TU = "TU"
    WE = "WE"
    TH = "TH"
    FR = "FR"
    SA = "SA"

    @property
    def rrule_weekday(self) -> rrule.weekday:
        """The `dateutil.rrule` weekday constant for this code."""
        return getattr(rrule, self.value)


class TimeInterval(NamedTuple):
    """Represents the closed time interval between two instants."""

    start: Instant
    end: Instant

    @property
    def is_empty(self) -> bool:
        return self.end < self.start

    def contains(self, dt: Instant) -> bool:
        """Check if a given instant is contained within this time interval."""
        return self.start <= dt <= self.end


def now_() -> Instant:
    """Return the current instant."""
    return as_utc(datetime.datetime.now(tz=UTC))


def as_utc(dt: datetime.datetime) -> Instant:
    """Normalise `dt` to an aware UTC datetime truncated to the millisecond.
    Naive values are taken to be in UTC already."""
    dt = dt.replace(microsecond=dt.microsecond // 1000 * 1000)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_instant(value: str | datetime.datetime) -> Instant:
    """Parse an ISO-8601 string (eg `2025-12-23T03:00:00Z`) into an instant.

    Raises
    ------
    ValidationError if `value` cannot be parsed.
    """
    if isinstance(value, datetime.datetime):
        return as_utc(value)
    if not isinstance(value, str):
        raise ValidationError(f"Expected an ISO-8601 string, got {value!r}")
    try:
        parsed = datetime.datetime.fromisoformat(value.strip())
    except ValueError as e:
        raise ValidationError(f"Unparsable instant: {value!r}") from e
    return as_utc(parsed)


def format_instant(dt: Instant) -> str:
    """Format an instant the way the transport layer expects it."""
    dt = as_utc(dt)
    if dt.microsecond:
        return dt.strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def start_of_day(dt: Instant) -> Instant:
    return dt.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(dt: Instant) -> Instant:
    return dt.replace(hour=23, minute=59, second=59, microsecond=999000)


def calendar_window(view: CalendarView, reference: Instant) -> TimeInterval:
    """The window the calendar screen queries for a given view.

    Parameters
    ----------
    view
        `daily` covers the reference day, `weekly` the Monday-first week
        containing it and `monthly` its calendar month.
    reference
        The instant the view is centred on.
    """
    reference = as_utc(reference)
    if view == "daily":
        return TimeInterval(start_of_day(reference), end_of_day(reference))
    if view == "weekly":
        start = start_of_day(reference) - datetime.timedelta(days=reference.weekday())
        end = end_of_day(start + datetime.timedelta(days=6))
        return TimeInterval(start, end)
    if view == "monthly":
        start = start_of_day(reference.replace(day=1))
        end = end_of_day(start + relativedelta(months=1, days=-1))
        return TimeInterval(start, end)
    raise ValidationError(f"Unsupported calendar view: {view}")
