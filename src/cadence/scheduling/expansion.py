#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
"""The recurrence expansion engine.

A rule is translated into a `dateutil.rrule.rrule` anchored at its
`start_date_time`: the rrule walks one frequency period at a time, expanding
the rule's filters inside each period and keeping the anchor's time of day.
Its output is the rule's lifetime series; an expansion call returns the
members of that series falling inside the query window.

Everything here is a pure function of its arguments: no clock, no cache, no
cursor survives a call, so calls can be made concurrently without locking.
"""

import datetime
import logging
from collections.abc import Iterator
from itertools import islice
from typing import NamedTuple

from dateutil import rrule
from dateutil.relativedelta import relativedelta

from cadence.aliases import AppointmentId, Instant, RuleId
from cadence.constants import (
    DEFAULT_SAFETY_CAP,
    GENERATED_ID_PREFIX,
    NEXT_APPOINTMENT_HORIZON_MONTHS,
    OCCURRENCE_DURATION,
)
from cadence.scheduling.appointments import Appointment, Patient
from cadence.scheduling.recurrence import ByDay, RecurrenceRule
from cadence.scheduling.time_utils import Frequency, TimeInterval, as_utc

logger = logging.getLogger(__name__)

LONGEST_MONTH_DAYS = (31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)
MAX_WEEKDAYS_IN_MONTH = 5


class ExpansionSettings(NamedTuple):
    """Expansion settings.

    Parameters
    ----------
    safety_cap
        The maximum number of occurrences a single call returns for a rule
        without a `count`. Rules with a `count` are never capped.
    honor_ordinals
        Evaluate `ByDay.ordinal` in MONTHLY and YEARLY periods (eg only the
        second Tuesday of the month). Ordinals are ignored by default.
    """

    safety_cap: int = DEFAULT_SAFETY_CAP
    honor_ordinals: bool = False


DEFAULT_SETTINGS = ExpansionSettings()


def occurrence_id(rule_id: RuleId, index: int) -> AppointmentId:
    """The id of the `index`-th (zero-based) occurrence of a rule."""
    return f"{GENERATED_ID_PREFIX}-{rule_id}-{index}"


def to_rrule(
    rule: RecurrenceRule,
    until: Instant | None = None,
    settings: ExpansionSettings = DEFAULT_SETTINGS,
) -> rrule.rrule:
    """Build the `dateutil.rrule.rrule` walking the series of `rule`, without
    its `count`.

    Parameters
    ----------
    rule
        The rule to translate. `rrule` works at whole-second precision, so the
        anchor's sub-second part is dropped from `dtstart`.
    until
        Overrides `rule.until` as the last instant the rrule may produce.
    settings
        Ordinals are only passed on to `rrule` when `settings.honor_ordinals`
        is set.

    Notes
    -----
    A WEEKLY rule without `by_day` recurs on the anchor's weekday even when
    `by_month_day` narrows it, so the weekday is passed explicitly.
    """

    anchor = rule.start_date_time
    byweekday = None
    if rule.by_day is not None:
        byweekday = [_rrule_weekday(d, settings.honor_ordinals) for d in rule.by_day]
    elif rule.frequency == Frequency.WEEKLY:
        byweekday = [anchor.weekday()]
    rule_params = {
        "freq": rule.frequency.rrule_frequency,
        "interval": rule.interval,
        "dtstart": anchor.replace(microsecond=0),
        "until": until if until is not None else rule.until,
        "wkst": rule.week_start.rrule_weekday,
        "byweekday": byweekday,
        "bymonthday": rule.by_month_day,
        "bymonth": rule.by_month,
    }
    return rrule.rrule(**{k: v for k, v in rule_params.items() if v is not None})


def _rrule_weekday(by_day: ByDay, honor_ordinals: bool) -> rrule.weekday:
    weekday = by_day.day.rrule_weekday
    if honor_ordinals and by_day.ordinal is not None:
        return weekday(by_day.ordinal)
    return weekday


def never_matches(
    rule: RecurrenceRule, settings: ExpansionSettings = DEFAULT_SETTINGS
) -> bool:
    """Check whether the filters of `rule` exclude every date it can visit.

    `rrule` only stops scanning once it finds a match or runs off the
    calendar, so such rules are recognised up front: month days that none of
    the allowed months contain (eg 30 February), a DAILY interval that keeps
    the anchor's weekday when that weekday is filtered out, and ordinals no
    month can hold.
    """

    anchor = rule.start_date_time
    weekdays = rule.weekdays
    if rule.frequency == Frequency.DAILY and rule.interval % 7 == 0 and weekdays:
        if anchor.weekday() not in {d.rrule_weekday.weekday for d in weekdays}:
            return True
    month_days = rule.by_month_day
    if (
        month_days is None
        and rule.by_day is None
        and rule.frequency in (Frequency.MONTHLY, Frequency.YEARLY)
    ):
        month_days = [anchor.day]
    months = rule.by_month or range(1, 13)
    if month_days is not None and all(
        day > LONGEST_MONTH_DAYS[month - 1] for month in months for day in month_days
    ):
        return True
    if (
        settings.honor_ordinals
        and rule.by_day is not None
        and rule.frequency == Frequency.MONTHLY
    ):
        return all(
            d.ordinal is not None and abs(d.ordinal) > MAX_WEEKDAYS_IN_MONTH
            for d in rule.by_day
        )
    return False


def iter_series(
    rule: RecurrenceRule,
    horizon: Instant,
    settings: ExpansionSettings = DEFAULT_SETTINGS,
) -> Iterator[Instant]:
    """Yield the start of every occurrence in the lifetime series of `rule`,
    in ascending order, up to and including `horizon`.

    `rule.count` ends the series after that many members. A series running
    past the end of the supported calendar ends quietly.
    """

    anchor = rule.start_date_time
    horizon = as_utc(horizon)
    if rule.until is not None:
        horizon = min(horizon, rule.until)
    if horizon < anchor or never_matches(rule, settings):
        return
    fraction = datetime.timedelta(microseconds=anchor.microsecond)
    series = (start + fraction for start in to_rrule(rule, horizon - fraction, settings))
    if rule.count is not None:
        series = islice(series, rule.count)
    try:
        yield from series
    except (OverflowError, ValueError):
        logger.debug(f"Rule {rule.id} ran past the supported calendar range")


def _materialise(rule: RecurrenceRule, start: Instant, index: int) -> Appointment:
    return Appointment(
        id=occurrence_id(rule.id, index),
        patient_id=rule.patient_id,
        start_date_time=start,
        end_date_time=start + OCCURRENCE_DURATION,
        note=rule.note,
        recurrence_rule_id=rule.id,
        recurrence_id=start,
        is_exception=False,
    )


def expand(
    rule: RecurrenceRule,
    window_start: Instant,
    window_end: Instant,
    settings: ExpansionSettings | None = None,
) -> list[Appointment]:
    """Materialise the occurrences of `rule` starting inside the closed window
    `[window_start, window_end]`.

    Parameters
    ----------
    rule
        A validated recurrence rule.
    window_start, window_end
        The query window. A window ending before it starts is empty and
        yields no occurrences.
    settings
        Safety cap and ordinal handling. Defaults to `ExpansionSettings()`.

    Returns
    -------
    The occurrences in ascending start order. Each lasts `OCCURRENCE_DURATION`
    and carries its original start as `recurrence_id`.

    Notes
    -----
    1. `rule.count` bounds the rule's whole series: occurrences before the
    window consume it even though they are not returned. The series is
    rescanned from the anchor on every call.
    2. When `rule.count` is unset, at most `settings.safety_cap` occurrences
    are returned; later ones in a large window are truncated with a warning.
    """

    settings = settings or DEFAULT_SETTINGS
    window = TimeInterval(as_utc(window_start), as_utc(window_end))
    if window.is_empty:
        return []
    series = enumerate(iter_series(rule, window.end, settings))
    in_window = ((index, start) for index, start in series if start >= window.start)
    if rule.count is None:
        in_window = islice(in_window, settings.safety_cap + 1)
    occurrences = [_materialise(rule, start, index) for index, start in in_window]
    if rule.count is None and len(occurrences) > settings.safety_cap:
        logger.warning(
            f"Expansion of rule {rule.id} truncated at {settings.safety_cap} "
            f"occurrences in window {window.start} - {window.end}"
        )
        occurrences = occurrences[: settings.safety_cap]
    logger.debug(f"Rule {rule.id} expanded to {len(occurrences)} occurrences")
    return occurrences


def occurrences_for_patient(
    patient: Patient,
    window_start: Instant,
    window_end: Instant,
    settings: ExpansionSettings | None = None,
) -> list[Appointment]:
    """Merge a patient's stored appointments with the expansion of all their
    recurrence rules over `[window_start, window_end]`.

    Notes
    -----
    1. A stored exception replaces the generated occurrence of the same rule
    sharing its `recurrence_id`, and is returned exactly once in its place
    (even when it has been moved outside the window).
    2. Exceptions not matching an occurrence in the window are returned when
    they start inside the window.
    3. The result is sorted by start, ties broken by id.
    """

    window = TimeInterval(as_utc(window_start), as_utc(window_end))
    if window.is_empty:
        return []
    merged = [a for a in patient.one_off_appointments if window.contains(a.start_date_time)]
    exceptions = {(e.recurrence_rule_id, e.recurrence_id): e for e in patient.exceptions}
    matched = set()
    for rule in patient.recurrence_rules:
        for occurrence in expand(rule, window.start, window.end, settings):
            key = (rule.id, occurrence.recurrence_id)
            if key in exceptions:
                matched.add(key)
                continue
            merged.append(occurrence)
    for key, exception in exceptions.items():
        if key in matched or window.contains(exception.start_date_time):
            merged.append(exception)
    merged.sort(key=lambda a: a.sort_key)
    return merged


def next_appointment(
    patient: Patient,
    now: Instant,
    horizon: relativedelta | datetime.timedelta | None = None,
    settings: ExpansionSettings | None = None,
) -> Appointment | None:
    """The patient's first appointment starting at or after `now`.

    Recurring occurrences are only looked up within `horizon` of `now`
    (three months by default); stored appointments are considered however
    far ahead they are.
    """

    if horizon is None:
        horizon = relativedelta(months=NEXT_APPOINTMENT_HORIZON_MONTHS)
    now = as_utc(now)
    horizon_end = now + horizon
    upcoming = [
        a
        for a in occurrences_for_patient(patient, now, horizon_end, settings)
        if a.start_date_time >= now
    ]
    upcoming += [a for a in patient.appointments if a.start_date_time > horizon_end]
    if not upcoming:
        return None
    return min(upcoming, key=lambda a: a.sort_key)
