"""Decide whether a recurrence rule fires on a calendar day.

Days are canonical UTC dates. The rule's ``start_at`` anchors the first
eligible day, the day-of-month and day-of-year used for matching, and the
time-of-day every occurrence starts at.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta

from cadence.domain.entities import RecurrenceEntity, to_utc_naive
from cadence.domain.enums import WEEKEND, WORKDAYS, EndType, IntervalUnit, Weekday
from cadence.domain.patterns import (
    CustomPattern,
    DailyPattern,
    MonthDayPattern,
    NthWeekdayPattern,
    Pattern,
    WeekendsPattern,
    WeeklyPattern,
    WorkdaysPattern,
    YearlyPattern,
)

_HOUR = timedelta(hours=1)


def should_generate(rule: RecurrenceEntity, day: date, occurrences: int | None = None) -> bool:
    """Return True when ``rule`` has an occurrence on ``day``.

    ``occurrences`` is the effective counter: the persisted value plus any
    days already accepted in the current expansion pass. It defaults to the
    persisted counter.
    """
    if day < rule.start_date:
        return False
    if rule.end_type == EndType.DATE and rule.end_date is not None and day > rule.end_date:
        return False
    if rule.end_type == EndType.COUNT and rule.end_count is not None:
        count = rule.occurrences_generated if occurrences is None else occurrences
        if count >= rule.end_count:
            return False
    return matches(rule.pattern, rule.start_at, day)


def matches(pattern: Pattern, anchor: datetime, day: date) -> bool:
    anchor = to_utc_naive(anchor)
    if isinstance(pattern, DailyPattern):
        return True
    if isinstance(pattern, WorkdaysPattern):
        return Weekday.of(day) in WORKDAYS
    if isinstance(pattern, WeekendsPattern):
        return Weekday.of(day) in WEEKEND
    if isinstance(pattern, WeeklyPattern):
        return Weekday.of(day) in pattern.weekdays
    if isinstance(pattern, MonthDayPattern):
        # months shorter than month_day never match
        return day.day == pattern.month_day
    if isinstance(pattern, NthWeekdayPattern):
        return _nth_weekday(pattern, day)
    if isinstance(pattern, YearlyPattern):
        return (day.month, day.day) == (anchor.month, anchor.day)
    if isinstance(pattern, CustomPattern):
        return _custom(pattern, anchor, day)
    return False


def _nth_weekday(pattern: NthWeekdayPattern, day: date) -> bool:
    if Weekday.of(day) != pattern.weekday:
        return False
    if pattern.is_last:
        return (day + timedelta(days=7)).month != day.month
    return (day.day - 1) // 7 + 1 == pattern.week


def _custom(pattern: CustomPattern, anchor: datetime, day: date) -> bool:
    interval = pattern.interval
    unit = pattern.unit
    anchor_day = anchor.date()

    if unit == IntervalUnit.HOURS:
        occurrence = datetime.combine(day, anchor.time())
        hours = (occurrence - anchor) // _HOUR
        return hours >= 0 and hours % interval == 0
    if unit == IntervalUnit.DAYS:
        return (day - anchor_day).days % interval == 0
    if unit == IntervalUnit.WEEKS:
        return (day - anchor_day).days % (interval * 7) == 0
    if unit == IntervalUnit.MONTHS:
        months = (day.year - anchor_day.year) * 12 + (day.month - anchor_day.month)
        return months % interval == 0 and day.day == anchor_day.day
    if unit == IntervalUnit.YEARS:
        years = day.year - anchor_day.year
        return (
            years % interval == 0
            and (day.month, day.day) == (anchor_day.month, anchor_day.day)
        )
    return False
