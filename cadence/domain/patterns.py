"""Recurrence patterns as a tagged union.

Each recurrence type maps to one frozen variant carrying only the parameters
that type uses. ``build_pattern`` turns loose column/request values into a
variant. In strict mode (rule creation and edits) an incomplete or
contradictory combination raises ``InvalidRecurrenceError``; in lenient mode
(loading stored rows) it becomes an ``InertPattern`` that never fires.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Union

from .enums import IntervalUnit, RecurrenceType, Weekday
from .errors import InvalidRecurrenceError

LAST_WEEK = -1
MONTH_WEEKS = frozenset({1, 2, 3, 4, 5, LAST_WEEK})


@dataclass(frozen=True)
class DailyPattern:
    type = RecurrenceType.DAILY


@dataclass(frozen=True)
class WorkdaysPattern:
    type = RecurrenceType.WORKDAYS


@dataclass(frozen=True)
class WeekendsPattern:
    type = RecurrenceType.WEEKENDS


@dataclass(frozen=True)
class WeeklyPattern:
    weekdays: frozenset[Weekday]
    type = RecurrenceType.WEEKLY


@dataclass(frozen=True)
class MonthDayPattern:
    month_day: int
    type = RecurrenceType.MONTHLY


@dataclass(frozen=True)
class NthWeekdayPattern:
    week: int
    weekday: Weekday
    type = RecurrenceType.MONTHLY

    @property
    def is_last(self) -> bool:
        return self.week == LAST_WEEK


@dataclass(frozen=True)
class YearlyPattern:
    type = RecurrenceType.YEARLY


@dataclass(frozen=True)
class CustomPattern:
    interval: int
    unit: IntervalUnit
    type = RecurrenceType.CUSTOM


@dataclass(frozen=True)
class InertPattern:
    """A stored rule whose parameters cannot fire; matches no date."""

    type: RecurrenceType
    reason: str


Pattern = Union[
    DailyPattern,
    WorkdaysPattern,
    WeekendsPattern,
    WeeklyPattern,
    MonthDayPattern,
    NthWeekdayPattern,
    YearlyPattern,
    CustomPattern,
    InertPattern,
]

_SIMPLE = {
    RecurrenceType.DAILY: DailyPattern,
    RecurrenceType.WORKDAYS: WorkdaysPattern,
    RecurrenceType.WEEKENDS: WeekendsPattern,
    RecurrenceType.YEARLY: YearlyPattern,
}


def parse_weekdays(value: str | Iterable[str] | None) -> frozenset[Weekday]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        value = [item for item in value.split(",") if item.strip()]
    try:
        return frozenset(Weekday(str(item).strip().lower()) for item in value)
    except ValueError as exc:
        raise InvalidRecurrenceError(f"Unknown weekday in {value!r}") from exc


def build_pattern(
    type: str | RecurrenceType,
    *,
    interval: int | None = 1,
    interval_unit: str | None = None,
    weekdays: str | Iterable[str] | None = None,
    month_day: int | None = None,
    month_week: int | None = None,
    month_weekday: str | None = None,
    strict: bool = True,
) -> Pattern:
    try:
        recurrence_type = RecurrenceType(type)
    except ValueError as exc:
        raise InvalidRecurrenceError(f"Unknown recurrence type {type!r}") from exc

    try:
        return _build(
            recurrence_type,
            interval=interval,
            interval_unit=interval_unit,
            weekdays=weekdays,
            month_day=month_day,
            month_week=month_week,
            month_weekday=month_weekday,
        )
    except InvalidRecurrenceError as exc:
        if strict:
            raise
        return InertPattern(type=recurrence_type, reason=str(exc))


def _build(
    recurrence_type: RecurrenceType,
    *,
    interval,
    interval_unit,
    weekdays,
    month_day,
    month_week,
    month_weekday,
) -> Pattern:
    if recurrence_type in _SIMPLE:
        return _SIMPLE[recurrence_type]()

    if recurrence_type == RecurrenceType.WEEKLY:
        days = parse_weekdays(weekdays)
        if not days:
            raise InvalidRecurrenceError("weekly recurrence requires at least one weekday")
        return WeeklyPattern(weekdays=days)

    if recurrence_type == RecurrenceType.MONTHLY:
        has_nth = month_week is not None or month_weekday is not None
        if month_day is not None and has_nth:
            raise InvalidRecurrenceError(
                "monthly recurrence takes either month_day or month_week/month_weekday, not both"
            )
        if month_day is not None:
            if not 1 <= int(month_day) <= 31:
                raise InvalidRecurrenceError(f"month_day must be within 1..31, got {month_day}")
            return MonthDayPattern(month_day=int(month_day))
        if month_week is None or month_weekday is None:
            raise InvalidRecurrenceError(
                "monthly recurrence requires month_day or both month_week and month_weekday"
            )
        if int(month_week) not in MONTH_WEEKS:
            raise InvalidRecurrenceError(f"month_week must be 1..5 or -1, got {month_week}")
        try:
            weekday = Weekday(str(month_weekday).strip().lower())
        except ValueError as exc:
            raise InvalidRecurrenceError(f"Unknown weekday {month_weekday!r}") from exc
        return NthWeekdayPattern(week=int(month_week), weekday=weekday)

    # custom
    if interval_unit is None:
        raise InvalidRecurrenceError("custom recurrence requires interval_unit")
    try:
        unit = IntervalUnit(interval_unit)
    except ValueError as exc:
        raise InvalidRecurrenceError(f"Unknown interval unit {interval_unit!r}") from exc
    step = 1 if interval is None else int(interval)
    if step < 1:
        raise InvalidRecurrenceError(f"interval must be a positive integer, got {interval}")
    return CustomPattern(interval=step, unit=unit)


def pattern_columns(pattern: Pattern) -> dict:
    """Flatten a pattern back into the nullable storage columns."""
    columns = {
        "type": pattern.type.value,
        "interval": 1,
        "interval_unit": None,
        "weekdays": None,
        "month_day": None,
        "month_week": None,
        "month_weekday": None,
    }
    if isinstance(pattern, WeeklyPattern):
        ordered = sorted(pattern.weekdays, key=lambda day: day.position)
        columns["weekdays"] = ",".join(day.value for day in ordered)
    elif isinstance(pattern, MonthDayPattern):
        columns["month_day"] = pattern.month_day
    elif isinstance(pattern, NthWeekdayPattern):
        columns["month_week"] = pattern.week
        columns["month_weekday"] = pattern.weekday.value
    elif isinstance(pattern, CustomPattern):
        columns["interval"] = pattern.interval
        columns["interval_unit"] = pattern.unit.value
    return columns
