from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Collection

from cadence.domain.entities import RecurrenceEntity
from cadence.domain.enums import EndType

from .evaluator import should_generate


@dataclass(frozen=True)
class Expansion:
    """Outcome of expanding one rule over one window.

    ``window_to`` is the last day actually examined; ``truncated`` is set when
    the generation horizon cut the requested window short.
    """

    rule_id: str
    window_from: date
    window_to: date
    dates: list[date] = field(default_factory=list)
    truncated: bool = False
    exhausted: bool = False
    created: int = 0


def horizon_end(from_day: date, to_day: date, horizon_days: int) -> tuple[date, bool]:
    if horizon_days < 1:
        raise ValueError(f"horizon_days must be positive, got {horizon_days}")
    limit = from_day + timedelta(days=horizon_days - 1)
    if to_day > limit:
        return limit, True
    return to_day, False


def expand(
    rule: RecurrenceEntity,
    from_day: date,
    to_day: date,
    materialized: Collection[date],
    horizon_days: int,
) -> Expansion:
    """Collect the days in ``[from_day, to_day]`` that still need an instance."""
    if to_day < from_day:
        return Expansion(rule_id=rule.id, window_from=from_day, window_to=to_day)

    last_day, truncated = horizon_end(from_day, to_day, horizon_days)
    budget = rule.remaining
    accepted: list[date] = []

    day = from_day
    while day <= last_day:
        if budget is not None and len(accepted) >= budget:
            break
        if rule.end_type == EndType.DATE and rule.end_date is not None and day > rule.end_date:
            break
        if day not in materialized:
            effective = rule.occurrences_generated + len(accepted)
            if should_generate(rule, day, effective):
                accepted.append(day)
        day += timedelta(days=1)

    exhausted = budget is not None and len(accepted) >= budget
    return Expansion(
        rule_id=rule.id,
        window_from=from_day,
        window_to=last_day,
        dates=accepted,
        truncated=truncated,
        exhausted=exhausted,
    )
