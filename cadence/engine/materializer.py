from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime, timedelta

from cadence.domain.entities import RecurrenceEntity, TaskEntity, to_utc_naive
from cadence.domain.enums import TaskStatus
from cadence.domain.ports import Clock, RuleStore, SystemClock, TaskStore

from .expander import Expansion, expand, horizon_end

logger = logging.getLogger(__name__)


class RecurrenceMaterializer:
    """Turns accepted occurrence days into stored task instances.

    The per-rule pipeline is: look up days already materialized, expand the
    window, insert the batch, then advance the rule's progress counter. The
    counter only moves after the batch is committed.
    """

    def __init__(self, rules: RuleStore, tasks: TaskStore, clock: Clock | None = None) -> None:
        self._rules = rules
        self._tasks = tasks
        self._clock = clock or SystemClock()

    def dates_already_materialized(self, rule_id: str, from_day: date, to_day: date) -> set[date]:
        if to_day < from_day:
            return set()
        return self._tasks.occurrence_days(rule_id, from_day, to_day)

    def materialize(self, rule: RecurrenceEntity, days: list[date]) -> list[TaskEntity]:
        if not days:
            return []
        rows = [self._build_row(rule, day) for day in days]
        created, duplicates = self._tasks.insert_occurrences(rows)
        for day in duplicates:
            logger.debug("Recurrence %s already has an instance on %s", rule.id, day)
        return created

    def record_progress(self, rule_id: str, count_added: int) -> None:
        if count_added <= 0:
            return
        self._rules.advance_progress(rule_id, count_added, self._clock.now())

    def run(
        self,
        rule: RecurrenceEntity,
        from_day: date,
        to_day: date,
        horizon_days: int,
    ) -> Expansion:
        if not rule.is_active:
            return Expansion(rule_id=rule.id, window_from=from_day, window_to=to_day)

        # dedup lookup covers the horizon-capped span only
        last_day = to_day if to_day < from_day else horizon_end(from_day, to_day, horizon_days)[0]
        existing = self.dates_already_materialized(rule.id, from_day, last_day)
        expansion = expand(rule, from_day, to_day, existing, horizon_days)
        if expansion.truncated:
            logger.info(
                "Recurrence %s expanded up to %s only; requested window ends %s",
                rule.id,
                expansion.window_to,
                to_day,
            )

        created = self.materialize(rule, expansion.dates)
        self.record_progress(rule.id, len(created))
        if created:
            logger.info("Recurrence %s materialized %d occurrence(s)", rule.id, len(created))
        return replace(expansion, created=len(created))

    @staticmethod
    def _build_row(rule: RecurrenceEntity, day: date) -> dict:
        start_at = datetime.combine(day, to_utc_naive(rule.start_at).time())
        deadline_at = None
        if rule.duration_minutes:
            deadline_at = start_at + timedelta(minutes=rule.duration_minutes)
        return {
            "user_id": rule.user_id,
            "title": rule.title,
            "description": rule.description,
            "start_at": start_at,
            "deadline_at": deadline_at,
            "priority": rule.priority.value,
            "status": TaskStatus.PLANNED.value,
            "recurrence_id": rule.id,
            "occurrence_day": day,
        }
