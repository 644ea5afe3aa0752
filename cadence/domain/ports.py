"""Collaborator contracts consumed by the engine."""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Protocol

from .entities import RecurrenceEntity, TaskEntity
from .filters import TaskFilters


class RuleStore(Protocol):
    def list_active(self, user_id: str) -> list[RecurrenceEntity]: ...

    def get(self, rule_id: str) -> RecurrenceEntity | None: ...

    def advance_progress(self, rule_id: str, count_added: int, now: datetime) -> None: ...


class TaskStore(Protocol):
    def occurrence_days(self, rule_id: str, from_day: date, to_day: date) -> set[date]: ...

    def insert_occurrences(self, rows: list[dict]) -> tuple[list[TaskEntity], list[date]]:
        """Insert generated instances in one batch.

        Returns the created tasks and the days skipped because an instance for
        (recurrence_id, occurrence_day) already existed.
        """
        ...

    def list_tasks(self, user_id: str, filters: TaskFilters) -> list[TaskEntity]: ...


class Clock(Protocol):
    def now(self) -> datetime: ...


class SystemClock:
    """Naive UTC wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc).replace(tzinfo=None)
