from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from .enums import EndType, TaskPriority, TaskStatus
from .patterns import Pattern


def to_utc_naive(value: datetime) -> datetime:
    """Express ``value`` as a naive UTC datetime; naive input is taken as UTC already."""
    if value.tzinfo is None or value.utcoffset() is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class RecurrenceEntity:
    id: str
    user_id: str
    pattern: Pattern
    start_at: datetime
    end_type: EndType
    end_date: Optional[date]
    end_count: int | None
    title: str
    description: str | None
    duration_minutes: int | None
    priority: TaskPriority
    occurrences_generated: int
    last_generated_at: Optional[datetime]
    is_active: bool
    version: int
    created_at: datetime
    updated_at: datetime

    @property
    def start_date(self) -> date:
        return to_utc_naive(self.start_at).date()

    @property
    def remaining(self) -> int | None:
        """Occurrences left before the count limit, or None when unbounded."""
        if self.end_type != EndType.COUNT or self.end_count is None:
            return None
        return max(self.end_count - self.occurrences_generated, 0)


@dataclass(frozen=True)
class TaskEntity:
    id: str
    user_id: str
    title: str
    description: str | None
    start_at: datetime
    deadline_at: Optional[datetime]
    priority: TaskPriority
    status: TaskStatus
    is_archived: bool
    recurrence_id: str | None
    occurrence_day: Optional[date]
    created_at: datetime
    updated_at: datetime
