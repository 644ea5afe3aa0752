from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from .enums import TaskPriority, TaskStatus


@dataclass(frozen=True)
class TaskFilters:
    from_at: Optional[datetime] = None
    to_at: Optional[datetime] = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    archived: bool = False
    search: str | None = None

    @property
    def is_window(self) -> bool:
        return self.from_at is not None and self.to_at is not None
