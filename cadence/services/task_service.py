from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import date, datetime

from cadence.domain.entities import TaskEntity, to_utc_naive
from cadence.domain.enums import TaskPriority, TaskStatus
from cadence.domain.errors import TaskNotFoundError
from cadence.domain.filters import TaskFilters
from cadence.engine.expander import Expansion
from cadence.infra.repository import TaskRepository

from .recurrence_service import RecurrenceService

EDITABLE_FIELDS = ("title", "description", "start_at", "deadline_at", "priority", "status", "is_archived")


@dataclass(frozen=True)
class TaskListing:
    """Tasks read back for a query, plus the recurrence expansions run for it.

    When the generation horizon cut a window short, recurring tasks after
    ``expanded_to`` may not exist yet; querying again from that day fills them in.
    """

    tasks: list[TaskEntity]
    expansions: list[Expansion] = field(default_factory=list)

    @property
    def truncated(self) -> bool:
        return any(expansion.truncated for expansion in self.expansions)

    @property
    def expanded_to(self) -> date | None:
        ends = [expansion.window_to for expansion in self.expansions if expansion.truncated]
        return min(ends) if ends else None


class TaskService:
    def __init__(self, repo: TaskRepository, recurrences: RecurrenceService) -> None:
        self._repo = repo
        self._recurrences = recurrences

    def list_tasks(self, user_id: str, filters: TaskFilters) -> TaskListing:
        """List the owner's tasks, materializing recurrences for a bounded window first."""
        if filters.from_at is not None:
            filters = replace(filters, from_at=to_utc_naive(filters.from_at))
        if filters.to_at is not None:
            filters = replace(filters, to_at=to_utc_naive(filters.to_at))

        expansions: list[Expansion] = []
        if filters.is_window:
            expansions = self._recurrences.expand_for_owner(user_id, filters.from_at, filters.to_at)
        return TaskListing(tasks=self._repo.list_tasks(user_id, filters), expansions=expansions)

    def get_task(self, user_id: str, task_id: str) -> TaskEntity:
        task = self._repo.get_task(task_id)
        if not task or task.user_id != user_id:
            raise TaskNotFoundError(task_id)
        return task

    def create_task(self, user_id: str, data: dict) -> TaskEntity:
        normalized = self._normalize_data(data)
        if not normalized.get("title") or not isinstance(normalized.get("start_at"), datetime):
            raise ValueError("title and start_at are required")
        normalized.setdefault("status", TaskStatus.PLANNED.value)
        normalized.setdefault("priority", TaskPriority.MEDIUM.value)
        normalized["user_id"] = user_id
        return self._repo.create_task(normalized)

    def update_task(self, user_id: str, task_id: str, data: dict) -> TaskEntity:
        self.get_task(user_id, task_id)
        task = self._repo.update_task(task_id, self._normalize_data(data))
        if not task:
            raise TaskNotFoundError(task_id)
        return task

    def archive_task(self, user_id: str, task_id: str) -> TaskEntity:
        return self.update_task(user_id, task_id, {"is_archived": True})

    def delete_task(self, user_id: str, task_id: str) -> None:
        self.get_task(user_id, task_id)
        self._repo.delete_task(task_id)

    def _normalize_data(self, data: dict) -> dict:
        unknown = set(data) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown task fields: {', '.join(sorted(unknown))}")
        normalized = dict(data)
        if "status" in normalized:
            normalized["status"] = TaskStatus(normalized["status"]).value
        if "priority" in normalized:
            normalized["priority"] = TaskPriority(normalized["priority"]).value
        for key in ("start_at", "deadline_at"):
            if isinstance(normalized.get(key), datetime):
                normalized[key] = to_utc_naive(normalized[key])
        return normalized
