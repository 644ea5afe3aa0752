from __future__ import annotations

from datetime import date, datetime

import pytest

from cadence.domain.enums import TaskStatus
from cadence.domain.errors import TaskNotFoundError
from cadence.domain.filters import TaskFilters
from cadence.infra.repository import RecurrenceRepository, TaskRepository
from cadence.services.recurrence_service import RecurrenceService
from cadence.services.task_service import TaskService


class SpyRecurrences:
    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def expand_for_owner(self, user_id: str, from_at: datetime, to_at: datetime) -> list:
        self.calls.append((user_id, from_at, to_at))
        return []


@pytest.fixture()
def service(session_factory, clock) -> TaskService:
    tasks = TaskRepository(session_factory)
    recurrences = RecurrenceService(RecurrenceRepository(session_factory), tasks, clock=clock, horizon_days=120)
    return TaskService(tasks, recurrences)


def test_listing_a_window_materializes_recurrences(service, session_factory, clock) -> None:
    recurrences = RecurrenceService(
        RecurrenceRepository(session_factory), TaskRepository(session_factory), clock=clock
    )
    recurrences.create_rule(
        "user-1",
        {
            "type": "monthly",
            "month_week": -1,
            "month_weekday": "friday",
            "start_at": datetime(2024, 1, 1, 10, 0),
            "title": "Invoices",
            "duration_minutes": 60,
        },
    )

    tasks = service.list_tasks(
        "user-1", TaskFilters(from_at=datetime(2024, 3, 1), to_at=datetime(2024, 3, 31, 23, 59))
    ).tasks

    assert [task.start_at for task in tasks] == [datetime(2024, 3, 29, 10, 0)]
    assert tasks[0].deadline_at == datetime(2024, 3, 29, 11, 0)
    assert tasks[0].status == TaskStatus.PLANNED


def test_listing_without_window_does_not_expand(session_factory) -> None:
    spy = SpyRecurrences()
    service = TaskService(TaskRepository(session_factory), spy)

    service.list_tasks("user-1", TaskFilters(from_at=datetime(2024, 1, 1)))

    assert spy.calls == []


def test_listing_window_expands_before_reading(session_factory) -> None:
    spy = SpyRecurrences()
    service = TaskService(TaskRepository(session_factory), spy)
    window = TaskFilters(from_at=datetime(2024, 1, 1), to_at=datetime(2024, 1, 7))

    service.list_tasks("user-1", window)

    assert spy.calls == [("user-1", datetime(2024, 1, 1), datetime(2024, 1, 7))]


def test_one_off_task_lifecycle(service) -> None:
    task = service.create_task("user-1", {"title": "Dentist", "start_at": datetime(2024, 1, 9, 14, 0)})
    assert task.status == TaskStatus.PLANNED
    assert task.recurrence_id is None

    done = service.update_task("user-1", task.id, {"status": "done"})
    assert done.status == TaskStatus.DONE

    archived = service.archive_task("user-1", task.id)
    assert archived.is_archived
    assert service.list_tasks("user-1", TaskFilters(archived=True)).tasks[0].id == task.id

    service.delete_task("user-1", task.id)
    with pytest.raises(TaskNotFoundError):
        service.get_task("user-1", task.id)


def test_tasks_are_scoped_to_owner(service) -> None:
    task = service.create_task("user-1", {"title": "Private", "start_at": datetime(2024, 1, 9)})
    with pytest.raises(TaskNotFoundError):
        service.get_task("user-2", task.id)


def test_one_off_tasks_may_share_a_day(service) -> None:
    for title in ("A", "B"):
        service.create_task("user-1", {"title": title, "start_at": datetime(2024, 1, 9, 8, 0)})

    listed = service.list_tasks("user-1", TaskFilters(from_at=datetime(2024, 1, 9), to_at=datetime(2024, 1, 9, 23, 59))).tasks
    assert {task.title for task in listed} == {"A", "B"}
    assert all(task.occurrence_day is None for task in listed)


def test_create_task_requires_title_and_start(service) -> None:
    with pytest.raises(ValueError):
        service.create_task("user-1", {"title": "", "start_at": datetime(2024, 1, 9)})
    with pytest.raises(ValueError):
        service.create_task("user-1", {"title": "No date", "start_at": date(2024, 1, 9)})


def test_listing_reports_horizon_truncation(session_factory, clock) -> None:
    tasks = TaskRepository(session_factory)
    recurrences = RecurrenceService(RecurrenceRepository(session_factory), tasks, clock=clock, horizon_days=7)
    service = TaskService(tasks, recurrences)
    recurrences.create_rule(
        "user-1", {"type": "daily", "start_at": datetime(2024, 1, 1, 8, 0), "title": "Stretch"}
    )

    listing = service.list_tasks("user-1", TaskFilters(from_at=datetime(2024, 1, 1), to_at=datetime(2024, 6, 30)))

    assert listing.truncated
    assert listing.expanded_to == date(2024, 1, 7)
    assert len(listing.tasks) == 7


def test_listing_within_horizon_is_not_truncated(service) -> None:
    listing = service.list_tasks("user-1", TaskFilters(from_at=datetime(2024, 1, 1), to_at=datetime(2024, 1, 7)))
    assert not listing.truncated
    assert listing.expanded_to is None
