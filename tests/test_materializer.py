from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

import pytest

from cadence.domain.entities import RecurrenceEntity, TaskEntity
from cadence.domain.enums import EndType, IntervalUnit, TaskPriority, TaskStatus
from cadence.domain.errors import PersistenceError
from cadence.domain.patterns import CustomPattern
from cadence.engine.materializer import RecurrenceMaterializer

from conftest import make_rule


class FakeRuleStore:
    def __init__(self, *rules: RecurrenceEntity) -> None:
        self.rules = {rule.id: rule for rule in rules}

    def list_active(self, user_id: str) -> list[RecurrenceEntity]:
        return [r for r in self.rules.values() if r.user_id == user_id and r.is_active]

    def get(self, rule_id: str) -> RecurrenceEntity | None:
        return self.rules.get(rule_id)

    def advance_progress(self, rule_id: str, count_added: int, now: datetime) -> None:
        rule = self.rules[rule_id]
        self.rules[rule_id] = replace(
            rule,
            occurrences_generated=rule.occurrences_generated + count_added,
            last_generated_at=now,
            version=rule.version + 1,
        )


class FakeTaskStore:
    def __init__(self) -> None:
        self.tasks: list[TaskEntity] = []
        self.fail_inserts = False
        self.race_days: set[date] = set()
        self.lookups: list[tuple[date, date]] = []
        self._id = 1

    def occurrence_days(self, rule_id: str, from_day: date, to_day: date) -> set[date]:
        self.lookups.append((from_day, to_day))
        return {
            t.occurrence_day
            for t in self.tasks
            if t.recurrence_id == rule_id and from_day <= t.occurrence_day <= to_day
        }

    def insert_occurrences(self, rows: list[dict]) -> tuple[list[TaskEntity], list[date]]:
        if self.fail_inserts:
            raise PersistenceError("store unreachable")
        created, skipped = [], []
        for row in rows:
            taken = {(t.recurrence_id, t.occurrence_day) for t in self.tasks}
            if row["occurrence_day"] in self.race_days or (row["recurrence_id"], row["occurrence_day"]) in taken:
                skipped.append(row["occurrence_day"])
                continue
            task = TaskEntity(
                id=str(self._id),
                user_id=row["user_id"],
                title=row["title"],
                description=row["description"],
                start_at=row["start_at"],
                deadline_at=row["deadline_at"],
                priority=TaskPriority(row["priority"]),
                status=TaskStatus(row["status"]),
                is_archived=False,
                recurrence_id=row["recurrence_id"],
                occurrence_day=row["occurrence_day"],
                created_at=datetime(2024, 1, 15),
                updated_at=datetime(2024, 1, 15),
            )
            self._id += 1
            created.append(task)
        self.tasks.extend(created)
        return created, skipped


def _run(materializer, rules, rule_id, from_day, to_day, horizon=120):
    return materializer.run(rules.get(rule_id), from_day, to_day, horizon)


def test_materialized_instance_copies_template(clock) -> None:
    rules, tasks = FakeRuleStore(make_rule()), FakeTaskStore()
    materializer = RecurrenceMaterializer(rules, tasks, clock)

    expansion = _run(materializer, rules, "rule-1", date(2024, 1, 2), date(2024, 1, 2))

    assert expansion.created == 1
    task = tasks.tasks[0]
    assert task.start_at == datetime(2024, 1, 2, 9, 0)
    assert task.deadline_at == datetime(2024, 1, 2, 9, 15)
    assert task.title == "Standup"
    assert task.description == "Daily sync"
    assert task.priority == TaskPriority.HIGH
    assert task.status == TaskStatus.PLANNED
    assert task.recurrence_id == "rule-1"
    assert rules.get("rule-1").occurrences_generated == 1
    assert rules.get("rule-1").last_generated_at == clock.now()


def test_deadline_absent_without_duration(clock) -> None:
    rules, tasks = FakeRuleStore(make_rule(duration_minutes=None)), FakeTaskStore()
    _run(RecurrenceMaterializer(rules, tasks, clock), rules, "rule-1", date(2024, 1, 2), date(2024, 1, 2))
    assert tasks.tasks[0].deadline_at is None


def test_expanding_twice_is_idempotent(clock) -> None:
    rules, tasks = FakeRuleStore(make_rule()), FakeTaskStore()
    materializer = RecurrenceMaterializer(rules, tasks, clock)

    first = _run(materializer, rules, "rule-1", date(2024, 1, 1), date(2024, 1, 7))
    second = _run(materializer, rules, "rule-1", date(2024, 1, 1), date(2024, 1, 7))

    assert first.created == 7
    assert second.created == 0
    assert len(tasks.tasks) == 7
    assert rules.get("rule-1").occurrences_generated == 7


def test_count_bound_across_overlapping_windows(clock) -> None:
    rules = FakeRuleStore(make_rule(end_type=EndType.COUNT, end_count=3))
    tasks = FakeTaskStore()
    materializer = RecurrenceMaterializer(rules, tasks, clock)

    _run(materializer, rules, "rule-1", date(2024, 1, 2), date(2024, 1, 3))
    _run(materializer, rules, "rule-1", date(2024, 1, 1), date(2024, 1, 10))
    _run(materializer, rules, "rule-1", date(2024, 2, 1), date(2024, 2, 28))
    fourth = _run(materializer, rules, "rule-1", date(2024, 1, 1), date(2024, 3, 31))

    assert len(tasks.tasks) == 3
    assert fourth.created == 0
    assert rules.get("rule-1").occurrences_generated == 3


def test_date_bound(clock) -> None:
    rules = FakeRuleStore(make_rule(end_type=EndType.DATE, end_date=date(2024, 1, 5)))
    tasks = FakeTaskStore()
    _run(RecurrenceMaterializer(rules, tasks, clock), rules, "rule-1", date(2024, 1, 1), date(2024, 1, 31))
    assert max(t.start_at.date() for t in tasks.tasks) == date(2024, 1, 5)


def test_inactive_rule_is_never_expanded(clock) -> None:
    rules, tasks = FakeRuleStore(make_rule(is_active=False)), FakeTaskStore()
    expansion = _run(RecurrenceMaterializer(rules, tasks, clock), rules, "rule-1", date(2024, 1, 1), date(2024, 1, 7))
    assert expansion.created == 0
    assert tasks.tasks == []


def test_duplicate_race_is_dropped_not_raised(clock) -> None:
    rules, tasks = FakeRuleStore(make_rule()), FakeTaskStore()
    tasks.race_days = {date(2024, 1, 2)}
    expansion = _run(RecurrenceMaterializer(rules, tasks, clock), rules, "rule-1", date(2024, 1, 1), date(2024, 1, 3))

    assert expansion.dates == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]
    assert expansion.created == 2
    assert rules.get("rule-1").occurrences_generated == 2


def test_persistence_failure_propagates_without_progress(clock) -> None:
    rules, tasks = FakeRuleStore(make_rule()), FakeTaskStore()
    tasks.fail_inserts = True

    with pytest.raises(PersistenceError):
        _run(RecurrenceMaterializer(rules, tasks, clock), rules, "rule-1", date(2024, 1, 1), date(2024, 1, 3))

    assert rules.get("rule-1").occurrences_generated == 0
    assert rules.get("rule-1").last_generated_at is None


def test_truncated_window_is_reported(clock) -> None:
    rules, tasks = FakeRuleStore(make_rule()), FakeTaskStore()
    start = date(2024, 1, 1)
    expansion = _run(RecurrenceMaterializer(rules, tasks, clock), rules, "rule-1", start, start + timedelta(days=59), horizon=14)

    assert expansion.truncated
    assert expansion.created == 14


def test_existing_days_are_looked_up_within_horizon_only(clock) -> None:
    rules, tasks = FakeRuleStore(make_rule()), FakeTaskStore()
    start = date(2024, 1, 1)
    _run(RecurrenceMaterializer(rules, tasks, clock), rules, "rule-1", start, date(2026, 12, 31), horizon=14)

    assert tasks.lookups == [(start, date(2024, 1, 14))]


def test_aware_anchor_keeps_utc_time_of_day(clock) -> None:
    anchor = datetime(2024, 1, 1, 1, 0, tzinfo=timezone(timedelta(hours=5)))
    rules = FakeRuleStore(make_rule(start_at=anchor, pattern=CustomPattern(interval=24, unit=IntervalUnit.HOURS)))
    tasks = FakeTaskStore()

    _run(RecurrenceMaterializer(rules, tasks, clock), rules, "rule-1", date(2023, 12, 31), date(2024, 1, 1))

    assert [t.start_at for t in tasks.tasks] == [datetime(2023, 12, 31, 20, 0), datetime(2024, 1, 1, 20, 0)]
