from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import and_, case, insert, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from cadence.domain.entities import RecurrenceEntity, TaskEntity
from cadence.domain.enums import EndType, TaskPriority, TaskStatus
from cadence.domain.errors import PersistenceError, RecurrenceNotFoundError, StaleRecurrenceError
from cadence.domain.filters import TaskFilters
from cadence.domain.patterns import InertPattern, build_pattern

from .db import SessionLocal
from .models import RecurrenceModel, TaskModel, new_id, utcnow

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _to_rule(model: RecurrenceModel) -> RecurrenceEntity:
    pattern = build_pattern(
        model.type,
        interval=model.interval,
        interval_unit=model.interval_unit,
        weekdays=model.weekdays,
        month_day=model.month_day,
        month_week=model.month_week,
        month_weekday=model.month_weekday,
        strict=False,
    )
    if isinstance(pattern, InertPattern):
        logger.warning("Recurrence %s never fires: %s", model.id, pattern.reason)
    return RecurrenceEntity(
        id=model.id,
        user_id=model.user_id,
        pattern=pattern,
        start_at=model.start_at,
        end_type=EndType(model.end_type),
        end_date=model.end_date,
        end_count=model.end_count,
        title=model.title,
        description=model.description,
        duration_minutes=model.duration_minutes,
        priority=TaskPriority(model.priority),
        occurrences_generated=model.occurrences_generated,
        last_generated_at=model.last_generated_at,
        is_active=model.is_active,
        version=model.version,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _to_task(model: TaskModel) -> TaskEntity:
    return TaskEntity(
        id=model.id,
        user_id=model.user_id,
        title=model.title,
        description=model.description,
        start_at=model.start_at,
        deadline_at=model.deadline_at,
        priority=TaskPriority(model.priority),
        status=TaskStatus(model.status),
        is_archived=model.is_archived,
        recurrence_id=model.recurrence_id,
        occurrence_day=model.occurrence_day,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _apply_filters(stmt, user_id: str, filters: TaskFilters) -> object:
    stmt = stmt.where(
        TaskModel.user_id == user_id,
        TaskModel.deleted_at.is_(None),
        TaskModel.is_archived.is_(filters.archived),
    )
    if filters.from_at is not None:
        stmt = stmt.where(TaskModel.start_at >= filters.from_at)
    if filters.to_at is not None:
        stmt = stmt.where(TaskModel.start_at <= filters.to_at)
    if filters.status:
        stmt = stmt.where(TaskModel.status == filters.status.value)
    if filters.priority:
        stmt = stmt.where(TaskModel.priority == filters.priority.value)
    if filters.search:
        stmt = stmt.where(TaskModel.title.ilike(f"%{filters.search}%"))
    return stmt


class RecurrenceRepository:
    def __init__(self, session_factory=SessionLocal) -> None:
        self._session_factory = session_factory

    def list_active(self, user_id: str) -> list[RecurrenceEntity]:
        with self._session_factory() as session:
            stmt = (
                select(RecurrenceModel)
                .where(RecurrenceModel.user_id == user_id, RecurrenceModel.is_active.is_(True))
                .order_by(RecurrenceModel.created_at.asc())
            )
            return [_to_rule(rule) for rule in session.scalars(stmt)]

    def list_rules(self, user_id: str) -> list[RecurrenceEntity]:
        with self._session_factory() as session:
            stmt = (
                select(RecurrenceModel)
                .where(RecurrenceModel.user_id == user_id)
                .order_by(RecurrenceModel.created_at.desc())
            )
            return [_to_rule(rule) for rule in session.scalars(stmt)]

    def get(self, rule_id: str) -> Optional[RecurrenceEntity]:
        with self._session_factory() as session:
            rule = session.get(RecurrenceModel, rule_id)
            return _to_rule(rule) if rule else None

    def create(self, data: dict) -> RecurrenceEntity:
        with self._session_factory() as session:
            rule = RecurrenceModel(**data)
            session.add(rule)
            session.commit()
            session.refresh(rule)
            return _to_rule(rule)

    def update(
        self, rule_id: str, data: dict, expected_version: int | None = None
    ) -> Optional[RecurrenceEntity]:
        with self._session_factory() as session:
            rule = session.get(RecurrenceModel, rule_id)
            if not rule:
                return None
            if expected_version is not None and rule.version != expected_version:
                raise StaleRecurrenceError(rule_id, expected_version, rule.version)
            read_version = rule.version
            for key, value in data.items():
                setattr(rule, key, value)
            try:
                session.commit()
            except StaleDataError as exc:
                session.rollback()
                raise StaleRecurrenceError(rule_id, read_version) from exc
            session.refresh(rule)
            return _to_rule(rule)

    def delete(self, rule_id: str) -> None:
        with self._session_factory() as session:
            rule = session.get(RecurrenceModel, rule_id)
            if not rule:
                return
            session.delete(rule)
            session.commit()

    def advance_progress(self, rule_id: str, count_added: int, now: datetime) -> None:
        advanced = RecurrenceModel.occurrences_generated + count_added
        # the counter never passes end_count, even when expansions race
        capped = case(
            (
                and_(
                    RecurrenceModel.end_type == EndType.COUNT.value,
                    RecurrenceModel.end_count.is_not(None),
                    advanced > RecurrenceModel.end_count,
                ),
                RecurrenceModel.end_count,
            ),
            else_=advanced,
        )
        stmt = (
            update(RecurrenceModel)
            .where(RecurrenceModel.id == rule_id)
            .values(
                occurrences_generated=capped,
                last_generated_at=now,
                updated_at=now,
                version=RecurrenceModel.version + 1,
            )
        )
        with self._session_factory() as session:
            try:
                result = session.execute(stmt)
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise PersistenceError(f"Failed to record progress for recurrence {rule_id}") from exc
        if result.rowcount == 0:
            raise RecurrenceNotFoundError(rule_id)


class TaskRepository:
    def __init__(self, session_factory=SessionLocal) -> None:
        self._session_factory = session_factory

    def list_tasks(self, user_id: str, filters: TaskFilters) -> list[TaskEntity]:
        with self._session_factory() as session:
            stmt = select(TaskModel)
            stmt = _apply_filters(stmt, user_id, filters)
            stmt = stmt.order_by(TaskModel.start_at.asc(), TaskModel.created_at.asc())
            return [_to_task(task) for task in session.scalars(stmt)]

    def get_task(self, task_id: str) -> Optional[TaskEntity]:
        with self._session_factory() as session:
            task = session.get(TaskModel, task_id)
            if not task or task.deleted_at is not None:
                return None
            return _to_task(task)

    def create_task(self, data: dict) -> TaskEntity:
        with self._session_factory() as session:
            task = TaskModel(**data)
            session.add(task)
            session.commit()
            session.refresh(task)
            return _to_task(task)

    def update_task(self, task_id: str, data: dict) -> Optional[TaskEntity]:
        with self._session_factory() as session:
            task = session.get(TaskModel, task_id)
            if not task or task.deleted_at is not None:
                return None
            for key, value in data.items():
                setattr(task, key, value)
            session.commit()
            session.refresh(task)
            return _to_task(task)

    def delete_task(self, task_id: str) -> None:
        with self._session_factory() as session:
            task = session.get(TaskModel, task_id)
            if not task or task.deleted_at is not None:
                return
            task.deleted_at = utcnow()
            session.commit()

    def occurrence_days(self, rule_id: str, from_day: date, to_day: date) -> set[date]:
        with self._session_factory() as session:
            stmt = select(TaskModel.occurrence_day).where(
                TaskModel.recurrence_id == rule_id,
                TaskModel.occurrence_day.between(from_day, to_day),
            )
            return set(session.scalars(stmt))

    def insert_occurrences(self, rows: list[dict]) -> tuple[list[TaskEntity], list[date]]:
        if not rows:
            return [], []

        now = utcnow()
        created_ids: list[str] = []
        skipped: list[date] = []
        with self._session_factory() as session:
            try:
                for row in rows:
                    values = {"id": new_id(), "created_at": now, "updated_at": now, **row}
                    if self._insert_occurrence(session, values):
                        created_ids.append(values["id"])
                    else:
                        skipped.append(values["occurrence_day"])
                session.commit()
            except SQLAlchemyError as exc:
                session.rollback()
                raise PersistenceError("Failed to store generated tasks") from exc

            if not created_ids:
                return [], skipped
            stmt = (
                select(TaskModel)
                .where(TaskModel.id.in_(created_ids))
                .order_by(TaskModel.start_at.asc())
            )
            return [_to_task(task) for task in session.scalars(stmt)], skipped

    @staticmethod
    def _insert_occurrence(session, values: dict) -> bool:
        """Insert one generated instance; False when its (rule, day) slot is taken."""
        dialect = session.get_bind().dialect.name
        upsert_insert = _UPSERT_INSERTS.get(dialect)
        if upsert_insert is not None:
            stmt = (
                upsert_insert(TaskModel)
                .values(**values)
                .on_conflict_do_nothing(index_elements=["recurrence_id", "occurrence_day"])
                .returning(TaskModel.id)
            )
            return session.execute(stmt).scalar_one_or_none() is not None

        try:
            with session.begin_nested():
                session.execute(insert(TaskModel).values(**values))
        except IntegrityError:
            exists = session.scalar(
                select(TaskModel.id).where(
                    TaskModel.recurrence_id == values["recurrence_id"],
                    TaskModel.occurrence_day == values["occurrence_day"],
                )
            )
            if exists is None:
                raise
            return False
        return True
