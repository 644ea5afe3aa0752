from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid4())


class RecurrenceModel(Base):
    __tablename__ = "recurrences"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(128), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    interval = Column(Integer, nullable=False, default=1)
    interval_unit = Column(String(10), nullable=True)
    weekdays = Column(String(80), nullable=True)
    month_day = Column(Integer, nullable=True)
    month_week = Column(Integer, nullable=True)
    month_weekday = Column(String(10), nullable=True)
    end_type = Column(String(10), nullable=False, default="never")
    end_date = Column(Date, nullable=True)
    end_count = Column(Integer, nullable=True)
    start_at = Column(DateTime, nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    priority = Column(String(10), nullable=False, default="medium")
    occurrences_generated = Column(Integer, nullable=False, default=0)
    last_generated_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # ORM updates carry "WHERE version = :read_version" and bump it
    __mapper_args__ = {"version_id_col": version}


class TaskModel(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        # one instance per rule per day; authoritative duplicate guard
        UniqueConstraint("recurrence_id", "occurrence_day", name="uq_tasks_recurrence_day"),
        Index("ix_tasks_user_start", "user_id", "start_at"),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(128), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    start_at = Column(DateTime, nullable=False)
    deadline_at = Column(DateTime, nullable=True)
    priority = Column(String(10), nullable=False, default="medium")
    status = Column(String(20), nullable=False, default="planned", index=True)
    is_archived = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(DateTime, nullable=True)
    recurrence_id = Column(String(36), nullable=True, index=True)
    occurrence_day = Column(Date, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
