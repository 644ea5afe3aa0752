from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from cadence.domain.entities import RecurrenceEntity  # noqa: E402
from cadence.domain.enums import EndType, TaskPriority  # noqa: E402
from cadence.domain.patterns import DailyPattern  # noqa: E402
from cadence.infra import models  # noqa: E402,F401
from cadence.infra.db import Base  # noqa: E402


class FixedClock:
    def __init__(self, now: datetime) -> None:
        self.current = now

    def now(self) -> datetime:
        return self.current


def make_rule(**overrides) -> RecurrenceEntity:
    values = {
        "id": "rule-1",
        "user_id": "user-1",
        "pattern": DailyPattern(),
        "start_at": datetime(2024, 1, 1, 9, 0),
        "end_type": EndType.NEVER,
        "end_date": None,
        "end_count": None,
        "title": "Standup",
        "description": "Daily sync",
        "duration_minutes": 15,
        "priority": TaskPriority.HIGH,
        "occurrences_generated": 0,
        "last_generated_at": None,
        "is_active": True,
        "version": 1,
        "created_at": datetime(2023, 12, 20),
        "updated_at": datetime(2023, 12, 20),
    }
    values.update(overrides)
    return RecurrenceEntity(**values)


@pytest.fixture()
def clock() -> FixedClock:
    return FixedClock(datetime(2024, 1, 15, 12, 0))


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    engine.dispose()
