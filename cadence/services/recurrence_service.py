from __future__ import annotations

import logging
from datetime import date, datetime

from cadence.config import SETTINGS
from cadence.domain.entities import RecurrenceEntity, to_utc_naive
from cadence.domain.enums import EndType, TaskPriority
from cadence.domain.errors import InvalidRecurrenceError, RecurrenceNotFoundError
from cadence.domain.patterns import build_pattern, pattern_columns
from cadence.domain.ports import Clock, TaskStore
from cadence.engine.expander import Expansion
from cadence.engine.materializer import RecurrenceMaterializer
from cadence.infra.repository import RecurrenceRepository

logger = logging.getLogger(__name__)

PATTERN_FIELDS = (
    "type",
    "interval",
    "interval_unit",
    "weekdays",
    "month_day",
    "month_week",
    "month_weekday",
)
RULE_FIELDS = (
    "start_at",
    "end_type",
    "end_date",
    "end_count",
    "title",
    "description",
    "duration_minutes",
    "priority",
    "is_active",
)


class RecurrenceService:
    def __init__(
        self,
        repo: RecurrenceRepository,
        tasks: TaskStore,
        clock: Clock | None = None,
        horizon_days: int | None = None,
    ) -> None:
        self._repo = repo
        self._materializer = RecurrenceMaterializer(repo, tasks, clock)
        if horizon_days is None:
            horizon_days = SETTINGS.generation_horizon_days
        if horizon_days < 1:
            raise ValueError(f"horizon_days must be positive, got {horizon_days}")
        self._horizon_days = horizon_days

    @property
    def horizon_days(self) -> int:
        return self._horizon_days

    def list_rules(self, user_id: str) -> list[RecurrenceEntity]:
        return self._repo.list_rules(user_id)

    def get_rule(self, user_id: str, rule_id: str) -> RecurrenceEntity:
        rule = self._repo.get(rule_id)
        if not rule or rule.user_id != user_id:
            raise RecurrenceNotFoundError(rule_id)
        return rule

    def create_rule(self, user_id: str, data: dict) -> RecurrenceEntity:
        unknown = set(data) - set(PATTERN_FIELDS) - set(RULE_FIELDS)
        if unknown:
            raise InvalidRecurrenceError(f"Unknown recurrence fields: {', '.join(sorted(unknown))}")
        if not data.get("title") or data.get("start_at") is None:
            raise InvalidRecurrenceError("title and start_at are required")

        values = {
            "end_type": EndType.NEVER.value,
            "priority": TaskPriority.MEDIUM.value,
            "is_active": True,
            **{key: value for key, value in data.items() if key in RULE_FIELDS},
        }
        values.update(self._pattern_values(data))
        values["user_id"] = user_id
        self._validate_rule_fields(values)
        rule = self._repo.create(values)
        logger.info("Created %s recurrence %s for user %s", rule.pattern.type, rule.id, user_id)
        return rule

    def update_rule(self, user_id: str, rule_id: str, data: dict) -> RecurrenceEntity:
        if not data:
            raise InvalidRecurrenceError("No fields to update")
        unknown = set(data) - set(PATTERN_FIELDS) - set(RULE_FIELDS)
        if unknown:
            raise InvalidRecurrenceError(f"Unknown recurrence fields: {', '.join(sorted(unknown))}")

        rule = self.get_rule(user_id, rule_id)
        values = {key: value for key, value in data.items() if key in RULE_FIELDS}
        if any(key in data for key in PATTERN_FIELDS):
            current = pattern_columns(rule.pattern)
            if "type" in data and data["type"] != current["type"]:
                # switching type drops the previous type's parameters
                current = {key: None for key in current} | {"interval": 1}
            values.update(self._pattern_values(current | data))

        merged = self._rule_fields(rule) | values
        self._validate_rule_fields(merged)
        values.update({key: merged[key] for key in values if key in merged})
        updated = self._repo.update(rule_id, values, expected_version=rule.version)
        if not updated:
            raise RecurrenceNotFoundError(rule_id)
        return updated

    def deactivate_rule(self, user_id: str, rule_id: str) -> RecurrenceEntity:
        return self.update_rule(user_id, rule_id, {"is_active": False})

    def activate_rule(self, user_id: str, rule_id: str) -> RecurrenceEntity:
        return self.update_rule(user_id, rule_id, {"is_active": True})

    def delete_rule(self, user_id: str, rule_id: str) -> None:
        self.get_rule(user_id, rule_id)
        self._repo.delete(rule_id)

    def expand_for_owner(self, user_id: str, from_at: datetime, to_at: datetime) -> list[Expansion]:
        """Materialize every active rule of ``user_id`` over the window."""
        from_day, to_day = _as_day(from_at), _as_day(to_at)
        return [
            self._materializer.run(rule, from_day, to_day, self._horizon_days)
            for rule in self._repo.list_active(user_id)
        ]

    def expand_rule(self, user_id: str, rule_id: str, from_at: datetime, to_at: datetime) -> Expansion:
        rule = self.get_rule(user_id, rule_id)
        return self._materializer.run(rule, _as_day(from_at), _as_day(to_at), self._horizon_days)

    @staticmethod
    def _pattern_values(data: dict) -> dict:
        if data.get("type") is None:
            raise InvalidRecurrenceError("type is required")
        pattern = build_pattern(
            data["type"],
            interval=data.get("interval", 1),
            interval_unit=data.get("interval_unit"),
            weekdays=data.get("weekdays"),
            month_day=data.get("month_day"),
            month_week=data.get("month_week"),
            month_weekday=data.get("month_weekday"),
        )
        return pattern_columns(pattern)

    @staticmethod
    def _rule_fields(rule: RecurrenceEntity) -> dict:
        return {
            "start_at": rule.start_at,
            "end_type": rule.end_type.value,
            "end_date": rule.end_date,
            "end_count": rule.end_count,
            "title": rule.title,
            "priority": rule.priority.value,
            "duration_minutes": rule.duration_minutes,
        }

    @staticmethod
    def _validate_rule_fields(values: dict) -> None:
        if not values.get("title"):
            raise InvalidRecurrenceError("title must not be empty")
        if not isinstance(values.get("start_at"), datetime):
            raise InvalidRecurrenceError("start_at must be a datetime")
        values["start_at"] = to_utc_naive(values["start_at"])
        try:
            end_type = EndType(values.get("end_type"))
            values["end_type"] = end_type.value
            values["priority"] = TaskPriority(values.get("priority")).value
        except ValueError as exc:
            raise InvalidRecurrenceError(str(exc)) from exc

        if end_type == EndType.DATE:
            end_date = values.get("end_date")
            if not isinstance(end_date, date):
                raise InvalidRecurrenceError("end_type 'date' requires end_date")
            if isinstance(end_date, datetime):
                values["end_date"] = end_date = to_utc_naive(end_date).date()
            if end_date < values["start_at"].date():
                raise InvalidRecurrenceError("end_date precedes start_at")
        if end_type == EndType.COUNT:
            end_count = values.get("end_count")
            if end_count is None or int(end_count) < 1:
                raise InvalidRecurrenceError("end_type 'count' requires a positive end_count")

        duration = values.get("duration_minutes")
        if duration is not None and int(duration) < 0:
            raise InvalidRecurrenceError("duration_minutes must not be negative")


def _as_day(value: datetime | date) -> date:
    return to_utc_naive(value).date() if isinstance(value, datetime) else value
