from __future__ import annotations

import argparse
import logging
import sys
from datetime import date, datetime, time

from cadence.domain.errors import CadenceError
from cadence.infra.db import init_db
from cadence.infra.logging import setup_logging
from cadence.infra.repository import RecurrenceRepository, TaskRepository
from cadence.services.recurrence_service import RecurrenceService

logger = logging.getLogger(__name__)


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {number}")
    return number


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Materialize recurring tasks for a date window")
    ap.add_argument("--user", required=True, help="owner whose active recurrences are expanded")
    ap.add_argument("--from", dest="from_day", required=True, type=date.fromisoformat, help="YYYY-MM-DD")
    ap.add_argument("--to", dest="to_day", required=True, type=date.fromisoformat, help="YYYY-MM-DD")
    ap.add_argument("--horizon", type=_positive_int, default=None, help="maximum days expanded per rule")
    ap.add_argument("--log-level", default=None)
    return ap.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    setup_logging(args.log_level)
    try:
        init_db()
    except Exception as exc:  # noqa: BLE001
        logger.error("Database check failed: %s", exc)
        return 1

    service = RecurrenceService(RecurrenceRepository(), TaskRepository(), horizon_days=args.horizon)
    try:
        expansions = service.expand_for_owner(
            args.user,
            datetime.combine(args.from_day, time.min),
            datetime.combine(args.to_day, time.max),
        )
    except CadenceError as exc:
        logger.error("Expansion failed: %s", exc)
        return 1

    for expansion in expansions:
        note = " (truncated at horizon)" if expansion.truncated else ""
        print(
            f"{expansion.rule_id}: {expansion.created} created, "
            f"{expansion.window_from}..{expansion.window_to}{note}"
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
