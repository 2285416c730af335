from __future__ import annotations

import argparse
import logging
import sys
from datetime import date

from pulse.config import SETTINGS
from pulse.domain.entities import DayAgenda
from pulse.infra.db import init_db
from pulse.infra.logging import setup_logging
from pulse.infra.repository import OccurrenceRepository, TaskRepository
from pulse.services.task_service import TaskService

logger = logging.getLogger(__name__)


def build_service() -> TaskService:
    return TaskService(
        TaskRepository(),
        OccurrenceRepository(),
        lookback_days=SETTINGS.overdue_lookback_days,
    )


def _print_agenda(agenda: DayAgenda) -> None:
    for occurrence in agenda.active:
        when = occurrence.start_time.strftime("%H:%M") if occurrence.start_time else "--:--"
        print(f"[ ] {occurrence.due_date} {when}  {occurrence.task.title}  ({occurrence.id})")
    for occurrence in agenda.completed:
        print(f"[x] {occurrence.due_date}        {occurrence.task.title}  ({occurrence.id})")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="pulse", description="Show the task agenda for a day.")
    parser.add_argument("--date", type=date.fromisoformat, default=None, help="YYYY-MM-DD, defaults to today")
    parser.add_argument("--create-schema", action="store_true", help="create tables without alembic")
    args = parser.parse_args(argv)

    log_path = setup_logging()
    try:
        init_db(create_schema=args.create_schema)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Database is not reachable")
        print(f"DB error: {exc}", file=sys.stderr)
        return 1

    logger.info("Logging to %s", log_path)
    service = build_service()
    _print_agenda(service.agenda_for(args.date or date.today()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
