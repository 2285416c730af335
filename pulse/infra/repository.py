from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date, datetime, time
from typing import Optional

from sqlalchemy import and_, delete, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from pulse.domain.entities import TaskEntity
from pulse.domain.enums import OccurrenceStatus, Priority
from pulse.domain.errors import StorageFailure
from pulse.domain.overlay import OccurrenceOverlay

from .db import SessionLocal
from .models import OccurrenceModel, TaskModel, utcnow

logger = logging.getLogger(__name__)


def _to_entity(model: TaskModel) -> TaskEntity:
    return TaskEntity(
        id=model.id,
        title=model.title,
        description=model.description,
        priority=Priority(model.priority),
        due_date=model.due_date,
        start_time=model.start_time,
        end_time=model.end_time,
        recurrence_rule=model.recurrence_rule,
        is_completed=model.is_completed,
        completed_at=model.completed_at,
        project_id=model.project_id,
        parent_id=model.parent_id,
        user_id=model.user_id,
        sort_order=model.sort_order,
        created_at=model.created_at,
        updated_at=model.updated_at,
        deleted_at=model.deleted_at,
    )


@contextmanager
def _session_scope(factory: sessionmaker) -> Iterator[Session]:
    try:
        with factory() as session:
            yield session
    except SQLAlchemyError as exc:
        logger.exception("Storage operation failed")
        raise StorageFailure(str(exc)) from exc


class TaskRepository:
    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def list_tasks_in_window(self, range_start: date, range_end: date) -> list[TaskEntity]:
        window_start = datetime.combine(range_start, time.min)
        window_end = datetime.combine(range_end, time.max)
        with _session_scope(self._session_factory) as session:
            stmt = (
                select(TaskModel)
                .where(TaskModel.deleted_at.is_(None))
                .where(
                    or_(
                        and_(
                            TaskModel.recurrence_rule.is_not(None),
                            or_(TaskModel.due_date <= range_end, TaskModel.start_time <= window_end),
                        ),
                        TaskModel.due_date.between(range_start, range_end),
                        TaskModel.start_time.between(window_start, window_end),
                    )
                )
                .order_by(
                    TaskModel.sort_order.asc(),
                    TaskModel.due_date.asc(),
                    TaskModel.created_at.asc(),
                )
            )
            return [_to_entity(task) for task in session.scalars(stmt)]

    def get_task(self, task_id: str) -> Optional[TaskEntity]:
        with _session_scope(self._session_factory) as session:
            task = session.get(TaskModel, task_id)
            return _to_entity(task) if task else None

    def create_task(self, data: dict) -> TaskEntity:
        with _session_scope(self._session_factory) as session:
            task = TaskModel(**data)
            session.add(task)
            session.commit()
            session.refresh(task)
            return _to_entity(task)

    def update_task(self, task_id: str, data: dict) -> Optional[TaskEntity]:
        with _session_scope(self._session_factory) as session:
            task = session.get(TaskModel, task_id)
            if not task:
                return None
            for key, value in data.items():
                setattr(task, key, value)
            session.commit()
            session.refresh(task)
            return _to_entity(task)

    def delete_task(self, task_id: str) -> None:
        with _session_scope(self._session_factory) as session:
            task = session.get(TaskModel, task_id)
            if not task or task.deleted_at is not None:
                return
            task.deleted_at = utcnow()
            session.commit()

    def restore_task(self, task_id: str) -> Optional[TaskEntity]:
        return self.update_task(task_id, {"deleted_at": None})


class OccurrenceRepository:
    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self._session_factory = session_factory

    def list_overrides(
        self,
        task_ids: Iterable[str],
        range_start: date | None = None,
        range_end: date | None = None,
    ) -> OccurrenceOverlay:
        ids = list(task_ids)
        if not ids:
            return OccurrenceOverlay()
        with _session_scope(self._session_factory) as session:
            stmt = select(OccurrenceModel).where(OccurrenceModel.task_id.in_(ids))
            if range_start is not None:
                stmt = stmt.where(OccurrenceModel.original_date >= range_start)
            if range_end is not None:
                stmt = stmt.where(OccurrenceModel.original_date <= range_end)
            return OccurrenceOverlay.from_rows(
                (row.task_id, row.original_date, row.status) for row in session.scalars(stmt)
            )

    def set_status(self, task_id: str, day: date, status: OccurrenceStatus) -> None:
        self.set_statuses(task_id, [day], status)

    def set_statuses(self, task_id: str, days: Iterable[date], status: OccurrenceStatus) -> None:
        value = OccurrenceStatus(status).value
        with _session_scope(self._session_factory) as session:
            for day in dict.fromkeys(days):
                existing = session.scalar(
                    select(OccurrenceModel).where(
                        OccurrenceModel.task_id == task_id,
                        OccurrenceModel.original_date == day,
                    )
                )
                if existing:
                    existing.status = value
                else:
                    session.add(OccurrenceModel(task_id=task_id, original_date=day, status=value))
            session.commit()

    def clear_status(self, task_id: str, day: date) -> None:
        with _session_scope(self._session_factory) as session:
            session.execute(
                delete(OccurrenceModel).where(
                    OccurrenceModel.task_id == task_id,
                    OccurrenceModel.original_date == day,
                )
            )
            session.commit()
