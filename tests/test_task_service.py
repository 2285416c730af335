from __future__ import annotations

from datetime import date, datetime

import pytest

from pulse.domain.enums import EditMode, OccurrenceStatus, Priority
from pulse.domain.errors import InvalidOperation, MalformedRule


def create_daily(service, **fields):
    data = {
        "title": "Daily",
        "priority": Priority.HIGH,
        "due_date": date(2026, 1, 1),
        "recurrence_rule": "FREQ=DAILY",
    }
    data.update(fields)
    return service.create_task(data)


def test_recurring_task_marks_the_occurrence_done(service, task_repo, occurrence_repo) -> None:
    task = create_daily(service)

    service.mark_done(task.id)

    assert len(task_repo.tasks) == 1
    assert occurrence_repo.overlay.status_for(task.id, date(2026, 1, 1)) == OccurrenceStatus.COMPLETED
    assert not task_repo.get_task(task.id).is_completed


def test_mark_done_accepts_display_ids(service, occurrence_repo) -> None:
    task = create_daily(service)
    third = service.list_occurrences(date(2026, 1, 1), date(2026, 1, 5))[2]

    service.mark_done(third.id)

    assert third.occurrence_date == date(2026, 1, 3)
    assert occurrence_repo.overlay.for_task(task.id) == {date(2026, 1, 3): OccurrenceStatus.COMPLETED}
    assert service.list_occurrences(date(2026, 1, 1), date(2026, 1, 5))[2].is_completed


def test_mark_undone_clears_the_override(service, occurrence_repo) -> None:
    task = create_daily(service)
    service.mark_done(task.id, date(2026, 1, 2))

    service.mark_undone(task.id, date(2026, 1, 2))

    assert occurrence_repo.overlay.for_task(task.id) == {}


def test_plain_task_completion_sets_timestamp(service) -> None:
    task = service.create_task({"title": "Dentist", "due_date": date(2026, 1, 15)})

    done = service.mark_done(task.id)
    assert done.is_completed
    assert done.completed_at is not None

    undone = service.mark_undone(task.id)
    assert not undone.is_completed
    assert undone.completed_at is None


def test_mark_done_on_missing_task_returns_none(service) -> None:
    assert service.mark_done("missing") is None


def test_skip_occurrence(service, occurrence_repo) -> None:
    task = create_daily(service)

    service.skip_occurrence(task.id, date(2026, 1, 4))

    assert occurrence_repo.overlay.status_for(task.id, date(2026, 1, 4)) == OccurrenceStatus.SKIPPED
    occurrence = service.list_occurrences(date(2026, 1, 4), date(2026, 1, 4))[0]
    assert occurrence.status == OccurrenceStatus.SKIPPED


def test_skip_requires_a_recurring_task(service) -> None:
    task = service.create_task({"title": "Dentist", "due_date": date(2026, 1, 15)})

    with pytest.raises(InvalidOperation):
        service.skip_occurrence(task.id)


def test_recurring_task_needs_an_anchor(service) -> None:
    with pytest.raises(InvalidOperation):
        service.create_task({"title": "Floating", "recurrence_rule": "FREQ=DAILY"})


def test_create_rejects_malformed_rules(service) -> None:
    with pytest.raises(MalformedRule):
        create_daily(service, recurrence_rule="FREQ=HOURLYISH")


def test_create_derives_due_date_from_start_time(service) -> None:
    task = service.create_task({"title": "Call", "start_time": datetime(2026, 1, 5, 15, 0)})

    assert task.due_date == date(2026, 1, 5)


def test_create_normalizes_blank_rules(service) -> None:
    task = service.create_task({"title": "Once", "due_date": date(2026, 1, 5), "recurrence_rule": ""})

    assert task.recurrence_rule is None
    assert not task.is_recurring


def test_resolve_missed_marks_every_open_past_date(service, occurrence_repo) -> None:
    task = create_daily(service, due_date=date(2026, 1, 10))
    service.mark_done(task.id, date(2026, 1, 11))

    missed = service.resolve_missed(task.id, "skipped", reference=date(2026, 1, 15))

    assert missed == [date(2026, 1, 10), date(2026, 1, 12), date(2026, 1, 13), date(2026, 1, 14)]
    assert occurrence_repo.overlay.status_for(task.id, date(2026, 1, 11)) == OccurrenceStatus.COMPLETED
    assert occurrence_repo.overlay.status_for(task.id, date(2026, 1, 14)) == OccurrenceStatus.SKIPPED
    assert service.resolve_missed(task.id, "skipped", reference=date(2026, 1, 15)) == []


def test_resolve_missed_refuses_archiving(service) -> None:
    task = create_daily(service)

    with pytest.raises(InvalidOperation):
        service.resolve_missed(task.id, OccurrenceStatus.ARCHIVED, reference=date(2026, 1, 15))


def test_agenda_for_today(service) -> None:
    task = create_daily(service, due_date=date(2026, 1, 13))
    service.mark_done(task.id, date(2026, 1, 13))

    agenda = service.agenda_for(date(2026, 1, 15))

    assert [o.due_date for o in agenda.active] == [date(2026, 1, 14), date(2026, 1, 15)]
    assert agenda.completed == []


def test_edit_occurrence_by_display_id(service, task_repo) -> None:
    task = create_daily(service)
    fifth = service.list_occurrences(date(2026, 1, 1), date(2026, 1, 10))[4]

    result = service.edit_occurrence(fifth.id, {"title": "Later"}, mode="following")

    assert result.mode == EditMode.FOLLOWING
    assert result.created.due_date == date(2026, 1, 5)
    assert result.created.title == "Later"
    assert task_repo.get_task(task.id).recurrence_rule == "FREQ=DAILY;UNTIL=20260104T235959"


def test_delete_occurrence_by_display_id(service, occurrence_repo) -> None:
    task = create_daily(service)
    second = service.list_occurrences(date(2026, 1, 1), date(2026, 1, 3))[1]

    result = service.delete_occurrence(second.id)

    assert result.mode == EditMode.SINGLE
    dates = [o.occurrence_date for o in service.list_occurrences(date(2026, 1, 1), date(2026, 1, 3))]
    assert dates == [date(2026, 1, 1), date(2026, 1, 3)]
    assert occurrence_repo.overlay.status_for(task.id, date(2026, 1, 2)) == OccurrenceStatus.ARCHIVED


def test_detach_occurrence_needs_a_date(service) -> None:
    task = create_daily(service)

    with pytest.raises(InvalidOperation):
        service.detach_occurrence(task.id)

    result = service.detach_occurrence(task.id, date(2026, 1, 3), {"title": "Special"})
    assert result.created.title == "Special"


def test_update_task_rewrites_the_series(service) -> None:
    task = create_daily(service, start_time=datetime(2026, 1, 1, 9, 0), end_time=datetime(2026, 1, 1, 9, 15))

    updated = service.update_task(task.id, {"start_time": datetime(2026, 1, 6, 18, 0)})

    assert updated.start_time == datetime(2026, 1, 1, 18, 0)
    assert updated.end_time == datetime(2026, 1, 1, 18, 15)


def test_update_missing_task_returns_none(service) -> None:
    assert service.update_task("missing", {"title": "X"}) is None


def test_delete_and_restore(service, task_repo) -> None:
    task = create_daily(service)

    service.delete_task(task.id)
    assert service.list_occurrences(date(2026, 1, 1), date(2026, 1, 3)) == []

    service.restore_task(task.id)
    assert len(service.list_occurrences(date(2026, 1, 1), date(2026, 1, 3))) == 3


def test_next_occurrence_date(service) -> None:
    task = create_daily(service)

    assert service.next_occurrence_date(task.id, date(2026, 1, 20)) == date(2026, 1, 21)
    assert service.next_occurrence_date("missing") is None
