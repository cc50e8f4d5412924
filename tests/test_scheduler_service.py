"""Tests for the periodic scheduler pass."""

from datetime import date, datetime, time, timezone

from fieldservice.core.errors import NotFoundError, PersistenceError
from fieldservice.db.enums import RecurrenceStatus
from fieldservice.db.models import Appointment
from fieldservice.services import materialization_service, scheduler_service

DUE = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def no_sleep(seconds):
    pass


def test_select_due_recurrences_only_active_and_due(db, recurrence_factory):
    due = recurrence_factory()
    recurrence_factory(status=RecurrenceStatus.PAUSED.value)
    recurrence_factory(status=RecurrenceStatus.EXHAUSTED.value, next_execution=None)
    recurrence_factory(next_execution=datetime(2026, 3, 9, 9, tzinfo=timezone.utc))

    assert scheduler_service.select_due_recurrences(db, DUE) == [due.id]


def test_run_creates_one_appointment_per_due_recurrence(db, session_factory, recurrence_factory):
    recurrence = recurrence_factory()

    summary = scheduler_service.run_due_recurrences(session_factory, now=DUE, sleep=no_sleep)

    assert summary["due"] == 1
    assert summary["created"] == 1
    assert summary["failed"] == 0
    db.refresh(recurrence)
    assert recurrence.next_execution > DUE


def test_two_passes_in_the_same_tick_are_idempotent(db, session_factory, recurrence_factory):
    recurrence = recurrence_factory()

    scheduler_service.run_due_recurrences(session_factory, now=DUE, sleep=no_sleep)
    second = scheduler_service.run_due_recurrences(session_factory, now=DUE, sleep=no_sleep)

    assert second["due"] == 0
    count = (
        db.query(Appointment)
        .filter(Appointment.source_recurrence_id == recurrence.id)
        .count()
    )
    assert count == 1


def test_exhausted_recurrence_is_not_selected_again(db, session_factory, recurrence_factory):
    recurrence = recurrence_factory(end_date=date(2026, 3, 2))

    first = scheduler_service.run_due_recurrences(session_factory, now=DUE, sleep=no_sleep)
    later = scheduler_service.run_due_recurrences(
        session_factory, now=datetime(2026, 4, 1, tzinfo=timezone.utc), sleep=no_sleep
    )

    assert first["created"] == 1
    db.refresh(recurrence)
    assert recurrence.status == RecurrenceStatus.EXHAUSTED.value
    assert later["due"] == 0


def test_conflicting_recurrences_in_one_pass(db, session_factory, recurrence_factory):
    recurrence_factory(title="First")
    recurrence_factory(title="Second")

    summary = scheduler_service.run_due_recurrences(session_factory, now=DUE, sleep=no_sleep)

    assert summary["created"] == 1
    assert summary["skipped_conflict"] == 1


def test_persistence_error_is_retried_with_backoff(session_factory, recurrence_factory, monkeypatch):
    recurrence_factory()
    real_materialize = materialization_service.materialize
    calls = []
    delays = []

    def flaky(db, recurrence_id, now=None, deadline=None):
        calls.append(recurrence_id)
        if len(calls) < 3:
            raise PersistenceError("database unavailable")
        return real_materialize(db, recurrence_id, now=now, deadline=deadline)

    monkeypatch.setattr(materialization_service, "materialize", flaky)

    summary = scheduler_service.run_due_recurrences(
        session_factory, now=DUE, max_retries=3, backoff_seconds=0.5, sleep=delays.append
    )

    assert summary["created"] == 1
    assert len(calls) == 3
    assert delays == [0.5, 1.0]


def test_retry_budget_exhausted_counts_as_failed(session_factory, recurrence_factory, monkeypatch):
    recurrence_factory()

    def always_down(db, recurrence_id, now=None, deadline=None):
        raise PersistenceError("database unavailable")

    monkeypatch.setattr(materialization_service, "materialize", always_down)

    summary = scheduler_service.run_due_recurrences(
        session_factory, now=DUE, max_retries=2, sleep=no_sleep
    )

    assert summary["failed"] == 1
    assert summary["created"] == 0


def test_non_transient_error_skips_only_that_recurrence(session_factory, recurrence_factory, monkeypatch):
    broken = recurrence_factory(title="Broken")
    recurrence_factory(
        title="Fine",
        time_of_day=time(15, 0),
        next_execution=datetime(2026, 3, 2, 15, tzinfo=timezone.utc),
    )
    real_materialize = materialization_service.materialize

    def sometimes_missing(db, recurrence_id, now=None, deadline=None):
        if recurrence_id == broken.id:
            raise NotFoundError("Company", 0)
        return real_materialize(db, recurrence_id, now=now, deadline=deadline)

    monkeypatch.setattr(materialization_service, "materialize", sometimes_missing)

    summary = scheduler_service.run_due_recurrences(
        session_factory, now=datetime(2026, 3, 2, 16, tzinfo=timezone.utc), sleep=no_sleep
    )

    assert summary["due"] == 2
    assert summary["failed"] == 1
    assert summary["created"] == 1


def test_batch_size_limits_the_pass(session_factory, recurrence_factory):
    for hour in (6, 8, 10):
        recurrence_factory(next_execution=datetime(2026, 3, 2, hour, tzinfo=timezone.utc))

    summary = scheduler_service.run_due_recurrences(
        session_factory,
        now=datetime(2026, 3, 2, 12, tzinfo=timezone.utc),
        batch_size=2,
        sleep=no_sleep,
    )

    assert summary["due"] == 2


def test_unreadable_frequency_skips_only_that_recurrence(db, session_factory, recurrence_factory):
    recurrence_factory(
        title="Imported",
        frequency="yearly",
        next_execution=datetime(2026, 3, 2, 8, tzinfo=timezone.utc),
    )
    healthy = recurrence_factory(title="Healthy")

    summary = scheduler_service.run_due_recurrences(session_factory, now=DUE, sleep=no_sleep)

    assert summary["due"] == 2
    assert summary["failed"] == 1
    assert summary["created"] == 1
    count = db.query(Appointment).filter(Appointment.source_recurrence_id == healthy.id).count()
    assert count == 1
