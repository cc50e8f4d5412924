"""Tests for recurrence creation and lifecycle transitions."""

from datetime import date, datetime, time, timezone

import pytest

from fieldservice.core.errors import InvalidStateTransition, NotFoundError, ValidationError
from fieldservice.db.enums import AppointmentStatus, RecurrenceStatus, ResourceKind
from fieldservice.db.models import Appointment
from fieldservice.services import materialization_service, recurrence_service, resource_service

# Sunday evening before the first Monday occurrence
NOW = datetime(2026, 3, 1, 20, 0, tzinfo=timezone.utc)


def create(db, company, team, **overrides):
    fields = dict(
        title="Weekly office clean",
        frequency="weekly",
        day_of_week=0,
        time_of_day=time(9, 0),
        duration_minutes=120,
        start_date=date(2026, 1, 1),
        team_id=team.id,
        now=NOW,
    )
    fields.update(overrides)
    return recurrence_service.create_recurrence(db, company.id, **fields)


def test_create_computes_first_next_execution(db, company, team):
    recurrence = create(db, company, team)

    assert recurrence.status == RecurrenceStatus.ACTIVE.value
    assert recurrence.next_execution == datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)
    assert recurrence.last_execution is None


def test_create_accepts_legacy_frequency_code(db, company, team):
    recurrence = create(db, company, team, frequency=2, day_of_week=None, day_of_month=31)

    assert recurrence.frequency == "monthly"
    assert recurrence.next_execution == datetime(2026, 3, 31, 9, 0, tzinfo=timezone.utc)


def test_create_with_past_end_date_is_exhausted(db, company, team):
    recurrence = create(db, company, team, end_date=date(2026, 2, 1))

    assert recurrence.status == RecurrenceStatus.EXHAUSTED.value
    assert recurrence.next_execution is None


def test_create_requires_a_target(db, company, team):
    with pytest.raises(ValidationError):
        create(db, company, team, team_id=None)


def test_create_rejects_bad_rule(db, company, team):
    with pytest.raises(ValidationError):
        create(db, company, team, frequency="monthly", day_of_week=None, day_of_month=None)


def test_create_rejects_unknown_frequency(db, company, team):
    with pytest.raises(ValidationError):
        create(db, company, team, frequency="daily")


def test_create_rejects_inactive_team(db, company, team):
    resource_service.deactivate_resource(db, company.id, ResourceKind.TEAM, team.id)

    with pytest.raises(ValidationError):
        create(db, company, team)


def test_create_rejects_team_of_another_company(db, team, company_factory):
    other = company_factory(name="Other")

    with pytest.raises(NotFoundError):
        create(db, other, team)


def test_pause_and_resume_skips_paused_period(db, company, team):
    recurrence = create(db, company, team)

    paused = recurrence_service.pause_recurrence(db, company.id, recurrence.id)
    assert paused.status == RecurrenceStatus.PAUSED.value

    resumed = recurrence_service.resume_recurrence(
        db, company.id, recurrence.id, now=datetime(2026, 3, 18, tzinfo=timezone.utc)
    )

    assert resumed.status == RecurrenceStatus.ACTIVE.value
    assert resumed.next_execution == datetime(2026, 3, 23, 9, 0, tzinfo=timezone.utc)


def test_paused_recurrence_does_not_materialize(db, company, team):
    recurrence = create(db, company, team)
    recurrence_service.pause_recurrence(db, company.id, recurrence.id)

    result = materialization_service.materialize(
        db, recurrence.id, now=datetime(2026, 3, 2, 9, tzinfo=timezone.utc)
    )

    assert result.outcome == materialization_service.MaterializationOutcome.NOT_DUE


def test_resume_after_end_date_exhausts(db, company, team):
    recurrence = create(db, company, team, end_date=date(2026, 3, 10))
    recurrence_service.pause_recurrence(db, company.id, recurrence.id)

    resumed = recurrence_service.resume_recurrence(
        db, company.id, recurrence.id, now=datetime(2026, 4, 1, tzinfo=timezone.utc)
    )

    assert resumed.status == RecurrenceStatus.EXHAUSTED.value


def test_resume_requires_paused(db, company, team):
    recurrence = create(db, company, team)

    with pytest.raises(InvalidStateTransition):
        recurrence_service.resume_recurrence(db, company.id, recurrence.id, now=NOW)


def test_cancel_keeps_existing_appointments(db, company, team):
    recurrence = create(db, company, team)
    created = materialization_service.materialize(
        db, recurrence.id, now=datetime(2026, 3, 2, 9, tzinfo=timezone.utc)
    )

    cancelled = recurrence_service.cancel_recurrence(db, company.id, recurrence.id)

    assert cancelled.status == RecurrenceStatus.CANCELLED.value
    assert cancelled.next_execution is None
    appointment = db.query(Appointment).filter(Appointment.id == created.appointment_id).one()
    assert appointment.status == AppointmentStatus.SCHEDULED.value


def test_cancel_paused_recurrence(db, company, team):
    recurrence = create(db, company, team)
    recurrence_service.pause_recurrence(db, company.id, recurrence.id)

    assert (
        recurrence_service.cancel_recurrence(db, company.id, recurrence.id).status
        == RecurrenceStatus.CANCELLED.value
    )


@pytest.mark.parametrize("terminal", [RecurrenceStatus.CANCELLED, RecurrenceStatus.EXHAUSTED])
def test_nothing_leaves_a_terminal_status(db, company, recurrence_factory, terminal):
    recurrence = recurrence_factory(status=terminal.value, next_execution=None)

    with pytest.raises(InvalidStateTransition):
        recurrence_service.pause_recurrence(db, company.id, recurrence.id)
    with pytest.raises(InvalidStateTransition):
        recurrence_service.resume_recurrence(db, company.id, recurrence.id, now=NOW)
    with pytest.raises(InvalidStateTransition):
        recurrence_service.cancel_recurrence(db, company.id, recurrence.id)


def test_preview_starts_with_pending_occurrence(db, company, team):
    recurrence = create(db, company, team)

    occurrences = recurrence_service.preview_recurrence(db, company.id, recurrence.id, count=3)

    assert occurrences == [
        datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc),
        datetime(2026, 3, 9, 9, 0, tzinfo=timezone.utc),
        datetime(2026, 3, 16, 9, 0, tzinfo=timezone.utc),
    ]


def test_preview_of_cancelled_recurrence_is_empty(db, company, team):
    recurrence = create(db, company, team)
    recurrence_service.cancel_recurrence(db, company.id, recurrence.id)

    assert recurrence_service.preview_recurrence(db, company.id, recurrence.id) == []


def test_list_recurrences_filters_by_status(db, company, team):
    active = create(db, company, team)
    paused = create(db, company, team, title="Fortnightly", frequency="biweekly")
    recurrence_service.pause_recurrence(db, company.id, paused.id)

    items, total = recurrence_service.list_recurrences(
        db, company.id, status=RecurrenceStatus.ACTIVE
    )

    assert total == 1
    assert items[0].id == active.id


def test_get_recurrence_is_company_scoped(db, company, team, company_factory):
    recurrence = create(db, company, team)
    other = company_factory(name="Other")

    with pytest.raises(NotFoundError):
        recurrence_service.get_recurrence(db, other.id, recurrence.id)
