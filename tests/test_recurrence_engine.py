"""Tests for the pure recurrence engine."""

from datetime import date, datetime, time, timedelta, timezone

import pytest

from fieldservice.core.errors import ValidationError
from fieldservice.db.enums import RecurrenceFrequency
from fieldservice.db.models import Recurrence
from fieldservice.services.recurrence_engine import (
    EXHAUSTED,
    RecurrenceRule,
    compute_next_execution,
    occurrence_window,
    preview_occurrences,
    rule_from_recurrence,
    validate_rule,
)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


def make_rule(frequency=RecurrenceFrequency.WEEKLY, **overrides) -> RecurrenceRule:
    fields = dict(
        frequency=frequency,
        time_of_day=time(9, 0),
        duration_minutes=60,
        start_date=date(2026, 1, 1),
        day_of_week=0 if frequency != RecurrenceFrequency.MONTHLY else None,
    )
    fields.update(overrides)
    return RecurrenceRule(**fields)


# =============================================================================
# Weekly
# =============================================================================

def test_weekly_same_day_before_time_of_day():
    # 2026-03-02 is a Monday
    assert compute_next_execution(make_rule(), utc(2026, 3, 2, 8, 0)) == utc(2026, 3, 2, 9, 0)


def test_weekly_reference_equal_to_occurrence_advances_one_week():
    assert compute_next_execution(make_rule(), utc(2026, 3, 2, 9, 0)) == utc(2026, 3, 9, 9, 0)


def test_weekly_picks_next_matching_weekday():
    rule = make_rule(day_of_week=4)  # Friday
    assert compute_next_execution(rule, utc(2026, 3, 4, 12, 0)) == utc(2026, 3, 6, 9, 0)


def test_weekly_never_before_start_date():
    rule = make_rule(start_date=date(2026, 6, 1))
    assert compute_next_execution(rule, utc(2026, 3, 2, 8, 0)) == utc(2026, 6, 1, 9, 0)


def test_naive_reference_is_treated_as_utc():
    assert compute_next_execution(make_rule(), datetime(2026, 3, 2, 8, 0)) == utc(2026, 3, 2, 9, 0)


# =============================================================================
# Biweekly
# =============================================================================

def test_biweekly_is_anchored_to_start_date():
    # Anchor: first Monday on/after 2026-01-01 is 2026-01-05; then every 14 days
    rule = make_rule(RecurrenceFrequency.BIWEEKLY)
    assert compute_next_execution(rule, utc(2026, 3, 2, 8, 0)) == utc(2026, 3, 2, 9, 0)
    assert compute_next_execution(rule, utc(2026, 3, 2, 9, 0)) == utc(2026, 3, 16, 9, 0)
    # Off-week Monday is skipped
    assert compute_next_execution(rule, utc(2026, 3, 9, 8, 0)) == utc(2026, 3, 16, 9, 0)


def test_biweekly_before_anchor_returns_anchor():
    rule = make_rule(RecurrenceFrequency.BIWEEKLY, start_date=date(2026, 3, 4))
    assert compute_next_execution(rule, utc(2026, 2, 1)) == utc(2026, 3, 9, 9, 0)


# =============================================================================
# Monthly
# =============================================================================

def test_monthly_day_31_in_february_clamps_to_28th():
    rule = make_rule(RecurrenceFrequency.MONTHLY, day_of_month=31)
    assert compute_next_execution(rule, utc(2026, 2, 1)) == utc(2026, 2, 28, 9, 0)


def test_monthly_day_31_in_leap_february_clamps_to_29th():
    rule = make_rule(RecurrenceFrequency.MONTHLY, day_of_month=31, start_date=date(2028, 1, 1))
    assert compute_next_execution(rule, utc(2028, 2, 1)) == utc(2028, 2, 29, 9, 0)


def test_monthly_step_reclamps_from_configured_day():
    rule = make_rule(RecurrenceFrequency.MONTHLY, day_of_month=31)
    assert compute_next_execution(rule, utc(2026, 2, 28, 9, 0)) == utc(2026, 3, 31, 9, 0)
    assert compute_next_execution(rule, utc(2026, 3, 31, 9, 0)) == utc(2026, 4, 30, 9, 0)


def test_monthly_day_already_passed_moves_to_next_month():
    rule = make_rule(RecurrenceFrequency.MONTHLY, day_of_month=15)
    assert compute_next_execution(rule, utc(2026, 3, 20)) == utc(2026, 4, 15, 9, 0)


def test_monthly_rolls_over_year_end():
    rule = make_rule(RecurrenceFrequency.MONTHLY, day_of_month=10)
    assert compute_next_execution(rule, utc(2026, 12, 10, 9, 0)) == utc(2027, 1, 10, 9, 0)


# =============================================================================
# End date / exhaustion
# =============================================================================

def test_end_date_is_inclusive():
    rule = make_rule(end_date=date(2026, 3, 2))
    assert compute_next_execution(rule, utc(2026, 3, 2, 8, 0)) == utc(2026, 3, 2, 9, 0)


def test_occurrence_after_end_date_is_exhausted():
    rule = make_rule(end_date=date(2026, 3, 2))
    assert compute_next_execution(rule, utc(2026, 3, 2, 9, 0)) is EXHAUSTED


def test_end_date_before_first_occurrence_is_exhausted():
    rule = make_rule(start_date=date(2026, 3, 3), end_date=date(2026, 3, 8))
    assert compute_next_execution(rule, utc(2026, 3, 1)) is EXHAUSTED


# =============================================================================
# Timezones
# =============================================================================

def test_time_of_day_is_company_wall_clock():
    rule = make_rule(timezone="America/New_York")
    # 09:00 EST is 14:00 UTC; the local date at 00:00 UTC is still Sunday
    first = compute_next_execution(rule, utc(2026, 3, 2, 0, 0))
    assert first == utc(2026, 3, 2, 14, 0)
    # DST starts 2026-03-08: 09:00 EDT is 13:00 UTC
    assert compute_next_execution(rule, first) == utc(2026, 3, 9, 13, 0)


# =============================================================================
# Properties
# =============================================================================

def test_compute_is_deterministic():
    rule = make_rule(RecurrenceFrequency.BIWEEKLY, day_of_week=3)
    reference = utc(2026, 5, 17, 22, 30)
    assert compute_next_execution(rule, reference) == compute_next_execution(rule, reference)


@pytest.mark.parametrize(
    "rule",
    [
        make_rule(),
        make_rule(RecurrenceFrequency.BIWEEKLY, day_of_week=6),
        make_rule(RecurrenceFrequency.MONTHLY, day_of_month=30),
        make_rule(RecurrenceFrequency.MONTHLY, day_of_month=29, timezone="Europe/Berlin"),
    ],
)
def test_next_execution_is_strictly_after_reference(rule):
    reference = utc(2026, 1, 1)
    for _ in range(30):
        next_execution = compute_next_execution(rule, reference)
        assert next_execution > reference
        reference = next_execution


def test_preview_stops_at_end_date():
    rule = make_rule(end_date=date(2026, 3, 20))
    assert preview_occurrences(rule, utc(2026, 3, 1), 10) == [
        utc(2026, 3, 2, 9, 0),
        utc(2026, 3, 9, 9, 0),
        utc(2026, 3, 16, 9, 0),
    ]


def test_occurrence_window_is_half_open_duration():
    start = utc(2026, 3, 2, 9, 0)
    assert occurrence_window(start, 90) == (start, start + timedelta(minutes=90))


def test_rule_from_recurrence_accepts_legacy_frequency():
    recurrence = Recurrence(
        frequency="Monthly",
        day_of_month=31,
        time_of_day=time(7, 30),
        duration_minutes=45,
        start_date=date(2026, 1, 1),
    )
    rule = rule_from_recurrence(recurrence, "Europe/Lisbon")
    assert rule.frequency == RecurrenceFrequency.MONTHLY
    assert rule.timezone == "Europe/Lisbon"
    assert rule.day_of_month == 31


def test_rule_from_recurrence_rejects_unknown_stored_frequency():
    recurrence = Recurrence(
        frequency="yearly",
        time_of_day=time(7, 30),
        duration_minutes=45,
        start_date=date(2026, 1, 1),
    )
    with pytest.raises(ValidationError):
        rule_from_recurrence(recurrence)


# =============================================================================
# Validation
# =============================================================================

@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"day_of_week": None}, "day_of_week"),
        ({"day_of_week": 7}, "day_of_week"),
        ({"frequency": RecurrenceFrequency.MONTHLY, "day_of_month": 0}, "day_of_month"),
        ({"duration_minutes": 0}, "duration_minutes"),
        ({"duration_minutes": 24 * 60 + 1}, "duration_minutes"),
        ({"end_date": date(2025, 12, 31)}, "end_date"),
        ({"timezone": "Mars/Olympus_Mons"}, "timezone"),
    ],
)
def test_validate_rule_rejects_bad_rules(overrides, message):
    rule = make_rule(**overrides)
    with pytest.raises(ValidationError, match=message):
        validate_rule(rule)


def test_validate_rule_accepts_good_rule():
    validate_rule(make_rule(RecurrenceFrequency.MONTHLY, day_of_month=31))
