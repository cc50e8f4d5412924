"""Recurrence engine - pure occurrence computation for recurring services.

Given a recurrence rule and a reference instant, computes the next
occurrence strictly after the reference, or EXHAUSTED once the rule's end
date has passed. No I/O: the same rule and reference always produce the same
answer, which is what makes scheduler retries idempotent.

Occurrences are wall-clock times in the company's timezone, returned as UTC.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dateutil.relativedelta import relativedelta

from fieldservice.core.errors import ValidationError
from fieldservice.db.enums import RecurrenceFrequency, coerce_enum
from fieldservice.db.models import Recurrence

MAX_DURATION_MINUTES = 24 * 60


class _Exhausted(Enum):
    EXHAUSTED = "exhausted"


EXHAUSTED = _Exhausted.EXHAUSTED
NextExecution = datetime | Literal[_Exhausted.EXHAUSTED]


# =============================================================================
# Types
# =============================================================================

@dataclass(frozen=True)
class RecurrenceRule:
    """Cadence/time template that generates occurrences."""
    frequency: RecurrenceFrequency
    time_of_day: time
    duration_minutes: int
    start_date: date
    day_of_week: int | None = None  # Monday=0, Sunday=6
    day_of_month: int | None = None  # 1-31, clamped to month length
    end_date: date | None = None  # Inclusive
    timezone: str = "UTC"


def rule_from_recurrence(recurrence: Recurrence, tz_name: str = "UTC") -> RecurrenceRule:
    """
    Build the engine's value object from a persisted recurrence.

    Raises:
        ValidationError: stored frequency has no mapping.
    """
    try:
        frequency = coerce_enum(RecurrenceFrequency, recurrence.frequency)
    except ValueError as exc:
        raise ValidationError(f"Recurrence {recurrence.id}: {exc}") from exc
    return RecurrenceRule(
        frequency=frequency,
        time_of_day=recurrence.time_of_day,
        duration_minutes=recurrence.duration_minutes,
        start_date=recurrence.start_date,
        day_of_week=recurrence.day_of_week,
        day_of_month=recurrence.day_of_month,
        end_date=recurrence.end_date,
        timezone=tz_name,
    )


# =============================================================================
# Validation
# =============================================================================

def validate_rule(rule: RecurrenceRule) -> None:
    """
    Reject rules the engine cannot evaluate.

    Raises:
        ValidationError: describing the first problem found.
    """
    if rule.frequency in (RecurrenceFrequency.WEEKLY, RecurrenceFrequency.BIWEEKLY):
        if rule.day_of_week is None or not 0 <= rule.day_of_week <= 6:
            raise ValidationError(
                f"{rule.frequency.value} recurrence requires day_of_week between 0 and 6"
            )
    elif rule.frequency == RecurrenceFrequency.MONTHLY:
        if rule.day_of_month is None or not 1 <= rule.day_of_month <= 31:
            raise ValidationError("monthly recurrence requires day_of_month between 1 and 31")

    if not 0 < rule.duration_minutes <= MAX_DURATION_MINUTES:
        raise ValidationError(
            f"duration_minutes must be between 1 and {MAX_DURATION_MINUTES}"
        )
    if rule.end_date is not None and rule.end_date < rule.start_date:
        raise ValidationError("end_date cannot be before start_date")
    _get_timezone(rule.timezone)


def _get_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValidationError(f"Unknown timezone: {name}") from exc


# =============================================================================
# Calendar helpers
# =============================================================================

def _clamped_day(year: int, month: int, day_of_month: int) -> date:
    """Day 31 in a 30-day month is the 30th; in February the 28th/29th."""
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day_of_month, last_day))


def _first_on_or_after(rule: RecurrenceRule, day: date) -> date:
    """Earliest date >= day that matches the rule's cadence."""
    if rule.frequency == RecurrenceFrequency.WEEKLY:
        return day + timedelta(days=(rule.day_of_week - day.weekday()) % 7)

    if rule.frequency == RecurrenceFrequency.BIWEEKLY:
        # Anchor: first matching weekday on/after start_date; valid dates are anchor + 14k
        anchor = rule.start_date + timedelta(
            days=(rule.day_of_week - rule.start_date.weekday()) % 7
        )
        if day <= anchor:
            return anchor
        periods = -(-(day - anchor).days // 14)
        return anchor + timedelta(days=14 * periods)

    candidate = _clamped_day(day.year, day.month, rule.day_of_month)
    if candidate >= day:
        return candidate
    following = date(day.year, day.month, 1) + relativedelta(months=1)
    return _clamped_day(following.year, following.month, rule.day_of_month)


def _step(rule: RecurrenceRule, day: date) -> date:
    """One cadence step forward from a matching date."""
    if rule.frequency == RecurrenceFrequency.WEEKLY:
        return day + timedelta(days=7)
    if rule.frequency == RecurrenceFrequency.BIWEEKLY:
        return day + timedelta(days=14)
    # Re-clamp from the configured day so Feb 28 → Mar 31, not Mar 28
    following = date(day.year, day.month, 1) + relativedelta(months=1)
    return _clamped_day(following.year, following.month, rule.day_of_month)


def _at_time_of_day(day: date, time_of_day: time, tz: ZoneInfo) -> datetime:
    local = datetime.combine(day, time_of_day.replace(tzinfo=None), tzinfo=tz)
    return local.astimezone(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# Public API
# =============================================================================

def compute_next_execution(rule: RecurrenceRule, reference: datetime) -> NextExecution:
    """
    Next occurrence strictly after ``reference``, or EXHAUSTED.

    The search starts at the reference's local date (never before
    start_date). A candidate that is not strictly later than the reference
    is pushed one cadence step forward, so a poll tick can never re-trigger
    the same instant.
    """
    tz = _get_timezone(rule.timezone)
    reference = _as_utc(reference)

    day = max(reference.astimezone(tz).date(), rule.start_date)
    day = _first_on_or_after(rule, day)
    candidate = _at_time_of_day(day, rule.time_of_day, tz)
    while candidate <= reference:
        day = _step(rule, day)
        candidate = _at_time_of_day(day, rule.time_of_day, tz)

    if rule.end_date is not None and day > rule.end_date:
        return EXHAUSTED
    return candidate


def occurrence_window(start: datetime, duration_minutes: int) -> tuple[datetime, datetime]:
    """Half-open [start, end) window for one occurrence."""
    return start, start + timedelta(minutes=duration_minutes)


def preview_occurrences(
    rule: RecurrenceRule,
    reference: datetime,
    count: int,
) -> list[datetime]:
    """Up to ``count`` upcoming occurrences after ``reference``."""
    occurrences: list[datetime] = []
    cursor = reference
    while len(occurrences) < count:
        next_execution = compute_next_execution(rule, cursor)
        if next_execution is EXHAUSTED:
            break
        occurrences.append(next_execution)
        cursor = next_execution
    return occurrences
