"""Recurrence enums."""

from enum import Enum


class RecurrenceFrequency(str, Enum):
    """Cadence of a recurring service."""

    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class RecurrenceStatus(str, Enum):
    """
    Recurrence lifecycle status.

    Flow: active ⇄ paused
          active → cancelled (terminal)
          active → exhausted (terminal, set by the engine)
    """

    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    EXHAUSTED = "exhausted"


TERMINAL_RECURRENCE_STATUSES = frozenset(
    {RecurrenceStatus.CANCELLED, RecurrenceStatus.EXHAUSTED}
)

DEFAULT_RECURRENCE_STATUS = RecurrenceStatus.ACTIVE
