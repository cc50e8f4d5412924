"""Mapping from legacy status/type encodings to the closed enums.

The source schema stored some columns as integer codes (declaration order of
the original enums) and others as PascalCase strings. Everything persisted by
this service uses the lowercase enum ``.value``; this table is only consulted
when parsing inbound values.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import TypeVar

from fieldservice.db.enums.appointments import (
    AppointmentKind,
    AppointmentStatus,
    RefundStatus,
)
from fieldservice.db.enums.entities import EntityStatus
from fieldservice.db.enums.plans import PlanStatus, SubscriptionStatus
from fieldservice.db.enums.recurrences import RecurrenceFrequency, RecurrenceStatus

E = TypeVar("E", bound=Enum)


LEGACY_INTEGER_CODES: dict[type[Enum], dict[int, Enum]] = {
    RecurrenceFrequency: {
        0: RecurrenceFrequency.WEEKLY,
        1: RecurrenceFrequency.BIWEEKLY,
        2: RecurrenceFrequency.MONTHLY,
    },
    RecurrenceStatus: {
        0: RecurrenceStatus.ACTIVE,
        1: RecurrenceStatus.PAUSED,
        2: RecurrenceStatus.CANCELLED,
        3: RecurrenceStatus.EXHAUSTED,
    },
    RefundStatus: {
        0: RefundStatus.NONE,
        1: RefundStatus.PENDING,
        2: RefundStatus.PROCESSED,
        3: RefundStatus.DENIED,
    },
    PlanStatus: {
        0: PlanStatus.ACTIVE,
        1: PlanStatus.INACTIVE,
    },
    SubscriptionStatus: {
        0: SubscriptionStatus.ACTIVE,
        1: SubscriptionStatus.EXPIRED,
        2: SubscriptionStatus.CANCELLED,
    },
    EntityStatus: {
        0: EntityStatus.ACTIVE,
        1: EntityStatus.INACTIVE,
    },
}

# Free-text spellings seen in the source data that don't normalize cleanly
LEGACY_ALIASES: dict[type[Enum], dict[str, Enum]] = {
    RecurrenceFrequency: {
        "bi_weekly": RecurrenceFrequency.BIWEEKLY,
        "fortnightly": RecurrenceFrequency.BIWEEKLY,
    },
    AppointmentStatus: {
        "pending": AppointmentStatus.SCHEDULED,
        "started": AppointmentStatus.IN_PROGRESS,
        "done": AppointmentStatus.COMPLETED,
        "canceled": AppointmentStatus.CANCELLED,
    },
    AppointmentKind: {
        "single": AppointmentKind.ONE_TIME,
        "unique": AppointmentKind.ONE_TIME,
        "recurrent": AppointmentKind.RECURRING,
    },
    RecurrenceStatus: {
        "canceled": RecurrenceStatus.CANCELLED,
    },
    EntityStatus: {
        "inativo": EntityStatus.INACTIVE,
        "ativo": EntityStatus.ACTIVE,
    },
}

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def _normalize_text(raw: str) -> str:
    """``InProgress`` / ``in-progress`` / ``IN PROGRESS`` → ``in_progress``."""
    value = _CAMEL_BOUNDARY.sub("_", raw.strip())
    return re.sub(r"[\s\-]+", "_", value).lower()


def coerce_enum(enum_cls: type[E], raw: object) -> E:
    """Parse a current or legacy encoding into ``enum_cls``.

    Raises:
        ValueError: value has no mapping for this enum.
    """
    if isinstance(raw, enum_cls):
        return raw
    if isinstance(raw, bool):
        raise ValueError(f"Invalid {enum_cls.__name__}: {raw!r}")
    if isinstance(raw, int):
        mapped = LEGACY_INTEGER_CODES.get(enum_cls, {}).get(raw)
        if mapped is None:
            raise ValueError(f"Unknown {enum_cls.__name__} code: {raw}")
        return mapped  # type: ignore[return-value]
    if isinstance(raw, str):
        text = raw.strip()
        if text.isdigit():
            return coerce_enum(enum_cls, int(text))
        normalized = _normalize_text(text)
        try:
            return enum_cls(normalized)
        except ValueError:
            alias = LEGACY_ALIASES.get(enum_cls, {}).get(normalized)
            if alias is None:
                raise ValueError(f"Unknown {enum_cls.__name__}: {raw!r}") from None
            return alias  # type: ignore[return-value]
    raise ValueError(f"Invalid {enum_cls.__name__}: {raw!r}")
