"""Plan, subscription and quota enums."""

from enum import Enum


class PlanStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class SubscriptionStatus(str, Enum):
    """At most one ``active`` subscription per company at any instant."""

    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class ResourceKind(str, Enum):
    """Resource kinds limited by a plan."""

    CUSTOMER = "customer"
    PROFESSIONAL = "professional"
    TEAM = "team"
    APPOINTMENT = "appointment"
