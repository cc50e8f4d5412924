"""SQLAlchemy ORM models.

Models carry foreign keys but no relationship() navigation: services load
related rows explicitly by id.
"""

from fieldservice.db.models.appointments import Appointment, Cancellation
from fieldservice.db.models.jobs import Job
from fieldservice.db.models.plans import Plan, PlanSubscription
from fieldservice.db.models.recurrences import Recurrence
from fieldservice.db.models.tenants import Company, Customer, Professional, Team

__all__ = [
    "Appointment",
    "Cancellation",
    "Company",
    "Customer",
    "Job",
    "Plan",
    "PlanSubscription",
    "Professional",
    "Recurrence",
    "Team",
]
