"""API routers."""

from fieldservice.routers.appointments import router as appointments_router
from fieldservice.routers.cancellations import router as cancellations_router
from fieldservice.routers.internal import router as internal_router
from fieldservice.routers.plans import router as plans_router
from fieldservice.routers.recurrences import router as recurrences_router

__all__ = [
    "appointments_router",
    "cancellations_router",
    "internal_router",
    "plans_router",
    "recurrences_router",
]
