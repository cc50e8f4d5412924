"""Scheduling API: app wiring, domain error mapping and health."""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from fieldservice.core.config import settings
from fieldservice.core.errors import (
    InvalidStateTransition,
    NotFoundError,
    PersistenceError,
    QuotaExceededError,
    SchedulingConflictError,
    SchedulingError,
    ValidationError,
)
from fieldservice.db.session import engine

logger = logging.getLogger(__name__)

# ============================================================================
# Sentry (enabled when SENTRY_DSN is set outside dev)
# ============================================================================

if settings.SENTRY_DSN and settings.ENV != "dev":
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
        ],
        traces_sample_rate=0.1,
        send_default_pii=False,
    )
    logging.info("Sentry initialized for error tracking")


# ============================================================================
# FastAPI App
# ============================================================================

app = FastAPI(
    title="Field Service Scheduling API",
    description="Multi-tenant recurring appointments, plan quotas and cancellations",
    version=settings.VERSION,
    docs_url="/docs" if settings.ENV == "dev" else None,
    redoc_url="/redoc" if settings.ENV == "dev" else None,
)


# ============================================================================
# Domain error mapping
# ============================================================================

def _status_for(exc: SchedulingError) -> int:
    if isinstance(exc, ValidationError):
        return 422
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (SchedulingConflictError, InvalidStateTransition)):
        return 409
    if isinstance(exc, QuotaExceededError):
        return 402
    if isinstance(exc, PersistenceError):
        return 503
    return 400


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    status_code = _status_for(exc)
    body: dict = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, SchedulingConflictError):
        body["conflicting_ids"] = exc.conflicting_ids
    elif isinstance(exc, QuotaExceededError):
        body.update({"kind": exc.kind, "limit": exc.limit, "current": exc.current})
    elif isinstance(exc, InvalidStateTransition):
        body.update({"current": exc.current, "target": exc.target})
    if status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content=body)


# ============================================================================
# Routers
# ============================================================================

from fieldservice.routers import appointments, cancellations, internal, plans, recurrences

app.include_router(recurrences.router, prefix="/recurrences", tags=["recurrences"])
app.include_router(appointments.router, prefix="/appointments", tags=["appointments"])
app.include_router(cancellations.router, prefix="/cancellations", tags=["cancellations"])
app.include_router(plans.router, prefix="/plans", tags=["plans"])

# Internal scheduled endpoints (router already has /internal/scheduled prefix)
app.include_router(internal.router)


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
def health():
    """
    Liveness plus a round trip to the database.
    """
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok", "env": settings.ENV, "version": settings.VERSION}
