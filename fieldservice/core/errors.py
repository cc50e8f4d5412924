"""Domain error kinds shared by the scheduling services.

Routers map these to HTTP responses in ``fieldservice.main``; the scheduler
trigger retries ``PersistenceError`` and logs everything else.
"""


class SchedulingError(Exception):
    """Base exception for scheduling service errors."""

    pass


class ValidationError(SchedulingError):
    """Malformed input (bad rule, bad window, unknown enum value)."""

    pass


class NotFoundError(SchedulingError):
    """Entity not found within the caller's company scope."""

    def __init__(self, entity: str, entity_id: int | None = None):
        self.entity = entity
        self.entity_id = entity_id
        if entity_id is None:
            super().__init__(f"{entity} not found")
        else:
            super().__init__(f"{entity} {entity_id} not found")


class SchedulingConflictError(SchedulingError):
    """Proposed window overlaps existing non-cancelled appointments."""

    def __init__(self, conflicting_ids: list[int]):
        self.conflicting_ids = list(conflicting_ids)
        super().__init__(
            f"Time window conflicts with appointments {self.conflicting_ids}"
        )


class QuotaExceededError(SchedulingError):
    """Creating the resource would exceed the active plan's limit."""

    def __init__(self, kind: str, limit: int, current: int):
        self.kind = kind
        self.limit = limit
        self.current = current
        super().__init__(
            f"Plan limit reached for {kind}: {current} of {limit} in use"
        )


class InvalidStateTransition(SchedulingError):
    """Requested status change is not permitted by the state machine."""

    def __init__(self, entity: str, current: str, target: str):
        self.entity = entity
        self.current = current
        self.target = target
        super().__init__(f"Cannot move {entity} from '{current}' to '{target}'")


class PersistenceError(SchedulingError):
    """Transient storage failure; safe to retry."""

    pass


class MaterializationTimeout(PersistenceError):
    """Materialization attempt exceeded its execution budget and was rolled back."""

    pass
