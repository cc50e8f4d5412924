"""Plan usage schemas."""

from pydantic import BaseModel


class ResourceUsage(BaseModel):
    limit: int | None  # None = unlimited
    current: int
    remaining: int | None


class PlanUsageResponse(BaseModel):
    plan_id: int | None
    plan_name: str | None
    usage: dict[str, ResourceUsage]
