"""Job-related enums."""

from enum import Enum


class JobType(str, Enum):
    """Types of background jobs."""

    APPOINTMENT_NOTIFICATION = "appointment_notification"  # Outbound event to the notification collaborator
    REFUND_REQUEST = "refund_request"  # initiateRefund call to the payment collaborator


class JobStatus(str, Enum):
    """Status of background jobs."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


DEFAULT_JOB_STATUS = JobStatus.PENDING
