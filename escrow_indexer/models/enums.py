"""
Model enums.

String enums persisted as plain VARCHAR values.
"""

from enum import StrEnum


class EscrowStatus(StrEnum):
    """Escrow lifecycle status."""

    PENDING = "Pending"
    FUNDED = "Funded"
    CONFIRMED = "Confirmed"
    CANCELLED = "Cancelled"
    TIMED_OUT = "TimedOut"


class JobStatus(StrEnum):
    """Queue job ledger status."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class EscrowEventType(StrEnum):
    """Classified escrow contract event."""

    ESCROW_CREATED = "EscrowCreated"
    FUNDED = "Funded"
    CONFIRMED_BY_SELLER = "ConfirmedBySeller"
    CANCELLED_BY_SELLER = "CancelledBySeller"
    TIMED_OUT = "TimedOut"
    UNKNOWN = "Unknown"
