"""
Database models.

Exports all SQLAlchemy models for easy imports.
"""

from escrow_indexer.models.base import Base
from escrow_indexer.models.enums import EscrowEventType, EscrowStatus, JobStatus
from escrow_indexer.models.escrow import Escrow
from escrow_indexer.models.indexing_state import IndexingState
from escrow_indexer.models.queue_job import QueueJob
from escrow_indexer.models.scan_gap import ScanGap

__all__ = [
    # Base
    "Base",
    # Enums
    "EscrowEventType",
    "EscrowStatus",
    "JobStatus",
    # Models
    "Escrow",
    "IndexingState",
    "QueueJob",
    "ScanGap",
]
