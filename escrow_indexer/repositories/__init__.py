"""
Repositories.

Data access layer over the indexer tables.
"""

from escrow_indexer.repositories.escrow_repository import EscrowRepository
from escrow_indexer.repositories.indexing_state_repository import (
    IndexingStateRepository,
)
from escrow_indexer.repositories.queue_job_repository import QueueJobRepository
from escrow_indexer.repositories.scan_gap_repository import ScanGapRepository

__all__ = [
    "EscrowRepository",
    "IndexingStateRepository",
    "QueueJobRepository",
    "ScanGapRepository",
]
