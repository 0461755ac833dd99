"""
Queue Job model.

Ledger of every dispatched escrow event, one row per chain log.
"""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, Integer, PrimaryKeyConstraint, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from escrow_indexer.models.base import Base
from escrow_indexer.models.enums import JobStatus


class QueueJob(Base):
    """
    Dispatched event record.

    Identified by (block_number, log_index): a log index is only
    unique within its block. The ledger is the source of truth for
    what was dispatched; the queue only handles delivery and retry.

    Status flow:
    - queued -> processing -> completed
    - processing -> failed -> processing (redelivery)
    completed is terminal.
    """

    __tablename__ = "queue_jobs"
    __table_args__ = (
        PrimaryKeyConstraint("block_number", "log_index"),
    )

    block_number: Mapped[int] = mapped_column(BigInteger, nullable=False)
    log_index: Mapped[int] = mapped_column(Integer, nullable=False)

    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    escrow_address: Mapped[str] = mapped_column(
        String(42), nullable=False, index=True
    )
    transaction_hash: Mapped[str | None] = mapped_column(
        String(66), nullable=True
    )

    # JSON payload: decoded fields + raw log data
    raw_data: Mapped[str] = mapped_column(Text, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JobStatus.QUEUED, index=True
    )

    # Error tracking
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"<QueueJob(block={self.block_number}, log={self.log_index}, "
            f"type={self.event_type}, status={self.status})>"
        )

    @property
    def is_completed(self) -> bool:
        """Check if job reached its terminal state."""
        return self.status == JobStatus.COMPLETED
