"""
Scan Gap model.

Blocks the scanner gave up on after repeated failures.
"""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from escrow_indexer.models.base import Base


class ScanGap(Base):
    """
    Unscanned block.

    Written when a block fails on SCAN_MAX_BLOCK_FAILURES consecutive
    passes and the cursor is allowed past it. Events in the block were
    never dispatched; an operator has to rescan it.
    """

    __tablename__ = "scan_gaps"

    block_number: Mapped[int] = mapped_column(BigInteger, primary_key=True)

    failures: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

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
        return f"<ScanGap(block_number={self.block_number}, failures={self.failures})>"
