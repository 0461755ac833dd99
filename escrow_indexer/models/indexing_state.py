"""
Indexing State model.

Singleton cursor: the last block fully scanned and recorded.
"""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from escrow_indexer.models.base import Base


class IndexingState(Base):
    """
    Scan cursor.

    Used to:
    - Resume scanning after restart
    - Report progress in health checks

    The only row has id='main'. last_processed_block never decreases.
    """

    __tablename__ = "indexing_state"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)

    last_processed_block: Mapped[int] = mapped_column(
        BigInteger, nullable=False, default=0
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
            f"<IndexingState(id={self.id}, "
            f"last_processed_block={self.last_processed_block})>"
        )
