"""
Escrow model.

Projected state of one escrow contract, keyed by contract address.
"""

from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from escrow_indexer.models.base import Base
from escrow_indexer.models.enums import EscrowStatus


class Escrow(Base):
    """
    Escrow contract state.

    Created by the first EscrowCreated event for the address and
    moved forward only by classified events. Rows are never deleted.
    """

    __tablename__ = "escrows"

    # Contract address (normalized to lowercase)
    address: Mapped[str] = mapped_column(String(42), primary_key=True)

    # Parties and asset
    seller: Mapped[str] = mapped_column(String(42), nullable=False)
    buyer: Mapped[str] = mapped_column(String(42), nullable=False)
    token: Mapped[str] = mapped_column(String(42), nullable=False)

    # uint256 as decimal string for precision
    amount: Mapped[str] = mapped_column(Text, nullable=False, default="0")

    # Unix timestamp after which the escrow may time out
    timeout: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=EscrowStatus.PENDING, index=True
    )

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
            f"<Escrow(address={self.address}, status={self.status}, "
            f"amount={self.amount})>"
        )
